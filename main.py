from __future__ import annotations

import argparse

from listsync.config import load_config, load_credentials
from listsync.csv_source import read_csv_rows
from listsync.engine import ReconciliationEngine
from listsync.errors import SyncError
from listsync.logs import run_logger
from listsync.report import write_outcome_report
from listsync.sharepoint_client import SharePointListClient


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Sync CSV inventory rows to a SharePoint list")
    p.add_argument("--csv", required=True, help="CSV export to synchronize")
    p.add_argument("--config", default="config.json", help="JSON sync config (created from a template if missing)")
    p.add_argument("--env", default=".env", help="Credentials file")
    p.add_argument("--dry-run", action="store_true", help="Query and diff, but create/update nothing")
    p.add_argument("--report", default=None, help="Write a per-row CSV status report here")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        cfg = load_config(args.config)
    except SyncError as e:
        print(f"Config error: {e}")
        return 2

    creds = load_credentials(args.env)
    if not creds.usable:
        print(f"Missing SharePoint credentials. Fill {args.env}")
        return 2

    with run_logger(cfg.logging.log_level, cfg.logging.log_file) as log:
        try:
            source = read_csv_rows(args.csv)
            if not source.rows:
                print("No rows found.")
                return 0
            engine = ReconciliationEngine(SharePointListClient(creds), cfg, log, dry_run=args.dry_run)
            summary = engine.run(source.rows, columns=source.columns)
        except SyncError as e:
            log.error("sync_aborted", error=str(e), error_type=type(e).__name__)
            return 2

    if args.report:
        path = write_outcome_report(summary.outcomes, args.report)
        print(f"Report saved to: {path}")

    counts = summary.as_dict()
    print("Done. " + ", ".join(f"{k}={v}" for k, v in counts.items()))
    return summary.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
