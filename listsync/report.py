from __future__ import annotations

from pathlib import Path
from typing import Iterable

import pandas as pd

from listsync.engine import RowOutcome

REPORT_COLUMNS = ["row", "status", "primary", "secondary", "record_id", "reason", "dry_run", "matched_records"]


def write_outcome_report(outcomes: Iterable[RowOutcome], path: str | Path) -> Path:
    """One CSV line per input row with its sync status."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame([o.as_dict() for o in outcomes], columns=REPORT_COLUMNS)
    df["record_id"] = df["record_id"].astype("Int64")
    df.to_csv(path, index=False)
    return path
