from __future__ import annotations

import enum
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from listsync.comparator import values_equal
from listsync.config import SyncConfig
from listsync.errors import ConfigurationError, MalformedRowError, RemoteConnectionError, RowOperationError
from listsync.mapper import NormalizedRow, is_blank, map_row
from listsync.matcher import find_matches
from listsync.sharepoint_client import RemoteListClient, RemoteRecord


class OutcomeKind(enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED_NO_MATCH = "skipped_no_match"
    SKIPPED_INVALID_ROW = "skipped_invalid_row"
    FAILED = "failed"


# when one row matches several records, the row reports the most severe result
_SEVERITY = {OutcomeKind.UNCHANGED: 0, OutcomeKind.UPDATED: 1, OutcomeKind.FAILED: 2}


@dataclass(frozen=True)
class RowOutcome:
    row_number: int
    kind: OutcomeKind
    primary: Optional[str] = None
    secondary: Optional[str] = None
    record_id: Optional[int] = None
    reason: Optional[str] = None
    dry_run: bool = False
    matches: Tuple["RowOutcome", ...] = ()

    def as_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row_number,
            "status": self.kind.value,
            "primary": self.primary,
            "secondary": self.secondary,
            "record_id": self.record_id,
            "reason": self.reason or "",
            "dry_run": self.dry_run,
            "matched_records": len(self.matches) or (1 if self.record_id is not None else 0),
        }


@dataclass
class SyncSummary:
    outcomes: List[RowOutcome] = field(default_factory=list)

    def count(self, *kinds: OutcomeKind) -> int:
        counts = Counter(o.kind for o in self.outcomes)
        return sum(counts[k] for k in kinds)

    @property
    def created(self) -> int:
        return self.count(OutcomeKind.CREATED)

    @property
    def updated(self) -> int:
        return self.count(OutcomeKind.UPDATED)

    @property
    def unchanged(self) -> int:
        return self.count(OutcomeKind.UNCHANGED)

    @property
    def skipped(self) -> int:
        return self.count(OutcomeKind.SKIPPED_NO_MATCH, OutcomeKind.SKIPPED_INVALID_ROW)

    @property
    def failed(self) -> int:
        return self.count(OutcomeKind.FAILED)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "failed": self.failed,
        }


class ReconciliationEngine:
    """
    Creates or updates one remote list item per CSV row.

    Rows are handled strictly in order. Anything that goes wrong inside a row
    becomes a FAILED outcome for that row; only configuration and connection
    problems stop the run.

    An update always sends the whole mapped row minus its null fields, never
    just the field that was found to differ: the diff stops at the first
    difference. Nulls are left out so a blank CSV cell cannot clear a remote
    value. A create sends the mapped row as is, nulls included.
    """

    def __init__(self, client: RemoteListClient, config: SyncConfig, log, dry_run: bool = False):
        self.client = client
        self.config = config
        self.mapping = config.mapping
        self.list_name = config.sharepoint.list_name
        self.log = log
        self.dry_run = dry_run

    # ---- run level

    def check_columns(self, columns: Sequence[str]) -> None:
        present = set(columns)
        for col in (self.mapping.primary_column, self.mapping.secondary_column):
            if col not in present:
                raise ConfigurationError(f"CSV has no column {col!r} required for matching")
        for remote_field, col in self.mapping.mapped.items():
            if col not in present:
                self.log.warning("mapped_column_missing", field=remote_field, column=col)

    def run(self, rows: Iterable[Optional[Mapping[str, Any]]], columns: Optional[Sequence[str]] = None) -> SyncSummary:
        if columns is not None:
            self.check_columns(columns)

        summary = SyncSummary()
        try:
            self._connect()
            self.log.info("sync_started", list_name=self.list_name, dry_run=self.dry_run)
            for row_number, row in enumerate(rows, start=2):  # line 1 is the header
                summary.outcomes.append(self.process_row(row_number, row))
        finally:
            self._disconnect()

        self.log.info("sync_finished", **summary.as_dict())
        return summary

    def _connect(self) -> None:
        site_url = self.config.sharepoint.site_url.rstrip("/")
        current = self.client.current_session()
        if current and current.rstrip("/") == site_url:
            self.log.info("session_reused", site_url=site_url)
            return
        try:
            self.client.connect(site_url)
        except RemoteConnectionError:
            raise
        except Exception as e:
            raise RemoteConnectionError(f"Cannot connect to {site_url}: {e}") from e
        self.log.info("connected", site_url=site_url)

    def _disconnect(self) -> None:
        try:
            self.client.disconnect()
        except Exception as e:
            self.log.warning("disconnect_failed", error=str(e))

    # ---- row level

    def process_row(self, row_number: int, row: Optional[Mapping[str, Any]]) -> RowOutcome:
        if not isinstance(row, Mapping):
            err = MalformedRowError(f"row {row_number} is {type(row).__name__}, not a mapping")
            self.log.warning("row_skipped", row=row_number, reason=str(err))
            return RowOutcome(row_number, OutcomeKind.SKIPPED_INVALID_ROW, reason=str(err))

        primary = row.get(self.mapping.primary_column)
        secondary = row.get(self.mapping.secondary_column)
        # one blank identity is enough: an empty literal never matches a stored
        # null, so such a row would be created again on every run
        if is_blank(primary) or is_blank(secondary):
            self.log.warning("row_skipped", row=row_number, reason="missing identity", primary=primary, secondary=secondary)
            return RowOutcome(
                row_number, OutcomeKind.SKIPPED_INVALID_ROW, primary, secondary, reason="missing identity value"
            )

        primary, secondary = str(primary), str(secondary)
        rlog = self.log.bind(row=row_number, primary=primary, secondary=secondary)
        try:
            return self._reconcile(row_number, row, primary, secondary, rlog)
        except Exception as e:
            rlog.error("row_failed", error=str(e), error_type=type(e).__name__)
            return RowOutcome(row_number, OutcomeKind.FAILED, primary, secondary, reason=str(e))

    def _reconcile(self, row_number: int, row: Mapping[str, Any], primary: str, secondary: str, rlog) -> RowOutcome:
        normalized = map_row(row, self.mapping, rlog)
        rlog.debug("row_mapped", fields=normalized)

        matches = find_matches(self.client, self.list_name, self.mapping, primary, secondary)
        if not matches:
            return self._create(row_number, normalized, primary, secondary, rlog)

        if len(matches) > 1:
            rlog.warning("duplicate_identity", record_ids=[m.id for m in matches])
        results = [self._sync_record(row_number, normalized, rec, primary, secondary, rlog) for rec in matches]
        if len(results) == 1:
            return results[0]

        worst = max(results, key=lambda o: _SEVERITY[o.kind])
        reasons = "; ".join(o.reason for o in results if o.reason)
        return RowOutcome(
            row_number,
            worst.kind,
            primary,
            secondary,
            record_id=worst.record_id,
            reason=reasons or None,
            dry_run=self.dry_run,
            matches=tuple(results),
        )

    def _create(self, row_number: int, normalized: NormalizedRow, primary: str, secondary: str, rlog) -> RowOutcome:
        if not self.config.rules.create_missing:
            rlog.info("row_no_match")
            return RowOutcome(row_number, OutcomeKind.SKIPPED_NO_MATCH, primary, secondary)

        if self.dry_run:
            rlog.info("row_would_create", fields=normalized)
            return RowOutcome(row_number, OutcomeKind.CREATED, primary, secondary, dry_run=True)

        try:
            created = self.client.create(self.list_name, dict(normalized))
        except Exception as e:
            err = RowOperationError(f"create failed: {e}")
            rlog.error("create_failed", error=str(e))
            return RowOutcome(row_number, OutcomeKind.FAILED, primary, secondary, reason=str(err))

        rlog.info("row_created", record_id=created.id)
        return RowOutcome(row_number, OutcomeKind.CREATED, primary, secondary, record_id=created.id)

    def _sync_record(
        self,
        row_number: int,
        normalized: NormalizedRow,
        record: RemoteRecord,
        primary: str,
        secondary: str,
        rlog,
    ) -> RowOutcome:
        rlog = rlog.bind(record_id=record.id)
        changed = self.first_difference(normalized, record, rlog)
        if changed is None:
            rlog.info("row_unchanged")
            return RowOutcome(row_number, OutcomeKind.UNCHANGED, primary, secondary, record_id=record.id)

        payload = self.update_payload(normalized, record, rlog)
        if self.dry_run:
            rlog.info("row_would_update", changed_field=changed, fields=payload)
            return RowOutcome(row_number, OutcomeKind.UPDATED, primary, secondary, record_id=record.id, dry_run=True)

        try:
            if self.client.update(self.list_name, record.id, payload) is False:
                raise RowOperationError("remote list rejected the update")
        except Exception as e:
            err = e if isinstance(e, RowOperationError) else RowOperationError(f"update failed: {e}")
            rlog.error("update_failed", error=str(e))
            return RowOutcome(row_number, OutcomeKind.FAILED, primary, secondary, record_id=record.id, reason=str(err))

        rlog.info("row_updated", changed_field=changed)
        return RowOutcome(row_number, OutcomeKind.UPDATED, primary, secondary, record_id=record.id)

    def first_difference(self, normalized: NormalizedRow, record: RemoteRecord, rlog=None) -> Optional[str]:
        """Name of the first field that really differs, or None."""
        for key, incoming in normalized.items():
            existing = record.fields.get(key)
            if existing is None:
                continue
            if not values_equal(incoming, existing, rlog, key):
                return key
        return None

    def update_payload(self, normalized: NormalizedRow, record: RemoteRecord, rlog=None) -> Dict[str, Any]:
        # nulls are left out so blank CSV cells never clear remote values
        payload: Dict[str, Any] = {k: v for k, v in normalized.items() if v is not None}

        rules = self.config.rules
        owner_field = rules.ownership_change_field
        if owner_field and rules.stale_flag_field and owner_field in record.fields:
            if not values_equal(normalized.get(owner_field), record.fields[owner_field], rlog, owner_field):
                payload[rules.stale_flag_field] = False
                if rlog is not None:
                    rlog.info("ownership_changed", field=owner_field, flag=rules.stale_flag_field)
        return payload
