from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from listsync.errors import ConfigurationError, RowMappingWarning
from listsync.values import parse_datetime, to_iso

NULL_SENTINEL = "NULL"

NormalizedRow = Dict[str, Optional[str]]


@dataclass
class FieldMapping:
    """Maps remote list field names -> CSV column names (None = declared, unmapped)."""

    remote_to_csv: Dict[str, Optional[str]]
    primary_field: str = "Title"
    secondary_field: str = "SerialNumber"
    due_date_field: Optional[str] = None
    mapped: Dict[str, str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.mapped = {k: v for k, v in self.remote_to_csv.items() if v}
        for role, name in (("primary", self.primary_field), ("secondary", self.secondary_field)):
            if name not in self.remote_to_csv:
                raise ConfigurationError(f"FieldMappings has no entry for the {role} identity field {name!r}")
            if not self.mapped.get(name):
                raise ConfigurationError(f"{role} identity field {name!r} is not mapped to a CSV column")

    @property
    def primary_column(self) -> str:
        return self.mapped[self.primary_field]

    @property
    def secondary_column(self) -> str:
        return self.mapped[self.secondary_field]

    def is_date_field(self, remote_field: str) -> bool:
        return remote_field.endswith("Date") or remote_field == self.due_date_field


def is_blank(value: Any) -> bool:
    """True for missing, empty/whitespace and the literal NULL sentinel."""
    if value is None:
        return True
    text = str(value)
    return not text.strip() or text == NULL_SENTINEL


def _normalize_date(remote_field: str, raw: str) -> str:
    try:
        return to_iso(parse_datetime(raw))
    except ValueError:
        raise RowMappingWarning(remote_field, raw) from None


def map_row(row: Mapping[str, Any], mapping: FieldMapping, log) -> NormalizedRow:
    payload: NormalizedRow = {}
    for remote_field, csv_col in mapping.mapped.items():
        v = row.get(csv_col)
        if is_blank(v):
            payload[remote_field] = None
            continue
        v = str(v)
        if mapping.is_date_field(remote_field):
            try:
                payload[remote_field] = _normalize_date(remote_field, v)
            except RowMappingWarning as w:
                log.error("date_parse_failed", field=w.field, raw_value=w.raw_value, column=csv_col)
                payload[remote_field] = None
            continue
        payload[remote_field] = v
    return payload
