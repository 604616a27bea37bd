from __future__ import annotations

from datetime import timezone
from typing import Optional

from listsync.values import FieldValue, ValueKind, parse_datetime

_TRUE = {"true", "yes", "1"}
_FALSE = {"false", "no", "0"}


def _parse_bool(text: str) -> Optional[bool]:
    t = text.strip().lower()
    if t in _TRUE:
        return True
    if t in _FALSE:
        return False
    return None


def values_equal(incoming: Optional[str], existing: FieldValue, log=None, field: str = "") -> bool:
    """
    Compare an incoming CSV value with the value currently stored remotely.

    A None incoming value means the CSV says nothing about the field; it never
    counts as a difference, so absent CSV data cannot erase remote data.
    Incoming text is coerced to the kind of the existing value first.
    """
    if incoming is None:
        return True

    kind = existing.kind
    if kind is ValueKind.NULL:
        return False

    if kind is ValueKind.NUMBER:
        try:
            return float(incoming) == existing.value
        except ValueError:
            # the update call will surface the bad value
            return False

    if kind is ValueKind.DATETIME:
        try:
            parsed = parse_datetime(incoming)
        except ValueError:
            if log is not None:
                log.warning("comparison_date_unparseable", field=field, raw_value=incoming)
            return True
        existing_dt = existing.value
        if existing_dt.tzinfo is not None:
            existing_dt = existing_dt.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed == existing_dt.replace(microsecond=0)

    if kind is ValueKind.BOOLEAN:
        return _parse_bool(incoming) == existing.value

    return incoming == existing.value
