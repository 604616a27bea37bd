from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import pandas as pd

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S"


class ValueKind(enum.Enum):
    NULL = "null"
    TEXT = "text"
    NUMBER = "number"
    DATETIME = "datetime"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class FieldValue:
    """A remote field value tagged with the kind the list stores it as."""

    kind: ValueKind
    value: Any = None

    @classmethod
    def null(cls) -> "FieldValue":
        return cls(ValueKind.NULL)

    @classmethod
    def text(cls, value: str) -> "FieldValue":
        return cls(ValueKind.TEXT, value)

    @classmethod
    def number(cls, value: float) -> "FieldValue":
        return cls(ValueKind.NUMBER, float(value))

    @classmethod
    def datetime(cls, value: datetime) -> "FieldValue":
        return cls(ValueKind.DATETIME, value)

    @classmethod
    def boolean(cls, value: bool) -> "FieldValue":
        return cls(ValueKind.BOOLEAN, bool(value))

    @property
    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL


def parse_datetime(raw: str) -> datetime:
    """Parse a date/time string into a naive datetime (UTC wall clock).

    Raises ValueError when the text is not a date.
    """
    try:
        ts = pd.to_datetime(raw)
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f"not a date: {raw!r}") from e
    if ts is pd.NaT or pd.isna(ts):
        raise ValueError(f"not a date: {raw!r}")
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts.to_pydatetime().replace(microsecond=0)


def to_iso(value: datetime) -> str:
    return value.strftime(ISO_FORMAT)

