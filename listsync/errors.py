from __future__ import annotations


class SyncError(Exception):
    """Base class for every error raised by listsync."""


class ConfigurationError(SyncError):
    """Missing or malformed configuration. Fatal, raised before any row runs."""


class RemoteConnectionError(SyncError):
    """The remote site could not be reached or authenticated against."""


class RemoteRequestError(SyncError):
    """A single call to the remote list failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RowOperationError(SyncError):
    """A create or update for one row (or one matched record) failed."""


class MalformedRowError(SyncError):
    """The source produced something that is not a row."""


class CsvSourceError(SyncError):
    """The CSV input could not be read."""


class RowMappingWarning(UserWarning):
    """A field value could not be normalized; the field is dropped to null."""

    def __init__(self, field: str, raw_value: str):
        super().__init__(f"{field}: cannot parse {raw_value!r} as a date")
        self.field = field
        self.raw_value = raw_value
