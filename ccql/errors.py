"""Exception hierarchy for ccql."""

from __future__ import annotations


class CcqlError(Exception):
    """Base class for every error raised by ccql."""

    prefix = "ccql error"

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail)
        self.detail = detail

    def __str__(self) -> str:
        return f"{self.prefix}: {self.detail}"


class JsonParseError(CcqlError, ValueError):
    """A JSON document could not be parsed or did not have the expected shape."""

    prefix = "JSON parsing error"


class QueryParseError(CcqlError):
    prefix = "Query parse error"


class QueryExecutionError(CcqlError):
    prefix = "Query execution error"


class ConfigError(CcqlError):
    prefix = "Configuration error"


class DataSourceError(CcqlError):
    prefix = "Data source error"


class InvalidPathError(CcqlError):
    prefix = "Invalid path"


class DataFileNotFoundError(CcqlError):
    prefix = "File not found"


class SqlError(CcqlError):
    prefix = "SQL error"


class WriteNotAllowedError(CcqlError):
    prefix = "Write operation not allowed"


class DangerousOperationError(CcqlError):
    prefix = "Dangerous operation rejected"


class BackupFailedError(CcqlError):
    prefix = "Backup failed"