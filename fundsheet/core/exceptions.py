"""Application exception hierarchy."""

from __future__ import annotations

from typing import Any, Sequence


class AppException(Exception):
    """Base application exception with a structured payload."""

    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            **({"details": self.details} if self.details else {}),
        }


class MissingColumnError(AppException):
    """A required logical column matched none of its accepted header names."""

    error_code = "MISSING_COLUMN"

    def __init__(
        self,
        logical_name: str,
        aliases: Sequence[str],
        table: str | None = None,
    ):
        self.logical_name = logical_name
        self.aliases = tuple(aliases)
        self.table = table
        where = f" in table '{table}'" if table else ""
        super().__init__(
            message=(
                f"Missing column '{logical_name}'{where}; "
                f"tried: {', '.join(self.aliases)}"
            ),
            details={"column": logical_name, "aliases": list(self.aliases), "table": table},
        )


class MissingStoreError(AppException):
    """A named table does not exist where one is required."""

    error_code = "MISSING_STORE"

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            message=f"Table '{name}' not found",
            details={"table": name},
        )


class StaleKeyIndexError(AppException):
    """A key index was used against a table it was not built from."""

    error_code = "STALE_KEY_INDEX"
    message = "Key index no longer matches the target table"


class ExternalServiceError(AppException):
    """External service error."""

    error_code = "EXTERNAL_SERVICE_ERROR"
    message = "External service temporarily unavailable"


class DataSourceError(AppException):
    """A local data file is missing or unreadable."""

    error_code = "DATA_SOURCE_ERROR"
    message = "Data source unavailable"


class ConfigurationError(AppException):
    """Settings are inconsistent for the requested operation."""

    error_code = "CONFIGURATION_ERROR"
    message = "Invalid configuration"


class JobError(AppException):
    """Job execution failed."""

    error_code = "JOB_ERROR"
    message = "Job execution failed"
