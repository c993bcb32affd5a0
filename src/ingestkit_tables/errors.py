"""Normalized error codes and structured error model for the ingestkit-tables pipeline."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Normalized error codes for the ingestkit-tables pipeline.

    All errors and warnings use a stable string code suitable for metrics,
    alerting, and programmatic handling. Codes prefixed with ``E_`` are errors;
    codes prefixed with ``W_`` are non-fatal warnings.
    """

    # Parse errors
    E_PARSE_CORRUPT = "E_PARSE_CORRUPT"
    E_PARSE_PASSWORD = "E_PARSE_PASSWORD"
    E_PARSE_EMPTY = "E_PARSE_EMPTY"
    E_PARSE_UNSUPPORTED = "E_PARSE_UNSUPPORTED"

    # Grid / detection errors
    E_GRID_MALFORMED = "E_GRID_MALFORMED"
    E_PROCESS_REGION_DETECT = "E_PROCESS_REGION_DETECT"

    # Oracle errors
    E_ORACLE_TIMEOUT = "E_ORACLE_TIMEOUT"
    E_ORACLE_MALFORMED = "E_ORACLE_MALFORMED"
    E_ORACLE_SCHEMA_INVALID = "E_ORACLE_SCHEMA_INVALID"
    E_ORACLE_FAILED = "E_ORACLE_FAILED"

    # Warnings (non-fatal)
    W_PARSER_FALLBACK = "W_PARSER_FALLBACK"
    W_SHEET_SKIPPED_CHART = "W_SHEET_SKIPPED_CHART"
    W_SHEET_SKIPPED_HIDDEN = "W_SHEET_SKIPPED_HIDDEN"
    W_SHEET_SKIPPED_EMPTY = "W_SHEET_SKIPPED_EMPTY"
    W_GRID_CLIPPED = "W_GRID_CLIPPED"
    W_NO_TABLE_FOUND = "W_NO_TABLE_FOUND"
    W_ORACLE_RETRY = "W_ORACLE_RETRY"
    W_ORACLE_OVERRIDE_IGNORED = "W_ORACLE_OVERRIDE_IGNORED"
    W_ORACLE_REJECTED_TABLE = "W_ORACLE_REJECTED_TABLE"


class IngestError(BaseModel):
    """Structured error with code, message, and context.

    Each error carries an ``ErrorCode``, a human-readable message, and
    optional context about which sheet and processing stage produced it.
    """

    code: ErrorCode
    message: str
    sheet_name: str | None = None
    stage: str | None = None
    recoverable: bool = False


class MalformedGridError(ValueError):
    """Raised when a sheet grid cannot be processed (e.g. zero columns).

    Carries an :class:`ErrorCode` so callers can record it as a structured
    :class:`IngestError` and skip the sheet.
    """

    def __init__(self, message: str, code: ErrorCode = ErrorCode.E_GRID_MALFORMED) -> None:
        super().__init__(message)
        self.code = code
