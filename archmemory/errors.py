"""Error taxonomy for archmemory.

Every error carries a stable ``code`` and an optional ``context`` dict with
diagnostic details. Context must never hold secrets or full parameter values.
"""

from __future__ import annotations

MISSING_CONFIG = "MISSING_CONFIG"
DB_CONNECTION_FAILED = "DB_CONNECTION_FAILED"
DB_QUERY_FAILED = "DB_QUERY_FAILED"
VALIDATION_FAILED = "VALIDATION_FAILED"
EMBEDDING_FAILED = "EMBEDDING_FAILED"
PROJECT_NOT_FOUND = "PROJECT_NOT_FOUND"


class ArchMemoryError(Exception):
    code = "UNKNOWN_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.context = context or {}


class ConfigurationError(ArchMemoryError):
    """Required configuration is missing or invalid. Fatal at startup."""

    code = MISSING_CONFIG


class StorageConnectionError(ArchMemoryError):
    """The database could not be opened or the pool is exhausted."""

    code = DB_CONNECTION_FAILED


class QueryError(ArchMemoryError):
    """A statement failed. ``context`` holds the operation and truncated SQL."""

    code = DB_QUERY_FAILED


class ConstraintError(QueryError):
    """A uniqueness/check/foreign-key constraint rejected the statement."""


class ValidationError(ArchMemoryError):
    """Input rejected before any write."""

    code = VALIDATION_FAILED


class EmbeddingError(ArchMemoryError):
    """The feature extractor failed. Always recovered by the fallback."""

    code = EMBEDDING_FAILED


class ProjectNotFoundError(ArchMemoryError):
    code = PROJECT_NOT_FOUND
