"""
Migration exception classes.

This module provides:
- Error codes for programmatic error handling
- The migration error taxonomy raised by the engine
"""

from typing import Any


class ErrorCode:
    """Error codes for programmatic error handling."""

    # General errors (1xxx)
    MIGRATION_ERROR = "ERR_1000"
    CONFIGURATION_ERROR = "ERR_1001"

    # Lock errors (2xxx)
    LOCK_UNAVAILABLE = "ERR_2001"

    # Change store errors (3xxx)
    RECONCILIATION_CONFLICT = "ERR_3001"
    PERSISTENCE_CONFLICT = "ERR_3002"

    # Execution errors (4xxx)
    EXECUTION_FAILED = "ERR_4001"


class MigrationError(Exception):
    """Base exception for migration errors."""

    error_code: str = ErrorCode.MIGRATION_ERROR

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.error_code


class ConfigurationError(MigrationError):
    """Raised for invalid migration sources or unsupported change types."""

    error_code = ErrorCode.CONFIGURATION_ERROR


# =============================================================================
# Lock Errors
# =============================================================================


class LockUnavailableError(MigrationError):
    """Raised when another runner holds the migration lock."""

    error_code = ErrorCode.LOCK_UNAVAILABLE

    def __init__(self, target: str, holder: str | None = None):
        self.target = target
        self.holder = holder
        message = f"Unable to acquire migration lock on '{target}'"
        if holder:
            message += f": held by {holder}"
        super().__init__(message)


# =============================================================================
# Change Store Errors
# =============================================================================


class ReconciliationConflictError(MigrationError):
    """Raised when an executed changelog no longer matches its source content."""

    error_code = ErrorCode.RECONCILIATION_CONFLICT

    def __init__(self, mismatches: list[dict[str, Any]]):
        self.mismatches = mismatches
        versions = ", ".join(f"'{m['version']}'" for m in mismatches)
        super().__init__(f"Executed changelogs were modified: {versions}")


class PersistenceConflictError(MigrationError):
    """Raised when a changelog write loses an optimistic concurrency race."""

    error_code = ErrorCode.PERSISTENCE_CONFLICT

    def __init__(self, key: str, token: Any = None):
        self.key = key
        self.token = token
        super().__init__(
            f"Changelog '{key}' was modified concurrently (expected token {token})"
        )


# =============================================================================
# Execution Errors
# =============================================================================


class ExecutionFailureError(MigrationError):
    """Raised when a changelog fails to apply."""

    error_code = ErrorCode.EXECUTION_FAILED

    def __init__(self, changelog: Any):
        self.changelog = changelog
        super().__init__(
            f"Changelog '{changelog.version}' ({changelog.description}) failed to apply"
        )
