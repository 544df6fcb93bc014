"""
Exceptions raised by the migration engine.
"""

from typing import Any, Dict, Optional

from ...core.exceptions import MigratorError


class MigrationError(MigratorError):
    """Base exception for migration errors."""
    pass


class DiscoveryError(MigrationError):
    """Raised when the migrations directory exists but cannot be read."""
    pass


class MigrationNotFoundError(MigrationError):
    """Exception raised when a migration is not found."""
    pass


class MigrationAlreadyAppliedError(MigrationError):
    """Exception raised when attempting to apply an already applied migration."""
    pass


class InvalidVersionError(MigrationError):
    """Raised when a version argument is not a run of digits."""
    pass


class DuplicateVersionError(MigrationError):
    """Raised when a pending version is claimed by more than one file."""
    pass


class ApplyError(MigrationError):
    """
    Raised when a forward script fails.

    For transactional migrations the schema and the tracking table are
    both unchanged. For non-transactional migrations ``partial`` tells
    whether some statements already took effect without being recorded.
    """

    def __init__(
        self,
        message: str,
        version: str,
        name: str,
        mode: str,
        partial: bool = False,
        statements_executed: int = 0,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        enhanced_context = {
            "version": version,
            "name": name,
            "mode": mode,
            "partial": partial,
            "statements_executed": statements_executed,
        }
        if context:
            enhanced_context.update(context)

        super().__init__(message, enhanced_context, cause)
        self.version = version
        self.name = name
        self.mode = mode
        self.partial = partial
        self.statements_executed = statements_executed


class RollbackError(MigrationError):
    """
    Raised when a migration cannot be rolled back.

    Either no rollback script was recorded (nothing was executed) or the
    rollback script failed (its transaction was rolled back and the
    tracking row kept).
    """

    def __init__(
        self,
        message: str,
        version: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        enhanced_context = {"version": version}
        if context:
            enhanced_context.update(context)

        super().__init__(message, enhanced_context, cause)
        self.version = version
