"""
Base exceptions for the migration engine.

Every error raised by the engine derives from MigratorError so callers
can catch one type at the outermost layer and still inspect the context
that was attached where the error was raised.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class MigratorError(Exception):
    """
    Root of every error the engine raises.

    Attributes:
        message: Human readable summary
        context: Identifiers needed to act on the error, such as a
            migration version, a file path or a truncated query
        cause: The driver, OS or parser error that was wrapped; also
            chained through ``raise ... from``
        occurred_at: UTC time the error was created
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = dict(context) if context else {}
        self.cause = cause
        self.occurred_at = datetime.now(timezone.utc)

    def __str__(self) -> str:
        sections = [self.message]

        if self.context:
            sections.append("Context: " + ", ".join(f"{key}={value}" for key, value in self.context.items()))

        if self.cause is not None:
            sections.append(f"Caused by: {type(self.cause).__name__}: {self.cause}")

        return " | ".join(sections)

    def to_dict(self) -> Dict[str, Any]:
        """Structured form for log records and machine-readable output."""
        cause = self.cause
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "context": self.context,
            "cause": str(cause) if cause is not None else None,
            "cause_type": type(cause).__name__ if cause is not None else None,
            "occurred_at": self.occurred_at.isoformat(),
        }
