"""Domain specific exceptions raised by the database access layer."""

from __future__ import annotations

__all__ = [
    "ArgumentError",
    "ConfigurationError",
    "DatabaseError",
    "InvalidOperationError",
    "RetryableDatabaseError",
]


class DatabaseError(RuntimeError):
    """Base class for database access related failures."""


class RetryableDatabaseError(DatabaseError):
    """Marker exception used to force retry logic for known transient states."""


class ConfigurationError(DatabaseError):
    """Raised when a named connection string cannot be resolved."""


class ArgumentError(DatabaseError, ValueError):
    """Raised for missing required input, including access to a closed handle."""

    def __init__(self, argument: str, message: str | None = None) -> None:
        self.argument = argument
        super().__init__(message or f"'{argument}' is required")


class InvalidOperationError(DatabaseError):
    """Raised when the handle is used in a way its current state does not allow."""
