"""Shared utilities for the sqlmarshal package."""

from .logging import StructuredLogger, configure_logging, correlation_context, get_logger

__all__ = ["StructuredLogger", "configure_logging", "correlation_context", "get_logger"]
