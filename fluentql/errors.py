"""Custom exception hierarchy for fluentQL.

All public errors inherit from FluentQLError so callers can catch the base
class for any fluentQL-specific failure.  Errors raised by the database
driver are never wrapped; they reach the caller unchanged.
"""
from __future__ import annotations

from typing import Any


class FluentQLError(Exception):
    """Base exception for all fluentQL errors."""


class InvalidArgumentError(FluentQLError):
    """Raised when a builder method receives an argument it cannot accept.

    Detected at mutation time, before any SQL is produced.

    Args:
        message: Human-readable description.
        argument: The offending argument, when there is a single one.
    """

    def __init__(self, message: str, argument: Any = None) -> None:
        super().__init__(message)
        self.argument = argument


class UnsupportedOperationError(FluentQLError):
    """Raised when a grammar cannot express the requested statement.

    Callers can catch this to fall back to a dialect-specific strategy.

    Args:
        message: Human-readable description.
        grammar: Dialect name of the grammar that refused the operation.
    """

    def __init__(self, message: str, grammar: str | None = None) -> None:
        super().__init__(message)
        self.grammar = grammar


class CompilationError(FluentQLError):
    """Raised when SQL compilation fails for an unexpected reason.

    Args:
        message: Human-readable description.
        clause: The clause being compiled when the error occurred.
    """

    def __init__(self, message: str, clause: str | None = None) -> None:
        super().__init__(message)
        self.clause = clause


class ConfigError(FluentQLError):
    """Raised when a connection configuration is inconsistent.

    Detected when the configuration is loaded, before any connection is
    opened, so the developer gets an actionable message.

    Args:
        message: Human-readable description.
        field: Name of the offending configuration field.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field
