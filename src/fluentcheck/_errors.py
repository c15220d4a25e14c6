"""Exceptions raised by fluentcheck."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from fluentcheck._results import ValidationFailure

V = TypeVar("V")


class FluentCheckError(Exception):
    """Base class for errors raised by the library itself."""


class ArgumentNullError(FluentCheckError, ValueError):
    """A required argument was ``None`` (or blank, for names)."""

    def __init__(self, message: str, param_name: str | None = None):
        self.param_name = param_name
        if param_name:
            message = f"{message} (Parameter '{param_name}')"
        super().__init__(message)


class InvalidOperationError(FluentCheckError, TypeError):
    """The validator was asked to do something it cannot do in its current setup."""


class OperationCancelledError(asyncio.CancelledError):
    """Async validation observed a cancellation request at a rule boundary."""


class ValidationError(FluentCheckError, ValueError):
    """Raised by ``validate_and_raise`` when the result contains failures."""

    def __init__(self, errors: list[ValidationFailure], message: str | None = None):
        self.errors = list(errors)
        if message is None:
            lines = [f" -- {e.property_name}: {e.error_message}" for e in self.errors]
            message = "Validation failed:\n" + "\n".join(lines)
        super().__init__(message)


def guard(value: V | None, message: str, param_name: str | None = None) -> V:
    """Return ``value`` or raise ``ArgumentNullError`` when it is ``None``."""
    if value is None:
        raise ArgumentNullError(message, param_name)
    return value


def guard_not_blank(value: Any, message: str, param_name: str | None = None) -> str:
    if value is None or not str(value).strip():
        raise ArgumentNullError(message, param_name)
    return str(value)
