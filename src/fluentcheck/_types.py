"""Shared type variables, enums and callback aliases."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

if TYPE_CHECKING:
    from fluentcheck._context import ValidationContext

T = TypeVar("T")


class CascadeMode(Enum):
    """Whether a rule keeps running its steps after one of them fails."""

    CONTINUE = "continue"
    STOP_ON_FIRST_FAILURE = "stop_on_first_failure"


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ApplyConditionTo(Enum):
    """Scope of a condition added through a rule builder."""

    ALL_VALIDATORS = "all_validators"
    CURRENT_VALIDATOR = "current_validator"


@runtime_checkable
class CancelSignal(Protocol):
    """Anything exposing ``is_set()``, e.g. ``asyncio.Event`` or ``threading.Event``."""

    def is_set(self) -> bool: ...


# Rule-level conditions receive the whole validation context
Condition = Callable[["ValidationContext"], bool]
AsyncCondition = Callable[["ValidationContext", "CancelSignal | None"], Awaitable[bool]]

ErrorMessage = str | Callable[..., str]
"""Either a format template or a callable ``(instance, value) -> str``."""


def accepts_cancel(fn: Callable[..., Any]) -> bool:
    """True if ``fn`` declares a ``cancel`` parameter to receive the cancel signal."""
    try:
        return "cancel" in inspect.signature(fn).parameters
    except (TypeError, ValueError):
        return False


def instance_condition(predicate: Callable[..., Awaitable[bool]]) -> AsyncCondition:
    """Wrap an async ``predicate(instance)`` as a condition over the context."""
    if accepts_cancel(predicate):

        def condition(ctx: ValidationContext, cancel: CancelSignal | None) -> Awaitable[bool]:
            return predicate(ctx.instance_to_validate, cancel=cancel)

    else:

        def condition(ctx: ValidationContext, cancel: CancelSignal | None) -> Awaitable[bool]:
            return predicate(ctx.instance_to_validate)

    return condition


def describe_type(cls: Any) -> str:
    if isinstance(cls, tuple):
        return " | ".join(describe_type(member) for member in cls)
    return getattr(cls, "__name__", repr(cls))
