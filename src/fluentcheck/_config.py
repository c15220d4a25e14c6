"""Process-wide validator defaults."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from fluentcheck._types import CascadeMode

if TYPE_CHECKING:
    from fluentcheck._context import ValidatorSelector


def _default_selector_factory() -> ValidatorSelector:
    from fluentcheck._context import DefaultValidatorSelector

    return DefaultValidatorSelector()


@dataclass
class ValidatorOptions:
    """
    Defaults consulted by every validator.

    Attributes:
        cascade_mode: Cascade mode used by validators that don't set their own.
            Read each time a validator's ``cascade_mode`` is queried.
        selector_factory: Builds the selector used when a call doesn't ask for
            specific rule sets or properties.
        rule_cache_enabled: Default for ``Validator(cache_enabled=...)``.
    """

    cascade_mode: CascadeMode = CascadeMode.CONTINUE
    selector_factory: Callable[[], ValidatorSelector] = field(
        default=_default_selector_factory
    )
    rule_cache_enabled: bool = True


_global_options = ValidatorOptions()
_scoped_options: ContextVar[ValidatorOptions | None] = ContextVar(
    "validator_options", default=None
)


def get_options() -> ValidatorOptions:
    """Return the options in effect for the current context."""
    scoped = _scoped_options.get()
    return scoped if scoped is not None else _global_options


def configure(**changes: Any) -> ValidatorOptions:
    """
    Change the process-wide defaults.

    Example:
        configure(cascade_mode=CascadeMode.STOP_ON_FIRST_FAILURE)
    """
    for name, value in changes.items():
        if not hasattr(_global_options, name):
            raise AttributeError(f"Unknown validator option: {name!r}")
        setattr(_global_options, name, value)
    return _global_options


@contextmanager
def use_options(**changes: Any) -> Iterator[ValidatorOptions]:
    """
    Context manager overriding options for everything run inside the scope.

    Example:
        with use_options(cascade_mode=CascadeMode.STOP_ON_FIRST_FAILURE):
            result = validator.validate(order)
    """
    options = replace(get_options(), **changes)
    token = _scoped_options.set(options)
    try:
        yield options
    finally:
        _scoped_options.reset(token)
