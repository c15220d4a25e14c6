"""
Property checks: the individual steps of a rule's chain.

A check receives the value extracted by its rule and returns zero or more
failures. Error messages are format templates filled with
``{property_name}``, ``{property_value}`` and the check's own parameters.
"""

from __future__ import annotations

import copy
import inspect
import re
import threading
from collections.abc import Awaitable, Callable, Sized
from typing import TYPE_CHECKING, Any, overload

from fluentcheck._context import PropertyChain, ValidationContext
from fluentcheck._errors import InvalidOperationError, guard
from fluentcheck._results import ValidationFailure
from fluentcheck._types import (
    AsyncCondition,
    CancelSignal,
    Condition,
    ErrorMessage,
    Severity,
    accepts_cancel,
)

if TYPE_CHECKING:
    from fluentcheck._validator import Validator


class PropertyCheck:
    """
    A synchronous check on a property value.

    Example:
        positive = PropertyCheck(lambda v: v > 0, "positive",
                                 error="'{property_name}' must be positive.")
    """

    is_async = False

    def __init__(
        self,
        fn: Callable[..., bool],
        name: str | None = None,
        error: ErrorMessage | None = None,
        error_code: str | None = None,
        params: dict[str, Any] | None = None,
        message_args: Callable[[Any], dict[str, Any]] | None = None,
        with_instance: bool = False,
    ):
        self.fn = fn
        self.name = name or getattr(fn, "__name__", "check")
        self.error = error
        self.error_code = error_code or self.name
        self.params: dict[str, Any] = dict(params or {})
        self.message_args = message_args
        self.with_instance = with_instance
        self.severity = Severity.ERROR
        self.custom_state: Callable[[Any, Any], Any] | None = None
        self.conditions: list[Condition] = []
        self.async_conditions: list[AsyncCondition] = []

    @property
    def has_async_work(self) -> bool:
        return self.is_async or bool(self.async_conditions)

    def copy(self) -> PropertyCheck:
        clone = copy.copy(self)
        clone.params = dict(self.params)
        clone.conditions = list(self.conditions)
        clone.async_conditions = list(self.async_conditions)
        return clone

    def is_valid(self, instance: Any, value: Any) -> bool:
        if self.with_instance:
            return bool(self.fn(instance, value))
        return bool(self.fn(value))

    def get_error(self, instance: Any, display_name: str, value: Any) -> str:
        """Build the error message for this check."""
        if self.error is None:
            return f"The specified condition was not met for '{display_name}'."
        if callable(self.error):
            return self.error(instance, value)
        format_context = dict(self.params)
        if self.message_args is not None:
            format_context.update(self.message_args(value))
        format_context["property_name"] = display_name
        format_context["property_value"] = value
        format_context["instance"] = instance
        try:
            return self.error.format(**format_context)
        except (KeyError, IndexError, AttributeError):
            return self.error

    def _failure(
        self, context: ValidationContext, property_path: str, display_name: str, value: Any
    ) -> ValidationFailure:
        instance = context.instance_to_validate
        return ValidationFailure(
            property_name=property_path,
            error_message=self.get_error(instance, display_name, value),
            attempted_value=value,
            error_code=self.error_code,
            severity=self.severity,
            custom_state=self.custom_state(instance, value) if self.custom_state else None,
        )

    def should_run(self, context: ValidationContext) -> bool:
        return all(condition(context) for condition in self.conditions)

    async def should_run_async(
        self, context: ValidationContext, cancel: CancelSignal | None = None
    ) -> bool:
        if not self.should_run(context):
            return False
        for condition in self.async_conditions:
            if not await condition(context, cancel):
                return False
        return True

    def validate(
        self, context: ValidationContext, property_path: str, display_name: str, value: Any
    ) -> list[ValidationFailure]:
        if self.is_valid(context.instance_to_validate, value):
            return []
        return [self._failure(context, property_path, display_name, value)]

    async def validate_async(
        self,
        context: ValidationContext,
        property_path: str,
        display_name: str,
        value: Any,
        cancel: CancelSignal | None = None,
    ) -> list[ValidationFailure]:
        return self.validate(context, property_path, display_name, value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"


class AsyncPropertyCheck(PropertyCheck):
    """
    A check whose predicate is a coroutine function.

    Only usable through ``validate_async``. A predicate that declares a
    ``cancel`` parameter receives the call's cancel signal.
    """

    is_async = True

    def __init__(self, fn: Callable[..., Awaitable[bool]], *args: Any, **kwargs: Any):
        super().__init__(fn, *args, **kwargs)
        self.wants_cancel = accepts_cancel(fn)

    async def is_valid_async(
        self, instance: Any, value: Any, cancel: CancelSignal | None = None
    ) -> bool:
        args = (instance, value) if self.with_instance else (value,)
        if self.wants_cancel:
            return bool(await self.fn(*args, cancel=cancel))
        return bool(await self.fn(*args))

    def validate(
        self, context: ValidationContext, property_path: str, display_name: str, value: Any
    ) -> list[ValidationFailure]:
        raise InvalidOperationError(
            f"Check '{self.name}' on '{property_path}' is asynchronous. "
            "Use validate_async() instead of validate()."
        )

    async def validate_async(
        self,
        context: ValidationContext,
        property_path: str,
        display_name: str,
        value: Any,
        cancel: CancelSignal | None = None,
    ) -> list[ValidationFailure]:
        if await self.is_valid_async(context.instance_to_validate, value, cancel):
            return []
        return [self._failure(context, property_path, display_name, value)]


# Validators whose rules are being inspected for async work on this thread
_inspecting = threading.local()


class ChildValidatorCheck(PropertyCheck):
    """
    Validates a complex property with another validator.

    The validator may be the one that owns the rule, for recursive
    structures such as trees.
    """

    def __init__(self, validator: Validator):
        guard(validator, "Cannot pass a None validator to set_validator.", "validator")
        super().__init__(lambda value: True, f"child:{type(validator).__name__}")
        self.validator = validator

    @property
    def has_async_work(self) -> bool:
        if self.async_conditions:
            return True
        visiting = getattr(_inspecting, "validators", None)
        if visiting is None:
            visiting = _inspecting.validators = set()
        if id(self.validator) in visiting:
            return False
        visiting.add(id(self.validator))
        try:
            return any(rule.has_async_work for rule in self.validator)
        finally:
            visiting.discard(id(self.validator))

    def _child_context(self, context: ValidationContext, property_path: str, value: Any):
        chain = PropertyChain([property_path] if property_path else [])
        return context.child_context(value, chain)

    def validate(
        self, context: ValidationContext, property_path: str, display_name: str, value: Any
    ) -> list[ValidationFailure]:
        if value is None:
            return []
        result = self.validator.validate(self._child_context(context, property_path, value))
        return list(result.errors)

    async def validate_async(
        self,
        context: ValidationContext,
        property_path: str,
        display_name: str,
        value: Any,
        cancel: CancelSignal | None = None,
    ) -> list[ValidationFailure]:
        if value is None:
            return []
        result = await self.validator.validate_async(
            self._child_context(context, property_path, value), cancel
        )
        return list(result.errors)


# =============================================================================
# Built-in checks
# =============================================================================


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, Sized):
        return len(value) == 0
    return False


def _length(value: Any) -> int:
    return len(value) if value is not None else 0


def not_null() -> PropertyCheck:
    return PropertyCheck(
        lambda v: v is not None, "not_null", "'{property_name}' must not be empty."
    )


def null() -> PropertyCheck:
    return PropertyCheck(lambda v: v is None, "null", "'{property_name}' must be empty.")


def not_empty() -> PropertyCheck:
    return PropertyCheck(
        lambda v: not _is_empty(v), "not_empty", "'{property_name}' must not be empty."
    )


def empty() -> PropertyCheck:
    return PropertyCheck(_is_empty, "empty", "'{property_name}' must be empty.")


def equal(comparison_value: Any) -> PropertyCheck:
    return PropertyCheck(
        lambda v: v == comparison_value,
        "equal",
        "'{property_name}' must be equal to '{comparison_value}'.",
        params={"comparison_value": comparison_value},
    )


def not_equal(comparison_value: Any) -> PropertyCheck:
    return PropertyCheck(
        lambda v: v != comparison_value,
        "not_equal",
        "'{property_name}' must not be equal to '{comparison_value}'.",
        params={"comparison_value": comparison_value},
    )


def length(min_length: int, max_length: int) -> PropertyCheck:
    if max_length < min_length:
        raise ValueError("max_length should be larger than min_length.")
    return PropertyCheck(
        lambda v: v is None or min_length <= len(v) <= max_length,
        "length",
        "'{property_name}' must be between {min_length} and {max_length} characters. "
        "You entered {total_length} characters.",
        params={"min_length": min_length, "max_length": max_length},
        message_args=lambda v: {"total_length": _length(v)},
    )


def min_length(minimum: int) -> PropertyCheck:
    return PropertyCheck(
        lambda v: v is None or len(v) >= minimum,
        "min_length",
        "The length of '{property_name}' must be at least {min_length} characters. "
        "You entered {total_length} characters.",
        params={"min_length": minimum},
        message_args=lambda v: {"total_length": _length(v)},
    )


def max_length(maximum: int) -> PropertyCheck:
    return PropertyCheck(
        lambda v: v is None or len(v) <= maximum,
        "max_length",
        "The length of '{property_name}' must be {max_length} characters or fewer. "
        "You entered {total_length} characters.",
        params={"max_length": maximum},
        message_args=lambda v: {"total_length": _length(v)},
    )


def _comparison(name: str, op: Callable[[Any, Any], bool], phrase: str, other: Any):
    return PropertyCheck(
        lambda v: v is None or op(v, other),
        name,
        "'{property_name}' must be " + phrase + " '{comparison_value}'.",
        params={"comparison_value": other},
    )


def greater_than(value: Any) -> PropertyCheck:
    return _comparison("greater_than", lambda a, b: a > b, "greater than", value)


def greater_than_or_equal(value: Any) -> PropertyCheck:
    return _comparison(
        "greater_than_or_equal", lambda a, b: a >= b, "greater than or equal to", value
    )


def less_than(value: Any) -> PropertyCheck:
    return _comparison("less_than", lambda a, b: a < b, "less than", value)


def less_than_or_equal(value: Any) -> PropertyCheck:
    return _comparison(
        "less_than_or_equal", lambda a, b: a <= b, "less than or equal to", value
    )


def inclusive_between(from_value: Any, to_value: Any) -> PropertyCheck:
    if to_value < from_value:
        raise ValueError("to_value should be larger than from_value.")
    return PropertyCheck(
        lambda v: v is None or from_value <= v <= to_value,
        "inclusive_between",
        "'{property_name}' must be between {from_value} and {to_value}. "
        "You entered {property_value}.",
        params={"from_value": from_value, "to_value": to_value},
    )


def matches(pattern: str | re.Pattern[str], flags: int = 0) -> PropertyCheck:
    regex = re.compile(pattern, flags) if isinstance(pattern, str) else pattern
    return PropertyCheck(
        lambda v: v is None or regex.search(v) is not None,
        "matches",
        "'{property_name}' is not in the correct format.",
        params={"pattern": regex.pattern},
    )


def must(
    predicate: Callable[..., bool],
    error: ErrorMessage | None = None,
    with_instance: bool = False,
) -> PropertyCheck:
    guard(predicate, "Cannot pass a None predicate to must.", "predicate")
    return PropertyCheck(
        predicate,
        "must",
        error or "The specified condition was not met for '{property_name}'.",
        with_instance=with_instance,
    )


def must_async(
    predicate: Callable[..., Awaitable[bool]],
    error: ErrorMessage | None = None,
    with_instance: bool = False,
) -> AsyncPropertyCheck:
    guard(predicate, "Cannot pass a None predicate to must_async.", "predicate")
    return AsyncPropertyCheck(
        predicate,
        "must_async",
        error or "The specified condition was not met for '{property_name}'.",
        with_instance=with_instance,
    )


# =============================================================================
# Decorators for reusable checks
# =============================================================================


def _check_class(fn: Callable[..., Any]) -> type[PropertyCheck]:
    return AsyncPropertyCheck if inspect.iscoroutinefunction(fn) else PropertyCheck


@overload
def check(fn: Callable[[Any], Any], *, error: ErrorMessage | None = None) -> PropertyCheck: ...


@overload
def check(
    fn: None = None, *, error: ErrorMessage | None = None
) -> Callable[[Callable[[Any], Any]], PropertyCheck]: ...


def check(
    fn: Callable[[Any], Any] | None = None,
    *,
    error: ErrorMessage | None = None,
) -> PropertyCheck | Callable[[Callable[[Any], Any]], PropertyCheck]:
    """
    Decorator to create a reusable check with an error message.

    Coroutine functions produce async checks.

    Example:
        @check(error="'{property_name}' must be a valid SKU.")
        def sku(value):
            return bool(SKU_PATTERN.match(value))

        rule_for("sku").apply(sku)
    """

    def decorator(f: Callable[[Any], Any]) -> PropertyCheck:
        return _check_class(f)(f, f.__name__, error)

    if fn is not None:
        return decorator(fn)
    return decorator


def check_args(
    fn: Callable[..., Any] | None = None,
    *,
    error: ErrorMessage | None = None,
) -> Callable[..., PropertyCheck] | Callable[[Callable[..., Any]], Callable[..., PropertyCheck]]:
    """
    Decorator to create a parameterized check factory.

    Bound arguments are available to the error template by parameter name
    and as ``arg0``, ``arg1``, ...

    Example:
        @check_args(error="'{property_name}' must be a multiple of {step}.")
        def multiple_of(value, step):
            return value % step == 0

        rule_for("quantity").apply(multiple_of(5))
    """

    def decorator(f: Callable[..., Any]) -> Callable[..., PropertyCheck]:
        sig = inspect.signature(f)
        cls = _check_class(f)

        def factory(*args: Any, **kwargs: Any) -> PropertyCheck:
            name = f"{f.__name__}({', '.join(map(repr, args))})"

            params: dict[str, Any] = {f"arg{i}": v for i, v in enumerate(args)}
            try:
                bound = sig.bind_partial(None, *args, **kwargs)
                bound.apply_defaults()
                first_param_name = next(iter(sig.parameters))
                params.update(
                    (k, v) for k, v in bound.arguments.items() if k != first_param_name
                )
            except TypeError:
                params.update(kwargs)

            if cls is AsyncPropertyCheck and accepts_cancel(f):

                async def predicate_fn(value: Any, cancel: CancelSignal | None = None) -> bool:
                    return await f(value, *args, cancel=cancel, **kwargs)

            elif cls is AsyncPropertyCheck:

                async def predicate_fn(value: Any) -> bool:
                    return await f(value, *args, **kwargs)

            else:

                def predicate_fn(value: Any) -> bool:
                    return f(value, *args, **kwargs)

            message: ErrorMessage | None = error
            if callable(error):
                error_fn: Callable[..., str] = error

                def message(instance: Any, value: Any) -> str:
                    return error_fn(value, *args, **kwargs)

            return cls(predicate_fn, name, message, error_code=f.__name__, params=params)

        factory.__name__ = f.__name__
        return factory

    if fn is not None:
        return decorator(fn)
    return decorator

