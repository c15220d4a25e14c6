"""Fluent builder returned by ``rule_for`` and ``rule_for_each``."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Generic

from fluentcheck import _checks
from fluentcheck._checks import ChildValidatorCheck, PropertyCheck
from fluentcheck._errors import InvalidOperationError, guard, guard_not_blank
from fluentcheck._rules import CollectionPropertyRule, PropertyRule
from fluentcheck._types import (
    ApplyConditionTo,
    CancelSignal,
    CascadeMode,
    ErrorMessage,
    Severity,
    T,
    accepts_cancel,
    instance_condition,
)

if TYPE_CHECKING:
    from fluentcheck._validator import Validator


class RuleBuilder(Generic[T]):
    """
    Adds checks and modifiers to one rule.

    Every method returns the builder so calls can be chained:

        self.rule_for("email").not_empty().matches(r"@").with_message("Bad email")

    Message, error code, severity and state modifiers apply to the most
    recently added check.
    """

    def __init__(self, rule: PropertyRule, validator: Validator[T]):
        self.rule = rule
        self.validator = validator

    # -------------------------------------------------
    # Checks
    # -------------------------------------------------

    def apply(self, check: PropertyCheck) -> RuleBuilder[T]:
        """Add a copy of a reusable check (see ``check`` / ``check_args``)."""
        guard(check, "Cannot pass None to apply.", "check")
        self.rule.add_check(check.copy())
        return self

    def _add(self, check: PropertyCheck) -> RuleBuilder[T]:
        self.rule.add_check(check)
        return self

    def not_null(self) -> RuleBuilder[T]:
        return self._add(_checks.not_null())

    def null(self) -> RuleBuilder[T]:
        return self._add(_checks.null())

    def not_empty(self) -> RuleBuilder[T]:
        return self._add(_checks.not_empty())

    def empty(self) -> RuleBuilder[T]:
        return self._add(_checks.empty())

    def equal(self, comparison_value: Any) -> RuleBuilder[T]:
        return self._add(_checks.equal(comparison_value))

    def not_equal(self, comparison_value: Any) -> RuleBuilder[T]:
        return self._add(_checks.not_equal(comparison_value))

    def length(self, min_length: int, max_length: int) -> RuleBuilder[T]:
        return self._add(_checks.length(min_length, max_length))

    def min_length(self, minimum: int) -> RuleBuilder[T]:
        return self._add(_checks.min_length(minimum))

    def max_length(self, maximum: int) -> RuleBuilder[T]:
        return self._add(_checks.max_length(maximum))

    def greater_than(self, value: Any) -> RuleBuilder[T]:
        return self._add(_checks.greater_than(value))

    def greater_than_or_equal(self, value: Any) -> RuleBuilder[T]:
        return self._add(_checks.greater_than_or_equal(value))

    def less_than(self, value: Any) -> RuleBuilder[T]:
        return self._add(_checks.less_than(value))

    def less_than_or_equal(self, value: Any) -> RuleBuilder[T]:
        return self._add(_checks.less_than_or_equal(value))

    def inclusive_between(self, from_value: Any, to_value: Any) -> RuleBuilder[T]:
        return self._add(_checks.inclusive_between(from_value, to_value))

    def matches(self, pattern: Any, flags: int = 0) -> RuleBuilder[T]:
        return self._add(_checks.matches(pattern, flags))

    def must(
        self,
        predicate: Callable[..., bool],
        error: ErrorMessage | None = None,
        *,
        with_instance: bool = False,
    ) -> RuleBuilder[T]:
        """
        Add a custom predicate over the value.

        With ``with_instance=True`` the predicate is called as
        ``predicate(instance, value)``.
        """
        return self._add(_checks.must(predicate, error, with_instance))

    def must_async(
        self,
        predicate: Callable[..., Awaitable[bool]],
        error: ErrorMessage | None = None,
        *,
        with_instance: bool = False,
    ) -> RuleBuilder[T]:
        """Async ``must``. A predicate with a ``cancel`` parameter also receives the cancel signal."""
        return self._add(_checks.must_async(predicate, error, with_instance))

    def set_validator(self, validator: Validator) -> RuleBuilder[T]:
        """Validate the (complex) value with another validator."""
        return self._add(ChildValidatorCheck(validator))

    # -------------------------------------------------
    # Check modifiers
    # -------------------------------------------------

    def _current(self, method: str) -> PropertyCheck:
        check = self.rule.current_check
        if check is None:
            raise InvalidOperationError(
                f"{method}() must be called after a check has been added to the rule."
            )
        return check

    def with_message(self, error: ErrorMessage) -> RuleBuilder[T]:
        guard(error, "A message must be specified.", "error")
        self._current("with_message").error = error
        return self

    def with_error_code(self, error_code: str) -> RuleBuilder[T]:
        self._current("with_error_code").error_code = error_code
        return self

    def with_severity(self, severity: Severity) -> RuleBuilder[T]:
        self._current("with_severity").severity = severity
        return self

    def with_state(self, state: Callable[[Any, Any], Any]) -> RuleBuilder[T]:
        """Attach ``state(instance, value)`` to failures of the last check."""
        self._current("with_state").custom_state = guard(state, "State must be specified.")
        return self

    # -------------------------------------------------
    # Rule modifiers
    # -------------------------------------------------

    def with_name(self, name: str) -> RuleBuilder[T]:
        """Name used in messages; also the property name if none was derived."""
        self.rule.display_name = guard_not_blank(name, "A name must be specified.", "name")
        return self

    def override_property_name(self, name: str) -> RuleBuilder[T]:
        self.rule.property_name = guard_not_blank(
            name, "A property name must be specified.", "name"
        )
        return self

    def cascade(self, mode: CascadeMode) -> RuleBuilder[T]:
        self.rule.cascade_mode = guard(mode, "A cascade mode must be specified.", "mode")
        return self

    def where(self, predicate: Callable[[Any], bool]) -> RuleBuilder[T]:
        """Only validate collection elements matching ``predicate``."""
        if not isinstance(self.rule, CollectionPropertyRule):
            raise InvalidOperationError("where() can only be used with rule_for_each().")
        self.rule.filter = guard(predicate, "A predicate must be specified.", "predicate")
        return self

    # -------------------------------------------------
    # Conditions
    # -------------------------------------------------

    def when(
        self,
        predicate: Callable[[T], bool],
        apply_to: ApplyConditionTo = ApplyConditionTo.ALL_VALIDATORS,
    ) -> RuleBuilder[T]:
        """
        Only run checks when ``predicate(instance)`` holds.

        By default the condition covers every check added so far; with
        ``ApplyConditionTo.CURRENT_VALIDATOR`` only the last one.
        """
        guard(predicate, "A predicate must be specified.", "predicate")
        for check in self._targets(apply_to, "when"):
            check.conditions.append(lambda ctx: predicate(ctx.instance_to_validate))
        return self

    def unless(
        self,
        predicate: Callable[[T], bool],
        apply_to: ApplyConditionTo = ApplyConditionTo.ALL_VALIDATORS,
    ) -> RuleBuilder[T]:
        guard(predicate, "A predicate must be specified.", "predicate")
        return self.when(lambda x: not predicate(x), apply_to)

    def when_async(
        self,
        predicate: Callable[[T], Awaitable[bool]],
        apply_to: ApplyConditionTo = ApplyConditionTo.ALL_VALIDATORS,
    ) -> RuleBuilder[T]:
        """
        Async form of ``when``. A predicate declaring a ``cancel`` parameter
        receives the signal passed to ``validate_async``.
        """
        guard(predicate, "A predicate must be specified.", "predicate")
        condition = instance_condition(predicate)
        for check in self._targets(apply_to, "when_async"):
            check.async_conditions.append(condition)
        return self

    def unless_async(
        self,
        predicate: Callable[[T], Awaitable[bool]],
        apply_to: ApplyConditionTo = ApplyConditionTo.ALL_VALIDATORS,
    ) -> RuleBuilder[T]:
        guard(predicate, "A predicate must be specified.", "predicate")
        wants_cancel = accepts_cancel(predicate)

        async def negated(instance: T, cancel: CancelSignal | None = None) -> bool:
            if wants_cancel:
                return not await predicate(instance, cancel=cancel)
            return not await predicate(instance)

        return self.when_async(negated, apply_to)

    def _targets(self, apply_to: ApplyConditionTo, method: str) -> list[PropertyCheck]:
        if apply_to is ApplyConditionTo.CURRENT_VALIDATOR:
            return [self._current(method)]
        return list(self.rule.checks)

    def __repr__(self) -> str:
        return f"RuleBuilder({self.rule!r})"
