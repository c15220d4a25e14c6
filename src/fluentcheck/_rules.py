"""
Rules: the executable units a validator iterates over.

Every rule provides ``validate(context)`` (a lazy iterator of failures) and
``validate_async(context, cancel)`` (a list of failures). The engine treats
all variants identically.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from typing import TYPE_CHECKING, Any

from fluentcheck._checks import PropertyCheck
from fluentcheck._config import get_options
from fluentcheck._context import InheritedRuleSetSelector, ValidationContext
from fluentcheck._errors import InvalidOperationError, guard
from fluentcheck._members import Member
from fluentcheck._results import ValidationFailure
from fluentcheck._tracing import trace_span
from fluentcheck._types import AsyncCondition, CancelSignal, CascadeMode, Condition

if TYPE_CHECKING:
    from fluentcheck._validator import Validator


class ValidationRule(ABC):
    """
    Base class for all rules.

    Attributes:
        rule_sets: Rule set tags; empty means the rule belongs to ``default``
        conditions: Synchronous conditions, all of which must hold
        async_conditions: Awaited conditions, all of which must hold
    """

    def __init__(self) -> None:
        self.rule_sets: list[str] = []
        self.conditions: list[Condition] = []
        self.async_conditions: list[AsyncCondition] = []
        # None defers to the running validator's cascade mode
        self.cascade_mode: CascadeMode | None = None

    def resolve_cascade_mode(self, context: ValidationContext) -> CascadeMode:
        if self.cascade_mode is not None:
            return self.cascade_mode
        if context.cascade_mode is not None:
            return context.cascade_mode
        return get_options().cascade_mode

    @property
    def property_name(self) -> str | None:
        return None

    @property
    def has_async_work(self) -> bool:
        return bool(self.async_conditions)

    def apply_condition(self, condition: Condition) -> None:
        """Add a condition; it is ANDed with the ones already present."""
        self.conditions.append(guard(condition, "A condition must be specified.", "condition"))

    def apply_async_condition(self, condition: AsyncCondition) -> None:
        self.async_conditions.append(
            guard(condition, "A condition must be specified.", "condition")
        )

    def property_path(self, context: ValidationContext) -> str:
        return context.property_chain.build_property_name(self.property_name)

    def scoped_context(self, context: ValidationContext) -> ValidationContext:
        """Context whose selector lets nested validators inherit this rule's tags."""
        if not self.rule_sets:
            return context
        selector = InheritedRuleSetSelector(context.selector, self.rule_sets)
        return context.with_selector(selector)

    def is_selected(self, context: ValidationContext) -> bool:
        return context.selector.can_execute(
            self.rule_sets, self.property_path(context), context
        )

    def validate(self, context: ValidationContext) -> Iterator[ValidationFailure | None]:
        """Lazily produce this rule's failures for a synchronous call."""
        if not self.is_selected(context):
            return
        if self.has_async_work:
            raise InvalidOperationError(
                f"{self!r} contains asynchronous checks or conditions. "
                "Use validate_async() instead of validate()."
            )
        if not all(condition(context) for condition in self.conditions):
            return
        yield from self._validate(self.scoped_context(context))

    async def validate_async(
        self, context: ValidationContext, cancel: CancelSignal | None = None
    ) -> list[ValidationFailure | None]:
        """Produce this rule's failures, awaiting async checks in order."""
        if not self.is_selected(context):
            return []
        if not all(condition(context) for condition in self.conditions):
            return []
        for condition in self.async_conditions:
            if not await condition(context, cancel):
                return []
        return await self._validate_async(self.scoped_context(context), cancel)

    @abstractmethod
    def _validate(self, context: ValidationContext) -> Iterator[ValidationFailure | None]:
        ...

    @abstractmethod
    async def _validate_async(
        self, context: ValidationContext, cancel: CancelSignal | None
    ) -> list[ValidationFailure | None]:
        ...


class PropertyRule(ValidationRule):
    """
    Rule for a single member of the validated object.

    Checks run in the order they were added. With
    ``CascadeMode.STOP_ON_FIRST_FAILURE`` the chain stops at the first
    failing check; sibling rules are unaffected.
    """

    def __init__(self, member: Member):
        super().__init__()
        self.member = member
        self.checks: list[PropertyCheck] = []
        self.display_name: str | None = None
        self._property_name = member.name

    @property
    def property_name(self) -> str | None:
        return self._property_name

    @property_name.setter
    def property_name(self, value: str | None) -> None:
        self._property_name = value

    @property
    def has_async_work(self) -> bool:
        return super().has_async_work or any(c.has_async_work for c in self.checks)

    @property
    def current_check(self) -> PropertyCheck | None:
        return self.checks[-1] if self.checks else None

    def add_check(self, check: PropertyCheck) -> None:
        self.checks.append(guard(check, "Cannot add a None check.", "check"))

    def get_display_name(self) -> str:
        name = self.display_name or self.property_name
        if name is None:
            raise InvalidOperationError(
                f"Property name could not be automatically determined for "
                f"{self.member.getter!r}. Please specify a custom property name "
                "by calling 'with_name'."
            )
        return name

    def property_path(self, context: ValidationContext) -> str:
        return context.property_chain.build_property_name(
            self.property_name or self.display_name
        )

    def _validate(self, context: ValidationContext) -> Iterator[ValidationFailure | None]:
        display_name = self.get_display_name()
        value = self.member.getter(context.instance_to_validate)
        yield from self._run_chain(context, self.property_path(context), display_name, value)

    async def _validate_async(
        self, context: ValidationContext, cancel: CancelSignal | None
    ) -> list[ValidationFailure | None]:
        display_name = self.get_display_name()
        value = self.member.getter(context.instance_to_validate)
        return await self._run_chain_async(
            context, self.property_path(context), display_name, value, cancel
        )

    def _run_chain(
        self, context: ValidationContext, path: str, display_name: str, value: Any
    ) -> Iterator[ValidationFailure | None]:
        stop_on_failure = (
            self.resolve_cascade_mode(context) is CascadeMode.STOP_ON_FIRST_FAILURE
        )
        for check in self.checks:
            if not check.should_run(context):
                continue
            with trace_span(check.name, value, leaf=True) as span:
                failures = check.validate(context, path, display_name, value)
                span.ok = not failures
            yield from failures
            if failures and stop_on_failure:
                break

    async def _run_chain_async(
        self,
        context: ValidationContext,
        path: str,
        display_name: str,
        value: Any,
        cancel: CancelSignal | None = None,
    ) -> list[ValidationFailure | None]:
        stop_on_failure = (
            self.resolve_cascade_mode(context) is CascadeMode.STOP_ON_FIRST_FAILURE
        )
        collected: list[ValidationFailure | None] = []
        for check in self.checks:
            if not await check.should_run_async(context, cancel):
                continue
            with trace_span(check.name, value, leaf=True) as span:
                failures = await check.validate_async(
                    context, path, display_name, value, cancel
                )
                span.ok = not failures
            collected.extend(failures)
            if failures and stop_on_failure:
                break
        return collected

    def __repr__(self) -> str:
        return f"PropertyRule({self.property_name or self.display_name})"


class CollectionPropertyRule(PropertyRule):
    """
    Rule applied to every element of an iterable member.

    Failures are reported against ``name[index]``. The cascade mode applies
    to each element's chain separately. A ``None`` collection yields no
    failures.
    """

    def __init__(self, member: Member):
        super().__init__(member)
        self.filter: Callable[[Any], bool] | None = None

    def _elements(self, context: ValidationContext) -> Iterable[tuple[int, Any]]:
        collection = self.member.getter(context.instance_to_validate)
        if collection is None:
            return []
        return [
            (index, element)
            for index, element in enumerate(collection)
            if self.filter is None or self.filter(element)
        ]

    def _validate(self, context: ValidationContext) -> Iterator[ValidationFailure | None]:
        display_name = self.get_display_name()
        base = self.property_path(context)
        for index, element in self._elements(context):
            yield from self._run_chain(context, f"{base}[{index}]", display_name, element)

    async def _validate_async(
        self, context: ValidationContext, cancel: CancelSignal | None
    ) -> list[ValidationFailure | None]:
        display_name = self.get_display_name()
        base = self.property_path(context)
        collected: list[ValidationFailure | None] = []
        for index, element in self._elements(context):
            collected.extend(
                await self._run_chain_async(
                    context, f"{base}[{index}]", display_name, element, cancel
                )
            )
        return collected

    def __repr__(self) -> str:
        return f"CollectionPropertyRule({self.property_name or self.display_name})"


class IncludeRule(ValidationRule):
    """
    Embeds another validator's rules as a single rule.

    The included validator runs against the same instance, property chain
    and root context data. ``validator`` may also be a factory
    ``instance -> validator`` resolved on every call.
    """

    def __init__(
        self,
        validator: Validator | Callable[[Any], Validator],
    ):
        super().__init__()
        self.validator = guard(validator, "Cannot pass None to include.", "validator")

    def _is_factory(self) -> bool:
        from fluentcheck._validator import Validator

        return not isinstance(self.validator, Validator)

    @property
    def has_async_work(self) -> bool:
        if super().has_async_work:
            return True
        if self._is_factory():
            return False
        return any(rule.has_async_work for rule in self.validator)

    def resolve(self, instance: Any) -> Validator:
        if self._is_factory():
            return self.validator(instance)
        return self.validator

    def _child_context(self, context: ValidationContext) -> ValidationContext:
        return context.child_context(
            context.instance_to_validate, context.property_chain.copy()
        )

    def _validate(self, context: ValidationContext) -> Iterator[ValidationFailure | None]:
        validator = self.resolve(context.instance_to_validate)
        yield from validator.validate(self._child_context(context)).errors

    async def _validate_async(
        self, context: ValidationContext, cancel: CancelSignal | None
    ) -> list[ValidationFailure | None]:
        validator = self.resolve(context.instance_to_validate)
        result = await validator.validate_async(self._child_context(context), cancel)
        return list(result.errors)

    def __repr__(self) -> str:
        name = type(self.validator).__name__ if not self._is_factory() else "factory"
        return f"IncludeRule({name})"
