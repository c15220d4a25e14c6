"""
Validator base class: rule definition primitives and the execution engine.

Example:
    @dataclass
    class Customer:
        name: str
        email: str | None = None
        is_company: bool = False
        vat_number: str | None = None

    class CustomerValidator(Validator[Customer]):
        def rules(self):
            self.rule_for("name").not_empty().max_length(50)
            self.rule_for("email").not_null().matches(r"@")

            with self.when(lambda c: c.is_company):
                self.rule_for("vat_number").not_empty()

            with self.rule_set("strict"):
                self.rule_for("name").must(str.istitle)

    result = CustomerValidator().validate(customer)
    result = await CustomerValidator().validate_async(customer)
    result = CustomerValidator().validate(customer, rule_set="default,strict")
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Iterator
from contextlib import AbstractContextManager, contextmanager
from types import UnionType
from typing import Any, Generic, Union, get_args, get_origin

from fluentcheck._builder import RuleBuilder
from fluentcheck._cache import RuleCache, default_rule_cache
from fluentcheck._config import get_options
from fluentcheck._context import (
    IS_ASYNC_EXECUTION_KEY,
    CompositeValidatorSelector,
    MemberNameValidatorSelector,
    RuleSetValidatorSelector,
    ValidationContext,
    ValidatorSelector,
    split_rule_set_names,
)
from fluentcheck._errors import (
    ArgumentNullError,
    InvalidOperationError,
    OperationCancelledError,
    guard,
)
from fluentcheck._members import Selector, resolve_member
from fluentcheck._registry import RuleRegistry
from fluentcheck._results import ValidationResult
from fluentcheck._rules import (
    CollectionPropertyRule,
    IncludeRule,
    PropertyRule,
    ValidationRule,
)
from fluentcheck._tracing import trace_span
from fluentcheck._types import (
    CancelSignal,
    CascadeMode,
    T,
    accepts_cancel,
    describe_type,
    instance_condition,
)

Action = Callable[[], Any]


TypeFilter = type | tuple[type, ...] | None


def _type_filter(target: Any) -> TypeFilter:
    """
    Turn a type argument into something ``issubclass`` accepts.

    ``Any``, ``object`` and type variables mean no restriction (``None``).
    ``X | Y`` and ``Optional[X]`` become a tuple of their members.
    """
    if target is Any or target is object:
        return None
    origin = get_origin(target)
    if origin is Union or origin is UnionType:
        members: list[type] = []
        for arg in get_args(target):
            resolved = _type_filter(arg)
            if resolved is None:
                return None
            members.extend(resolved if isinstance(resolved, tuple) else (resolved,))
        return tuple(members)
    target = origin or target
    return target if isinstance(target, type) else None


def _resolve_validated_type(cls: type) -> TypeFilter:
    """Find ``X`` in ``class V(Validator[X])``."""
    for base in getattr(cls, "__orig_bases__", ()):
        origin = get_origin(base)
        if not (isinstance(origin, type) and issubclass(origin, Validator)):
            continue
        args = get_args(base)
        if args:
            return _type_filter(args[0])
    return None


class Validator(ABC, Generic[T]):
    """
    Base class for object validators.

    Subclasses define their rules in :meth:`rules`. The rules of a class are
    built once and shared by every instance through the rule cache; rules
    added to an instance afterwards stay local to that instance.

    Args:
        cache_enabled: Share the rules built by ``rules()`` across instances
            (defaults to ``ValidatorOptions.rule_cache_enabled``)
        rule_cache: Cache to use instead of the process-wide one
    """

    validated_type: TypeFilter = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "validated_type" not in cls.__dict__:
            resolved = _resolve_validated_type(cls)
            if resolved is not None:
                cls.validated_type = resolved

    def __init__(
        self,
        *,
        cache_enabled: bool | None = None,
        rule_cache: RuleCache | None = None,
    ):
        if cache_enabled is None:
            cache_enabled = get_options().rule_cache_enabled
        self._cache_enabled = cache_enabled
        self._rule_cache = rule_cache if rule_cache is not None else default_rule_cache
        self._registry: RuleRegistry[ValidationRule] = RuleRegistry()
        self._cascade_mode: CascadeMode | None = None

        if not cache_enabled:
            self.rules()
            return

        built = False

        def build() -> tuple[ValidationRule, ...]:
            nonlocal built
            built = True
            self.rules()
            return self._registry.snapshot()

        rules = self._rule_cache.get_or_build(type(self), build)
        if not built:
            self._registry.extend(rules)

    @abstractmethod
    def rules(self) -> None:
        """Define the validation rules for this validator."""
        ...

    # -------------------------------------------------
    # Configuration
    # -------------------------------------------------

    @property
    def cascade_mode(self) -> CascadeMode:
        """Cascade mode for this validator's rules, read from the options unless set."""
        if self._cascade_mode is not None:
            return self._cascade_mode
        return get_options().cascade_mode

    @cascade_mode.setter
    def cascade_mode(self, value: CascadeMode) -> None:
        self._cascade_mode = value

    @property
    def cache_enabled(self) -> bool:
        return self._cache_enabled

    def can_validate_instances_of_type(self, cls: type) -> bool:
        """True for the declared type, its subclasses, or any member of a union."""
        if self.validated_type is None:
            return True
        return issubclass(cls, self.validated_type)

    # -------------------------------------------------
    # Rule definition
    # -------------------------------------------------

    def add_rule(self, rule: ValidationRule) -> None:
        self._registry.add(guard(rule, "Cannot add a None rule.", "rule"))

    def rule_for(self, selector: Selector, name: str | None = None) -> RuleBuilder[T]:
        """
        Define a rule for a member.

        ``selector`` is a dotted attribute path (``"address.city"``) or a
        callable taking the instance. Lambdas need ``name`` or ``with_name``.
        """
        guard(selector, "Cannot pass None to rule_for.", "selector")
        # With rule caching on, the rule itself is cached; skip the accessor cache.
        member = resolve_member(selector, name, use_accessor_cache=not self._cache_enabled)
        rule = PropertyRule(member)
        self.add_rule(rule)
        return RuleBuilder(rule, self)

    def rule_for_each(self, selector: Selector, name: str | None = None) -> RuleBuilder[T]:
        """Define a rule applied to each element of an iterable member."""
        guard(selector, "Cannot pass None to rule_for_each.", "selector")
        member = resolve_member(selector, name, use_accessor_cache=not self._cache_enabled)
        rule = CollectionPropertyRule(member)
        self.add_rule(rule)
        return RuleBuilder(rule, self)

    def include(self, validator: Validator[T] | Callable[[T], Validator[T]]) -> None:
        """Include all rules of another validator for the same type."""
        guard(validator, "Cannot pass None to include.", "validator")
        self.add_rule(IncludeRule(validator))

    # -------------------------------------------------
    # Grouping and conditions
    # -------------------------------------------------

    def _scope(
        self,
        action: Action | None,
        mutate: Callable[[ValidationRule], None],
        deferred: bool = True,
    ) -> AbstractContextManager[None] | None:
        """
        Capture rules added while ``action`` (or the ``with`` body) runs.

        ``mutate`` is applied to every captured rule once the block has
        completed normally, after the subscription has been closed. With
        ``deferred=False`` it is applied to each rule as it is added.
        """

        @contextmanager
        def scope() -> Iterator[None]:
            if not deferred:
                with self._registry.on_item_added(mutate):
                    yield
                return
            captured: list[ValidationRule] = []
            with self._registry.on_item_added(captured.append):
                yield
            for rule in captured:
                mutate(rule)

        if action is None:
            return scope()
        if not callable(action):
            raise TypeError(f"Rule definition block must be callable, got {action!r}")
        with scope():
            action()
        return None

    def rule_set(self, names: str | Iterable[str], action: Action | None = None):
        """
        Tag the rules defined in a block with one or more rule sets.

        ``names`` may be a list or a string separated by ``,`` or ``;``.
        Tags are assigned as each rule is added, so a nested ``rule_set``
        replaces the tags of an enclosing one.

        Example:
            with self.rule_set("create, update"):
                self.rule_for("name").not_empty()
        """
        guard(names, "A name must be specified when calling rule_set.", "names")
        rule_sets = split_rule_set_names(names)
        if not rule_sets:
            raise ArgumentNullError(
                "A name must be specified when calling rule_set.", "names"
            )

        def tag(rule: ValidationRule) -> None:
            rule.rule_sets = list(rule_sets)

        return self._scope(action, tag, deferred=False)

    def when(self, predicate: Callable[[T], bool], action: Action | None = None):
        """Only run the rules defined in the block when ``predicate(instance)`` holds."""
        guard(predicate, "A predicate must be specified when calling when.", "predicate")
        return self._scope(
            action,
            lambda rule: rule.apply_condition(
                lambda ctx: predicate(ctx.instance_to_validate)
            ),
        )

    def unless(self, predicate: Callable[[T], bool], action: Action | None = None):
        """Only run the rules defined in the block when ``predicate(instance)`` is false."""
        guard(predicate, "A predicate must be specified when calling unless.", "predicate")
        return self.when(lambda x: not predicate(x), action)

    def when_async(
        self, predicate: Callable[[T], Awaitable[bool]], action: Action | None = None
    ):
        """
        Like ``when`` with a coroutine predicate, awaited during ``validate_async``.

        A predicate declaring a ``cancel`` parameter is handed the cancel signal.
        """
        guard(predicate, "A predicate must be specified when calling when_async.", "predicate")
        condition = instance_condition(predicate)
        return self._scope(action, lambda rule: rule.apply_async_condition(condition))

    def unless_async(
        self, predicate: Callable[[T], Awaitable[bool]], action: Action | None = None
    ):
        guard(predicate, "A predicate must be specified when calling unless_async.", "predicate")

        wants_cancel = accepts_cancel(predicate)

        async def negated(instance: T, cancel: CancelSignal | None = None) -> bool:
            if wants_cancel:
                return not await predicate(instance, cancel=cancel)
            return not await predicate(instance)

        return self.when_async(negated, action)

    # -------------------------------------------------
    # Execution
    # -------------------------------------------------

    def pre_validate(self, context: ValidationContext[T], result: ValidationResult) -> bool:
        """
        Hook run before any rule. Return False to stop and return ``result`` as is.
        """
        return True

    def ensure_instance_not_null(self, instance: Any) -> None:
        guard(instance, "Cannot pass a None model to validate.", "instance_to_validate")

    def _ensure_type(self, instance: Any) -> None:
        if not self.can_validate_instances_of_type(type(instance)):
            raise InvalidOperationError(
                f"Cannot validate instances of type '{describe_type(type(instance))}'. "
                f"This validator can only validate instances of type "
                f"'{describe_type(self.validated_type)}'."
            )

    def _selector_for(
        self, rule_set: str | Iterable[str] | None, properties: Iterable[str] | None
    ) -> ValidatorSelector | None:
        selectors: list[ValidatorSelector] = []
        if rule_set is not None:
            selectors.append(RuleSetValidatorSelector(split_rule_set_names(rule_set)))
        if properties is not None:
            selectors.append(MemberNameValidatorSelector(properties))
        if not selectors:
            return None
        if len(selectors) == 1:
            return selectors[0]
        return CompositeValidatorSelector(selectors)

    def _create_context(
        self,
        instance: T | ValidationContext[T],
        rule_set: str | Iterable[str] | None,
        properties: Iterable[str] | None,
    ) -> ValidationContext[T]:
        if isinstance(instance, ValidationContext):
            if rule_set is not None or properties is not None:
                raise ValueError(
                    "rule_set and properties can't be combined with an explicit context; "
                    "set the context's selector instead."
                )
            context = instance
            if context.instance_to_validate is not None:
                self._ensure_type(context.instance_to_validate)
        else:
            guard(instance, "Cannot pass None to validate.", "instance")
            self._ensure_type(instance)
            context = ValidationContext(instance, selector=self._selector_for(rule_set, properties))
        context.cascade_mode = self.cascade_mode
        return context

    def validate(
        self,
        instance: T | ValidationContext[T],
        *,
        rule_set: str | Iterable[str] | None = None,
        properties: Iterable[str] | None = None,
    ) -> ValidationResult:
        """
        Validate an instance (or a prepared context) synchronously.

        Args:
            instance: Object to validate, or a ``ValidationContext``
            rule_set: Only run rules in these rule sets (``"*"`` for all)
            properties: Only run rules for these property paths

        Raises:
            ArgumentNullError: ``instance`` is None
            InvalidOperationError: ``instance`` has the wrong type, or a rule
                needs ``validate_async``
        """
        context = self._create_context(instance, rule_set, properties)
        result = ValidationResult()

        with trace_span(type(self).__name__, context.instance_to_validate) as span:
            if not self.pre_validate(context, result):
                span.ok = result.ok
                return result

            self.ensure_instance_not_null(context.instance_to_validate)

            for rule in self._registry:
                with trace_span(repr(rule), context.instance_to_validate) as rule_span:
                    failures = [f for f in rule.validate(context) if f is not None]
                    rule_span.ok = not failures
                result.errors.extend(failures)

            span.ok = result.ok
        return result

    async def validate_async(
        self,
        instance: T | ValidationContext[T],
        cancel: CancelSignal | None = None,
        *,
        rule_set: str | Iterable[str] | None = None,
        properties: Iterable[str] | None = None,
    ) -> ValidationResult:
        """
        Validate an instance asynchronously.

        Rules run one after another, never concurrently. ``cancel`` is
        checked before each rule; once set, ``OperationCancelledError`` is
        raised and the failures gathered so far are discarded.
        """
        context = self._create_context(instance, rule_set, properties)
        context.root_context_data[IS_ASYNC_EXECUTION_KEY] = True
        result = ValidationResult()

        with trace_span(type(self).__name__, context.instance_to_validate) as span:
            if not self.pre_validate(context, result):
                span.ok = result.ok
                return result

            self.ensure_instance_not_null(context.instance_to_validate)

            for rule in self._registry:
                if cancel is not None and cancel.is_set():
                    raise OperationCancelledError(
                        f"Validation by {type(self).__name__} was cancelled."
                    )
                with trace_span(repr(rule), context.instance_to_validate) as rule_span:
                    failures = [
                        f for f in await rule.validate_async(context, cancel) if f is not None
                    ]
                    rule_span.ok = not failures
                result.errors.extend(failures)

            span.ok = result.ok
        return result

    def validate_and_raise(self, instance: T, **kwargs: Any) -> ValidationResult:
        """Validate and raise ``ValidationError`` if there are failures."""
        result = self.validate(instance, **kwargs)
        result.raise_if_invalid()
        return result

    async def validate_and_raise_async(
        self, instance: T, cancel: CancelSignal | None = None, **kwargs: Any
    ) -> ValidationResult:
        result = await self.validate_async(instance, cancel, **kwargs)
        result.raise_if_invalid()
        return result

    # -------------------------------------------------
    # Introspection
    # -------------------------------------------------

    def __iter__(self) -> Iterator[ValidationRule]:
        return iter(self._registry)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({len(self._registry)} rules)"


class InlineValidator(Validator[Any]):
    """
    Validator whose rules are added after construction.

    Example:
        v = InlineValidator(Customer)
        v.rule_for("name").not_empty()
        v.validate(customer)
    """

    def __init__(self, validated_type: Any = None):
        self.validated_type = _type_filter(validated_type)
        super().__init__(cache_enabled=False)

    def rules(self) -> None:
        pass
