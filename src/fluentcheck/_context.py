"""Per-call validation state and rule selectors."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from typing import Any, Generic, Protocol, runtime_checkable

from fluentcheck._config import get_options
from fluentcheck._types import CascadeMode, T

IS_ASYNC_EXECUTION_KEY = "__fluentcheck_is_async_execution"
DEFAULT_RULE_SET = "default"
ALL_RULE_SETS = "*"

_INDEXER = re.compile(r"\[\d+\]")


class PropertyChain:
    """
    Accumulates the path to the property currently being validated.

    Example:
        chain = PropertyChain()
        chain.add("orders")
        chain.add_indexer(0)
        chain.build_property_name("amount")  # "orders[0].amount"
    """

    def __init__(self, parent: PropertyChain | Iterable[str] | None = None):
        if isinstance(parent, PropertyChain):
            self._members: list[str] = list(parent._members)
        else:
            self._members = list(parent or [])

    def add(self, name: str | None) -> None:
        if name:
            self._members.append(name)

    def add_indexer(self, index: Any) -> None:
        if not self._members:
            raise ValueError("Could not apply an indexer because the chain is empty.")
        self._members[-1] += f"[{index}]"

    def build_property_name(self, name: str | None) -> str:
        chain = PropertyChain(self)
        chain.add(name)
        return str(chain)

    def copy(self) -> PropertyChain:
        return PropertyChain(self)

    def __len__(self) -> int:
        return len(self._members)

    def __str__(self) -> str:
        return ".".join(self._members)

    def __repr__(self) -> str:
        return f"PropertyChain({str(self)!r})"


@runtime_checkable
class ValidatorSelector(Protocol):
    """Decides whether a rule runs during the current call."""

    def can_execute(
        self, rule_sets: Sequence[str], property_path: str, context: ValidationContext
    ) -> bool: ...


class DefaultValidatorSelector:
    """Runs rules that are untagged or tagged ``default``."""

    def can_execute(
        self, rule_sets: Sequence[str], property_path: str, context: ValidationContext
    ) -> bool:
        return not rule_sets or DEFAULT_RULE_SET in rule_sets

    def __repr__(self) -> str:
        return "DefaultValidatorSelector()"


class RuleSetValidatorSelector:
    """
    Runs rules tagged with any of the requested rule sets.

    ``*`` selects every rule; ``default`` also selects untagged rules.
    """

    def __init__(self, rule_sets: Iterable[str]):
        self.rule_sets = [name.strip() for name in rule_sets if name and name.strip()]

    def can_execute(
        self, rule_sets: Sequence[str], property_path: str, context: ValidationContext
    ) -> bool:
        if ALL_RULE_SETS in self.rule_sets:
            return True
        if not rule_sets and DEFAULT_RULE_SET in self.rule_sets:
            return True
        return any(name in self.rule_sets for name in rule_sets)

    def __repr__(self) -> str:
        return f"RuleSetValidatorSelector({self.rule_sets!r})"


class MemberNameValidatorSelector:
    """
    Runs rules whose property path matches one of the given names.

    Indexers are ignored when comparing, so ``orders.amount`` selects
    ``orders[3].amount``. A selected nested path also selects its parents so
    that child validators get the chance to run.
    """

    def __init__(self, member_names: Iterable[str]):
        self.member_names = [_strip_indexers(n) for n in member_names]

    def can_execute(
        self, rule_sets: Sequence[str], property_path: str, context: ValidationContext
    ) -> bool:
        path = _strip_indexers(property_path)
        if not path:
            # Includes and unnamed rules defer to the rules they contain
            return True
        for name in self.member_names:
            if path == name:
                return True
            if path.startswith(name + "."):
                return True
            if name.startswith(path + "."):
                return True
        return False

    def __repr__(self) -> str:
        return f"MemberNameValidatorSelector({self.member_names!r})"


class InheritedRuleSetSelector:
    """
    Selector used inside an included validator.

    Untagged rules of the included validator are judged as if they carried the
    include rule's own rule sets.
    """

    def __init__(self, inner: ValidatorSelector, rule_sets: Sequence[str]):
        self.inner = inner
        self.rule_sets = list(rule_sets)

    def can_execute(
        self, rule_sets: Sequence[str], property_path: str, context: ValidationContext
    ) -> bool:
        effective = rule_sets or self.rule_sets
        return self.inner.can_execute(effective, property_path, context)


class CompositeValidatorSelector:
    """Runs a rule only if every wrapped selector agrees."""

    def __init__(self, selectors: Iterable[ValidatorSelector]):
        self.selectors = list(selectors)

    def can_execute(
        self, rule_sets: Sequence[str], property_path: str, context: ValidationContext
    ) -> bool:
        return all(s.can_execute(rule_sets, property_path, context) for s in self.selectors)

    def __repr__(self) -> str:
        return f"CompositeValidatorSelector({self.selectors!r})"


def split_rule_set_names(names: str | Iterable[str]) -> list[str]:
    """Split ``"a, b;c"`` into ``["a", "b", "c"]``; empty parts are dropped."""
    if isinstance(names, str):
        names = re.split(r"[,;]", names)
    return [name.strip() for name in names if name and name.strip()]


def _strip_indexers(path: str) -> str:
    return _INDEXER.sub("", path)


class ValidationContext(Generic[T]):
    """
    State for one validation call.

    Attributes:
        instance_to_validate: The object being validated
        property_chain: Path prefix for nested/collection rules
        selector: Decides which rules run in this call
        root_context_data: Mapping shared by the root context and all children
    """

    def __init__(
        self,
        instance: T | None,
        property_chain: PropertyChain | None = None,
        selector: ValidatorSelector | None = None,
        root_context_data: dict[str, Any] | None = None,
        parent: ValidationContext | None = None,
    ):
        if selector is None:
            selector = get_options().selector_factory()
        self.instance_to_validate = instance
        self.property_chain = property_chain if property_chain is not None else PropertyChain()
        self.selector = selector
        self.root_context_data: dict[str, Any] = (
            root_context_data if root_context_data is not None else {}
        )
        self.parent = parent
        # Set by the validator currently running this context
        self.cascade_mode: CascadeMode | None = None

    @property
    def is_child_context(self) -> bool:
        return self.parent is not None

    @property
    def is_async(self) -> bool:
        """True while the call runs through ``validate_async``."""
        return bool(self.root_context_data.get(IS_ASYNC_EXECUTION_KEY, False))

    def child_context(
        self,
        instance: Any,
        property_chain: PropertyChain | None = None,
        selector: ValidatorSelector | None = None,
    ) -> ValidationContext:
        """Context for a nested validator sharing this call's root data."""
        return ValidationContext(
            instance,
            property_chain if property_chain is not None else self.property_chain.copy(),
            selector or self.selector,
            self.root_context_data,
            parent=self,
        )

    def with_selector(self, selector: ValidatorSelector) -> ValidationContext:
        """Same call state, judged by a different selector."""
        clone = ValidationContext(
            self.instance_to_validate,
            self.property_chain,
            selector,
            self.root_context_data,
            parent=self.parent,
        )
        clone.cascade_mode = self.cascade_mode
        return clone

    def __repr__(self) -> str:
        return (
            f"ValidationContext({self.instance_to_validate!r}, "
            f"chain={str(self.property_chain)!r}, selector={self.selector!r})"
        )
