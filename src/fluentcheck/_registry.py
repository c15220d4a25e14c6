"""Insertion-ordered rule list with scoped add notifications."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import Generic, TypeVar

R = TypeVar("R")


class RuleRegistry(Generic[R]):
    """
    Ordered list of rules.

    Iteration order equals registration order. Code can open a scope with
    ``on_item_added`` during which every added rule is passed to a callback;
    scopes nest and each active callback sees every addition.

    Example:
        registry = RuleRegistry()
        captured = []
        with registry.on_item_added(captured.append):
            registry.add(rule)
        assert captured == [rule]
    """

    def __init__(self, items: Iterable[R] | None = None):
        self._items: list[R] = list(items or [])
        self._subscribers: list[Callable[[R], None]] = []

    def add(self, item: R) -> None:
        self._items.append(item)
        # Copy so a callback opening or closing a scope can't skew the loop
        for callback in list(self._subscribers):
            callback(item)

    def extend(self, items: Iterable[R]) -> None:
        for item in items:
            self.add(item)

    @contextmanager
    def on_item_added(self, callback: Callable[[R], None]) -> Iterator[None]:
        """Invoke ``callback`` for every item added while the scope is open."""
        self._subscribers.append(callback)
        try:
            yield
        finally:
            self._subscribers.remove(callback)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def snapshot(self) -> tuple[R, ...]:
        return tuple(self._items)

    def __iter__(self) -> Iterator[R]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> R:
        return self._items[index]

    def __repr__(self) -> str:
        return f"RuleRegistry({len(self._items)} rules)"
