"""Per-validator-class rule cache and the member accessor cache."""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable, Sequence
from typing import Any

from fluentcheck._errors import InvalidOperationError


class RuleCache:
    """
    Holds the rules built for each validator class.

    ``get_or_build`` runs the build function at most once per key, even when
    many validator instances of the same class are constructed concurrently.
    Late callers block on a per-key lock until the first build completes and
    then read the same snapshot.

    Example:
        cache = RuleCache()
        rules = cache.get_or_build(MyValidator, build_rules)
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, tuple[Any, ...]] = {}
        self._key_locks: dict[Hashable, threading.Lock] = {}
        self._lock = threading.Lock()
        self._local = threading.local()

    def _lock_for(self, key: Hashable) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def _building(self) -> set[Hashable]:
        building = getattr(self._local, "building", None)
        if building is None:
            building = self._local.building = set()
        return building

    def get_or_build(
        self, key: Hashable, build_fn: Callable[[], Sequence[Any]]
    ) -> list[Any]:
        """
        Return a copy of the rules for ``key``, building them on first use.

        Raises:
            InvalidOperationError: ``build_fn`` asked for ``key`` again on the
                same thread, e.g. a validator constructing itself in ``rules()``
        """
        entry = self._entries.get(key)
        if entry is not None:
            return list(entry)

        building = self._building()
        if key in building:
            name = getattr(key, "__name__", repr(key))
            raise InvalidOperationError(
                f"{name} was constructed while its own rules were being built. "
                f"Use set_validator(self) for recursive structures instead of "
                f"creating a new {name} inside rules()."
            )

        with self._lock_for(key):
            entry = self._entries.get(key)
            if entry is None:
                building.add(key)
                try:
                    # A failing build stores nothing; the next caller retries.
                    entry = tuple(build_fn())
                finally:
                    building.discard(key)
                self._entries[key] = entry
        return list(entry)

    def try_get(self, key: Hashable) -> list[Any] | None:
        entry = self._entries.get(key)
        return list(entry) if entry is not None else None

    def remove(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._key_locks.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._key_locks.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"RuleCache(entries={len(self._entries)})"


# Process-wide instance; validators use it unless handed their own.
default_rule_cache = RuleCache()


class AccessorCache:
    """Compiled getters for string member paths, keyed by the path."""

    def __init__(self) -> None:
        self._getters: dict[str, Callable[[Any], Any]] = {}
        self._lock = threading.Lock()

    def get_or_add(
        self, path: str, factory: Callable[[str], Callable[[Any], Any]]
    ) -> Callable[[Any], Any]:
        getter = self._getters.get(path)
        if getter is None:
            with self._lock:
                getter = self._getters.get(path)
                if getter is None:
                    getter = self._getters[path] = factory(path)
        return getter

    def clear(self) -> None:
        with self._lock:
            self._getters.clear()

    def __len__(self) -> int:
        return len(self._getters)


accessor_cache = AccessorCache()
