"""Turn a member selector into a display name and a value getter."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from fluentcheck._cache import accessor_cache
from fluentcheck._errors import guard

Selector = str | Callable[[Any], Any]


@dataclass(frozen=True)
class Member:
    """A rule target: ``name`` is ``None`` when it can't be derived."""

    name: str | None
    getter: Callable[[Any], Any]


def compile_path(path: str) -> Callable[[Any], Any]:
    """
    Build a getter for a dotted path.

    Each segment is read as an attribute, or as a key when the current
    object is a mapping. A ``None`` along the way yields ``None``.
    """
    parts = path.split(".")

    def getter(obj: Any) -> Any:
        current = obj
        for part in parts:
            if current is None:
                return None
            if isinstance(current, Mapping):
                current = current.get(part)
            else:
                current = getattr(current, part)
        return current

    getter.__name__ = path
    return getter


def resolve_member(
    selector: Selector, name: str | None = None, use_accessor_cache: bool = False
) -> Member:
    """
    Resolve ``selector`` to a :class:`Member`.

    Strings are dotted member paths. Callables are used as-is and named after
    their ``__name__`` unless that is ``<lambda>``; pass ``name`` to set one.
    """
    guard(selector, "Cannot pass None as a member selector.", "selector")

    if isinstance(selector, str):
        getter = (
            accessor_cache.get_or_add(selector, compile_path)
            if use_accessor_cache
            else compile_path(selector)
        )
        return Member(name or selector, getter)

    if not callable(selector):
        raise TypeError(f"Member selector must be a string or callable, got {selector!r}")

    derived = getattr(selector, "__name__", None)
    if derived == "<lambda>":
        derived = None
    return Member(name or derived, selector)
