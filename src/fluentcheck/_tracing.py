"""Trace hooks reporting validator, rule and step execution."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

# Optional OpenTelemetry imports - only needed if using OpenTelemetryHook
try:
    from opentelemetry.trace import Status as _Status
    from opentelemetry.trace import StatusCode as _StatusCode
    from opentelemetry.trace import set_span_in_context as _set_span_in_context

    _HAS_OPENTELEMETRY = True
except ImportError:
    _HAS_OPENTELEMETRY = False
    _Status = None
    _StatusCode = None
    _set_span_in_context = None


@runtime_checkable
class TraceHook(Protocol):
    """
    Receives a callback around every traced step of a validation run.

    A run is traced as a tree: the validator call sits at depth 0, each of
    its rules at depth 1 and the checks of a rule at depth 2. A rule that
    hands off to another validator (``include`` or ``set_validator``) nests
    that validator's steps below its own depth.

    Example, counting failed rules per property:
        class FailedRuleCounter:
            def __init__(self):
                self.failed = collections.Counter()

            def on_enter(self, name, ctx, depth):
                return depth

            def on_exit(self, span, name, ok, duration_ms, depth):
                if depth == 1 and not ok:
                    self.failed[name] += 1

            def on_error(self, span, name, error, duration_ms, depth):
                pass
    """

    def on_enter(self, name: str, ctx: Any, depth: int) -> Any:
        """
        A validator, rule or check is about to run.

        ``ctx`` is the instance being validated, or the property value for
        a check. The returned value is handed back to ``on_exit`` or
        ``on_error`` for the same step.
        """
        ...

    def on_exit(
        self, span: Any, name: str, ok: bool, duration_ms: float, depth: int
    ) -> None:
        """The step finished; ``ok`` is False when it reported any failure."""
        ...

    def on_error(
        self, span: Any, name: str, error: BaseException, duration_ms: float, depth: int
    ) -> None:
        """The step raised, e.g. a predicate error or a cancelled async run."""
        ...


@dataclass
class TraceConfig:
    """
    Configuration for tracing behavior.

    Attributes:
        max_depth: Maximum depth to trace (None = unlimited)
        include_leaf_only: If True, only trace individual checks
    """

    max_depth: int | None = None
    include_leaf_only: bool = False


# Context variables for global tracing
_trace_hook: ContextVar[TraceHook | None] = ContextVar("trace_hook", default=None)
_trace_config: ContextVar[TraceConfig] = ContextVar(
    "trace_config", default=TraceConfig()
)
_trace_depth: ContextVar[int] = ContextVar("trace_depth", default=0)


@contextmanager
def use_tracing(hook: TraceHook, config: TraceConfig | None = None):
    """
    Context manager to enable tracing for all validation runs in scope.

    Example:
        with use_tracing(LoggingHook()):
            validator.validate(customer)  # This will be traced

        with use_tracing(PrintHook(), TraceConfig(max_depth=1)):
            validator.validate(customer)  # validator and rules only
    """
    hook_token = _trace_hook.set(hook)
    config_token = _trace_config.set(config or TraceConfig())
    try:
        yield
    finally:
        _trace_hook.reset(hook_token)
        _trace_config.reset(config_token)


class SpanState:
    """Outcome holder for a traced unit; callers flip ``ok`` on failures."""

    __slots__ = ("ok",)

    def __init__(self) -> None:
        self.ok = True


@contextmanager
def trace_span(name: str, ctx: Any, leaf: bool = False) -> Iterator[SpanState]:
    """Report one unit of work to the active hook, if any."""
    state = SpanState()
    hook = _trace_hook.get()
    if hook is None:
        yield state
        return

    config = _trace_config.get()
    depth = _trace_depth.get()
    skip = (config.max_depth is not None and depth > config.max_depth) or (
        config.include_leaf_only and not leaf
    )
    depth_token = _trace_depth.set(depth + 1)
    if skip:
        try:
            yield state
        finally:
            _trace_depth.reset(depth_token)
        return

    span = hook.on_enter(name, ctx, depth)
    start = time.perf_counter()
    try:
        yield state
    except (Exception, asyncio.CancelledError) as e:
        duration_ms = (time.perf_counter() - start) * 1000
        hook.on_error(span, name, e, duration_ms, depth)
        raise
    else:
        duration_ms = (time.perf_counter() - start) * 1000
        hook.on_exit(span, name, state.ok, duration_ms, depth)
    finally:
        _trace_depth.reset(depth_token)


# =============================================================================
# Built-in Trace Hooks
# =============================================================================


class PrintHook:
    """
    Prints the rule tree of each validation run, indented by depth.

    Handy while writing a validator to see which rules were selected and
    which check rejected a value. Pass ``show_ctx=True`` to also print the
    instance (or, for checks, the property value) at each step.

        with use_tracing(PrintHook()):
            CustomerValidator().validate(Customer(name=""))

        # -> CustomerValidator
        #   -> PropertyRule(name)
        #     -> not_empty
        #     <- not_empty ✗ (0.01ms)
        #   <- PropertyRule(name) ✗ (0.04ms)
        # <- CustomerValidator ✗ (0.09ms)
    """

    def __init__(self, indent: str = "  ", show_ctx: bool = False):
        self.indent = indent
        self.show_ctx = show_ctx

    def on_enter(self, name: str, ctx: Any, depth: int) -> float:
        prefix = self.indent * depth
        if self.show_ctx:
            print(f"{prefix}-> {name} | ctx={ctx}")
        else:
            print(f"{prefix}-> {name}")
        return time.perf_counter()

    def on_exit(
        self, span: float, name: str, ok: bool, duration_ms: float, depth: int
    ) -> None:
        prefix = self.indent * depth
        status = "✔" if ok else "✗"
        print(f"{prefix}<- {name} {status} ({duration_ms:.2f}ms)")

    def on_error(
        self, span: float, name: str, error: BaseException, duration_ms: float, depth: int
    ) -> None:
        prefix = self.indent * depth
        print(f"{prefix}<- {name} ERROR: {error!r} ({duration_ms:.2f}ms)")


class LoggingHook:
    """
    Writes validator, rule and check boundaries to a ``logging.Logger``.

    Boundaries go out at ``level`` (DEBUG unless given); a step that raises
    is always logged at ERROR. Without a logger the ``fluentcheck`` logger
    is used, so enabling it is enough to see every run:

        logging.getLogger("fluentcheck").setLevel(logging.DEBUG)
        with use_tracing(LoggingHook()):
            await OrderValidator().validate_async(order)
    """

    def __init__(self, logger: logging.Logger | None = None, level: int = logging.DEBUG):
        self.logger = logger or logging.getLogger("fluentcheck")
        self.level = level

    def on_enter(self, name: str, ctx: Any, depth: int) -> dict:
        span = {"name": name, "depth": depth, "start": time.perf_counter()}
        self.logger.log(self.level, "[ENTER] %s (depth=%d)", name, depth)
        return span

    def on_exit(
        self, span: dict, name: str, ok: bool, duration_ms: float, depth: int
    ) -> None:
        status = "OK" if ok else "FAIL"
        self.logger.log(self.level, "[EXIT] %s -> %s (%.2fms)", name, status, duration_ms)

    def on_error(
        self, span: dict, name: str, error: BaseException, duration_ms: float, depth: int
    ) -> None:
        self.logger.error("[ERROR] %s -> %r (%.2fms)", name, error, duration_ms)


class OpenTelemetryHook:
    """
    OpenTelemetry trace hook.

    Opens one span per validator call, rule and check with the correct
    parent/child hierarchy. Checks can be recorded as events on their rule's
    span instead of separate spans.

    Requires: pip install opentelemetry-api
    """

    def __init__(
        self,
        tracer,
        *,
        max_span_depth: int | None = None,
        checks_as_events: bool = False,
    ):
        if not _HAS_OPENTELEMETRY:
            raise ImportError(
                "OpenTelemetry is not installed. "
                "Install it with: pip install opentelemetry-api"
            )
        self.tracer = tracer
        self.max_span_depth = max_span_depth
        self.checks_as_events = checks_as_events
        self._span_stack: list[Any] = []

    def on_enter(self, name: str, ctx: Any, depth: int) -> Any:
        assert _set_span_in_context is not None

        if self.max_span_depth is not None and depth > self.max_span_depth:
            return None

        parent = self._span_stack[-1] if self._span_stack else None
        if self.checks_as_events and parent is not None and depth >= 2:
            parent.add_event("check.evaluate", {"fluentcheck.check": name})
            return None

        parent_ctx = _set_span_in_context(parent) if parent is not None else None
        span = self.tracer.start_span(name, context=parent_ctx)
        span.set_attribute("fluentcheck.name", name)
        span.set_attribute("fluentcheck.depth", depth)
        self._span_stack.append(span)
        return span

    def on_exit(
        self, span: Any, name: str, ok: bool, duration_ms: float, depth: int
    ) -> None:
        if span is None:
            return
        assert _Status is not None
        assert _StatusCode is not None

        span.set_attribute("fluentcheck.valid", ok)
        span.set_attribute("fluentcheck.duration_ms", duration_ms)
        if not ok:
            span.set_status(_Status(_StatusCode.ERROR))
        span.end()
        self._span_stack.pop()

    def on_error(
        self, span: Any, name: str, error: BaseException, duration_ms: float, depth: int
    ) -> None:
        if span is None:
            return
        assert _Status is not None
        assert _StatusCode is not None

        span.set_attribute("fluentcheck.duration_ms", duration_ms)
        span.record_exception(error)
        span.set_status(_Status(_StatusCode.ERROR, str(error)))
        span.end()
        self._span_stack.pop()
