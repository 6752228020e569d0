"""Timing of request and queue handlers split into named spans."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, TypeVar

from .logsetup import get_logger

T = TypeVar("T")


class RealClock:
    """The wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start if start is not None else datetime(2000, 1, 1, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, delta: timedelta | float) -> None:
        """Move the clock forward by a timedelta or a number of seconds."""
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        with self._lock:
            self._now += delta


class _ClockHolder:
    """Holds the clock used for all timings."""

    def __init__(self, clock: RealClock | FakeClock) -> None:
        self.clock = clock


_clock_holder = _ClockHolder(RealClock())


def set_clock(clock: RealClock | FakeClock) -> None:
    """Replace the clock used for all timings."""
    _clock_holder.clock = clock


def get_clock() -> RealClock | FakeClock:
    return _clock_holder.clock


def _now() -> datetime:
    return _clock_holder.clock.now()


class _CtxKey:
    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"<context key {self.name}>"


_METRIC_KEY = _CtxKey("ab_metric")
_SPAN_KEY = _CtxKey("ab_span")
_TRACE_KEY = _CtxKey("ab_client_trace")
_NO_KEY = _CtxKey("none")


class Context:
    """An immutable chain of key/value pairs carried through a request."""

    __slots__ = ("_parent", "_key", "_value")

    def __init__(self) -> None:
        self._parent: Context | None = None
        self._key: Any = _NO_KEY
        self._value: Any = None

    def with_value(self, key: Any, value: Any) -> Context:
        """Return a child context that also carries ``key``."""
        child = Context()
        child._parent = self
        child._key = key
        child._value = value
        return child

    def value(self, key: Any) -> Any:
        """Return the innermost value stored under ``key``, or None."""
        ctx: Context | None = self
        while ctx is not None:
            if ctx._key is not _NO_KEY and ctx._key == key:
                return ctx._value
            ctx = ctx._parent
        return None


class NoopSpan:
    """A span that measures nothing; it only remembers being finished."""

    finished = False

    def finish(self) -> None:
        self.finished = True


class NoopMetric:
    """A metric that measures nothing."""

    def start(self, ctx: Context | None, name: str) -> tuple[Context | None, NoopSpan]:
        return ctx, NoopSpan()


class Span:
    """A named interval of a metric; pauses while a nested span runs."""

    def __init__(self, metric: Metric, name: str) -> None:
        self.metric: Metric | None = metric
        self.parent: Span | None = None
        self.name = name
        self.start: datetime | None = _now()
        self.dur = timedelta(0)
        self._paused = False
        self._lock = threading.Lock()

    def finish(self) -> None:
        """Add the span's time to its metric and resume the parent span."""
        metric = self.metric
        if metric is None:
            get_logger().warning("span=%r is already finished", self.name)
            return
        if not self._pause():
            return
        metric.inc_group(self.name, self.dur)
        if self.parent is not None:
            self.parent._resume()
        self.metric = None
        self.parent = None

    def _pause(self) -> bool:
        with self._lock:
            if self._paused:
                return False
            self._paused = True
            if self.start is not None:
                self.dur += _now() - self.start
            self.start = None
            return True

    def _resume(self) -> None:
        with self._lock:
            if not self._paused:
                return
            self._paused = False
            self.start = _now()


class Metric:
    """Total time of a unit of work plus time per span name."""

    def __init__(self) -> None:
        self.start_time: datetime | None = None
        self.end_time: datetime | None = None
        self.groups: dict[str, timedelta] = {}
        self._groups_lock = threading.Lock()

    def init(self) -> None:
        self.start_time = _now()

    def start(self, ctx: Context | None, name: str) -> tuple[Context, Span]:
        """Start a span, pausing the span already running in ``ctx``."""
        if ctx is None:
            ctx = Context()
        parent = context_span(ctx)
        if isinstance(parent, Span):
            parent._pause()
            span_parent: Span | None = parent
        else:
            span_parent = None
        span = Span(self, name)
        span.parent = span_parent
        return ctx.with_value(_SPAN_KEY, span), span

    def finish(self) -> None:
        if self.end_time is None:
            self.end_time = _now()

    def duration(self) -> timedelta:
        """Return end minus start time; raise ValueError if either is unset."""
        if self.start_time is None:
            raise ValueError("metric start time is not set")
        if self.end_time is None:
            raise ValueError("metric end time is not set")
        return self.end_time - self.start_time

    def with_span(self, ctx: Context | None, name: str, body: Callable[[Context], T]) -> T:
        """Run ``body`` inside a span and return what it returns."""
        ctx, span = self.start(ctx, name)
        try:
            return body(ctx)
        finally:
            span.finish()

    def inc_group(self, name: str, dur: timedelta) -> None:
        if self.end_time is not None:
            return
        with self._groups_lock:
            self.groups[name] = self.groups.get(name, timedelta(0)) + dur

    def flush_groups(self) -> dict[str, timedelta]:
        """Return the collected groups and start collecting afresh."""
        with self._groups_lock:
            groups = self.groups
            self.groups = {}
        return groups


class _RootedMetric(Metric):
    def __init__(self) -> None:
        super().__init__()
        self._root: Span | None = None

    def finish(self) -> None:
        if self._root is not None:
            root, self._root = self._root, None
            root.finish()
        super().finish()


class RouteMetric(_RootedMetric):
    """Timing of one HTTP request handled by a route."""

    def __init__(self, method: str, route: str) -> None:
        super().__init__()
        self.method = method
        self.route = route
        self.status_code = 0
        self.content_type = ""


class QueueMetric(_RootedMetric):
    """Timing of one job taken from a queue."""

    def __init__(self, queue: str) -> None:
        super().__init__()
        self.queue = queue
        self.errored = False


class ClientTrace:
    """Times outgoing HTTP calls made within a context as an ``http.client`` span."""

    def __init__(self, ctx: Context, metric: Metric) -> None:
        self._ctx = ctx
        self._metric = metric
        self._lock = threading.Lock()
        self._span: Span | None = None
        self._finished = False

    def get_conn(self, host_port: str) -> None:
        with self._lock:
            if self._span is None:
                _, self._span = self._metric.start(self._ctx, "http.client")

    def got_first_response_byte(self) -> None:
        with self._lock:
            if self._span is not None and not self._finished:
                self._span.finish()
                self._finished = True


def with_metric(ctx: Context | None, metric: Metric) -> Context:
    """Return a context carrying ``metric`` and a client trace feeding it."""
    if ctx is None:
        ctx = Context()
    ctx = ctx.with_value(_METRIC_KEY, metric)
    return ctx.with_value(_TRACE_KEY, ClientTrace(ctx, metric))


def context_metric(ctx: Context | None) -> Metric | NoopMetric:
    if ctx is None:
        return NoopMetric()
    metric = ctx.value(_METRIC_KEY)
    return metric if isinstance(metric, Metric) else NoopMetric()


def context_span(ctx: Context | None) -> Span | NoopSpan:
    if ctx is None:
        return NoopSpan()
    span = ctx.value(_SPAN_KEY)
    return span if isinstance(span, Span) else NoopSpan()


def context_client_trace(ctx: Context | None) -> ClientTrace | None:
    if ctx is None:
        return None
    trace = ctx.value(_TRACE_KEY)
    return trace if isinstance(trace, ClientTrace) else None


def new_route_metric(ctx: Context | None, method: str, route: str) -> tuple[Context, RouteMetric]:
    """Start timing a request; an ``http.handler`` span runs until finish."""
    metric = RouteMetric(method, route)
    metric.init()
    ctx = with_metric(ctx, metric)
    ctx, metric._root = metric.start(ctx, "http.handler")
    return ctx, metric


def new_queue_metric(ctx: Context | None, queue: str) -> tuple[Context, QueueMetric]:
    """Start timing a queue job; a ``queue.handler`` span runs until finish."""
    metric = QueueMetric(queue)
    metric.init()
    ctx = with_metric(ctx, metric)
    ctx, metric._root = metric.start(ctx, "queue.handler")
    return ctx, metric