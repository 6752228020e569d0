"""WSGI middleware that reports the timing and status of every request."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Iterator

from .logsetup import get_logger
from .metric import Context, RouteMetric, new_route_metric

CONTEXT_ENVIRON_KEY = "brakenotify.context"

RouteResolver = Callable[[dict], str]


def path_route(environ: dict[str, Any]) -> str:
    """Use the request path as the route name."""
    return environ.get("PATH_INFO") or "/"


class _ReportingIterable:
    """Passes the response body through and reports once it is closed."""

    def __init__(self, result: Iterable[bytes], on_close: Callable[[], None]) -> None:
        self._result = result
        self._on_close: Callable[[], None] | None = on_close

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._result)

    def close(self) -> None:
        try:
            close = getattr(self._result, "close", None)
            if callable(close):
                close()
        finally:
            if self._on_close is not None:
                on_close, self._on_close = self._on_close, None
                on_close()


class WSGIMiddleware:
    """Wraps a WSGI application and sends a route metric per request.

    The request's metric context is available to the application under
    ``environ["brakenotify.context"]`` so that it can time its own spans.
    """

    def __init__(self, app: Callable, notifier: Any, route_resolver: RouteResolver | None = None) -> None:
        self.app = app
        self.notifier = notifier
        self.route_resolver = route_resolver or path_route

    def __call__(self, environ: dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        if self.notifier is None:
            get_logger().warning("notifier not defined")
            return self.app(environ, start_response)

        ctx, metric = new_route_metric(
            Context(), environ.get("REQUEST_METHOD", "GET"), self.route_resolver(environ)
        )
        environ[CONTEXT_ENVIRON_KEY] = ctx
        # Reported as 200 unless the application says otherwise.
        metric.status_code = 200

        def capture(status: str, headers: list, exc_info: Any = None) -> Any:
            metric.status_code = int(status.split(" ", 1)[0])
            if exc_info is None:
                return start_response(status, headers)
            return start_response(status, headers, exc_info)

        try:
            result = self.app(environ, capture)
        except Exception:
            metric.status_code = 500
            self._report(ctx, metric)
            raise
        return _ReportingIterable(result, lambda: self._report(ctx, metric))

    def _report(self, ctx: Context, metric: RouteMetric) -> None:
        try:
            self.notifier.routes.notify(ctx, metric)
        except Exception as err:
            get_logger().warning("route notify failed: %s", err)