"""ASGI middleware that reports the timing and status of every request."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from .logsetup import get_logger
from .metric import Context, RouteMetric, new_route_metric

CONTEXT_SCOPE_KEY = "brakenotify.context"

Scope = dict
RouteResolver = Callable[[Scope], str]
ASGIApp = Callable[[Scope, Callable, Callable], Awaitable[None]]


def scope_route(scope: Scope) -> str:
    """Return the matched route template if the framework set one, else the path."""
    route = scope.get("route")
    template = getattr(route, "path", None)
    if isinstance(template, str) and template:
        return template
    return scope.get("path") or "/"


class ASGIMiddleware:
    """Wraps an ASGI application and sends a route metric per HTTP request.

    The route is resolved again after the application ran, so a route
    template set by the framework's router is what gets reported.
    """

    def __init__(self, app: ASGIApp, notifier: Any, route_resolver: RouteResolver | None = None) -> None:
        self.app = app
        self.notifier = notifier
        self.route_resolver = route_resolver or scope_route

    async def __call__(self, scope: Scope, receive: Callable, send: Callable) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return
        if self.notifier is None:
            get_logger().warning("notifier not defined")
            await self.app(scope, receive, send)
            return

        ctx, metric = new_route_metric(
            Context(), scope.get("method", "GET"), self.route_resolver(scope)
        )
        scope = {**scope, CONTEXT_SCOPE_KEY: ctx}
        metric.status_code = 200
        started = False

        async def capture(message: dict[str, Any]) -> None:
            nonlocal started
            if message.get("type") == "http.response.start":
                started = True
                metric.status_code = int(message["status"])
            await send(message)

        try:
            await self.app(scope, receive, capture)
        except Exception:
            if not started:
                metric.status_code = 500
            raise
        finally:
            metric.route = self.route_resolver(scope)
            self._report(ctx, metric)

    def _report(self, ctx: Context, metric: RouteMetric) -> None:
        try:
            self.notifier.routes.notify(ctx, metric)
        except Exception as err:
            get_logger().warning("route notify failed: %s", err)