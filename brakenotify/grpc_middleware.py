"""gRPC server interceptors that report route stats and errors."""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Callable

from .logsetup import get_logger
from .metric import Context, RouteMetric, new_route_metric


class GrpcCode(IntEnum):
    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16


_HTTP_STATUS = {
    GrpcCode.OK: 200,
    GrpcCode.CANCELLED: 499,
    GrpcCode.UNKNOWN: 500,
    GrpcCode.INVALID_ARGUMENT: 400,
    GrpcCode.DEADLINE_EXCEEDED: 504,
    GrpcCode.NOT_FOUND: 404,
    GrpcCode.ALREADY_EXISTS: 409,
    GrpcCode.PERMISSION_DENIED: 403,
    GrpcCode.RESOURCE_EXHAUSTED: 429,
    GrpcCode.FAILED_PRECONDITION: 400,
    GrpcCode.ABORTED: 409,
    GrpcCode.OUT_OF_RANGE: 400,
    GrpcCode.UNIMPLEMENTED: 501,
    GrpcCode.INTERNAL: 500,
    GrpcCode.UNAVAILABLE: 503,
    GrpcCode.DATA_LOSS: 500,
    GrpcCode.UNAUTHENTICATED: 401,
}


class StatusError(Exception):
    """An error carrying a gRPC status code."""

    def __init__(self, code: GrpcCode | int, message: str) -> None:
        super().__init__(message)
        self.code = GrpcCode(code)
        self.message = message


def grpc_code_to_http(code: GrpcCode | int) -> int:
    """Map a gRPC status code to the matching HTTP status; unknown codes give 500."""
    try:
        return _HTTP_STATUS.get(GrpcCode(code), 500)
    except ValueError:
        return 500


def _status_of(err: BaseException) -> int:
    if isinstance(err, StatusError):
        return grpc_code_to_http(err.code)
    return 500


def _send_error(notifier: Any, err: BaseException, full_method: str) -> None:
    notice = notifier.notice(err, None, 3)
    notice.context["component"] = "grpc"
    notice.context["action"] = full_method
    notifier.send_notice_async(notice)


def _report(notifier: Any, ctx: Context, metric: RouteMetric) -> None:
    try:
        notifier.routes.notify(ctx, metric)
    except Exception as err:
        get_logger().warning("route notify failed: %s", err)


class _ContextStream:
    """A server stream whose ``context`` is the metric-carrying context."""

    def __init__(self, stream: Any, ctx: Context) -> None:
        self._stream = stream
        self._ctx = ctx

    @property
    def context(self) -> Context:
        return self._ctx

    def __getattr__(self, name: str) -> Any:
        return getattr(self._stream, name)


UnaryHandler = Callable[[Context, Any], Any]
StreamHandler = Callable[[Any, Any], Any]


def unary_server_interceptor(notifier: Any) -> Callable[[Any, Any, str, UnaryHandler], Any]:
    """Return ``intercept(ctx, request, full_method, handler)`` for unary calls.

    Errors raised by the handler are reported as notices and raised again.
    """

    def intercept(ctx: Context | None, request: Any, full_method: str, handler: UnaryHandler) -> Any:
        ctx, metric = new_route_metric(ctx, "POST", full_method)
        metric.status_code = 200
        try:
            return handler(ctx, request)
        except Exception as err:
            metric.status_code = _status_of(err)
            _send_error(notifier, err, full_method)
            raise
        finally:
            _report(notifier, ctx, metric)

    return intercept


def stream_server_interceptor(notifier: Any) -> Callable[[Any, Any, str, StreamHandler], Any]:
    """Return ``intercept(server, stream, full_method, handler)`` for streaming calls.

    The handler receives a stream whose ``context`` carries the route metric.
    """

    def intercept(server: Any, stream: Any, full_method: str, handler: StreamHandler) -> Any:
        raw = getattr(stream, "context", None)
        ctx, metric = new_route_metric(raw if isinstance(raw, Context) else None, "POST", full_method)
        wrapped = _ContextStream(stream, ctx)
        metric.status_code = 200
        try:
            return handler(server, wrapped)
        except Exception as err:
            metric.status_code = _status_of(err)
            _send_error(notifier, err, full_method)
            raise
        finally:
            _report(notifier, ctx, metric)

    return intercept