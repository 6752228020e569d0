"""The notice sent to the error tracker and how it is built."""

from __future__ import annotations

import functools
import inspect
import os
import platform
import socket
import sys
from dataclasses import dataclass, field
from types import FrameType
from typing import Any

NOTIFIER_NAME = "brakenotify"
NOTIFIER_VERSION = "5.0.0"


@functools.cache
def get_default_context() -> dict[str, Any]:
    """Return the context every notice starts with, computed once."""
    context: dict[str, Any] = {
        "notifier": {"name": NOTIFIER_NAME, "version": NOTIFIER_VERSION},
        "language": f"Python {platform.python_version()}",
        "os": sys.platform,
        "architecture": platform.machine(),
    }
    try:
        context["hostname"] = socket.gethostname()
    except OSError:
        pass
    try:
        context["rootDirectory"] = os.getcwd()
    except OSError:
        pass
    gopath = _gopath()
    if gopath:
        context["gopath"] = gopath
    return context


def _gopath() -> str:
    if "GOPATH" in os.environ:
        return os.environ["GOPATH"]
    return os.path.join(os.path.expanduser("~"), "go")


@dataclass
class StackFrame:
    file: str
    line: int
    func: str
    code: dict[int, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"file": self.file, "line": self.line, "function": self.func}
        if self.code:
            data["code"] = dict(self.code)
        return data


@dataclass
class NoticeError:
    type: str
    message: str
    backtrace: list[StackFrame] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "message": self.message,
            "backtrace": [frame.to_dict() for frame in self.backtrace],
        }


@dataclass
class Request:
    """The parts of an incoming HTTP request a notice records."""

    method: str = "GET"
    url: str = ""
    headers: dict[str, list[str]] = field(default_factory=dict)
    remote_addr: str = ""

    def __post_init__(self) -> None:
        self.headers = {
            name: [value] if isinstance(value, str) else list(value)
            for name, value in self.headers.items()
        }


def _header(request: Request, name: str) -> str:
    wanted = name.lower()
    for key, values in request.headers.items():
        if key.lower() == wanted and values:
            return values[0]
    return ""


@dataclass
class Notice:
    errors: list[NoticeError] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)
    env: dict[str, Any] = field(default_factory=dict)
    session: dict[str, Any] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    id: str = ""
    error: BaseException | None = None

    def __str__(self) -> str:
        if not self.errors:
            return "Notice<no errors>"
        first = self.errors[0]
        return f"Notice<{first.type}: {first.message}>"

    def set_request(self, request: Request) -> None:
        """Record the request's URL, method, client and headers."""
        self.context["url"] = request.url
        self.context["httpMethod"] = request.method
        user_agent = _header(request, "User-Agent")
        if user_agent:
            self.context["userAgent"] = user_agent
        self.context["userAddr"] = remote_addr(request)
        for name, values in request.headers.items():
            self.env[name] = values[0] if len(values) == 1 else list(values)

    def to_dict(self) -> dict[str, Any]:
        """Return the notice in the shape of its JSON document."""
        return {
            "errors": [error.to_dict() for error in self.errors],
            "context": _jsonable(self.context),
            "environment": _jsonable(self.env),
            "session": _jsonable(self.session),
            "params": _jsonable(self.params),
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return value


def remote_addr(request: Request) -> str:
    """Return the client address, preferring proxy headers."""
    forwarded = _header(request, "X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0]
    real_ip = _header(request, "X-Real-Ip")
    if real_ip:
        return real_ip
    return request.remote_addr.split(":")[0]


def new_notice(e: Any, request: Request | None = None, depth: int = 0) -> Notice:
    """Build a notice for ``e``; ``depth`` frames above the caller are skipped.

    A depth of -1 leaves the backtrace out. A Notice is returned unchanged.
    """
    if isinstance(e, Notice):
        return e

    notice = Notice(errors=[NoticeError(type=get_type_name(e), message=str(e))])
    notice.context.update(get_default_context())

    if depth != -1:
        component, backtrace = _get_backtrace(e, depth + 2)
        notice.errors[0].backtrace = backtrace
        notice.context["component"] = component

    if request is not None:
        notice.set_request(request)
    return notice


def _component_of(filename: str) -> str:
    return os.path.splitext(os.path.basename(filename))[0]


def _get_backtrace(e: Any, skip: int) -> tuple[str, list[StackFrame]]:
    entries: list[tuple[FrameType, int]] = []
    tb = e.__traceback__ if isinstance(e, BaseException) else None
    if tb is not None:
        while tb is not None:
            entries.append((tb.tb_frame, tb.tb_lineno))
            tb = tb.tb_next
        entries.reverse()
    else:
        frame = inspect.currentframe()
        for _ in range(skip):
            if frame is None:
                break
            frame = frame.f_back
        while frame is not None:
            entries.append((frame, frame.f_lineno))
            frame = frame.f_back

    backtrace = [
        StackFrame(file=frame.f_code.co_filename, line=lineno, func=frame.f_code.co_name)
        for frame, lineno in entries
    ]
    component = _component_of(backtrace[0].file) if backtrace else ""
    del entries
    return component, backtrace


def get_type_name(e: Any) -> str:
    """Return the type name of ``e``, looking through explicit exception causes."""
    if isinstance(e, BaseException):
        while e.__cause__ is not None:
            e = e.__cause__
    cls = type(e)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"