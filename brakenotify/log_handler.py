"""A logging handler that sends log records as notices."""

from __future__ import annotations

import logging
from typing import Any

from .notice import new_notice

_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}
_CONTEXT_KEYS = ("httpMethod", "route")


def as_params(fields: dict[str, Any]) -> dict[str, Any]:
    """Copy ``fields``, replacing exceptions with their messages."""
    return {
        key: str(value) if isinstance(value, BaseException) else value
        for key, value in fields.items()
    }


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields = {
        key: value for key, value in record.__dict__.items() if key not in _STANDARD_ATTRS
    }
    if record.exc_info and record.exc_info[1] is not None:
        fields.setdefault("error", record.exc_info[1])
    return fields


class AirbrakeHandler(logging.Handler):
    """Sends records at or above ``level`` to the notifier.

    Extra record attributes become the notice's params, except ``httpMethod``
    and ``route``, which go to its context.
    """

    def __init__(self, notifier: Any, level: int = logging.ERROR, depth: int = 4) -> None:
        if notifier is None:
            raise ValueError("notifier not defined")
        super().__init__(level)
        self.notifier = notifier
        self.depth = depth

    def set_depth(self, depth: int) -> None:
        """Set how many frames the notice's backtrace skips."""
        self.depth = depth

    def emit(self, record: logging.LogRecord) -> None:
        if record.levelno < self.level:
            return
        try:
            notice = new_notice(record.getMessage(), None, self.depth)
            params = as_params(_record_fields(record))
            for key in _CONTEXT_KEYS:
                if key in params:
                    notice.context[key] = params.pop(key)
            notice.context["severity"] = record.levelname.lower()
            notice.params = params
            self.notifier.notify(notice, None)
        except Exception:
            self.handleError(record)