"""Filters that adjust or drop notices before they are sent."""

from __future__ import annotations

import os
import re
from typing import Any, Callable

from .code_hunk import get_code
from .git import find_git_dir, get_git_info
from .logsetup import get_logger
from .notice import Notice

NoticeFilter = Callable[[Notice], "Notice | None"]

FILTERED = "[Filtered]"
_UNSOLICITED_PREFIX = "Unsolicited response received on idle HTTP channel starting with"


def new_notifier_filter(environment: str = "", revision: str = "") -> NoticeFilter:
    """Return a filter that records the environment and revision in the context."""

    def notifier_filter(notice: Notice) -> Notice:
        if environment:
            notice.context["environment"] = environment
        if revision:
            notice.context["revision"] = revision
        return notice

    return notifier_filter


def new_blocklist_keys_filter(*args: str | re.Pattern[str]) -> NoticeFilter:
    """Return a filter that masks matching keys in env, context and session."""
    keys = args

    def blocklist_filter(notice: Notice) -> Notice:
        for key in keys:
            notice.env = filter_by_key(notice.env, key)
            notice.context = filter_by_key(notice.context, key)
            notice.session = filter_by_key(notice.session, key)
        return notice

    return blocklist_filter


def filter_by_key(values: dict[str, Any], key: str | re.Pattern[str]) -> dict[str, Any]:
    """Replace the values of keys equal to (or matching) ``key`` with a marker."""
    if isinstance(key, str):
        if key in values:
            values[key] = FILTERED
    elif isinstance(key, re.Pattern):
        for name in values:
            if key.search(name):
                values[name] = FILTERED
    else:
        raise TypeError(f"unsupported blocklist key type: {type(key).__name__}")
    return values


def gopath_filter(notice: Notice) -> Notice:
    """Shorten backtrace paths under ``<gopath>/src`` to ``/GOPATH``."""
    gopath = notice.context.get("gopath")
    if not isinstance(gopath, str):
        return notice

    dirs = [os.path.join(d, "src") for d in gopath.split(os.pathsep)] if gopath else []
    for error in notice.errors:
        for frame in error.backtrace:
            for directory in dirs:
                if frame.file.startswith(directory):
                    frame.file = frame.file.replace(directory, "/GOPATH", 1)
                    break
    return notice


def git_filter(notice: Notice) -> Notice:
    """Add repository, revision and last checkout of the root directory's checkout."""
    root = notice.context.get("rootDirectory")
    if not isinstance(root, str) or not root:
        return notice

    git_dir = find_git_dir(root)
    if git_dir is None:
        return notice

    info = get_git_info(git_dir)
    if notice.context.get("repository") is None and info.repository:
        notice.context["repository"] = info.repository
    if notice.context.get("revision") is None and info.revision:
        notice.context["revision"] = info.revision
    if info.last_checkout is not None:
        notice.context["lastCheckout"] = info.last_checkout
    return notice


def http_unsolicited_response_filter(notice: Notice) -> Notice | None:
    """Drop the noise notices about unsolicited responses on idle connections."""
    if not notice.errors:
        return notice
    first = notice.errors[0]
    if first.type not in ("str", "string"):
        return notice
    if not first.message.startswith(_UNSOLICITED_PREFIX):
        return notice
    return None


def code_hunks_filter(notice: Notice) -> Notice:
    """Attach the surrounding source lines to every backtrace frame."""
    for error in notice.errors:
        for frame in error.backtrace:
            try:
                frame.code = get_code(frame.file, frame.line)
            except FileNotFoundError:
                continue
            except OSError as err:
                get_logger().warning(
                    "get_code file=%r line=%d failed: %s", frame.file, frame.line, err
                )
    return notice