"""Collecting repository, revision and last-checkout details from a git checkout."""

from __future__ import annotations

import os
import subprocess
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AnyStr

from .logsetup import get_logger


@dataclass
class GitLog:
    """One entry of the HEAD reflog."""

    username: str = ""
    email: str = ""
    revision: str = ""
    time: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "email": self.email,
            "revision": self.revision,
            "time": self.time.isoformat() if self.time else None,
        }


@dataclass
class GitInfo:
    """What is known about a checkout."""

    repository: str = ""
    revision: str = ""
    last_checkout: GitLog | None = None


_infos_lock = threading.Lock()
_infos: dict[str, GitInfo] = {}

_FAILURES = (OSError, subprocess.CalledProcessError, ValueError)


def get_git_info(directory: str) -> GitInfo:
    """Return the (cached) git details of ``directory``; failures are logged."""
    with _infos_lock:
        info = _infos.get(directory)
        if info is not None:
            return info
        info = GitInfo()
        _infos[directory] = info

        logger = get_logger()
        try:
            info.repository = git_repository(directory)
        except _FAILURES as err:
            logger.warning("git_repository dir=%r failed: %s", directory, err)
        try:
            info.revision = git_revision(directory)
        except _FAILURES as err:
            logger.warning("git_revision dir=%r failed: %s", directory, err)
        try:
            info.last_checkout = git_last_checkout(directory)
        except _FAILURES as err:
            logger.warning("git_last_checkout dir=%r failed: %s", directory, err)
        return info


def git_repository(directory: str) -> str:
    """Return the URL of the ``origin`` remote, as reported by git."""
    result = subprocess.run(
        ["git", "remote", "get-url", "origin"],
        cwd=directory,
        capture_output=True,
        check=True,
    )
    return trim_newline(result.stdout).decode("utf-8", errors="replace")


def _exists(path: str) -> bool:
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    except OSError:
        return True
    return True


def find_git_dir(directory: str) -> str | None:
    """Return the first of ``directory`` and its parents holding ``.git``."""
    try:
        current = os.path.abspath(directory)
    except (OSError, ValueError):
        return None
    if not _exists(current):
        return None

    for _ in range(10):
        if _exists(os.path.join(current, ".git")):
            return current
        if current in (".", "/"):
            return None
        current = os.path.dirname(current)
    return None


def git_revision(directory: str) -> str:
    """Return the commit that HEAD of the checkout points at."""
    head = git_head(directory)
    prefix = b"ref: "
    if not head.startswith(prefix):
        return head.decode("utf-8", errors="replace")
    ref = head[len(prefix):]
    ref_name = ref.decode("utf-8", errors="replace")

    try:
        with open(os.path.join(directory, ".git", ref_name), "rb") as fd:
            return trim_newline(fd.read()).decode("utf-8", errors="replace")
    except OSError:
        pass

    with open(os.path.join(directory, ".git", "packed-refs"), "rb") as fd:
        data = fd.read()
    for raw in data.split(b"\n"):
        entry = raw.removesuffix(b"\r")
        if not entry or entry[:1] in (b"#", b"^"):
            continue
        parts = entry.split(b" ")
        if len(parts) != 2:
            continue
        if parts[1] == ref:
            return parts[0].decode("utf-8", errors="replace")

    raise ValueError(f"git revision for ref={ref_name!r} not found")


def git_head(directory: str) -> bytes:
    """Return the contents of ``.git/HEAD`` without the trailing newline."""
    with open(os.path.join(directory, ".git", "HEAD"), "rb") as fd:
        return trim_newline(fd.read())


def trim_newline(data: AnyStr) -> AnyStr:
    """Strip one trailing newline and then one carriage return before it."""
    for ch in ("\n", "\r"):
        suffix = ch.encode() if isinstance(data, bytes) else ch
        if data.endswith(suffix):  # type: ignore[arg-type]
            data = data[:-1]
        else:
            break
    return data


def git_last_checkout(directory: str) -> GitLog:
    """Parse the latest clone, pull or checkout entry of the HEAD reflog."""
    line = last_checkout_line(os.path.join(directory, ".git", "logs", "HEAD"))

    tab = line.find("\t")
    if tab == -1:
        raise ValueError("tab not found")
    line = line[:tab]

    parts = line.split(" ")
    if len(parts) < 5:
        raise ValueError(f"can't parse {line!r}")
    author = parts[2:-2]
    timestamp = int(parts[-2])

    info = GitLog(
        revision=parts[1],
        time=datetime.fromtimestamp(timestamp, tz=timezone.utc),
    )
    email = clean_email(author[-1])
    if email:
        info.email = email
        author = author[:-1]
    info.username = " ".join(author)
    return info


def last_checkout_line(filename: str) -> str:
    """Return the last reflog line recording a clone, pull or checkout."""
    last = ""
    with open(filename, encoding="utf-8", errors="replace") as fd:
        for raw in fd:
            text = raw.rstrip("\n").removesuffix("\r")
            if "\tclone: " in text or "\tpull: " in text or "\tcheckout: " in text:
                last = text
    if not last:
        raise ValueError("no clone, pull, or checkout entries")
    return last


def clean_email(s: str) -> str:
    """Return the address inside ``<...>``, or an empty string."""
    if not s:
        return ""
    if s[0] == "<" and s[-1] == ">":
        return s[1:-1]
    return ""