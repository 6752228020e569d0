"""Reading the source lines around a backtrace frame."""

from __future__ import annotations

from .lrucache import LRUCache

_CONTEXT_LINES = 2
_MAX_LINE_LEN = 512

# Only failures are remembered, so a missing file is not probed again.
_cache = LRUCache(1000)


def get_code(file: str, line: int) -> dict[int, str]:
    """Return the lines around ``line`` of ``file``, keyed by line number.

    Raises the OSError that reading the file produced; such errors are cached.
    """
    cache_key = file + str(line)
    try:
        cached = _cache.get(cache_key)
    except KeyError:
        pass
    else:
        if isinstance(cached, BaseException):
            raise cached
        if isinstance(cached, dict):
            return cached
        raise TypeError(f"unsupported type={type(cached).__name__}")

    try:
        return _read_code(file, line)
    except OSError as err:
        _cache.set(cache_key, err)
        raise


def _read_code(file: str, line: int) -> dict[int, str]:
    start = line - _CONTEXT_LINES
    end = line + _CONTEXT_LINES
    lines: dict[int, str] = {}
    with open(file, encoding="utf-8", errors="replace", newline="") as fd:
        for number, text in enumerate(fd, start=1):
            if number < start:
                continue
            if number > end:
                break
            text = text.removesuffix("\n").removesuffix("\r")
            lines[number] = text[:_MAX_LINE_LEN]
    return lines