"""A small thread-safe least-recently-used cache."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Any


class LRUCache:
    """Keeps at most ``max_len`` entries, evicting the least recently used."""

    def __init__(self, max_len: int) -> None:
        self.max_len = max_len
        self._lock = threading.Lock()
        # Most recently used entries sit at the end.
        self._entries: OrderedDict[str, tuple[Any, float]] = OrderedDict()

    def get(self, key: str) -> Any:
        """Return the value stored under ``key``; raise KeyError if absent."""
        with self._lock:
            value, _ = self._entries[key]
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` and mark it most recently used."""
        with self._lock:
            self._entries[key] = (value, time.time())
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_len:
                self._entries.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)