"""Holding notices and performance stats that failed to send, and resending them."""

from __future__ import annotations

import json
import threading
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable

from .logsetup import get_logger
from .notice import NOTIFIER_NAME, NOTIFIER_VERSION

BACKLOG_SIZE = 100
FLUSH_BACKLOG_PERIOD = 60.0
USER_AGENT = f"{NOTIFIER_NAME}/{NOTIFIER_VERSION}"

Transport = Callable[[str, str, "dict[str, str]", bytes], int]


@dataclass
class BacklogOptions:
    host: str = ""
    apm_host: str = ""
    project_id: int = 0
    project_key: str = ""
    disable_backlog: bool = False


def request_headers(project_key: str) -> dict[str, str]:
    """Return the headers every request to the service carries."""
    return {
        "Authorization": "Bearer " + project_key,
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
    }


def _urllib_transport(method: str, url: str, headers: dict[str, str], body: bytes) -> int:
    request = urllib.request.Request(url, data=body, headers=headers, method=method)
    try:
        with urllib.request.urlopen(request, timeout=10) as response:
            return response.status
    except urllib.error.HTTPError as err:
        return err.code


def _encode(item: Any) -> bytes:
    to_dict = getattr(item, "to_dict", None)
    payload = to_dict() if callable(to_dict) else item
    return json.dumps(payload).encode("utf-8") + b"\n"


class Backlog:
    """Queues of items to resend, flushed periodically once started."""

    flush_period: float = FLUSH_BACKLOG_PERIOD

    def __init__(self, options: BacklogOptions, transport: Transport | None = None) -> None:
        self.options = options
        self.transport: Transport = transport or _urllib_transport
        self._lock = threading.Lock()
        self._notices: list[Any] = []
        self._route_stats: list[Any] = []
        self._route_breakdowns: list[Any] = []
        self._queries: list[Any] = []
        self._queues: list[Any] = []
        self._apm_count = 0
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def __enter__(self) -> Backlog:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def add_notice(self, notice: Any) -> None:
        if self.options.disable_backlog:
            return
        with self._lock:
            if len(self._notices) < BACKLOG_SIZE:
                self._notices.append(notice)

    def _add_apm(self, items: list[Any], item: Any) -> None:
        if self.options.disable_backlog:
            return
        with self._lock:
            # All kinds of performance stats share one limit.
            if self._apm_count < BACKLOG_SIZE:
                items.append(item)
                self._apm_count += 1

    def add_route_stat(self, stat: Any) -> None:
        self._add_apm(self._route_stats, stat)

    def add_route_breakdown(self, breakdown: Any) -> None:
        self._add_apm(self._route_breakdowns, breakdown)

    def add_query(self, query: Any) -> None:
        self._add_apm(self._queries, query)

    def add_queue(self, queue: Any) -> None:
        self._add_apm(self._queues, queue)

    def _take(self, name: str) -> list[Any]:
        with self._lock:
            items = getattr(self, name)
            setattr(self, name, [])
            return items

    def _send_all(self, label: str, items: list[Any], method: str, url: str) -> None:
        logger = get_logger()
        headers = request_headers(self.options.project_key)
        for item in items:
            try:
                body = _encode(item)
            except (TypeError, ValueError) as err:
                logger.warning("Backlog %s failed = %s", label, err)
                continue
            try:
                status = self.transport(method, url, headers, body)
            except OSError as err:
                logger.warning("Backlog %s failed = %s", label, err)
                continue
            if status > 400:
                logger.warning("Backlog %s failed = %r", label, status)

    def flush_notices(self) -> None:
        opt = self.options
        url = f"{opt.host}/api/v3/projects/{opt.project_id}/notices"
        self._send_all("notice", self._take("_notices"), "POST", url)

    def flush_route_stats(self) -> None:
        opt = self.options
        url = f"{opt.apm_host}/api/v5/projects/{opt.project_id}/routes-stats"
        self._send_all("route stat", self._take("_route_stats"), "PUT", url)
        with self._lock:
            self._apm_count = 0

    def flush_route_breakdowns(self) -> None:
        opt = self.options
        url = f"{opt.apm_host}/api/v5/projects/{opt.project_id}/routes-breakdowns"
        self._send_all("route breakdown", self._take("_route_breakdowns"), "PUT", url)

    def flush_queries(self) -> None:
        opt = self.options
        url = f"{opt.apm_host}/api/v5/projects/{opt.project_id}/queries-stats"
        self._send_all("query", self._take("_queries"), "PUT", url)

    def flush_queues(self) -> None:
        opt = self.options
        url = f"{opt.apm_host}/api/v5/projects/{opt.project_id}/queues-stats"
        self._send_all("queue", self._take("_queues"), "PUT", url)

    def _flush_all(self) -> None:
        self.flush_notices()
        self.flush_route_stats()
        self.flush_route_breakdowns()
        self.flush_queries()
        self.flush_queues()

    def _run(self) -> None:
        while not self._stop.wait(self.flush_period):
            self._flush_all()

    def start(self) -> None:
        """Start flushing every ``flush_period`` seconds in the background."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="backlog-flush", daemon=True)
        self._thread.start()

    def close(self) -> None:
        """Stop the background flushing."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None