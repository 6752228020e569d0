"""A small weather API server that reports its errors and route timings."""

from __future__ import annotations

import argparse
import json
import logging
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable
from wsgiref.simple_server import make_server

from .filters import new_notifier_filter
from .log_handler import AirbrakeHandler
from .logsetup import get_logger
from .metric import Context, Metric
from .notice import Notice, new_notice
from .wsgi import WSGIMiddleware

DEFAULT_API_BASE = "http://localhost:8080/weatherapi"

Fetch = Callable[[str], "tuple[int, bytes]"]


def _urllib_fetch(url: str) -> tuple[int, bytes]:
    request = urllib.request.Request(
        url,
        headers={"Accept": "application/json", "Content-Type": "application/json"},
        method="GET",
    )
    try:
        with urllib.request.urlopen(request, timeout=10) as response:
            return response.status, response.read()
    except urllib.error.HTTPError as err:
        return err.code, err.read()


@dataclass
class WeatherInfo:
    """Weather data for one location; empty fields are left out of its JSON."""

    lat: float = 0.0
    lon: float = 0.0
    timezone: str = ""
    timezone_offset: float = 0.0
    current: Any = None
    minutely: list[Any] = field(default_factory=list)
    hourly: list[Any] = field(default_factory=list)
    daily: list[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WeatherInfo:
        return cls(
            lat=float(data.get("lat") or 0.0),
            lon=float(data.get("lon") or 0.0),
            timezone=str(data.get("timezone") or ""),
            timezone_offset=float(data.get("timezone_offset") or 0.0),
            current=data.get("current"),
            minutely=list(data.get("minutely") or []),
            hourly=list(data.get("hourly") or []),
            daily=list(data.get("daily") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        data = {
            "lat": self.lat,
            "lon": self.lon,
            "timezone": self.timezone,
            "timezone_offset": self.timezone_offset,
            "current": self.current,
            "minutely": self.minutely,
            "hourly": self.hourly,
            "daily": self.daily,
        }
        return {key: value for key, value in data.items() if value}


def locations(api_base: str = DEFAULT_API_BASE, fetch: Fetch | None = None) -> list[str]:
    """Return the locations the weather API knows; raise LookupError on 404."""
    status, body = (fetch or _urllib_fetch)(api_base + "/locations")
    if status == 404:
        raise LookupError("locations not found")
    try:
        decoded = json.loads(body)
    except ValueError:
        return []
    if not isinstance(decoded, list):
        return []
    return [str(item) for item in decoded]


def check_weather(location: str, api_base: str = DEFAULT_API_BASE, fetch: Fetch | None = None) -> bytes:
    """Return the raw weather document of ``location``; raise LookupError on 404."""
    status, body = (fetch or _urllib_fetch)(api_base + "/weather/" + location)
    if status == 404:
        raise LookupError(f"{location} weather data not found")
    return body


def _route_template(environ: dict[str, Any]) -> str:
    path = environ.get("PATH_INFO") or "/"
    if path.startswith("/weather/"):
        return "/weather/{location}"
    return path


def _json_body(value: Any) -> bytes:
    return json.dumps(value).encode("utf-8") + b"\n"


def create_app(notifier: Any, api_base: str = DEFAULT_API_BASE, fetch: Fetch | None = None) -> WSGIMiddleware:
    """Return the WSGI application, wrapped to report route metrics."""

    def report(err: BaseException) -> None:
        if notifier is not None:
            notifier.notify(err, None)

    def respond(start_response: Callable, status: str, body: bytes, content_type: str) -> list[bytes]:
        start_response(status, [("Content-Type", content_type), ("Content-Length", str(len(body)))])
        return [body]

    def app(environ: dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        path = environ.get("PATH_INFO") or "/"
        known = path in ("/date", "/locations") or path.startswith("/weather/")
        if not known:
            return respond(start_response, "404 Not Found", b"Unsupported path", "text/plain")
        if environ.get("REQUEST_METHOD", "GET") != "GET":
            return respond(start_response, "405 Method Not Allowed", b"", "text/plain")

        if path == "/date":
            return respond(start_response, "200 OK", _json_body({"date": int(time.time())}), "application/json")

        if path == "/locations":
            try:
                found: list[str] | None = locations(api_base, fetch)
            except (LookupError, OSError) as err:
                report(err)
                return respond(start_response, "404 Not Found", _json_body(None), "application/json")
            return respond(start_response, "200 OK", _json_body(found), "application/json")

        location = path[len("/weather/"):].strip()
        try:
            raw = check_weather(location, api_base, fetch)
        except (LookupError, OSError) as err:
            report(err)
            return respond(start_response, "404 Not Found", _json_body(WeatherInfo().to_dict()), "application/json")
        try:
            decoded = json.loads(raw)
        except ValueError:
            decoded = {}
        info = WeatherInfo.from_dict(decoded if isinstance(decoded, dict) else {})
        return respond(start_response, "200 OK", _json_body(info.to_dict()), "application/json")

    return WSGIMiddleware(app, notifier, _route_template)


class _LoggingRoutes:
    def notify(self, ctx: Context, metric: Metric) -> None:
        metric.finish()
        get_logger().info(
            "route %s %s -> %s in %s",
            getattr(metric, "method", ""),
            getattr(metric, "route", ""),
            getattr(metric, "status_code", 0),
            metric.duration(),
        )


class _LoggingNotifier:
    """Writes notices and route timings to the package logger."""

    def __init__(self, environment: str) -> None:
        self._filter = new_notifier_filter(environment)
        self.routes = _LoggingRoutes()

    def notice(self, e: Any, request: Any = None, depth: int = 0) -> Notice:
        return new_notice(e, request, depth)

    def notify(self, e: Any, request: Any = None) -> Notice:
        notice = self._filter(new_notice(e, request, 1))
        get_logger().error("notice %s", notice)
        return notice

    def send_notice_async(self, notice: Notice) -> None:
        get_logger().error("notice %s", notice)


def main(argv: list[str] | None = None) -> int:
    """Serve the weather API until interrupted."""
    parser = argparse.ArgumentParser(description="Weather API server with error reporting.")
    parser.add_argument("--env", default="development", help="environment, e.g. development or production")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--api-base", default=DEFAULT_API_BASE, help="base URL of the upstream weather API")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    notifier = _LoggingNotifier(args.env)
    app_logger = logging.getLogger("brakenotify.demo")
    app_logger.addHandler(AirbrakeHandler(notifier, logging.ERROR))

    with make_server(args.host, args.port, create_app(notifier, args.api_base)) as server:
        app_logger.info("Server listening at http://%s:%d/", args.host, args.port)
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass
    return 0