# brakenotify

Building blocks for reporting errors and request performance to an
error-tracking service.

`brakenotify` builds error notices with backtraces, source code hunks and
git details, measures how long requests and queue jobs spend in named spans,
keeps a bounded backlog of reports to resend, and plugs into WSGI, ASGI,
gRPC-style servers and the standard `logging` module. It has no
dependencies outside the standard library.

## Installation

```
pip install brakenotify
```

For running the test suite:

```
pip install "brakenotify[test]"
pytest
```

## Building a notice

```python
from brakenotify.notice import new_notice

try:
    int("not a number")
except ValueError as exc:
    notice = new_notice(exc, None, 0)

print(notice)            # Notice<ValueError: invalid literal for int() ...>
payload = notice.to_dict()
```

A `Notice` carries `errors`, `context`, `env`, `session` and `params`;
`to_dict()` returns them in the shape of the JSON document (`env` under the
key `environment`). For an exception the backtrace comes from its traceback;
for any other value it is taken from the caller's stack, skipping `depth`
frames. A depth of `-1` leaves the backtrace out, and passing a `Notice`
returns it unchanged.

The context starts from `get_default_context()`: notifier name and version,
Python version, platform, architecture, host name, working directory and a
`gopath` entry. Passing a `brakenotify.notice.Request` records its URL,
method, user agent, client address (`remote_addr` prefers `X-Forwarded-For`,
then `X-Real-Ip`) and headers.

## Filters

Filters in `brakenotify.filters` take a notice and return it, possibly
changed, or `None` to drop it.

```python
import re
from brakenotify.filters import new_blocklist_keys_filter, code_hunks_filter

hide_secrets = new_blocklist_keys_filter("password", re.compile(r"(?i)token"))
notice = hide_secrets(notice)       # matching keys become "[Filtered]"
notice = code_hunks_filter(notice)  # adds up to two lines of source around each frame
```

- `new_notifier_filter(environment, revision)` records the environment and
  revision in the context.
- `new_blocklist_keys_filter(*keys)` masks keys in `env`, `context` and
  `session`; keys are strings (exact match) or compiled patterns. Any other
  key type raises `TypeError`.
- `gopath_filter` shortens backtrace paths under `<gopath>/src` to `/GOPATH`.
- `git_filter` looks for a `.git` directory at or above the notice's
  `rootDirectory` and adds `repository`, `revision` (when not already set)
  and `lastCheckout`. Git details are read by `brakenotify.git`, which runs
  `git remote get-url origin` and reads `HEAD`, refs, `packed-refs` and the
  HEAD reflog; results are cached per directory.
- `http_unsolicited_response_filter` drops string notices about unsolicited
  responses on idle HTTP connections.
- `code_hunks_filter` attaches source lines (each cut to 512 characters)
  read by `brakenotify.code_hunk.get_code`; read failures are cached in an
  `LRUCache` of 1000 entries.

## Measuring performance

```python
from brakenotify.metric import Context, new_route_metric

ctx, metric = new_route_metric(Context(), "GET", "/users/:id")

ctx, span = metric.start(ctx, "db")
...                                  # time spent here is counted under "db"
span.finish()

metric.finish()
print(metric.duration())
print(metric.groups)                 # {"http.handler": ..., "db": ...}
```

A nested span pauses its parent, so each group counts only its own time.
`new_route_metric` and `new_queue_metric` start an `http.handler` or
`queue.handler` span that runs until `finish()`. `Metric.with_span(ctx,
name, body)` runs `body(ctx)` inside a span. The context also carries a
`ClientTrace` (see `context_client_trace`) whose `get_conn` and
`got_first_response_byte` time an outgoing call as `http.client`.

Timings use a replaceable clock: `set_clock(FakeClock())` and
`FakeClock.advance(...)` make them deterministic in tests.

## Backlog

`brakenotify.backlog.Backlog(options, transport)` holds up to 100 notices
and up to 100 performance stats (route stats, route breakdowns, queries and
queues together). The `flush_*` methods send them as JSON — notices with
`POST` to `{host}/api/v3/projects/{id}/notices`, stats with `PUT` to the
`api/v5` endpoints on `apm_host` — with the headers from
`request_headers(project_key)`. `start()` flushes everything every 60
seconds on a background thread and `close()` stops it; the backlog is also a
context manager. `transport` is a callable `(method, url, headers, body) ->
status`; by default it uses `urllib`. With `disable_backlog=True` nothing is
kept.

## Middleware and handlers

These expect a notifier object supplied by you: middleware calls
`notifier.routes.notify(ctx, metric)`, the log handler calls
`notifier.notify(notice, None)`, and the gRPC interceptors also call
`notifier.notice(err, None, 3)` and `notifier.send_notice_async(notice)`.

- `brakenotify.wsgi.WSGIMiddleware(app, notifier, route_resolver)` reports
  each request's method, route, status and timing once the response is
  closed. The metric context is available as `environ["brakenotify.context"]`.
- `brakenotify.asgi.ASGIMiddleware(app, notifier, route_resolver)` does the
  same for ASGI HTTP requests, with the context in
  `scope["brakenotify.context"]`; `scope_route` prefers a route template set
  by the framework.
- `brakenotify.log_handler.AirbrakeHandler(notifier, level, depth)` is a
  `logging.Handler` that turns records at or above `level` into notices;
  extra record fields become params, except `httpMethod` and `route`, which
  go to the context.
- `brakenotify.grpc_middleware.unary_server_interceptor(notifier)` and
  `stream_server_interceptor(notifier)` return plain interceptor functions.
  A raised `StatusError(code, message)` is reported with its `GrpcCode`
  mapped by `grpc_code_to_http`; other errors count as 500.

## Logging

The package logs its own problems to a logger you can replace:

```python
import logging
from brakenotify.logsetup import set_logger, get_logger

set_logger(logging.getLogger("myapp.errors"))
```

## Demo

A small weather service shows the WSGI middleware and log handler at work.
It serves `/date`, `/locations` and `/weather/<location>` and fetches data
from an upstream weather API:

```
brakenotify-demo --port 3000 --api-base http://localhost:8080/weatherapi
```

Options: `--env`, `--host`, `--port`, `--api-base`.

## What is not included

There is no notifier client: nothing here sends notices or route stats to a
service as they happen, and there are no `routes`, `queries` or `queues`
aggregators. The middleware and handlers work with any object offering the
methods listed above, and the backlog can send what it holds. The demo's
notifier only writes notices and route timings to the log.