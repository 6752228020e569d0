import itertools
import logging

import pytest

from brakenotify.log_handler import AirbrakeHandler, as_params

_names = itertools.count()


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, notice, request):
        self.sent.append((notice, request))


@pytest.fixture
def setup():
    notifier = FakeNotifier()
    handler = AirbrakeHandler(notifier, logging.ERROR, 4)
    logger = logging.getLogger(f"test-log-handler-{next(_names)}")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    logger.addHandler(handler)
    yield logger, handler, notifier
    logger.removeHandler(handler)


def test_error_is_sent_with_params(setup):
    logger, _, notifier = setup
    logger.error("upload failed", extra={"file": "something.png", "user": "tobi"})
    [(notice, request)] = notifier.sent
    assert request is None
    assert notice.errors[0].message == "upload failed"
    assert notice.params == {"file": "something.png", "user": "tobi"}
    assert notice.context["severity"] == "error"


def test_records_below_level_are_ignored(setup):
    logger, _, notifier = setup
    logger.info("upload")
    logger.warning("upload retry")
    assert notifier.sent == []


def test_method_and_route_go_to_context(setup):
    logger, _, notifier = setup
    logger.error("failed", extra={"httpMethod": "GET", "route": "/upload", "file": "a.png"})
    notice = notifier.sent[0][0]
    assert notice.context["httpMethod"] == "GET"
    assert notice.context["route"] == "/upload"
    assert notice.params == {"file": "a.png"}


def test_message_arguments_are_formatted(setup):
    logger, _, notifier = setup
    logger.error("failed to upload %s", "img.png")
    assert notifier.sent[0][0].errors[0].message == "failed to upload img.png"


def test_exception_becomes_error_param(setup):
    logger, _, notifier = setup
    try:
        raise ValueError("unauthorized")
    except ValueError:
        logger.exception("upload failed")
    assert notifier.sent[0][0].params["error"] == "unauthorized"


def test_lower_level_handler_sends_warnings():
    notifier = FakeNotifier()
    handler = AirbrakeHandler(notifier, logging.WARNING, 4)
    record = logging.makeLogRecord({"msg": "upload retry", "levelno": logging.WARNING, "levelname": "WARNING"})
    handler.emit(record)
    assert notifier.sent[0][0].context["severity"] == "warning"


def test_missing_notifier_raises():
    with pytest.raises(ValueError, match="notifier not defined"):
        AirbrakeHandler(None, logging.ERROR, 4)


def test_set_depth():
    handler = AirbrakeHandler(FakeNotifier(), logging.ERROR, 4)
    handler.set_depth(1)
    assert handler.depth == 1


def test_as_params_converts_exceptions():
    assert as_params({"err": ValueError("unauthorized"), "n": 1}) == {"err": "unauthorized", "n": 1}