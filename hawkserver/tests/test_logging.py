# hawkserver/tests/test_logging.py
import io
import json
import logging
import sys

import pytest

from hawkserver.errors import UnauthorizedError
from hawkserver.logging import (
    JSONFormatter,
    bind,
    configure_json_logging,
    context,
    get_logger,
    log_auth_event,
    reset,
    scrub_dict,
    unbind,
)


@pytest.fixture(autouse=True)
def _clean_context():
    reset()
    yield
    reset()


def _record(msg="hello", **extra):
    record = logging.LogRecord("hawkserver.test", logging.INFO, __file__, 1, msg, (), None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


def test_envelope_and_meta():
    out = json.loads(JSONFormatter().format(_record(auth_reason="bad_mac")))
    assert out["lvl"] == "INFO"
    assert out["logger"] == "hawkserver.test"
    assert out["msg"] == "hello"
    assert out["service"] == "hawkserver"
    assert out["meta"] == {"auth_reason": "bad_mac"}


def test_secrets_never_reach_output():
    rec = _record(mac="c2VjcmV0", tsm="dHNt", payload="body text", headers={"Authorization": "Hawk id"})
    out = json.loads(JSONFormatter().format(rec))
    assert "mac" not in out["meta"]
    assert "tsm" not in out["meta"]
    assert "payload" not in out["meta"]
    assert out["meta"]["headers"] == {"Authorization": "***"}


def test_bound_context_is_included():
    bind(req_id="r-1", credentials_id="abc", skipped=None)
    assert context() == {"req_id": "r-1", "credentials_id": "abc"}
    out = json.loads(JSONFormatter().format(_record()))
    assert out["req_id"] == "r-1"
    unbind("req_id")
    out = json.loads(JSONFormatter().format(_record()))
    assert "req_id" not in out
    assert out["credentials_id"] == "abc"


def test_exception_fields():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        rec = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
    out = json.loads(JSONFormatter().format(rec))
    assert out["exc_type"] == "RuntimeError"
    assert out["exc_message"] == "boom"
    assert "Traceback" in out["stack"]
    assert "stack" not in json.loads(JSONFormatter(include_stack=False).format(rec))


def test_scrub_dict_nested():
    scrubbed = scrub_dict(
        {"Server-Authorization": "Hawk mac", "inner": {"cookie": "c", "ok": 1}, "x": 2}
    )
    assert scrubbed == {"Server-Authorization": "***", "inner": {"cookie": "***", "ok": 1}, "x": 2}


def test_log_auth_event_levels(caplog):
    logger = logging.getLogger("hawkserver.test.auth")
    with caplog.at_level(logging.DEBUG, logger="hawkserver.test.auth"):
        log_auth_event(logger, kind="header", outcome="accept", credentials_id="123")
        log_auth_event(logger, kind="bewit", outcome="reject", reason="expired")
    accept, reject = caplog.records
    assert accept.levelno == logging.DEBUG
    assert accept.getMessage() == "hawk.header.accept"
    assert accept.credentials_id == "123"
    assert reject.levelno == logging.INFO
    assert reject.getMessage() == "hawk.bewit.reject"
    assert reject.auth_reason == "expired"
    assert not hasattr(reject, "credentials_id")


def test_server_rejections_are_logged(caplog, make_server):
    server = make_server(1353788437)
    with caplog.at_level(logging.INFO, logger="hawkserver.server"):
        with pytest.raises(UnauthorizedError):
            server.authenticate("GET", "example.com", 8080, "/", header="Bearer x")
    rec = [r for r in caplog.records if r.name == "hawkserver.server"][-1]
    assert rec.auth_reason == "invalid_header"
    assert rec.auth_kind == "header"


def test_configure_json_logging_writes_json(root_logging):
    buf = io.StringIO()
    configure_json_logging("debug", stream=buf)
    logging.getLogger("hawkserver.test.cfg").debug("configured", extra={"k": 1})
    line = buf.getvalue().strip().splitlines()[-1]
    payload = json.loads(line)
    assert payload["msg"] == "configured"
    assert payload["meta"] == {"k": 1}


def test_get_logger_configures_once(monkeypatch, root_logging):
    monkeypatch.setenv("HAWK_LOG_LEVEL", "warning")
    logger = get_logger("hawkserver.test.once")
    assert logger.name == "hawkserver.test.once"
    assert root_logging.level == logging.WARNING
    handlers = list(root_logging.handlers)
    get_logger("hawkserver.test.twice")
    assert list(root_logging.handlers) == handlers


def test_get_logger_keeps_existing_setup(monkeypatch, root_logging):
    configure_json_logging("error", stream=io.StringIO())
    monkeypatch.setenv("HAWK_LOG_LEVEL", "debug")
    get_logger()
    assert root_logging.level == logging.ERROR
