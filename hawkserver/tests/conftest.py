# hawkserver/tests/conftest.py
import logging

import pytest

from hawkserver.artifacts import Artifacts
from hawkserver.clock import ConstantTimeProvider
from hawkserver.credentials import Credentials
from hawkserver.crypto import calculate_mac, calculate_payload_hash
from hawkserver.header import serialize
from hawkserver import logging as hawk_logging
from hawkserver.server import Server

KEY = "werxhqb98rpaxn39848xrunpaw3489ruxnpa98w4rxn"


def lookup(id):
    # id "1" signs with sha1, everything else with sha256
    return Credentials(KEY, "sha1" if id == "1" else "sha256", id)


@pytest.fixture
def credentials():
    return Credentials(KEY, "sha256", "123456")


@pytest.fixture
def make_server():
    def _make(now, **kwargs):
        kwargs.setdefault("time_provider", ConstantTimeProvider(now))
        return Server(kwargs.pop("provider", lookup), **kwargs)

    return _make


@pytest.fixture
def sign():
    """Client-side signer producing an Authorization header value."""

    def _sign(
        credentials,
        method,
        host,
        port,
        resource,
        ts,
        nonce,
        ext=None,
        payload=None,
        content_type=None,
        app=None,
        dlg=None,
    ):
        hash_ = None
        if payload is not None:
            hash_ = calculate_payload_hash(payload, credentials.algorithm, content_type)
        artifacts = Artifacts(
            method, host, port, resource, ts, nonce,
            ext=ext, hash=hash_, app=app, dlg=dlg,
        )
        attrs = {
            "id": credentials.id,
            "ts": ts,
            "nonce": nonce,
            "hash": hash_,
            "ext": ext,
            "mac": calculate_mac("header", credentials, artifacts),
            "app": app,
            "dlg": dlg,
        }
        return serialize("Hawk", attrs)

    return _sign


@pytest.fixture
def root_logging(monkeypatch):
    """Restore root logger handlers and level after a test reconfigures them."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    monkeypatch.setattr(hawk_logging, "_configured", False)
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
