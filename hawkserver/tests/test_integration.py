# hawkserver/tests/test_integration.py
import pytest
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient
from starlette.requests import Request

from hawkserver.artifacts import Artifacts
from hawkserver.bewit import create_bewit
from hawkserver.clock import ConstantTimeProvider
from hawkserver.crypto import calculate_mac, calculate_payload_hash
from hawkserver.header import parse
from hawkserver.integration import request_context, require_bewit, require_hawk, sign_response
from hawkserver.nonce import MemoryNonceCache
from hawkserver.server import Response, Server

from conftest import lookup

NOW = 1700000000


@pytest.fixture
def server():
    return Server(
        lookup,
        nonce_validator=MemoryNonceCache(ttl_s=600),
        time_provider=ConstantTimeProvider(NOW),
    )


@pytest.fixture
def client(server):
    app = FastAPI()

    @app.post("/items")
    async def create_item(hawk: Response = Depends(require_hawk(server))):
        resp = JSONResponse({"id": hawk.credentials.id, "ext": hawk.artifacts.ext})
        return sign_response(server, hawk, resp, ext="ok")

    @app.api_route("/whoami", methods=["GET", "POST"])
    async def whoami(hawk: Response = Depends(require_hawk(server))):
        return {"id": hawk.credentials.id, "hash": hawk.artifacts.hash}

    @app.get("/ping")
    async def ping(hawk: Response = Depends(require_hawk(server, verify_payload=False))):
        return {"pong": hawk.credentials.id}

    @app.api_route("/files/{name}", methods=["GET", "POST"])
    async def get_file(name: str, hawk: Response = Depends(require_bewit(server))):
        return {"name": name, "id": hawk.credentials.id}

    return TestClient(app)


def test_signed_post_and_signed_response(client, sign, credentials):
    body = b'{"a":1}'
    header = sign(
        credentials, "POST", "testserver", 80, "/items?x=1", NOW, "n1",
        ext="req", payload=body, content_type="application/json",
    )
    r = client.post(
        "/items?x=1",
        content=body,
        headers={"Authorization": header, "Content-Type": "application/json"},
    )
    assert r.status_code == 200
    assert r.json() == {"id": "123456", "ext": "req"}

    server_auth = parse("Server-Authorization", r.headers["server-authorization"])
    hash_ = calculate_payload_hash(r.content, "sha256", "application/json")
    assert server_auth.attribute("hash") == hash_
    assert server_auth.attribute("ext") == "ok"
    artifacts = Artifacts("POST", "testserver", 80, "/items?x=1", NOW, "n1", ext="ok", hash=hash_)
    assert server_auth.attribute("mac") == calculate_mac("response", credentials, artifacts)


def test_replay_is_rejected(client, sign, credentials):
    header = sign(credentials, "GET", "testserver", 80, "/ping", NOW, "once")
    assert client.get("/ping", headers={"Authorization": header}).status_code == 200
    r = client.get("/ping", headers={"Authorization": header})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid nonce"


def test_tampered_body(client, sign, credentials):
    header = sign(
        credentials, "POST", "testserver", 80, "/items", NOW, "n2",
        payload=b'{"a":1}', content_type="application/json",
    )
    r = client.post(
        "/items",
        content=b'{"a":2}',
        headers={"Authorization": header, "Content-Type": "application/json"},
    )
    assert r.status_code == 401
    assert r.json()["detail"] == "Bad payload hash"


def test_missing_header(client):
    r = client.get("/ping")
    assert r.status_code == 401
    assert r.json()["detail"] == "Missing Authorization header"
    assert r.headers["www-authenticate"] == 'Hawk error="Missing Authorization header"'


def test_stale_request_gets_resync_challenge(client, sign, credentials):
    header = sign(credentials, "GET", "testserver", 80, "/ping", NOW - 1000, "n3")
    r = client.get("/ping", headers={"Authorization": header})
    assert r.status_code == 401
    challenge = r.headers["www-authenticate"]
    assert challenge.startswith(f'Hawk ts="{NOW}", tsm="')
    assert challenge.endswith('error="Stale timestamp"')


def test_bewit_endpoint(client, credentials):
    token = create_bewit(credentials, "testserver", 80, "/files/a.txt", NOW + 60)
    r = client.get(f"/files/a.txt?bewit={token}")
    assert r.status_code == 200
    assert r.json() == {"name": "a.txt", "id": "123456"}

    expired = create_bewit(credentials, "testserver", 80, "/files/a.txt", NOW - 1)
    r = client.get(f"/files/a.txt?bewit={expired}")
    assert r.status_code == 401
    assert r.json()["detail"] == "Access expired"


def test_bewit_rejects_non_get(client, credentials):
    token = create_bewit(credentials, "testserver", 80, "/files/a.txt", NOW + 60)
    r = client.post(f"/files/a.txt?bewit={token}")
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid method"


def test_request_context_uses_raw_path_and_default_port():
    scope = {
        "type": "http",
        "method": "GET",
        "scheme": "https",
        "server": ("api.example.com", 443),
        "path": "/a b",
        "raw_path": b"/a%20b",
        "query_string": b"x=1&y=%2F",
        "headers": [(b"host", b"api.example.com"), (b"content-type", b"text/plain")],
    }
    ctx = request_context(Request(scope))
    assert ctx.host == "api.example.com"
    assert ctx.port == 443
    assert ctx.resource == "/a%20b?x=1&y=%2F"
    assert ctx.method == "GET"
    assert ctx.content_type == "text/plain"


def test_signed_get_with_default_dependency(client, sign, credentials):
    header = sign(credentials, "GET", "testserver", 80, "/whoami", NOW, "g1")
    r = client.get("/whoami", headers={"Authorization": header})
    assert r.status_code == 200
    assert r.json() == {"id": "123456", "hash": None}


def test_empty_body_with_length_is_hashed(client, sign, credentials):
    header = sign(credentials, "POST", "testserver", 80, "/whoami", NOW, "e1", payload=b"")
    r = client.post("/whoami", content=b"", headers={"Authorization": header, "Content-Length": "0"})
    assert r.status_code == 200
    assert r.json()["hash"] == calculate_payload_hash(b"", "sha256", None)

    unhashed = sign(credentials, "POST", "testserver", 80, "/whoami", NOW, "e2")
    r = client.post("/whoami", content=b"", headers={"Authorization": unhashed, "Content-Length": "0"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Missing required payload hash"
