from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from fastapi import HTTPException
from starlette.requests import Request
from starlette.responses import Response as HTTPResponse

from .errors import UnauthorizedError
from .logging import bind
from .server import Response, Server

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    method: str
    host: str
    port: int
    resource: str
    content_type: Optional[str]


def request_context(request: Request) -> RequestContext:
    """
    Extract the signed request fields from a Starlette request.

    The resource is rebuilt from the raw path and query string so that it
    matches what the client signed byte for byte.
    """
    url = request.url
    port = url.port or (443 if url.scheme in ("https", "wss") else 80)
    raw_path = request.scope.get("raw_path")
    path = raw_path.decode("latin-1").split("?", 1)[0] if raw_path else url.path
    query = request.scope.get("query_string", b"").decode("latin-1")
    resource = f"{path}?{query}" if query else path
    return RequestContext(
        method=request.method,
        host=url.hostname or "",
        port=port,
        resource=resource,
        content_type=request.headers.get("content-type"),
    )


def _unauthorized(server: Server, exc: UnauthorizedError) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=exc.reason,
        headers={"WWW-Authenticate": exc.www_authenticate(server.header_scheme)},
    )


def require_hawk(
    server: Server,
    *,
    verify_payload: bool = True,
) -> Callable[[Request], Awaitable[Response]]:
    """
    FastAPI dependency factory.

    Usage:

      server = build_server_from_env(lookup_credentials, nonce_cache)
      app = FastAPI()

      @app.post("/items")
      async def create_item(hawk: Response = Depends(require_hawk(server))):
          ...

    With verify_payload=True a request that has a body (or a Content-Length)
    gets its payload hash checked, and a signed request without a hash
    attribute is then rejected. Requests with no body are verified on the
    MAC alone.
    """

    async def _dep(request: Request) -> Response:
        ctx = request_context(request)
        payload = None
        if verify_payload:
            body = await request.body()
            # A bodiless request (plain GET) carries no payload to hash.
            if body or "content-length" in request.headers:
                payload = body
        try:
            res = server.authenticate(
                ctx.method,
                ctx.host,
                ctx.port,
                ctx.resource,
                ctx.content_type,
                payload,
                request.headers.get("authorization"),
            )
        except UnauthorizedError as exc:
            raise _unauthorized(server, exc)
        bind(credentials_id=res.credentials.id)
        request.state.hawk = res
        return res

    return _dep


def require_bewit(server: Server) -> Callable[[Request], Awaitable[Response]]:
    """FastAPI dependency factory for bewit-authenticated GET/HEAD endpoints."""

    async def _dep(request: Request) -> Response:
        if request.method not in ("GET", "HEAD"):
            raise HTTPException(status_code=401, detail="Invalid method")
        ctx = request_context(request)
        try:
            res = server.authenticate_bewit(ctx.host, ctx.port, ctx.resource)
        except UnauthorizedError as exc:
            raise _unauthorized(server, exc)
        bind(credentials_id=res.credentials.id)
        request.state.hawk = res
        return res

    return _dep


def sign_response(
    server: Server,
    hawk: Response,
    response: HTTPResponse,
    *,
    ext: Optional[str] = None,
) -> HTTPResponse:
    """Attach a Server-Authorization header covering the response body."""
    options = {
        "payload": bytes(response.body or b""),
        "content_type": response.headers.get("content-type", ""),
        "ext": ext,
    }
    header = server.create_header(hawk.credentials, hawk.artifacts, options)
    response.headers[header.field_name] = header.field_value
    _log.debug("signed response", extra={"status": response.status_code})
    return response
