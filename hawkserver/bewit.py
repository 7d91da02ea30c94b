from __future__ import annotations

"""
Bewit tokens: time-limited, URL-embedded Hawk credentials for a single GET.

Wire format (query parameter `bewit`):

  base64url_nopad("<id>\\<exp>\\<mac>\\<ext>")

where `mac` is the "bewit" purpose MAC over a GET of the resource with the
bewit parameter removed, timestamp = exp and an empty nonce.
"""

import base64
import binascii
from dataclasses import dataclass
from typing import Optional, Tuple

from .artifacts import Artifacts
from .credentials import Credentials
from .crypto import calculate_mac
from .errors import InvalidCredentialsError, MalformedBewitError

BEWIT_PARAM = "bewit"


@dataclass(frozen=True)
class Bewit:
    id: str
    exp: int
    mac: str
    ext: str = ""


# ---------------------------------------------------------------------------
# Resource handling
# ---------------------------------------------------------------------------


def split_bewit_resource(resource: str) -> Optional[Tuple[str, str]]:
    """
    Separate the bewit from a request resource.

    Returns (resource_without_bewit, token), or None when the resource has no
    path, no query, no `bewit=` key, more than one, or an empty trailing
    parameter after it. Remaining parameters keep their order and encoding.

      "/r?a=1&bewit=X&b=2" -> ("/r?a=1&b=2", "X")
      "/r?bewit=X"         -> ("/r", "X")
    """
    if not resource or not resource.startswith("/"):
        return None
    path, sep, query = resource.partition("?")
    if not sep:
        return None

    params = query.split("&")
    hits = [i for i, p in enumerate(params) if p.startswith(BEWIT_PARAM + "=")]
    if len(hits) != 1:
        return None
    idx = hits[0]
    token = params[idx][len(BEWIT_PARAM) + 1:]

    before = params[:idx]
    after = params[idx + 1:]
    if after and after[-1] == "":
        return None

    rest = before + after
    if not rest:
        return path, token
    return f"{path}?{'&'.join(rest)}", token


# ---------------------------------------------------------------------------
# Token codec
# ---------------------------------------------------------------------------


def decode_bewit(token: str) -> Bewit:
    if not token:
        raise MalformedBewitError("Empty bewit")
    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        text = raw.decode("utf-8")
    except (binascii.Error, ValueError):
        raise MalformedBewitError("Invalid bewit encoding")

    fields = text.split("\\")
    if len(fields) != 4:
        raise MalformedBewitError("Invalid bewit structure")
    bid, exp, mac, ext = fields
    if not bid or not exp or not mac:
        raise MalformedBewitError("Missing bewit attributes")
    if not (exp.isascii() and exp.isdigit()):
        raise MalformedBewitError("Invalid bewit structure")
    return Bewit(id=bid, exp=int(exp), mac=mac, ext=ext)


def encode_bewit(bewit: Bewit) -> str:
    text = f"{bewit.id}\\{bewit.exp}\\{bewit.mac}\\{bewit.ext or ''}"
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def bewit_artifacts(host: str, port: int, resource: str, exp: int, ext: Optional[str] = None) -> Artifacts:
    return Artifacts(
        method="GET",
        host=host,
        port=port,
        resource=resource,
        timestamp=exp,
        nonce="",
        ext=ext or None,
    )


def create_bewit(
    credentials: Credentials,
    host: str,
    port: int,
    resource: str,
    exp: int,
    ext: Optional[str] = None,
) -> str:
    """
    Issue a bewit for GET `resource` valid until `exp` (seconds since epoch).

    The caller appends it as `bewit=<token>` to the resource's query string.
    """
    if credentials.id is None or str(credentials.id) == "":
        raise InvalidCredentialsError("bewit requires credentials with an id")
    mac = calculate_mac("bewit", credentials, bewit_artifacts(host, port, resource, exp, ext))
    return encode_bewit(Bewit(id=str(credentials.id), exp=int(exp), mac=mac, ext=ext or ""))
