from __future__ import annotations

"""
Hawk canonicalization and MAC engine.

Header, bewit and response MACs are computed over:

  "hawk.1.<purpose>\\n<ts>\\n<nonce>\\n<METHOD>\\n<resource>\\n<host>\\n<port>\\n<hash>\\n<ext>\\n"
  [+ "<app>\\n<dlg>\\n" when app is set]

The ts MAC (server clock resync) is computed over "hawk.1.ts\\n<ts>\\n".

Payload hashes are a plain digest over:

  "hawk.1.payload\\n<media-type>\\n<payload>\\n"

Every output is standard base64. These strings must stay byte-compatible with
existing Hawk clients.
"""

import base64
import hashlib
import hmac
from typing import Any, Callable, Dict, Optional, Union

from .artifacts import Artifacts
from .credentials import Credentials
from .errors import InvalidCredentialsError

HEADER_VERSION = "1"

PURPOSES = ("header", "bewit", "response", "ts")

ALGORITHMS: Dict[str, Callable[..., Any]] = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
    "sha384": hashlib.sha384,
    "sha512": hashlib.sha512,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _b(s: Union[str, bytes]) -> bytes:
    if isinstance(s, bytes):
        return s
    return s.encode("utf-8")


def _digestmod(algorithm: Optional[str]):
    mod = ALGORITHMS.get((algorithm or "").lower())
    if mod is None:
        raise InvalidCredentialsError(f"unsupported algorithm: {algorithm!r}")
    return mod


def _validate_credentials(credentials: Credentials) -> None:
    if credentials is None:
        raise InvalidCredentialsError("missing credentials")
    if credentials.key is None or credentials.key == "" or credentials.key == b"":
        raise InvalidCredentialsError("credentials key is missing")
    _digestmod(credentials.algorithm)


def _escape_ext(ext: str) -> str:
    return ext.replace("\\", "\\\\").replace("\n", "\\n")


def normalize_content_type(content_type: Optional[str]) -> str:
    """'Text/Plain; charset=utf-8' -> 'text/plain'."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


# ---------------------------------------------------------------------------
# Canonical strings
# ---------------------------------------------------------------------------


def normalized_string(purpose: str, artifacts: Artifacts) -> str:
    if purpose not in PURPOSES:
        raise ValueError(f"unknown MAC purpose: {purpose!r}")
    if purpose == "ts":
        return normalized_ts_string(artifacts.timestamp)

    normalized = (
        f"hawk.{HEADER_VERSION}.{purpose}\n"
        f"{artifacts.timestamp}\n"
        f"{artifacts.nonce or ''}\n"
        f"{artifacts.method.upper()}\n"
        f"{artifacts.resource}\n"
        f"{artifacts.host.lower()}\n"
        f"{artifacts.port}\n"
        f"{artifacts.hash or ''}\n"
    )
    if artifacts.ext:
        normalized += _escape_ext(artifacts.ext)
    normalized += "\n"
    # app/dlg lines exist only for delegated credentials
    if artifacts.app:
        normalized += f"{artifacts.app}\n{artifacts.dlg or ''}\n"
    return normalized


def normalized_ts_string(timestamp: int) -> str:
    return f"hawk.{HEADER_VERSION}.ts\n{int(timestamp)}\n"


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def calculate_mac(purpose: str, credentials: Credentials, artifacts: Artifacts) -> str:
    """Keyed MAC of the canonical string for `purpose`, base64-encoded."""
    _validate_credentials(credentials)
    normalized = normalized_string(purpose, artifacts)
    digest = hmac.new(
        credentials.key_bytes(),
        _b(normalized),
        _digestmod(credentials.algorithm),
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def calculate_ts_mac(timestamp: int, credentials: Credentials) -> str:
    _validate_credentials(credentials)
    digest = hmac.new(
        credentials.key_bytes(),
        _b(normalized_ts_string(timestamp)),
        _digestmod(credentials.algorithm),
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def calculate_payload_hash(
    payload: Union[bytes, str],
    algorithm: Optional[str],
    content_type: Optional[str],
) -> str:
    """
    Unkeyed digest binding the payload to its declared media type, so a body
    cannot be replayed under a different content type.
    """
    h = _digestmod(algorithm)()
    h.update(_b(f"hawk.{HEADER_VERSION}.payload\n"))
    h.update(_b(normalize_content_type(content_type)))
    h.update(b"\n")
    h.update(_b(payload if payload is not None else b""))
    h.update(b"\n")
    return base64.b64encode(h.digest()).decode("ascii")


def fixed_time_comparison(a: Optional[Union[str, bytes]], b: Optional[Union[str, bytes]]) -> bool:
    """
    Constant-time equality for MACs and hashes.

    The running time does not depend on the position of the first differing
    byte; a length mismatch returns False without revealing which side is
    shorter.
    """
    if a is None or b is None:
        return False
    return hmac.compare_digest(_b(a), _b(b))
