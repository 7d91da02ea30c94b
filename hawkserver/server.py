from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from prometheus_client import Counter, Histogram

from . import header as header_codec
from .artifacts import Artifacts, Payload
from .bewit import bewit_artifacts, decode_bewit, split_bewit_resource
from .clock import SystemTimeProvider, TimeProvider
from .credentials import Credentials, as_credentials_provider
from .crypto import (
    calculate_mac,
    calculate_payload_hash,
    calculate_ts_mac,
    fixed_time_comparison,
)
from .errors import ConfigurationError, MalformedBewitError, UnauthorizedError
from .header import Header
from .logging import log_auth_event
from .nonce import as_nonce_validator

_log = logging.getLogger(__name__)

REQUIRED_ATTRIBUTES = ("id", "ts", "nonce", "mac")


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

_AUTH_OK = Counter("hawk_auth_ok_total", "Hawk authentication accepted", ["kind"])
_AUTH_FAIL = Counter(
    "hawk_auth_fail_total", "Hawk authentication rejected", ["kind", "reason"]
)
_AUTH_REPLAY = Counter("hawk_auth_replay_total", "Nonce replay rejection", ["kind"])
_AUTH_LAT = Histogram(
    "hawk_auth_verify_latency_seconds",
    "Hawk verify latency (s)",
    buckets=(0.0005, 0.001, 0.002, 0.005, 0.010, 0.050),
    labelnames=("kind",),
)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Response:
    """Successful authentication: resolved credentials and verified artifacts."""

    credentials: Credentials
    artifacts: Artifacts


class Server:
    """
    Hawk request authenticator.

    Stateless between calls: every method is a function of its inputs and the
    three collaborators (credentials provider, nonce validator, time provider).
    Thread safety therefore reduces to the collaborators'; the nonce validator
    in particular must check-and-record atomically.

    Collaborators may be objects implementing the one-method interface or
    plain callables, which are wrapped once here.
    """

    def __init__(
        self,
        credentials_provider: Any,
        *,
        nonce_validator: Any = None,
        time_provider: Optional[TimeProvider] = None,
        timestamp_skew_sec: int = 60,
        localtime_offset_sec: int = 0,
        header_scheme: str = header_codec.DEFAULT_SCHEME,
        metrics_enabled: bool = True,
    ):
        self.credentials_provider = as_credentials_provider(credentials_provider)
        self.nonce_validator = as_nonce_validator(nonce_validator)
        self.time_provider = time_provider or SystemTimeProvider()
        if not callable(getattr(self.time_provider, "now", None)):
            raise ConfigurationError("time provider must implement now()")
        if int(timestamp_skew_sec) < 0:
            raise ConfigurationError("timestamp_skew_sec must be >= 0")
        self.timestamp_skew_sec = int(timestamp_skew_sec)
        self.localtime_offset_sec = int(localtime_offset_sec)
        self.header_scheme = header_scheme
        self.metrics_enabled = bool(metrics_enabled)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _now(self) -> int:
        return int(self.time_provider.now()) + self.localtime_offset_sec

    def _reject(
        self,
        kind: str,
        code: str,
        reason: str,
        attributes: Optional[Mapping[str, Any]] = None,
        credentials_id: Any = None,
    ) -> UnauthorizedError:
        if self.metrics_enabled:
            _AUTH_FAIL.labels(kind, code).inc()
            if code == "invalid_nonce":
                _AUTH_REPLAY.labels(kind).inc()
        log_auth_event(
            _log, kind=kind, outcome="reject", reason=code, credentials_id=credentials_id
        )
        return UnauthorizedError(reason, attributes)

    def _accept(self, kind: str, credentials_id: Any, started: float) -> None:
        if self.metrics_enabled:
            _AUTH_OK.labels(kind).inc()
            _AUTH_LAT.labels(kind).observe(time.perf_counter() - started)
        log_auth_event(_log, kind=kind, outcome="accept", credentials_id=credentials_id)

    def _load_credentials(self, id: str) -> Credentials:
        # Lookup failures propagate unchanged.
        return Credentials.coerce(self.credentials_provider.load_credentials_by_id(id))

    # ------------------------------------------------------------------ #
    # Request authentication
    # ------------------------------------------------------------------ #

    def authenticate(
        self,
        method: str,
        host: str,
        port: int,
        resource: str,
        content_type: Optional[str] = None,
        payload: Optional[Payload] = None,
        header: Union[str, bytes, Header, Mapping[str, Any], None] = None,
    ) -> Response:
        """
        Verify an `Authorization: Hawk ...` request header.

        Checks run in a fixed order: header presence and syntax, required
        attributes, credentials lookup, MAC, payload hash (only when a
        payload is given), nonce, then clock skew. The nonce is consumed
        before the skew check, so a stale request still marks its nonce as
        used.

        Raises UnauthorizedError on every rejection; a stale timestamp
        carries {"ts", "tsm"} for client clock resync.
        """
        started = time.perf_counter()
        if header is None or header == "" or header == b"":
            raise self._reject("header", "missing_header", "Missing Authorization header")

        def _invalid(_message: str) -> None:
            raise self._reject("header", "invalid_header", "Invalid Authorization header")

        parsed = header_codec.parse(
            "Authorization", header, _invalid, scheme=self.header_scheme
        )

        # Measure now before any other processing
        now = self._now()

        for name in REQUIRED_ATTRIBUTES:
            if parsed.attribute(name) is None:
                raise self._reject("header", "missing_attributes", "Missing attributes")
        # An all-whitespace id is not an identifier; only bewits have no nonce.
        if not parsed.attribute("id").strip() or not parsed.attribute("nonce"):
            raise self._reject("header", "missing_attributes", "Missing attributes")

        ts_raw = parsed.attribute("ts")
        if not (ts_raw.isascii() and ts_raw.isdigit()):
            raise self._reject("header", "invalid_header", "Invalid timestamp")

        artifacts = Artifacts(
            method=method,
            host=host,
            port=port,
            resource=resource,
            timestamp=int(ts_raw),
            nonce=parsed.attribute("nonce"),
            ext=parsed.attribute("ext"),
            payload=payload,
            content_type=content_type,
            hash=parsed.attribute("hash"),
            app=parsed.attribute("app"),
            dlg=parsed.attribute("dlg"),
        )

        cred_id = parsed.attribute("id")
        credentials = self._load_credentials(cred_id)

        calculated_mac = calculate_mac("header", credentials, artifacts)
        if not fixed_time_comparison(calculated_mac, parsed.attribute("mac")):
            raise self._reject("header", "bad_mac", "Bad MAC", credentials_id=cred_id)

        if artifacts.payload is not None:
            if artifacts.hash is None:
                raise self._reject(
                    "header", "missing_hash", "Missing required payload hash", credentials_id=cred_id
                )
            calculated_hash = calculate_payload_hash(
                artifacts.payload, credentials.algorithm, artifacts.content_type
            )
            if not fixed_time_comparison(calculated_hash, artifacts.hash):
                raise self._reject("header", "bad_hash", "Bad payload hash", credentials_id=cred_id)

        if not self.nonce_validator.validate_nonce(artifacts.nonce, artifacts.timestamp):
            raise self._reject("header", "invalid_nonce", "Invalid nonce", credentials_id=cred_id)

        if abs(artifacts.timestamp - now) > self.timestamp_skew_sec:
            ts = self._now()
            tsm = calculate_ts_mac(ts, credentials)
            raise self._reject(
                "header",
                "stale",
                "Stale timestamp",
                attributes={"ts": ts, "tsm": tsm},
                credentials_id=cred_id,
            )

        self._accept("header", cred_id, started)
        return Response(credentials, artifacts)

    # ------------------------------------------------------------------ #
    # Response signing
    # ------------------------------------------------------------------ #

    def create_header(
        self,
        credentials: Credentials,
        artifacts: Artifacts,
        options: Optional[Mapping[str, Any]] = None,
    ) -> Header:
        """
        Build a `Server-Authorization` header for the response to a request
        authenticated with `artifacts`.

        options:
          - payload      : response body; triggers hash computation
          - content_type : media type of payload (ignored without payload)
          - ext          : response-specific application data

        Raises InvalidCredentialsError if the key or algorithm is missing.
        """
        options = dict(options or {})
        payload = options.get("payload")
        if payload is not None:
            content_type = options.get("content_type") or ""
            hash_ = calculate_payload_hash(payload, credentials.algorithm, content_type)
        else:
            content_type = None
            hash_ = None

        ext = options.get("ext")

        response_artifacts = artifacts.replace(
            ext=ext,
            payload=payload,
            content_type=content_type,
            hash=hash_,
        )

        attributes: Dict[str, Any] = {
            "mac": calculate_mac("response", credentials, response_artifacts),
        }
        if hash_ is not None:
            attributes["hash"] = hash_
        if ext:
            attributes["ext"] = ext

        return header_codec.create("Server-Authorization", attributes, scheme=self.header_scheme)

    def authenticate_payload(
        self,
        credentials: Credentials,
        payload: Payload,
        content_type: Optional[str],
        hash: Optional[str],
    ) -> bool:
        """Check a payload against a claimed hash; mismatches return False."""
        started = time.perf_counter()
        calculated_hash = calculate_payload_hash(payload, credentials.algorithm, content_type)
        ok = fixed_time_comparison(calculated_hash, hash)
        if ok:
            self._accept("payload", credentials.id, started)
        else:
            self._reject("payload", "bad_hash", "Bad payload hash", credentials_id=credentials.id)
        return ok

    # ------------------------------------------------------------------ #
    # Bewit authentication
    # ------------------------------------------------------------------ #

    def authenticate_bewit(self, host: str, port: int, resource: str) -> Response:
        """
        Verify a bewit embedded in `resource`'s query string for a GET.

        The MAC covers the resource with the bewit parameter removed, the
        expiry as timestamp, an empty nonce and the token's ext.
        """
        started = time.perf_counter()

        # Measure now before any other processing
        now = self._now()

        split = split_bewit_resource(resource)
        if split is None:
            raise self._reject("bewit", "malformed_bewit", "Malformed resource or missing bewit")
        stripped_resource, token = split

        try:
            bewit = decode_bewit(token)
        except MalformedBewitError as exc:
            raise self._reject("bewit", "malformed_bewit", str(exc))

        if bewit.exp < now:
            raise self._reject("bewit", "expired", "Access expired", credentials_id=bewit.id)

        artifacts = bewit_artifacts(host, port, stripped_resource, bewit.exp, bewit.ext)

        credentials = self._load_credentials(bewit.id)

        calculated_mac = calculate_mac("bewit", credentials, artifacts)
        if not fixed_time_comparison(calculated_mac, bewit.mac):
            raise self._reject("bewit", "bad_mac", "Bad MAC", credentials_id=bewit.id)

        self._accept("bewit", bewit.id, started)
        return Response(credentials, artifacts)
