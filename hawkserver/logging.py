# FILE: hawkserver/logging.py
from __future__ import annotations

import contextvars
import datetime as _dt
import json
import logging
import os
import sys
import traceback
from typing import Any, Dict, Optional, Set

# ---------- Module-level config (env-driven, safe defaults) ----------
_LOG_SCHEMA = os.environ.get("HAWK_LOG_SCHEMA", "hawkserver.log.v1")
_LOG_SERVICE = os.environ.get("HAWK_SERVICE", "hawkserver")
_LOG_VERSION = os.environ.get("HAWK_BUILD_VERSION", "0.0.0")
_LOG_ENV = os.environ.get("HAWK_ENV", os.environ.get("ENV", "dev"))

# Max chars per field (truncate to keep JSON small)
try:
    _MAX_FIELD = int(os.environ.get("HAWK_LOG_MAX_FIELD", "4096"))
    _MAX_FIELD = max(256, _MAX_FIELD)
except ValueError:
    _MAX_FIELD = 4096

# Redaction keys (case-insensitive). Hawk headers carry MACs and hashes.
_DEFAULT_REDACT = {
    "authorization",
    "proxy-authorization",
    "server-authorization",
    "www-authenticate",
    "cookie",
    "set-cookie",
    "x-api-key",
}
_REDACT_KEYS = {
    k.strip().lower()
    for k in os.environ.get("HAWK_LOG_REDACT", "").split(",")
    if k.strip()
} or _DEFAULT_REDACT

# Extras that must never reach a log line
_FORBIDDEN_META_KEYS = {"mac", "tsm", "key", "payload", "body", "bewit"}

# Standard LogRecord attributes that are not treated as dynamic meta
_LOG_RECORD_STD_ATTRS: Set[str] = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
}

# ---------- Context management ----------
_log_ctx: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "hawkserver_log_ctx", default={}
)


def bind(**fields: Any) -> None:
    """Merge fields into the current logging context (per-coroutine)."""
    cur = dict(_log_ctx.get())
    for k, v in fields.items():
        if v is None:
            continue
        cur[str(k)] = v
    _log_ctx.set(cur)


def unbind(*keys: str) -> None:
    cur = dict(_log_ctx.get())
    for k in keys:
        cur.pop(k, None)
    _log_ctx.set(cur)


def reset() -> None:
    _log_ctx.set({})


def context() -> Dict[str, Any]:
    return dict(_log_ctx.get())


# ---------- Helpers ----------
def _ts_iso() -> str:
    # RFC3339 with milliseconds, UTC Z
    now = _dt.datetime.now(_dt.timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def _compact_json(obj: Dict[str, Any]) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"), default=str)


def _truncate(v: Any) -> Any:
    if isinstance(v, str) and len(v) > _MAX_FIELD:
        return v[:_MAX_FIELD] + "...<truncated>"
    return v


def _redact_key(k: str) -> bool:
    return k.lower() in _REDACT_KEYS


def scrub_dict(d: Dict[str, Any]) -> Dict[str, Any]:
    """
    Scrub obvious secrets from a dict (typically HTTP headers).

    Keys listed in `_REDACT_KEYS` get replaced by "***". Nested dictionaries
    are scrubbed recursively.
    """
    out: Dict[str, Any] = {}
    for k, v in (d or {}).items():
        if _redact_key(k):
            out[k] = "***"
        else:
            out[k] = v if not isinstance(v, dict) else scrub_dict(v)
    return out


def _meta_from_record(record: logging.LogRecord, evt_keys: Set[str]) -> Dict[str, Any]:
    meta: Dict[str, Any] = {}
    for k, v in record.__dict__.items():
        if k in _LOG_RECORD_STD_ATTRS or k in evt_keys or k.startswith("_"):
            continue
        if k.lower() in _FORBIDDEN_META_KEYS:
            continue
        if isinstance(v, dict):
            v = scrub_dict(v)
        meta[k] = _truncate(v)
    return meta


# ---------- JSON formatter ----------
class JSONFormatter(logging.Formatter):
    """
    JSON formatter with a stable envelope.

    Envelope fields:
      - schema, service, version, env
      - ts, lvl, logger, msg
      - bound context (req_id, path, method, ...)
      - remaining `extra=` fields under "meta" (secrets dropped)
    """

    def __init__(self, *, include_stack: bool = True):
        super().__init__()
        self.include_stack = include_stack

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        evt: Dict[str, Any] = {
            "schema": _LOG_SCHEMA,
            "service": _LOG_SERVICE,
            "version": _LOG_VERSION,
            "env": _LOG_ENV,
            "ts": _ts_iso(),
            "lvl": record.levelname,
            "logger": record.name,
            "msg": _truncate(str(record.getMessage())),
        }
        for k, v in context().items():
            if k.lower() in _FORBIDDEN_META_KEYS:
                continue
            evt.setdefault(k, _truncate(v))

        if record.exc_info and self.include_stack:
            exc_type, exc_val, exc_tb = record.exc_info
            evt["exc_type"] = getattr(exc_type, "__name__", str(exc_type))
            evt["exc_message"] = str(exc_val)[:_MAX_FIELD]
            evt["stack"] = "".join(
                traceback.format_exception(exc_type, exc_val, exc_tb)
            )[:_MAX_FIELD]

        meta = _meta_from_record(record, set(evt.keys()))
        if meta:
            evt["meta"] = meta
        return _compact_json(evt)


# ---------- Root integration ----------
_configured = False


def _clear_handlers(logger: logging.Logger) -> None:
    for h in list(logger.handlers):
        logger.removeHandler(h)


def configure_json_logging(
    level: str = "INFO",
    *,
    stream: Any = None,
    include_stack: bool = True,
    include_uvicorn: bool = False,
) -> logging.Logger:
    """Configure the root logger (and optionally uvicorn's) for JSON output."""
    global _configured
    lvl = getattr(logging, (level or "INFO").upper(), logging.INFO)
    stream = stream or sys.stderr

    h = logging.StreamHandler(stream=stream)
    h.setFormatter(JSONFormatter(include_stack=include_stack))
    h.setLevel(lvl)

    root = logging.getLogger()
    root.setLevel(lvl)
    _clear_handlers(root)
    root.addHandler(h)

    if include_uvicorn:
        for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
            lg = logging.getLogger(name)
            lg.setLevel(lvl)
            _clear_handlers(lg)
            lg.addHandler(h)
            lg.propagate = False

    _configured = True
    return root


def log_auth_event(
    logger: logging.Logger,
    *,
    kind: str,
    outcome: str,
    reason: Optional[str] = None,
    credentials_id: Any = None,
    level: Optional[int] = None,
) -> None:
    """
    Emit one authentication decision.

    Only small tags are logged: never MACs, keys, payloads or header values.
    """
    if level is None:
        level = logging.DEBUG if outcome == "accept" else logging.INFO
    extra: Dict[str, Any] = {"auth_kind": kind, "auth_outcome": outcome}
    if reason is not None:
        extra["auth_reason"] = reason
    if credentials_id is not None:
        extra["credentials_id"] = _truncate(str(credentials_id))
    logger.log(level, "hawk.%s.%s", kind, outcome, extra=extra)


def get_logger(name: str = "hawkserver") -> logging.Logger:
    """
    Return a logger. Unless JSON logging was already configured (for example
    by build_server_from_env), the first call configures the root logger
    using HAWK_LOG_LEVEL.
    """
    if not _configured:
        configure_json_logging(level=os.environ.get("HAWK_LOG_LEVEL", "INFO"))
    return logging.getLogger(name)


__all__ = [
    "bind",
    "unbind",
    "reset",
    "context",
    "configure_json_logging",
    "get_logger",
    "log_auth_event",
    "JSONFormatter",
    "scrub_dict",
]
