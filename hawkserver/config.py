# hawkserver/config.py
from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .logging import configure_json_logging

_log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Env helpers
# ---------------------------------------------------------------------------


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    v = raw.strip().lower()
    return v in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        _log.warning("ignoring non-integer %s=%r", name, raw)
        return default


def _load_yaml_mapping(path: str) -> Dict[str, Any]:
    """
    Load a simple top-level mapping from YAML.

    Missing files yield {}; unreadable or non-mapping documents are logged
    and ignored.
    """
    if not path or not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            doc = yaml.safe_load(f)
    except (OSError, yaml.YAMLError):
        _log.warning("failed to load YAML config from %s", path, exc_info=True)
        return {}
    if not isinstance(doc, dict):
        _log.warning("ignoring YAML config at %s: top level is not a mapping", path)
        return {}
    return {str(k): v for k, v in doc.items()}


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    # Accepted |client ts - server now| in seconds.
    timestamp_skew_sec: int = Field(default=60, ge=0)
    # Added to the time provider's clock before every comparison.
    localtime_offset_sec: int = 0
    header_scheme: str = "Hawk"

    log_level: str = "INFO"
    metrics_enabled: bool = True

    # Indicates how this config reached the process (defaults/yaml/env).
    config_origin: str = "defaults"

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        v = (v or "INFO").upper()
        if v not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"unknown log level {v!r}")
        return v


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load Settings from defaults, optional YAML, and environment variables.

    Priority:
      1. Settings defaults (in-code).
      2. YAML file at `path` or HAWK_CONFIG_PATH.
      3. Environment variables (HAWK_*).
    """
    merged: Dict[str, Any] = Settings().model_dump()
    origin = "defaults"

    yaml_path = path if path is not None else os.environ.get("HAWK_CONFIG_PATH", "").strip()
    yaml_doc = _load_yaml_mapping(yaml_path)
    if yaml_doc:
        merged.update(yaml_doc)
        merged = Settings(**merged).model_dump()  # enforces extra="forbid"
        origin = "yaml"

    env_seen = False
    for name, key in (
        ("HAWK_TIMESTAMP_SKEW_SEC", "timestamp_skew_sec"),
        ("HAWK_LOCALTIME_OFFSET_SEC", "localtime_offset_sec"),
    ):
        if os.environ.get(name):
            merged[key] = _env_int(name, merged[key])
            env_seen = True
    if os.environ.get("HAWK_METRICS_ENABLED"):
        merged["metrics_enabled"] = _env_bool("HAWK_METRICS_ENABLED", merged["metrics_enabled"])
        env_seen = True
    if os.environ.get("HAWK_LOG_LEVEL"):
        merged["log_level"] = os.environ["HAWK_LOG_LEVEL"]
        env_seen = True
    if os.environ.get("HAWK_HEADER_SCHEME"):
        merged["header_scheme"] = os.environ["HAWK_HEADER_SCHEME"].strip()
        env_seen = True

    if env_seen:
        origin = "env" if origin == "defaults" else f"{origin}+env"
    merged["config_origin"] = origin
    return Settings(**merged)


def build_server_from_env(
    credentials_provider: Any,
    nonce_validator: Any = None,
    time_provider: Any = None,
    *,
    path: Optional[str] = None,
    configure_logging: bool = True,
):
    """
    Wire a Server from load_settings(). Collaborators are always supplied by
    the caller; only tuning knobs come from the environment.

    With configure_logging (the default) the root logger is switched to JSON
    output at settings.log_level. Pass False when the host application owns
    logging setup.
    """
    from .server import Server

    settings = load_settings(path)
    if configure_logging:
        configure_json_logging(settings.log_level)
    _log.info(
        "hawk server configured",
        extra={
            "timestamp_skew_sec": settings.timestamp_skew_sec,
            "localtime_offset_sec": settings.localtime_offset_sec,
            "config_origin": settings.config_origin,
        },
    )
    return Server(
        credentials_provider,
        nonce_validator=nonce_validator,
        time_provider=time_provider,
        timestamp_skew_sec=settings.timestamp_skew_sec,
        localtime_offset_sec=settings.localtime_offset_sec,
        header_scheme=settings.header_scheme,
        metrics_enabled=settings.metrics_enabled,
    )
