from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Protocol, Union

from .errors import ConfigurationError


@dataclass(frozen=True)
class Credentials:
    """
    Resolved Hawk credentials.

    `key` and `algorithm` are validated lazily by the MAC engine; `id` and
    `user` are opaque to the protocol and echoed back on success.
    """

    key: Optional[Union[str, bytes]]
    algorithm: Optional[str]
    id: Any = None
    user: Any = None

    def key_bytes(self) -> bytes:
        if isinstance(self.key, bytes):
            return self.key
        return str(self.key).encode("utf-8")

    @classmethod
    def coerce(cls, value: Any) -> "Credentials":
        """Accept a Credentials instance or a mapping with key/algorithm[/id/user]."""
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            return cls(
                key=value.get("key"),
                algorithm=value.get("algorithm"),
                id=value.get("id"),
                user=value.get("user"),
            )
        raise ConfigurationError(
            f"credentials provider returned {type(value).__name__}, expected Credentials"
        )


class CredentialsProvider(Protocol):
    def load_credentials_by_id(self, id: str) -> Credentials:
        ...


class CallbackCredentialsProvider:
    """Adapt a plain `fn(id) -> Credentials` into a CredentialsProvider."""

    def __init__(self, callback: Callable[[str], Any]):
        self._callback = callback

    def load_credentials_by_id(self, id: str) -> Credentials:
        return self._callback(id)


def as_credentials_provider(obj: Any) -> CredentialsProvider:
    """
    Return `obj` if it already implements load_credentials_by_id, wrap it if it
    is callable, otherwise fail as a configuration error.
    """
    if callable(getattr(obj, "load_credentials_by_id", None)):
        return obj
    if callable(obj):
        return CallbackCredentialsProvider(obj)
    raise ConfigurationError(
        "credentials provider must implement load_credentials_by_id() or be callable"
    )
