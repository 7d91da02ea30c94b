from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class HawkError(Exception):
    """Base error for hawkserver."""


class UnauthorizedError(HawkError):
    """
    Authentication failure.

    `reason` is a short human readable string that is safe to log. `attributes`
    is empty except for a stale timestamp, where it carries the server clock
    (`ts`) and its MAC (`tsm`) so the client can resynchronize.
    """

    def __init__(self, reason: str, attributes: Optional[Mapping[str, Any]] = None):
        super().__init__(reason)
        self.reason = reason
        self.attributes: Dict[str, Any] = dict(attributes or {})

    def www_authenticate(self, scheme: str = "Hawk") -> str:
        """Render the challenge for a `WWW-Authenticate` response header."""
        parts = [f'{k}="{v}"' for k, v in self.attributes.items() if v is not None]
        parts.append(f'error="{self.reason}"')
        return f"{scheme} " + ", ".join(parts)


class ConfigurationError(HawkError, ValueError):
    """Deployment mistake (bad collaborator, bad settings). Not an auth failure."""


class InvalidCredentialsError(ConfigurationError):
    """Credentials without a key or with an unsupported algorithm."""


class MalformedHeaderError(HawkError, ValueError):
    pass


class MalformedBewitError(HawkError, ValueError):
    pass
