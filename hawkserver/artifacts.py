from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Optional, Union

Payload = Union[bytes, str]


@dataclass(frozen=True)
class Artifacts:
    """
    Snapshot of every field that participates in a Hawk MAC.

    Fields:
      - method       : HTTP method as received (upper-cased only when signed)
      - host, port   : request authority; port in 1..65535
      - resource     : path + query, no scheme or host
      - timestamp    : seconds since epoch (the bewit expiry for bewits)
      - nonce        : client nonce; empty for bewit-derived artifacts
      - ext          : opaque application data, passed through
      - payload      : body bytes/str; when set, content_type must be given
      - content_type : declared media type of payload ("" allowed)
      - hash         : base64 payload digest as claimed by the client
      - app, dlg     : delegated-credential attributes
    """

    method: str
    host: str
    port: int
    resource: str
    timestamp: int
    nonce: str = ""
    ext: Optional[str] = None
    payload: Optional[Payload] = None
    content_type: Optional[str] = None
    hash: Optional[str] = None
    app: Optional[str] = None
    dlg: Optional[str] = None

    def __post_init__(self) -> None:
        port = int(self.port)
        if not 1 <= port <= 65535:
            raise ValueError(f"port out of range: {self.port!r}")
        object.__setattr__(self, "port", port)
        object.__setattr__(self, "timestamp", int(self.timestamp))
        if self.nonce is None:
            object.__setattr__(self, "nonce", "")

    def replace(self, **changes: Any) -> "Artifacts":
        return dataclasses.replace(self, **changes)
