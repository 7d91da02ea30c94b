from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Protocol, Tuple

from .errors import ConfigurationError


class NonceValidator(Protocol):
    def validate_nonce(self, nonce: str, timestamp: int) -> bool:
        ...


class CallbackNonceValidator:
    """Adapt a plain `fn(nonce, timestamp) -> bool` into a NonceValidator."""

    def __init__(self, callback: Callable[[str, int], Any]):
        self._callback = callback

    def validate_nonce(self, nonce: str, timestamp: int) -> bool:
        return bool(self._callback(nonce, timestamp))


class AcceptAllNonceValidator:
    """Performs no replay detection. Suitable only for tests and trusted links."""

    def validate_nonce(self, nonce: str, timestamp: int) -> bool:
        return True


def as_nonce_validator(obj: Any) -> NonceValidator:
    if obj is None:
        return AcceptAllNonceValidator()
    if callable(getattr(obj, "validate_nonce", None)):
        return obj
    if callable(obj):
        return CallbackNonceValidator(obj)
    raise ConfigurationError(
        "nonce validator must implement validate_nonce() or be callable"
    )


class MemoryNonceCache:
    """
    Process-local replay store with per-entry TTL.

    A nonce is accepted the first time it is seen and rejected while the entry
    is alive. Check-and-record happens under one lock, so two concurrent
    requests carrying the same nonce cannot both pass. The TTL should cover
    the timestamp skew window; multi-process deployments need a shared store
    with the same atomic semantics instead.

    The TTL is fixed and the clock monotonic, so insertion order is expiry
    order: the oldest entry is always at the front.
    """

    def __init__(self, ttl_s: float = 120.0, max_entries: int = 100_000, clock: Callable[[], float] = time.monotonic):
        if ttl_s <= 0:
            raise ConfigurationError("nonce cache ttl must be positive")
        self.ttl_s = float(ttl_s)
        self.max_entries = int(max(1, max_entries))
        self._clock = clock
        self._seen: OrderedDict[Tuple[str, int], float] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def _evict(self, now: float, room: int = 0) -> None:
        seen = self._seen
        while seen and next(iter(seen.values())) <= now:
            seen.popitem(last=False)
        # Still full: drop the entries closest to expiry.
        while len(seen) > self.max_entries - room:
            seen.popitem(last=False)

    def validate_nonce(self, nonce: str, timestamp: int) -> bool:
        key = (nonce, int(timestamp))
        now = self._clock()
        with self._lock:
            self._evict(now)
            if key in self._seen:
                return False
            self._evict(now, room=1)
            self._seen[key] = now + self.ttl_s
            return True
