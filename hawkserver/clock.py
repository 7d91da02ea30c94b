from __future__ import annotations

import time
from typing import Protocol


class TimeProvider(Protocol):
    def now(self) -> int:
        ...


class SystemTimeProvider:
    def now(self) -> int:
        return int(time.time())


class ConstantTimeProvider:
    """Fixed clock for deterministic tests."""

    def __init__(self, timestamp: int):
        self.timestamp = int(timestamp)

    def now(self) -> int:
        return self.timestamp
