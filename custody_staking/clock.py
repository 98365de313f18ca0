"""Time sources used for unbonding checks and event timestamps."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int:  # pragma: no cover - protocol
        """Return the current time in whole seconds."""


class SystemClock:
    """Wall clock with one second resolution."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Deterministic clock for simulations and tests."""

    def __init__(self, start: int = 1_700_000_000) -> None:
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self._now += int(seconds)
        return self._now


__all__ = ["Clock", "ManualClock", "SystemClock"]
