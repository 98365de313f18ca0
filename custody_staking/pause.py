from __future__ import annotations

import logging
from typing import Optional

from .access import AccessPolicy, Capability
from .errors import EnforcedPause, InvalidGateState
from .events import EventBus

logger = logging.getLogger(__name__)


class PauseGate:
    """Global switch for the unstake path.

    Staking is never gated. Deployments start paused so that unstake
    operations stay inert until an administrator opens the gate.
    """

    def __init__(self, policy: AccessPolicy, bus: EventBus, *, paused: bool = True) -> None:
        self._policy = policy
        self._bus = bus
        self._paused = paused
        self._reason: Optional[str] = "deployment" if paused else None

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def require_open(self) -> None:
        if self._paused:
            raise EnforcedPause()

    def pause(self, caller: str, *, reason: str = "admin") -> None:
        self._policy.require(caller, Capability.ADMIN)
        if self._paused:
            raise InvalidGateState("gate is already paused")
        self._paused = True
        self._reason = reason
        self._bus.emit("Paused", sender=caller, reason=reason)
        logger.warning("Unstake path paused", extra={"event": "paused", "data": {"reason": reason}})

    def unpause(self, caller: str) -> None:
        self._policy.require(caller, Capability.ADMIN)
        if not self._paused:
            raise InvalidGateState("gate is not paused")
        self._paused = False
        self._reason = None
        self._bus.emit("Unpaused", sender=caller)
        logger.info("Unstake path resumed", extra={"event": "unpaused"})


__all__ = ["PauseGate"]
