"""Capability checks guarding administrative and staking entry points."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Set

from .errors import InvalidGateState, MissingCapability, ZeroAddress
from .events import EventBus
from .identity import is_zero_address, normalize_address

logger = logging.getLogger(__name__)


class Capability(Enum):
    ADMIN = "admin"
    STAKER = "staker"


class AccessPolicy:
    """Maps identities to the capabilities they hold.

    Exactly one identity holds ``ADMIN`` at any time; it is handed over with
    :meth:`transfer_admin`. ``STAKER`` is granted and revoked by the admin.
    """

    def __init__(self, admin: str, bus: EventBus) -> None:
        admin = normalize_address(admin)
        if is_zero_address(admin):
            raise ZeroAddress("admin")
        self._admin = admin
        self._bus = bus
        self._grants: Dict[Capability, Set[str]] = {Capability.STAKER: set()}

    @property
    def admin(self) -> str:
        return self._admin

    def has(self, account: str, capability: Capability) -> bool:
        account = normalize_address(account)
        if capability is Capability.ADMIN:
            return account == self._admin
        return account in self._grants[capability]

    def require(self, caller: str, capability: Capability) -> None:
        if not self.has(caller, capability):
            raise MissingCapability(caller, capability)

    def grant(self, caller: str, account: str, capability: Capability) -> None:
        self.require(caller, Capability.ADMIN)
        if capability is Capability.ADMIN:
            raise InvalidGateState("admin capability moves only through transfer_admin")
        account = normalize_address(account)
        if is_zero_address(account):
            raise ZeroAddress("account")
        if account in self._grants[capability]:
            return
        self._grants[capability].add(account)
        self._bus.emit("CapabilityGranted", account=account, capability=capability.value, sender=caller)
        logger.info(
            "Capability granted",
            extra={"event": "capability_granted", "data": {"account": account, "capability": capability.value}},
        )

    def revoke(self, caller: str, account: str, capability: Capability) -> None:
        self.require(caller, Capability.ADMIN)
        if capability is Capability.ADMIN:
            raise InvalidGateState("admin capability moves only through transfer_admin")
        account = normalize_address(account)
        if account not in self._grants[capability]:
            return
        self._grants[capability].discard(account)
        self._bus.emit("CapabilityRevoked", account=account, capability=capability.value, sender=caller)
        logger.info(
            "Capability revoked",
            extra={"event": "capability_revoked", "data": {"account": account, "capability": capability.value}},
        )

    def transfer_admin(self, caller: str, new_admin: str) -> None:
        self.require(caller, Capability.ADMIN)
        new_admin = normalize_address(new_admin)
        if is_zero_address(new_admin):
            raise ZeroAddress("new_admin")
        previous = self._admin
        self._admin = new_admin
        self._bus.emit("AdminTransferred", previous=previous, current=new_admin)
        logger.info(
            "Admin transferred",
            extra={"event": "admin_transferred", "data": {"previous": previous, "current": new_admin}},
        )


__all__ = ["AccessPolicy", "Capability"]
