"""Custody pool holding every staked token."""

from __future__ import annotations

import logging
from typing import List, Set

from .access import AccessPolicy, Capability
from .errors import (
    InsufficientPoolBalance,
    NotWhitelisted,
    TokenTransferFailed,
    ZeroAddress,
    ZeroAmount,
)
from .events import EventBus
from .identity import address_value, is_zero_address, normalize_address
from .token import TokenLedger

logger = logging.getLogger(__name__)


class CustodyPool:
    """Owns the pooled balance and its single withdrawal path.

    Deposits arrive as plain token transfers to :attr:`address`. Tokens only
    leave through :meth:`withdraw`, which is restricted to whitelisted callers.
    """

    def __init__(self, address: str, token: TokenLedger, policy: AccessPolicy, bus: EventBus) -> None:
        self.address = normalize_address(address)
        self._token = token
        self._policy = policy
        self._bus = bus
        self._whitelist: Set[str] = set()

    @property
    def token(self) -> TokenLedger:
        return self._token

    def balance(self) -> int:
        return self._token.balance_of(self.address)

    def is_whitelisted(self, account: str) -> bool:
        return normalize_address(account) in self._whitelist

    def whitelist(self) -> List[str]:
        return sorted(self._whitelist, key=address_value)

    def add_to_whitelist(self, caller: str, account: str) -> None:
        self._policy.require(caller, Capability.ADMIN)
        account = normalize_address(account)
        if is_zero_address(account):
            raise ZeroAddress("account")
        if account in self._whitelist:
            return
        self._whitelist.add(account)
        self._bus.emit("WithdrawerWhitelisted", account=account, sender=caller)
        logger.info("Withdrawer whitelisted", extra={"event": "whitelist_add", "data": {"account": account}})

    def remove_from_whitelist(self, caller: str, account: str) -> None:
        self._policy.require(caller, Capability.ADMIN)
        account = normalize_address(account)
        if account not in self._whitelist:
            return
        self._whitelist.discard(account)
        self._bus.emit("WithdrawerRemoved", account=account, sender=caller)
        logger.info("Withdrawer removed", extra={"event": "whitelist_remove", "data": {"account": account}})

    def withdraw(self, caller: str, recipient: str, amount: int) -> None:
        caller = normalize_address(caller)
        if caller not in self._whitelist:
            raise NotWhitelisted(caller)
        if amount <= 0:
            raise ZeroAmount()
        recipient = normalize_address(recipient)
        if is_zero_address(recipient):
            raise ZeroAddress("recipient")
        available = self.balance()
        if available < amount:
            raise InsufficientPoolBalance(available, amount)
        if not self._token.transfer(self.address, recipient, amount):
            raise TokenTransferFailed(self.address, recipient, amount)
        self._bus.emit("Withdrawn", amount=amount, recipient=recipient, caller=caller)
        logger.info(
            "Custody release",
            extra={"event": "pool_withdraw", "data": {"amount": amount, "recipient": recipient, "caller": caller}},
        )


__all__ = ["CustodyPool"]
