"""Token transfer primitive consumed by the custody components.

The staking and custody logic only relies on :class:`TokenLedger`: atomic
balance moves that report success or failure. :class:`InMemoryToken` is an
ERC-20 style ledger used by simulations and tests.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Protocol, Tuple

from .identity import normalize_address

logger = logging.getLogger(__name__)


class TokenLedger(Protocol):
    address: str

    def balance_of(self, account: str) -> int:  # pragma: no cover - protocol
        ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:  # pragma: no cover - protocol
        """Move ``amount`` from ``sender`` to ``recipient``; ``False`` leaves balances untouched."""

    def transfer_from(
        self, spender: str, owner: str, recipient: str, amount: int
    ) -> bool:  # pragma: no cover - protocol
        """Move ``amount`` out of ``owner`` using ``spender``'s allowance."""


class InMemoryToken:
    """Minimal fungible token with balances and allowances."""

    def __init__(self, address: str, *, symbol: str = "TOKEN", decimals: int = 18) -> None:
        self.address = normalize_address(address)
        self.symbol = symbol
        self.decimals = decimals
        self._balances: Dict[str, int] = defaultdict(int)
        self._allowances: Dict[Tuple[str, str], int] = defaultdict(int)
        self.total_supply = 0

    def balance_of(self, account: str) -> int:
        return self._balances[normalize_address(account)]

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances[(normalize_address(owner), normalize_address(spender))]

    def mint(self, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("mint amount must be non-negative")
        self._balances[normalize_address(recipient)] += amount
        self.total_supply += amount

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            return False
        self._allowances[(normalize_address(owner), normalize_address(spender))] = amount
        return True

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        sender = normalize_address(sender)
        recipient = normalize_address(recipient)
        if amount < 0 or self._balances[sender] < amount:
            logger.debug(
                "Token transfer rejected",
                extra={"event": "token_transfer_rejected", "data": {"sender": sender, "amount": amount}},
            )
            return False
        self._balances[sender] -= amount
        self._balances[recipient] += amount
        return True

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        key = (normalize_address(owner), normalize_address(spender))
        if amount < 0 or self._allowances[key] < amount:
            return False
        if not self.transfer(owner, recipient, amount):
            return False
        self._allowances[key] -= amount
        return True


__all__ = ["InMemoryToken", "TokenLedger"]
