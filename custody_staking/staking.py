"""Per-account staking lifecycle.

Every account moves through ``UNSTAKED -> STAKED -> UNSTAKE_INITIATED ->
UNSTAKE_CLAIMED -> UNSTAKED``. Releases are never triggered by the staker:
after claiming, the account waits for the external authority to certify the
release amount, which a relayer submits through :meth:`fulfill_unstake`.

Each operation is all-or-nothing. Record changes are committed before any
token movement, and are rolled back together with the events of the call if
the movement fails.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterator, Optional, Sequence

from .access import AccessPolicy, Capability
from .attestors import SignatureComponent
from .clock import Clock
from .errors import (
    BelowMinimumStake,
    EpochOutOfRange,
    InvalidSignature,
    InvalidStakerState,
    PendingFulfillment,
    StaleEpoch,
    TokenTransferFailed,
    UnstakeNotUnbonded,
    ZeroAddress,
    ZeroAmount,
)
from .events import EventBus
from .identity import is_zero_address, normalize_address
from .merkle import MerkleFulfillmentVerifier, ProofNode
from .pause import PauseGate
from .pool import CustodyPool
from .token import TokenLedger

logger = logging.getLogger(__name__)

MAX_EPOCH = 2**64 - 1


class StakerState(Enum):
    UNSTAKED = 0
    STAKED = 1
    UNSTAKE_INITIATED = 2
    UNSTAKE_CLAIMED = 3


@dataclass
class StakerRecord:
    state: StakerState = StakerState.UNSTAKED
    unstake_requested_at: int = 0
    last_fulfilled_epoch: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "state": self.state.name,
            "unstakeRequestedAt": self.unstake_requested_at,
            "lastFulfilledEpoch": self.last_fulfilled_epoch,
        }


def _require_positive(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError("amount must be an integer number of base units")
    if amount <= 0:
        raise ZeroAmount()


class StakerStateMachine:
    def __init__(
        self,
        address: str,
        *,
        token: TokenLedger,
        pool: CustodyPool,
        verifier: MerkleFulfillmentVerifier,
        pause_gate: PauseGate,
        policy: AccessPolicy,
        bus: EventBus,
        clock: Clock,
        minimum_stake: int,
        unbonding_period: int,
    ) -> None:
        if minimum_stake <= 0:
            raise ValueError("minimum_stake must be positive")
        if unbonding_period < 0:
            raise ValueError("unbonding_period must be non-negative")
        self.address = normalize_address(address)
        self._token = token
        self._pool = pool
        self._verifier = verifier
        self._pause_gate = pause_gate
        self._policy = policy
        self._bus = bus
        self._clock = clock
        self.minimum_stake = minimum_stake
        self.unbonding_period = unbonding_period
        self._records: Dict[str, StakerRecord] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def state_of(self, account: str) -> StakerState:
        return self._peek(account).state

    def unstake_requested_at(self, account: str) -> int:
        return self._peek(account).unstake_requested_at

    def last_fulfilled_epoch(self, account: str) -> int:
        return self._peek(account).last_fulfilled_epoch

    def record_of(self, account: str) -> StakerRecord:
        return replace(self._peek(account))

    def unbond_available_at(self, account: str) -> Optional[int]:
        record = self._peek(account)
        if record.state is not StakerState.UNSTAKE_INITIATED:
            return None
        return record.unstake_requested_at + self.unbonding_period

    def accounts(self) -> Dict[str, StakerRecord]:
        return {account: replace(record) for account, record in self._records.items()}

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def stake(self, caller: str, amount: int) -> None:
        staker = normalize_address(caller)
        self._policy.require(staker, Capability.STAKER)
        _require_positive(amount)
        if amount < self.minimum_stake:
            raise BelowMinimumStake(amount, self.minimum_stake)
        with self._transition(staker) as record:
            if record.state is StakerState.UNSTAKE_CLAIMED:
                raise PendingFulfillment()
            if record.state is StakerState.UNSTAKE_INITIATED:
                self._cancel(staker, record)
            record.state = StakerState.STAKED
            if not self._token.transfer_from(self.address, staker, self._pool.address, amount):
                raise TokenTransferFailed(staker, self._pool.address, amount)
            self._bus.emit("Staked", staker=staker, amount=amount)
        logger.info("Stake deposited", extra={"event": "stake", "data": {"staker": staker, "amount": amount}})

    def initiate_unstake(self, caller: str, amount: int) -> None:
        self._pause_gate.require_open()
        staker = normalize_address(caller)
        _require_positive(amount)
        with self._transition(staker) as record:
            self._require_state(record, StakerState.STAKED)
            record.unstake_requested_at = self._clock.now()
            record.state = StakerState.UNSTAKE_INITIATED
            self._bus.emit(
                "UnstakeInitiated",
                staker=staker,
                amount=amount,
                requestedAt=record.unstake_requested_at,
            )
        logger.info(
            "Unstake initiated",
            extra={"event": "unstake_initiated", "data": {"staker": staker, "amount": amount}},
        )

    def cancel_initiate_unstake(self, caller: str) -> None:
        self._pause_gate.require_open()
        staker = normalize_address(caller)
        with self._transition(staker) as record:
            self._require_state(record, StakerState.UNSTAKE_INITIATED)
            self._cancel(staker, record)
        logger.info("Unstake cancelled", extra={"event": "unstake_cancelled", "data": {"staker": staker}})

    def claim_unstake(self, caller: str) -> None:
        self._pause_gate.require_open()
        staker = normalize_address(caller)
        with self._transition(staker) as record:
            self._require_state(record, StakerState.UNSTAKE_INITIATED)
            requested_at = record.unstake_requested_at
            available_at = requested_at + self.unbonding_period
            if self._clock.now() < available_at:
                raise UnstakeNotUnbonded(requested_at, available_at)
            record.state = StakerState.UNSTAKE_CLAIMED
            record.unstake_requested_at = 0
            self._bus.emit("UnstakeClaimed", staker=staker, requestedAt=requested_at)
        logger.info("Unstake claimed", extra={"event": "unstake_claimed", "data": {"staker": staker}})

    def fulfill_unstake(
        self,
        caller: str,
        claimant: str,
        amount: int,
        epoch: int,
        proof: Sequence[ProofNode],
        v: Sequence[SignatureComponent],
        r: Sequence[SignatureComponent],
        s: Sequence[SignatureComponent],
    ) -> None:
        """Release ``amount`` to ``claimant`` once the authority's quorum signed it.

        The epoch check runs before every other check so that a replayed
        bundle is always reported as stale.
        """

        self._pause_gate.require_open()
        relayer = normalize_address(caller)
        if isinstance(epoch, bool) or not isinstance(epoch, int) or not 0 <= epoch <= MAX_EPOCH:
            raise EpochOutOfRange(epoch)
        claimant = normalize_address(claimant)
        with self._transition(claimant) as record:
            if epoch <= record.last_fulfilled_epoch:
                raise StaleEpoch(epoch, record.last_fulfilled_epoch)
            if is_zero_address(claimant):
                raise ZeroAddress("claimant")
            _require_positive(amount)
            self._require_state(record, StakerState.UNSTAKE_CLAIMED)
            if not self._verifier.verify(claimant, amount, epoch, proof, v, r, s):
                logger.warning(
                    "Fulfillment rejected",
                    extra={"event": "fulfill_rejected", "data": {"claimant": claimant, "epoch": epoch}},
                )
                raise InvalidSignature()
            record.last_fulfilled_epoch = epoch
            record.unstake_requested_at = 0
            record.state = StakerState.UNSTAKED
            self._pool.withdraw(self.address, claimant, amount)
            self._bus.emit(
                "UnstakeFulfilled",
                claimant=claimant,
                amount=amount,
                epoch=epoch,
                relayer=relayer,
            )
        logger.info(
            "Unstake fulfilled",
            extra={"event": "unstake_fulfilled", "data": {"claimant": claimant, "amount": amount, "epoch": epoch}},
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _peek(self, account: str) -> StakerRecord:
        return self._records.get(normalize_address(account)) or StakerRecord()

    @contextlib.contextmanager
    def _transition(self, account: str) -> Iterator[StakerRecord]:
        existed = account in self._records
        record = self._records.setdefault(account, StakerRecord())
        snapshot = replace(record)
        with self._bus.atomic():
            try:
                yield record
            except BaseException:
                if existed:
                    self._records[account] = snapshot
                else:
                    del self._records[account]
                raise

    def _cancel(self, staker: str, record: StakerRecord) -> None:
        record.unstake_requested_at = 0
        record.state = StakerState.STAKED
        self._bus.emit("UnstakeCancelled", staker=staker)

    @staticmethod
    def _require_state(record: StakerRecord, required: StakerState) -> None:
        if record.state is not required:
            raise InvalidStakerState(record.state, required)


__all__ = ["MAX_EPOCH", "StakerRecord", "StakerState", "StakerStateMachine"]
