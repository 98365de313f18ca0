"""Deployment-time wiring and the serialized operation surface."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, TypeVar

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, generate_latest

from .access import AccessPolicy, Capability
from .attestors import AttestorRegistry, AttestorSet, SignatureComponent, ThresholdSignatureValidator
from .clock import Clock, SystemClock
from .config import DeploymentConfig, load_config
from .errors import CustodyError
from .events import EventBus
from .merkle import MerkleFulfillmentVerifier, ProofNode
from .pause import PauseGate
from .pool import CustodyPool
from .staking import StakerState, StakerStateMachine
from .token import InMemoryToken, TokenLedger

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CustodyDeployment:
    """Owns every component of one deployment and serializes calls into it.

    Each public operation runs under a single re-entrant lock, so two callers
    never interleave inside a transition. Components are created once here
    and are reachable only through their own methods.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        *,
        token: Optional[TokenLedger] = None,
        clock: Optional[Clock] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        self.config = config
        self.clock = clock or SystemClock()
        self.bus = bus or EventBus(self.clock)
        self.token: TokenLedger = token or InMemoryToken(config.token_address, decimals=config.token_decimals)
        self.policy = AccessPolicy(config.admin_address, self.bus)
        self.pause_gate = PauseGate(self.policy, self.bus, paused=config.start_paused)
        self.registry = AttestorRegistry(self.policy, self.bus)
        self.validator = ThresholdSignatureValidator(self.registry)
        self.verifier = MerkleFulfillmentVerifier(
            self.validator,
            chain_id=config.chain_id,
            contract_address=config.contract_address,
        )
        self.pool = CustodyPool(config.pool_address, self.token, self.policy, self.bus)
        self.staking = StakerStateMachine(
            config.contract_address,
            token=self.token,
            pool=self.pool,
            verifier=self.verifier,
            pause_gate=self.pause_gate,
            policy=self.policy,
            bus=self.bus,
            clock=self.clock,
            minimum_stake=config.minimum_stake,
            unbonding_period=config.unbonding_period_seconds,
        )
        self._lock = threading.RLock()
        self._metrics_registry = CollectorRegistry()
        namespace = config.metrics_namespace
        self._transitions = Counter(
            f"{namespace}_transitions_total",
            "Count of committed custody operations",
            labelnames=("transition",),
            registry=self._metrics_registry,
        )
        self._rejections = Counter(
            f"{namespace}_rejections_total",
            "Count of rejected custody operations",
            labelnames=("reason",),
            registry=self._metrics_registry,
        )
        self._released = Counter(
            f"{namespace}_released_tokens_total",
            "Base units released from custody",
            registry=self._metrics_registry,
        )

        admin = config.admin_address
        self.pool.add_to_whitelist(admin, self.staking.address)
        if config.attestors:
            self.registry.replace(admin, config.attestors, config.threshold or 0)
        logger.info(
            "Custody deployment initialised",
            extra={
                "event": "deployment_ready",
                "data": {
                    "chainId": config.chain_id,
                    "contract": config.contract_address,
                    "pool": config.pool_address,
                    "paused": self.pause_gate.paused,
                },
            },
        )

    @classmethod
    def from_config_file(cls, path: Path | str, **kwargs: Any) -> "CustodyDeployment":
        return cls(load_config(path), **kwargs)

    # ------------------------------------------------------------------
    # Staker operations
    # ------------------------------------------------------------------
    def stake(self, caller: str, amount: int) -> None:
        self._execute("stake", lambda: self.staking.stake(caller, amount))

    def initiate_unstake(self, caller: str, amount: int) -> None:
        self._execute("initiate_unstake", lambda: self.staking.initiate_unstake(caller, amount))

    def cancel_initiate_unstake(self, caller: str) -> None:
        self._execute("cancel_initiate_unstake", lambda: self.staking.cancel_initiate_unstake(caller))

    def claim_unstake(self, caller: str) -> None:
        self._execute("claim_unstake", lambda: self.staking.claim_unstake(caller))

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
        self._execute(
            "fulfill_unstake",
            lambda: self.staking.fulfill_unstake(caller, claimant, amount, epoch, proof, v, r, s),
            on_success=lambda: self._released.inc(amount),
        )

    # ------------------------------------------------------------------
    # Administrator operations
    # ------------------------------------------------------------------
    def update_attestors_and_threshold(self, caller: str, members: Sequence[str], threshold: int) -> AttestorSet:
        return self._execute(
            "update_attestors",
            lambda: self.validator.update_attestors_and_threshold(caller, members, threshold),
        )

    def grant_staker(self, caller: str, account: str) -> None:
        self._execute("grant_staker", lambda: self.policy.grant(caller, account, Capability.STAKER))

    def revoke_staker(self, caller: str, account: str) -> None:
        self._execute("revoke_staker", lambda: self.policy.revoke(caller, account, Capability.STAKER))

    def pause(self, caller: str, *, reason: str = "admin") -> None:
        self._execute("pause", lambda: self.pause_gate.pause(caller, reason=reason))

    def unpause(self, caller: str) -> None:
        self._execute("unpause", lambda: self.pause_gate.unpause(caller))

    def add_withdrawer(self, caller: str, account: str) -> None:
        self._execute("add_withdrawer", lambda: self.pool.add_to_whitelist(caller, account))

    def remove_withdrawer(self, caller: str, account: str) -> None:
        self._execute("remove_withdrawer", lambda: self.pool.remove_from_whitelist(caller, account))

    def transfer_admin(self, caller: str, new_admin: str) -> None:
        self._execute("transfer_admin", lambda: self.policy.transfer_admin(caller, new_admin))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def staker_state(self, account: str) -> StakerState:
        return self.staking.state_of(account)

    def unstake_requested_at(self, account: str) -> int:
        return self.staking.unstake_requested_at(account)

    def last_fulfilled_epoch(self, account: str) -> int:
        return self.staking.last_fulfilled_epoch(account)

    def is_attestor(self, identity: str) -> bool:
        return self.validator.is_attestor(identity)

    @property
    def attestors(self) -> Sequence[str]:
        return self.validator.attestors

    @property
    def threshold(self) -> int:
        return self.validator.threshold

    def pool_balance(self) -> int:
        return self.pool.balance()

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "chainId": self.config.chain_id,
                "contract": self.staking.address,
                "pool": self.pool.address,
                "admin": self.policy.admin,
                "paused": self.pause_gate.paused,
                "poolBalance": str(self.pool.balance()),
                "attestors": list(self.validator.attestors),
                "threshold": self.validator.threshold,
                "withdrawers": self.pool.whitelist(),
                "stakers": {account: record.to_dict() for account, record in self.staking.accounts().items()},
            }

    def health(self) -> Dict[str, Any]:
        ready = self.registry.current is not None
        return {
            "status": "ok" if ready and not self.pause_gate.paused else "degraded",
            "paused": self.pause_gate.paused,
            "attestorsReady": ready,
            "poolBalance": str(self.pool.balance()),
            "chainId": self.config.chain_id,
            "contract": self.staking.address,
        }

    def metrics(self) -> bytes:
        return generate_latest(self._metrics_registry)

    @property
    def metrics_content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def _execute(
        self,
        transition: str,
        operation: Callable[[], T],
        *,
        on_success: Optional[Callable[[], None]] = None,
    ) -> T:
        with self._lock:
            try:
                result = operation()
            except CustodyError as exc:
                self._rejections.labels(exc.code.lower()).inc()
                raise
            self._transitions.labels(transition).inc()
            if on_success is not None:
                on_success()
            return result


__all__ = ["CustodyDeployment"]
