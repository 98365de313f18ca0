"""End-to-end lifecycle rehearsal against an in-memory deployment."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from eth_utils import keccak, to_checksum_address

from .clock import ManualClock
from .config import DeploymentConfig
from .deployment import CustodyDeployment
from .events import EventBus
from .logging_utils import AuditTrail
from .signers import FulfillmentBatchBuilder, LocalAttestorSigner, sort_signers
from .token import InMemoryToken


@dataclass
class SimulationSummary:
    staker: str
    staked: int
    released: int
    epoch: int
    attestors: List[str]
    threshold: int
    pool_balance_after_stake: int
    pool_balance_after_release: int
    final_state: str
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "staker": self.staker,
            "staked": str(self.staked),
            "released": str(self.released),
            "epoch": self.epoch,
            "attestors": list(self.attestors),
            "threshold": self.threshold,
            "poolBalanceAfterStake": str(self.pool_balance_after_stake),
            "poolBalanceAfterRelease": str(self.pool_balance_after_release),
            "finalState": self.final_state,
            "events": list(self.events),
        }


def derived_address(label: str) -> str:
    return to_checksum_address(keccak(text=f"custody-staking-account:{label}")[-20:])


def run_lifecycle_simulation(
    config: DeploymentConfig,
    *,
    stake_tokens: int = 1_000,
    reward_bps: int = 250,
    attestor_count: int = 3,
    threshold: int = 2,
    signing_attestors: Optional[int] = None,
    epoch: int = 1,
    audit: Optional[AuditTrail] = None,
) -> SimulationSummary:
    """Stake, unbond, claim and fulfill one account with generated attestors.

    ``signing_attestors`` limits how many of the generated attestors co-sign;
    when it falls below ``threshold`` the fulfillment is rejected.
    Committed events are also appended to ``audit`` when one is given.
    """

    if reward_bps < 0:
        raise ValueError("reward_bps must be non-negative")
    clock = ManualClock()
    token = InMemoryToken(config.token_address, decimals=config.token_decimals)
    bus = EventBus(clock)
    if audit is not None:
        audit.attach(bus)
    deployment = CustodyDeployment(config, token=token, clock=clock, bus=bus)
    admin = config.admin_address

    signers = sort_signers(LocalAttestorSigner.from_seed(f"attestor-{index}") for index in range(attestor_count))
    deployment.update_attestors_and_threshold(admin, [signer.address for signer in signers], threshold)

    staker = derived_address("staker")
    relayer = derived_address("relayer")
    amount = stake_tokens * 10**config.token_decimals
    released = amount + amount * reward_bps // 10_000

    token.mint(staker, amount)
    token.approve(staker, deployment.staking.address, amount)
    deployment.grant_staker(admin, staker)
    deployment.stake(staker, amount)
    after_stake = deployment.pool_balance()

    if deployment.pause_gate.paused:
        deployment.unpause(admin)
    deployment.initiate_unstake(staker, amount)
    clock.advance(config.unbonding_period_seconds)
    deployment.claim_unstake(staker)

    # rewards accrued on the remote side are funded into custody before release
    token.mint(deployment.pool.address, released - amount)
    builder = FulfillmentBatchBuilder(chain_id=config.chain_id, contract_address=config.contract_address)
    cosigners = signers if signing_attestors is None else signers[:signing_attestors]
    bundle = builder.build([(staker, released)], epoch=epoch, signers=cosigners)[staker]
    deployment.fulfill_unstake(relayer, staker, released, epoch, bundle.proof, bundle.v, bundle.r, bundle.s)

    return SimulationSummary(
        staker=staker,
        staked=amount,
        released=released,
        epoch=epoch,
        attestors=[signer.address for signer in signers],
        threshold=threshold,
        pool_balance_after_stake=after_stake,
        pool_balance_after_release=deployment.pool_balance(),
        final_state=deployment.staker_state(staker).name,
        events=[{"type": event.type, "sequence": event.sequence, **event.payload} for event in deployment.bus.events()],
    )


__all__ = ["SimulationSummary", "derived_address", "run_lifecycle_simulation"]
