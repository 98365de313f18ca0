from __future__ import annotations

from typing import Callable, List

import pytest

from custody_staking.clock import ManualClock
from custody_staking.config import DeploymentConfig
from custody_staking.deployment import CustodyDeployment
from custody_staking.identity import normalize_address
from custody_staking.signers import FulfillmentBatchBuilder, FulfillmentBundle, LocalAttestorSigner, sort_signers
from custody_staking.token import InMemoryToken

from staking_constants import ADMIN, CHAIN_ID, CONTRACT, OTHER_STAKER, POOL, STAKER, TOKEN, UNBONDING, UNIT


@pytest.fixture()
def config() -> DeploymentConfig:
    return DeploymentConfig(
        chain_id=CHAIN_ID,
        contract_address=CONTRACT,
        pool_address=POOL,
        token_address=TOKEN,
        admin_address=ADMIN,
        unbonding_period_seconds=UNBONDING,
    )


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock(start=1_700_000_000)


@pytest.fixture()
def token() -> InMemoryToken:
    return InMemoryToken(TOKEN)


@pytest.fixture()
def deployment(config: DeploymentConfig, token: InMemoryToken, clock: ManualClock) -> CustodyDeployment:
    return CustodyDeployment(config, token=token, clock=clock)


@pytest.fixture()
def signers() -> List[LocalAttestorSigner]:
    return sort_signers(LocalAttestorSigner.from_seed(f"attestor-{index}") for index in range(3))


@pytest.fixture()
def live(deployment: CustodyDeployment, signers: List[LocalAttestorSigner], token: InMemoryToken) -> CustodyDeployment:
    """Deployment with two-of-three attestors, open gate and a funded staker."""

    deployment.update_attestors_and_threshold(ADMIN, [signer.address for signer in signers], 2)
    deployment.unpause(ADMIN)
    for account in (STAKER, OTHER_STAKER):
        deployment.grant_staker(ADMIN, account)
        token.mint(account, 10_000 * UNIT)
        token.approve(account, CONTRACT, 10_000 * UNIT)
    return deployment


@pytest.fixture()
def bundle_for(signers: List[LocalAttestorSigner]) -> Callable[..., FulfillmentBundle]:
    def _build(
        claimant: str = STAKER,
        amount: int = 1_000 * UNIT,
        epoch: int = 1,
        *,
        cosigners: List[LocalAttestorSigner] | None = None,
        chain_id: int = CHAIN_ID,
        contract: str = CONTRACT,
    ) -> FulfillmentBundle:
        builder = FulfillmentBatchBuilder(chain_id=chain_id, contract_address=contract)
        claims = [(claimant, amount), ("0x00000000000000000000000000000000000f111e", 1)]
        if normalize_address(claimant) != normalize_address(OTHER_STAKER):
            claims.append((OTHER_STAKER, 5 * UNIT))
        bundles = builder.build(
            claims,
            epoch=epoch,
            signers=signers if cosigners is None else cosigners,
        )
        return bundles[normalize_address(claimant)]

    return _build


@pytest.fixture()
def claimed(live: CustodyDeployment, clock: ManualClock) -> Callable[..., None]:
    """Drive ``account`` from UNSTAKED to UNSTAKE_CLAIMED."""

    def _claim(account: str = STAKER, amount: int = 1_000 * UNIT) -> None:
        live.stake(account, amount)
        live.initiate_unstake(account, amount)
        clock.advance(UNBONDING)
        live.claim_unstake(account)

    return _claim
