"""Custody staking with attestor-certified releases.

Accounts stake a fungible token into a custody pool and get it back only
after a threshold of the remote authority's attestors signs a Merkle root
that commits to the release. The package collects the lifecycle state
machine, the threshold signature validator, Merkle fulfillment checks, the
custody pool and its pause gate, plus the deployment wiring around them.
"""

from .access import AccessPolicy, Capability
from .attestors import AttestorRegistry, AttestorSet, ThresholdSignatureValidator, recover_signer
from .clock import ManualClock, SystemClock
from .config import DeploymentConfig, load_config
from .deployment import CustodyDeployment
from .errors import (
    AuthorizationFailure,
    BelowMinimumStake,
    CustodyError,
    EnforcedPause,
    EpochOutOfRange,
    InsufficientPoolBalance,
    InvalidAttestorSet,
    InvalidGateState,
    InvalidSignature,
    InvalidStakerState,
    MissingCapability,
    NotWhitelisted,
    PendingFulfillment,
    PreconditionViolation,
    ResourceExhaustion,
    StaleEpoch,
    StateViolation,
    TokenTransferFailed,
    UnstakeNotUnbonded,
    ZeroAddress,
    ZeroAmount,
)
from .events import Event, EventBus
from .merkle import FulfillmentTree, MerkleFulfillmentVerifier
from .pause import PauseGate
from .pool import CustodyPool
from .signers import FulfillmentBatchBuilder, FulfillmentBundle, LocalAttestorSigner
from .staking import StakerRecord, StakerState, StakerStateMachine
from .token import InMemoryToken, TokenLedger

__all__ = [
    "AccessPolicy",
    "AttestorRegistry",
    "AttestorSet",
    "AuthorizationFailure",
    "BelowMinimumStake",
    "Capability",
    "CustodyDeployment",
    "CustodyError",
    "CustodyPool",
    "DeploymentConfig",
    "EnforcedPause",
    "EpochOutOfRange",
    "Event",
    "EventBus",
    "FulfillmentBatchBuilder",
    "FulfillmentBundle",
    "FulfillmentTree",
    "InMemoryToken",
    "InsufficientPoolBalance",
    "InvalidAttestorSet",
    "InvalidGateState",
    "InvalidSignature",
    "InvalidStakerState",
    "LocalAttestorSigner",
    "ManualClock",
    "MerkleFulfillmentVerifier",
    "MissingCapability",
    "NotWhitelisted",
    "PauseGate",
    "PendingFulfillment",
    "PreconditionViolation",
    "ResourceExhaustion",
    "StakerRecord",
    "StakerState",
    "StakerStateMachine",
    "StaleEpoch",
    "StateViolation",
    "SystemClock",
    "ThresholdSignatureValidator",
    "TokenLedger",
    "TokenTransferFailed",
    "UnstakeNotUnbonded",
    "ZeroAddress",
    "ZeroAmount",
    "load_config",
    "recover_signer",
]
