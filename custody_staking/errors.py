"""Error taxonomy for custody staking operations.

Every failure aborts the operation that raised it. The categories let callers
tell a malformed request apart from a lifecycle violation, a failed
authorization and an underfunded pool.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class CustodyError(RuntimeError):
    """Base class for all custody staking failures."""

    code = "CUSTODY_ERROR"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": str(self)}
        if self.details:
            payload["details"] = {key: _jsonable(value) for key, value in self.details.items()}
        return payload


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.name
    return value


# ---------------------------------------------------------------------------
# Precondition violations
# ---------------------------------------------------------------------------


class PreconditionViolation(CustodyError, ValueError):
    code = "PRECONDITION_VIOLATION"


class ZeroAmount(PreconditionViolation):
    code = "ZERO_AMOUNT"

    def __init__(self) -> None:
        super().__init__("amount must be greater than zero")


class ZeroAddress(PreconditionViolation):
    code = "ZERO_ADDRESS"

    def __init__(self, field: str) -> None:
        super().__init__(f"{field} must not be the zero address", field=field)


class BelowMinimumStake(PreconditionViolation):
    code = "BELOW_MINIMUM_STAKE"

    def __init__(self, amount: int, minimum: int) -> None:
        super().__init__(
            f"stake amount {amount} is below the minimum of {minimum}",
            amount=amount,
            minimum=minimum,
        )


class EpochOutOfRange(PreconditionViolation):
    code = "EPOCH_OUT_OF_RANGE"

    def __init__(self, epoch: int) -> None:
        super().__init__(f"epoch {epoch} does not fit in an unsigned 64-bit integer", epoch=epoch)


class InvalidAttestorSet(PreconditionViolation):
    code = "INVALID_ATTESTOR_SET"


# ---------------------------------------------------------------------------
# State violations
# ---------------------------------------------------------------------------


class StateViolation(CustodyError):
    code = "STATE_VIOLATION"


class InvalidStakerState(StateViolation):
    code = "INVALID_STAKER_STATE"

    def __init__(self, actual: Any, required: Any) -> None:
        super().__init__(
            f"staker is in state {actual.name}, operation requires {required.name}",
            actual=actual,
            required=required,
        )
        self.actual = actual
        self.required = required


class StaleEpoch(StateViolation):
    code = "STALE_EPOCH"

    def __init__(self, epoch: int, last_fulfilled_epoch: int) -> None:
        super().__init__(
            f"epoch {epoch} is not newer than last fulfilled epoch {last_fulfilled_epoch}",
            epoch=epoch,
            last_fulfilled_epoch=last_fulfilled_epoch,
        )
        self.epoch = epoch
        self.last_fulfilled_epoch = last_fulfilled_epoch


class PendingFulfillment(StateViolation):
    code = "PENDING_FULFILLMENT"

    def __init__(self) -> None:
        super().__init__("a claimed unstake is awaiting fulfillment")


class UnstakeNotUnbonded(StateViolation):
    code = "UNSTAKE_NOT_UNBONDED"

    def __init__(self, requested_at: int, available_at: int) -> None:
        super().__init__(
            f"unstake requested at {requested_at} cannot be claimed before {available_at}",
            requested_at=requested_at,
            available_at=available_at,
        )
        self.requested_at = requested_at
        self.available_at = available_at


class EnforcedPause(StateViolation):
    code = "ENFORCED_PAUSE"

    def __init__(self) -> None:
        super().__init__("unstake operations are paused")


class InvalidGateState(StateViolation):
    code = "INVALID_GATE_STATE"


# ---------------------------------------------------------------------------
# Authorization failures
# ---------------------------------------------------------------------------


class AuthorizationFailure(CustodyError, PermissionError):
    code = "AUTHORIZATION_FAILURE"


class InvalidSignature(AuthorizationFailure):
    code = "INVALID_SIGNATURE"

    def __init__(self) -> None:
        super().__init__("insufficient valid attestor quorum")


class NotWhitelisted(AuthorizationFailure):
    code = "NOT_WHITELISTED"

    def __init__(self, caller: str) -> None:
        super().__init__(f"{caller} may not withdraw from the custody pool", caller=caller)


class MissingCapability(AuthorizationFailure):
    code = "MISSING_CAPABILITY"

    def __init__(self, caller: str, capability: Any) -> None:
        super().__init__(
            f"{caller} lacks the {capability.name} capability",
            caller=caller,
            capability=capability,
        )
        self.capability = capability


# ---------------------------------------------------------------------------
# Resource exhaustion and external failures
# ---------------------------------------------------------------------------


class ResourceExhaustion(CustodyError):
    code = "RESOURCE_EXHAUSTION"


class InsufficientPoolBalance(ResourceExhaustion):
    code = "INSUFFICIENT_POOL_BALANCE"

    def __init__(self, available: int, requested: int) -> None:
        super().__init__(
            f"custody pool holds {available}, cannot release {requested}",
            available=available,
            requested=requested,
        )


class TokenTransferFailed(CustodyError):
    code = "TOKEN_TRANSFER_FAILED"

    def __init__(self, sender: str, recipient: str, amount: int) -> None:
        super().__init__(
            f"token transfer of {amount} from {sender} to {recipient} failed",
            sender=sender,
            recipient=recipient,
            amount=amount,
        )


__all__ = [
    "AuthorizationFailure",
    "BelowMinimumStake",
    "CustodyError",
    "EnforcedPause",
    "EpochOutOfRange",
    "InsufficientPoolBalance",
    "InvalidAttestorSet",
    "InvalidGateState",
    "InvalidSignature",
    "InvalidStakerState",
    "MissingCapability",
    "NotWhitelisted",
    "PendingFulfillment",
    "PreconditionViolation",
    "ResourceExhaustion",
    "StaleEpoch",
    "StateViolation",
    "TokenTransferFailed",
    "UnstakeNotUnbonded",
    "ZeroAddress",
    "ZeroAmount",
]
