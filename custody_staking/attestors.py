"""Attestor registry and threshold signature validation.

The registry keeps the external authority's signer set sorted by ascending
address value. Validation relies on that ordering: signatures must be supplied
ordered by ascending signer address so that a single forward pass over both
lists counts every attestor at most once. Signatures that are out of order,
repeated, or from non-members are simply not counted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError

from .access import AccessPolicy, Capability
from .errors import InvalidAttestorSet
from .events import EventBus
from .identity import ZERO_ADDRESS, address_value, normalize_address

logger = logging.getLogger(__name__)

MAX_THRESHOLD = 2**16 - 1
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

SignatureComponent = Union[int, bytes, str]


@dataclass(frozen=True)
class AttestorSet:
    members: Tuple[str, ...]
    threshold: int

    @classmethod
    def build(cls, members: Sequence[str], threshold: int) -> "AttestorSet":
        """Validate and normalise a candidate set.

        A strictly ascending list is also free of duplicates, and only the
        first entry needs an explicit zero-address check.
        """

        if not members:
            raise InvalidAttestorSet("attestor list must not be empty")
        try:
            normalized = tuple(normalize_address(member) for member in members)
        except ValueError as exc:
            raise InvalidAttestorSet(str(exc)) from exc
        if not isinstance(threshold, int) or isinstance(threshold, bool):
            raise InvalidAttestorSet("threshold must be an integer")
        if threshold <= 0:
            raise InvalidAttestorSet("threshold must be greater than zero")
        if threshold > MAX_THRESHOLD:
            raise InvalidAttestorSet(f"threshold must not exceed {MAX_THRESHOLD}")
        if len(normalized) < threshold:
            raise InvalidAttestorSet(
                f"threshold {threshold} exceeds the number of attestors ({len(normalized)})"
            )
        if address_value(normalized[0]) == 0:
            raise InvalidAttestorSet("attestor list must not contain the zero address")
        for previous, current in zip(normalized, normalized[1:]):
            if address_value(current) <= address_value(previous):
                raise InvalidAttestorSet("attestors must be strictly ascending without duplicates")
        return cls(members=normalized, threshold=threshold)

    @property
    def member_values(self) -> Tuple[int, ...]:
        return tuple(address_value(member) for member in self.members)


class AttestorRegistry:
    """Holds the current attestor set; replaced only as a whole."""

    def __init__(self, policy: AccessPolicy, bus: EventBus) -> None:
        self._policy = policy
        self._bus = bus
        self._current: Optional[AttestorSet] = None

    @property
    def current(self) -> Optional[AttestorSet]:
        return self._current

    def replace(self, caller: str, members: Sequence[str], threshold: int) -> AttestorSet:
        self._policy.require(caller, Capability.ADMIN)
        candidate = AttestorSet.build(members, threshold)
        self._current = candidate
        self._bus.emit("AttestorsUpdated", members=list(candidate.members), threshold=candidate.threshold)
        logger.info(
            "Attestor set replaced",
            extra={
                "event": "attestors_updated",
                "data": {"members": len(candidate.members), "threshold": candidate.threshold},
            },
        )
        return candidate


def _to_int(value: SignatureComponent) -> int:
    if isinstance(value, bool):
        raise TypeError("signature component must not be a boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, bytes):
        return int.from_bytes(value, "big")
    text = value.strip().lower()
    return int(text, 16) if text.startswith("0x") else int(text)


def recover_signer(digest: bytes, v: SignatureComponent, r: SignatureComponent, s: SignatureComponent) -> str:
    """Recover the address that signed ``digest``.

    Malformed or unrecoverable signatures map to the zero address, which can
    never be registered as an attestor.
    """

    try:
        v_value, r_value, s_value = _to_int(v), _to_int(r), _to_int(s)
    except (TypeError, ValueError):
        return ZERO_ADDRESS
    if v_value >= 27:
        v_value -= 27
    if v_value not in (0, 1):
        return ZERO_ADDRESS
    if not (0 < r_value < SECP256K1_N and 0 < s_value < SECP256K1_N):
        return ZERO_ADDRESS
    try:
        signature = keys.Signature(vrs=(v_value, r_value, s_value))
        public_key = signature.recover_public_key_from_msg_hash(digest)
    except (BadSignature, ValidationError, ValueError):
        return ZERO_ADDRESS
    return public_key.to_checksum_address()


class ThresholdSignatureValidator:
    """Counts distinct attestor signatures over a message digest."""

    def __init__(self, registry: AttestorRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> AttestorRegistry:
        return self._registry

    def update_attestors_and_threshold(self, caller: str, members: Sequence[str], threshold: int) -> AttestorSet:
        return self._registry.replace(caller, members, threshold)

    @property
    def attestors(self) -> Tuple[str, ...]:
        current = self._registry.current
        return current.members if current else tuple()

    @property
    def threshold(self) -> int:
        current = self._registry.current
        return current.threshold if current else 0

    def is_attestor(self, identity: str) -> bool:
        try:
            identity = normalize_address(identity)
        except ValueError:
            return False
        return identity in self.attestors

    def validate(
        self,
        digest: bytes,
        v: Sequence[SignatureComponent],
        r: Sequence[SignatureComponent],
        s: Sequence[SignatureComponent],
    ) -> bool:
        current = self._registry.current
        if current is None:
            return False
        count = len(v)
        if count == 0 or count != len(r) or count != len(s):
            return False
        members = current.member_values
        cursor = 0
        valid = 0
        for index in range(count):
            signer = address_value(recover_signer(digest, v[index], r[index], s[index]))
            while cursor < len(members) and members[cursor] < signer:
                cursor += 1
            if cursor == len(members):
                return False
            if members[cursor] == signer:
                valid += 1
                cursor += 1
                if valid >= current.threshold:
                    return True
        return False


__all__ = [
    "AttestorRegistry",
    "AttestorSet",
    "MAX_THRESHOLD",
    "ThresholdSignatureValidator",
    "recover_signer",
]
