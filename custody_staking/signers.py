"""Attestor-side signing helpers.

These produce fulfillment bundles in exactly the encoding the receiving side
verifies. They back the simulation CLI and the test-suite; a real authority
builds its batches with its own infrastructure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Protocol, Sequence, Tuple

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak

from .identity import address_value, normalize_address
from .merkle import FulfillmentTree, epoch_message_hash, fulfillment_leaf


@dataclass(frozen=True)
class AttestorSignature:
    signer: str
    v: int
    r: int
    s: int


class Signer(Protocol):
    """Protocol for objects able to co-sign fulfillment roots."""

    address: str

    def sign(self, message_hash: bytes) -> AttestorSignature:  # pragma: no cover - protocol
        """Sign ``message_hash`` under the signed-message prefix."""


class LocalAttestorSigner:
    """Signer backed by an in-process secp256k1 key."""

    def __init__(self, private_key: bytes | str) -> None:
        self._account = Account.from_key(private_key)
        self.address = self._account.address

    @classmethod
    def from_seed(cls, seed: str) -> "LocalAttestorSigner":
        """Deterministic key derivation for simulations; never use for real funds."""

        return cls(keccak(text=f"custody-staking-attestor:{seed}"))

    def sign(self, message_hash: bytes) -> AttestorSignature:
        signed = self._account.sign_message(encode_defunct(primitive=message_hash))
        return AttestorSignature(self.address, signed.v, signed.r, signed.s)


def sort_signers(signers: Iterable[Signer]) -> List[Signer]:
    return sorted(signers, key=lambda signer: address_value(signer.address))


def collect_signatures(signers: Iterable[Signer], message_hash: bytes) -> Tuple[List[int], List[int], List[int]]:
    """Sign with every signer and return ``(v, r, s)`` ordered by signer address."""

    signatures = [signer.sign(message_hash) for signer in sort_signers(signers)]
    return (
        [signature.v for signature in signatures],
        [signature.r for signature in signatures],
        [signature.s for signature in signatures],
    )


@dataclass
class FulfillmentBundle:
    claimant: str
    amount: int
    epoch: int
    proof: List[bytes]
    v: List[int] = field(default_factory=list)
    r: List[int] = field(default_factory=list)
    s: List[int] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-friendly form accepted by the relay endpoint."""

        return {
            "claimant": self.claimant,
            "amount": str(self.amount),
            "epoch": self.epoch,
            "proof": ["0x" + node.hex() for node in self.proof],
            "v": list(self.v),
            "r": [hex(value) for value in self.r],
            "s": [hex(value) for value in self.s],
        }


class FulfillmentBatchBuilder:
    """Builds a signed batch of fulfillments bound to one deployment."""

    def __init__(self, *, chain_id: int, contract_address: str) -> None:
        self.chain_id = chain_id
        self.contract_address = normalize_address(contract_address)

    def build(
        self,
        claims: Sequence[Tuple[str, int]],
        *,
        epoch: int,
        signers: Sequence[Signer],
    ) -> Dict[str, FulfillmentBundle]:
        if not claims:
            raise ValueError("at least one claim is required")
        normalized = [(normalize_address(claimant), int(amount)) for claimant, amount in claims]
        leaves = [
            fulfillment_leaf(claimant, amount, self.chain_id, self.contract_address)
            for claimant, amount in normalized
        ]
        tree = FulfillmentTree(leaves)
        v, r, s = collect_signatures(signers, epoch_message_hash(tree.root, epoch))
        bundles: Dict[str, FulfillmentBundle] = {}
        for index, (claimant, amount) in enumerate(normalized):
            bundles[claimant] = FulfillmentBundle(
                claimant=claimant,
                amount=amount,
                epoch=epoch,
                proof=tree.proof(index),
                v=list(v),
                r=list(r),
                s=list(s),
            )
        return bundles


__all__ = [
    "AttestorSignature",
    "FulfillmentBatchBuilder",
    "FulfillmentBundle",
    "LocalAttestorSigner",
    "Signer",
    "collect_signatures",
    "sort_signers",
]
