"""Merkle inclusion checks for authority-signed fulfillment batches.

Leaves commit to ``(claimant, amount, chain id, contract)`` using the
ABI encoding and double keccak256 of the standard Merkle tree convention.
Interior nodes hash the sorted pair of children, so proofs carry no
left/right flags. The root is bound to an epoch and wrapped in the
``personal_sign`` prefix before signature recovery.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from eth_abi import encode
from eth_abi.exceptions import EncodingError
from eth_utils import keccak, to_bytes

from .attestors import SignatureComponent, ThresholdSignatureValidator
from .identity import normalize_address

SIGNED_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n32"

ProofNode = Union[bytes, str]


def as_bytes32(value: ProofNode) -> bytes:
    data = value if isinstance(value, bytes) else to_bytes(hexstr=value)
    if len(data) != 32:
        raise ValueError("expected a 32-byte hash")
    return data


def fulfillment_leaf(claimant: str, amount: int, chain_id: int, contract: str) -> bytes:
    encoded = encode(
        ["address", "uint256", "uint256", "address"],
        [normalize_address(claimant), amount, chain_id, normalize_address(contract)],
    )
    return keccak(keccak(encoded))


def hash_pair(left: bytes, right: bytes) -> bytes:
    return keccak(left + right) if left <= right else keccak(right + left)


def process_proof(leaf: bytes, proof: Sequence[ProofNode]) -> bytes:
    computed = leaf
    for node in proof:
        computed = hash_pair(computed, as_bytes32(node))
    return computed


def epoch_message_hash(root: bytes, epoch: int) -> bytes:
    return keccak(encode(["bytes32", "uint64"], [root, epoch]))


def signed_message_digest(message_hash: bytes) -> bytes:
    """Digest produced by ``eth_sign``/``personal_sign`` over a 32-byte hash."""

    return keccak(SIGNED_MESSAGE_PREFIX + message_hash)


class MerkleFulfillmentVerifier:
    """Binds a fulfillment claim to this deployment and checks its quorum."""

    def __init__(self, validator: ThresholdSignatureValidator, *, chain_id: int, contract_address: str) -> None:
        self._validator = validator
        self.chain_id = chain_id
        self.contract_address = normalize_address(contract_address)

    def leaf(self, claimant: str, amount: int) -> bytes:
        return fulfillment_leaf(claimant, amount, self.chain_id, self.contract_address)

    def root(self, claimant: str, amount: int, proof: Sequence[ProofNode]) -> bytes:
        return process_proof(self.leaf(claimant, amount), proof)

    def digest(self, root: bytes, epoch: int) -> bytes:
        return signed_message_digest(epoch_message_hash(root, epoch))

    def verify(
        self,
        claimant: str,
        amount: int,
        epoch: int,
        proof: Sequence[ProofNode],
        v: Sequence[SignatureComponent],
        r: Sequence[SignatureComponent],
        s: Sequence[SignatureComponent],
    ) -> bool:
        try:
            root = self.root(claimant, amount, proof)
        except (EncodingError, TypeError, ValueError):
            return False
        return self._validator.validate(self.digest(root, epoch), v, r, s)


@dataclass
class FulfillmentTree:
    """Authority-side tree over fulfillment leaves.

    Odd nodes are promoted unchanged to the next level.
    """

    leaves: List[bytes]
    layers: List[List[bytes]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.leaves:
            raise ValueError("a fulfillment tree needs at least one leaf")
        self.layers = [list(self.leaves)]
        while len(self.layers[-1]) > 1:
            current = self.layers[-1]
            parents = [
                hash_pair(current[index], current[index + 1]) if index + 1 < len(current) else current[index]
                for index in range(0, len(current), 2)
            ]
            self.layers.append(parents)

    @property
    def root(self) -> bytes:
        return self.layers[-1][0]

    def index_of(self, leaf: bytes) -> Optional[int]:
        try:
            return self.leaves.index(leaf)
        except ValueError:
            return None

    def proof(self, index: int) -> List[bytes]:
        if not 0 <= index < len(self.leaves):
            raise IndexError(f"leaf index {index} out of range")
        path: List[bytes] = []
        for layer in self.layers[:-1]:
            sibling = index ^ 1
            if sibling < len(layer):
                path.append(layer[sibling])
            index //= 2
        return path


__all__ = [
    "FulfillmentTree",
    "MerkleFulfillmentVerifier",
    "SIGNED_MESSAGE_PREFIX",
    "as_bytes32",
    "epoch_message_hash",
    "fulfillment_leaf",
    "hash_pair",
    "process_proof",
    "signed_message_digest",
]
