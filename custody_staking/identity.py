"""Helpers for the Ethereum identities used throughout custody staking."""

from __future__ import annotations

from eth_typing import ChecksumAddress
from eth_utils import is_address, to_checksum_address

ZERO_ADDRESS: ChecksumAddress = to_checksum_address("0x" + "00" * 20)


def normalize_address(value: str) -> ChecksumAddress:
    """Return the EIP-55 form of ``value`` or raise ``ValueError``."""

    if not isinstance(value, str) or not is_address(value):
        raise ValueError(f"{value!r} is not a 20-byte hex address")
    return to_checksum_address(value)


def address_value(address: str) -> int:
    """Numeric value of an address; identities are ordered by this value."""

    return int(address, 16)


def is_zero_address(address: str) -> bool:
    return address_value(address) == 0


__all__ = ["ZERO_ADDRESS", "address_value", "is_zero_address", "normalize_address"]
