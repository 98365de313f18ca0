"""Addresses and amounts shared by the custody staking tests."""

from eth_utils import to_checksum_address

ADMIN = to_checksum_address("0x000000000000000000000000000000000000a11c")
CONTRACT = to_checksum_address("0x00000000000000000000000000000000000c0de1")
POOL = to_checksum_address("0x0000000000000000000000000000000000000b01")
TOKEN = to_checksum_address("0x000000000000000000000000000000000000701e")
STAKER = to_checksum_address("0x00000000000000000000000000000000005a4e01")
OTHER_STAKER = to_checksum_address("0x00000000000000000000000000000000005a4e02")
RELAYER = to_checksum_address("0x000000000000000000000000000000000000fee1")
CHAIN_ID = 11155111
UNIT = 10**18
UNBONDING = 7 * 86_400
