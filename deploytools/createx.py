"""
Helpers for deterministic deployments through the CreateX factory
"""

from typing import Any, Union

from hexbytes import HexBytes
from web3 import Web3


def _to_bytes(part: Union[str, bytes, int]) -> bytes:
    if isinstance(part, int):
        return part.to_bytes(max(1, (part.bit_length() + 7) // 8), "big")
    if isinstance(part, str):
        return bytes(HexBytes(part))
    return bytes(part)


def createx_salt(*parts: Union[str, bytes, int]) -> str:
    """keccak256 of the concatenated parts (addresses, raw bytes, small integers)"""
    return Web3.to_hex(Web3.keccak(b"".join(_to_bytes(p) for p in parts)))


def encode_salt_for_createx(deployer: str, cross_chain_protection: bool, salt: str) -> str:
    """
    Salt understood by CreateX: deployer (20 bytes) || protection flag (1 byte) || 11 bytes of salt.

    A salt starting with the deployer address makes the deployment callable by
    the deployer only.
    """
    deployer_bytes = bytes(HexBytes(deployer)).rjust(20, b"\x00")
    flag = b"\x01" if cross_chain_protection else b"\x00"
    salt_bytes = bytes(HexBytes("0x" + salt[2:24]))
    return Web3.to_hex(deployer_bytes + flag + salt_bytes)


def deployed_address_from_receipt(receipt: Any, event_index: int = 1) -> str:
    """Address of the contract created by CreateX, read from ContractCreation topics[1]"""
    topic = HexBytes(receipt["logs"][event_index]["topics"][1])
    return Web3.to_checksum_address(topic[-20:])
