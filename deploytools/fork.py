"""
Local node manipulation for forked networks (hardhat / anvil RPC methods)
"""

import logging
from typing import Union

from web3 import Web3

logger = logging.getLogger(__name__)

DEFAULT_FUND_ETH = 10000


def _rpc(w3: Web3, method: str, params: list):
    return w3.manager.request_blocking(method, params)


def _word(value: Union[int, str, bytes]) -> str:
    """32 byte hex word as the storage RPC methods expect it"""
    if isinstance(value, (bytes, bytearray)):
        value = int.from_bytes(value, "big")
    elif isinstance(value, str):
        value = int(value, 16)
    return "0x" + value.to_bytes(32, "big").hex()


def _quantity(value: Union[int, str, bytes]) -> str:
    if isinstance(value, (bytes, bytearray)):
        value = int.from_bytes(value, "big")
    elif isinstance(value, str):
        value = int(value, 16)
    return hex(value)


def set_balance(w3: Web3, address: str, wei: int):
    _rpc(w3, "hardhat_setBalance", [Web3.to_checksum_address(address), hex(wei)])


def impersonate_and_fund(w3: Web3, address: str, eth: int = DEFAULT_FUND_ETH) -> str:
    """Unlocks an account on the local node and gives it ETH for gas"""
    address = Web3.to_checksum_address(address)
    set_balance(w3, address, Web3.to_wei(eth, "ether"))
    _rpc(w3, "hardhat_impersonateAccount", [address])
    logger.debug(f"Impersonating {address}")
    return address


def set_storage_at(w3: Web3, address: str, slot: Union[int, str, bytes], value: Union[int, str, bytes]):
    _rpc(w3, "hardhat_setStorageAt", [Web3.to_checksum_address(address), _quantity(slot), _word(value)])


def get_storage_int(w3: Web3, address: str, slot: Union[int, str, bytes]) -> int:
    if isinstance(slot, (bytes, bytearray)):
        slot = int.from_bytes(slot, "big")
    elif isinstance(slot, str):
        slot = int(slot, 16)
    raw = w3.eth.get_storage_at(Web3.to_checksum_address(address), slot)
    return int.from_bytes(bytes(raw), "big")


def get_storage_word(w3: Web3, address: str, slot: Union[int, str, bytes]) -> bytes:
    return get_storage_int(w3, address, slot).to_bytes(32, "big")


def advance_time(w3: Web3, seconds: int):
    _rpc(w3, "evm_increaseTime", [int(seconds)])
    _rpc(w3, "evm_mine", [])


def advance_blocks(w3: Web3, blocks: int):
    _rpc(w3, "hardhat_mine", [hex(int(blocks))])


def block_timestamp(w3: Web3) -> int:
    return int(w3.eth.get_block("latest")["timestamp"])


# Storage layout of the token-vote governor and its timelock controller
VOTING_DELAY_SLOT = 0x4
VOTING_PERIOD_SLOT = 0x5
LATE_QUORUM_EXTENSION_SLOT = 0xB
TIMELOCK_MIN_DELAY_SLOT = 0x2

REDUCED_DURATIONS = {
    "voting_delay": 1,
    "voting_period": 60,
    "late_quorum_extension": 0,
    "min_delay": 5,
}

ORIGINAL_DURATIONS = {
    "voting_delay": 7200,
    "voting_period": 14400,
    "late_quorum_extension": 7200,
    "min_delay": 172800,
}


def configure_governance_contract_durations(w3: Web3, governor_six: str, timelock: str,
                                            reduce_queue_time: bool):
    """Rewrites governor and timelock durations directly in storage"""
    if reduce_queue_time:
        logger.info(
            "Reducing required voting delay to 1 block and voting period to 60 blocks "
            "vote extension on late vote to 0 and timelock min delay to 5 seconds"
        )
        durations = REDUCED_DURATIONS
    else:
        logger.info(
            "Setting back original values of required voting delay to 7200 blocks and "
            "voting period to 14400 blocks vote extension on late vote to 7200 and "
            "timelock min delay to 172800 seconds"
        )
        durations = ORIGINAL_DURATIONS

    set_storage_at(w3, governor_six, VOTING_DELAY_SLOT, durations["voting_delay"])
    set_storage_at(w3, governor_six, VOTING_PERIOD_SLOT, durations["voting_period"])
    set_storage_at(w3, governor_six, LATE_QUORUM_EXTENSION_SLOT, durations["late_quorum_extension"])
    set_storage_at(w3, timelock, TIMELOCK_MIN_DELAY_SLOT, durations["min_delay"])
