"""
Transaction submission and confirmation helpers
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from web3 import Web3
from web3.logs import DISCARD

from .artifacts import DeploymentStore, load_artifact
from .config import NetworkConfig
from .errors import ProxyGovernorMismatch, TransactionFailed

logger = logging.getLogger(__name__)

# initialize(address,address,bytes) of the upgradeable proxies
PROXY_INITIALIZE_SELECTOR = "0xcf7a1d77"

RECEIPT_TIMEOUT = 300
CONFIRMATION_POLL_INTERVAL = 2


@dataclass
class TransactionResult:
    """Outcome of a confirmed transaction or deployment"""
    tx_hash: str
    receipt: Any
    data: str = "0x"
    value: int = 0
    to: Optional[str] = None
    address: Optional[str] = None
    parsed_logs: List[Any] = field(default_factory=list)

    @property
    def gas_used(self) -> int:
        return int(self.receipt["gasUsed"])


def log(msg: str, config: NetworkConfig, deploy_result: Optional[TransactionResult] = None):
    """Deploy log: only emitted on mainnet, forks or with VERBOSE"""
    if config.is_mainnet_or_fork or config.verbose:
        if deploy_result is not None and deploy_result.receipt is not None:
            msg += f" Address: {deploy_result.address} Gas Used: {deploy_result.gas_used}"
        logger.info(msg)


def get_tx_opts(w3: Web3, config: NetworkConfig, gas_limit: Optional[int] = None) -> Dict[str, Any]:
    """Transaction overrides: explicit gas limit and scaled fees when GAS_MULTIPLIER is set"""
    opts: Dict[str, Any] = {}
    if gas_limit:
        opts["gas"] = int(gas_limit)
    if config.gas_multiplier:
        base_fee = w3.eth.get_block("latest")["baseFeePerGas"]
        priority_fee = w3.eth.max_priority_fee
        opts["maxPriorityFeePerGas"] = int(priority_fee * config.gas_multiplier)
        opts["maxFeePerGas"] = int((2 * base_fee + priority_fee) * config.gas_multiplier)
        logger.debug(f"Using fee data {opts}")
    return opts


class Sender:
    """Account sending transactions: signs locally with a key, or uses an unlocked node account"""

    def __init__(self, address: str, private_key: Optional[str] = None):
        self.address = Web3.to_checksum_address(address)
        self.private_key = private_key

    def _sign_and_send(self, w3: Web3, tx: Dict[str, Any]):
        signed_tx = w3.eth.account.sign_transaction(tx, self.private_key)
        return w3.eth.send_raw_transaction(signed_tx.raw_transaction)

    def send(self, w3: Web3, call, tx_opts: Optional[Dict[str, Any]] = None):
        """Sends a bound contract function or constructor, returns the transaction hash"""
        params = {"from": self.address, **(tx_opts or {})}
        if self.private_key:
            params["nonce"] = w3.eth.get_transaction_count(self.address, "pending")
            params["chainId"] = w3.eth.chain_id
            tx = call.build_transaction(params)
            return self._sign_and_send(w3, tx)
        return call.transact(params)

    def send_raw(self, w3: Web3, to: str, data: str, value: int = 0,
                 tx_opts: Optional[Dict[str, Any]] = None):
        """Sends plain calldata to an address"""
        tx = {
            "from": self.address,
            "to": Web3.to_checksum_address(to),
            "data": data,
            "value": int(value),
            **(tx_opts or {}),
        }
        if not self.private_key:
            return w3.eth.send_transaction(tx)
        tx["nonce"] = w3.eth.get_transaction_count(self.address, "pending")
        tx["chainId"] = w3.eth.chain_id
        if "gas" not in tx:
            tx["gas"] = w3.eth.estimate_gas(tx)
        if "maxFeePerGas" not in tx and "gasPrice" not in tx:
            tx["gasPrice"] = w3.eth.gas_price
        return self._sign_and_send(w3, tx)

    def __repr__(self):
        return f"<Sender {self.address}{' (key)' if self.private_key else ''}>"


def _skip_confirmations(config: NetworkConfig) -> bool:
    provider_url = config.chain_provider_url or ""
    return "rpc.tenderly.co" in provider_url or (config.is_test and not config.is_fork_test)


def _wait_for_confirmations(w3: Web3, block_number: int, confirmations: int):
    while w3.eth.block_number - block_number + 1 < confirmations:
        time.sleep(CONFIRMATION_POLL_INTERVAL)


def verify_proxy_initialized_with_correct_governor(data: str, config: NetworkConfig):
    """Second word of initialize(address,address,bytes) is the initial governor"""
    if config.is_sonic_fork:
        logger.info("Skipping proxy check on Sonic fork")
        return
    init_proxy_governor = ("0x" + data[10 + 64 + 24:10 + 64 + 64]).lower()
    if init_proxy_governor not in config.allowed_proxy_governors:
        raise ProxyGovernorMismatch(
            f"Proxy contract initialised with unexpected governor: {init_proxy_governor}"
        )


def parse_logs(w3: Web3, abi: List[Dict[str, Any]], receipt) -> List[Any]:
    """Decodes every receipt log matching an event of the ABI, in log order"""
    contract = w3.eth.contract(abi=abi)
    parsed = []
    for item in abi:
        if item.get("type") != "event":
            continue
        event = contract.events[item["name"]]()
        parsed.extend(event.process_receipt(receipt, errors=DISCARD))
    return sorted(parsed, key=lambda ev: ev["logIndex"])


def with_confirmation(w3: Web3, config: NetworkConfig, tx_hash,
                      log_abi: Optional[List[Dict[str, Any]]] = None) -> TransactionResult:
    """
    Waits for a sent transaction to be mined and confirmed.

    Blocks until the configured number of confirmations is reached (none on
    test networks), checks proxy initialisations for the expected governor and
    raises TransactionFailed on a reverted receipt. No retries.
    """
    receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=RECEIPT_TIMEOUT)
    tx_hash_hex = Web3.to_hex(tx_hash)

    if receipt["status"] != 1:
        raise TransactionFailed(tx_hash_hex, receipt)

    if _skip_confirmations(config):
        logger.debug("Skipping confirmation on Tenderly or for unit tests")
    elif config.num_confirmations > 0:
        _wait_for_confirmations(w3, receipt["blockNumber"], config.num_confirmations)

    tx = w3.eth.get_transaction(tx_hash)
    data = Web3.to_hex(tx["input"])
    result = TransactionResult(
        tx_hash=tx_hash_hex,
        receipt=receipt,
        data=data,
        value=int(tx.get("value", 0)),
        to=tx.get("to"),
        address=receipt.get("contractAddress"),
    )

    if data.startswith(PROXY_INITIALIZE_SELECTOR) and config.is_mainnet_or_fork:
        verify_proxy_initialized_with_correct_governor(data, config)

    if log_abi:
        result.parsed_logs = parse_logs(w3, log_abi, receipt)

    return result


def deploy_with_confirmation(w3: Web3, config: NetworkConfig, store: DeploymentStore,
                             sender: Sender, contract_name: str, args: Optional[List[Any]] = None,
                             contract: Optional[str] = None,
                             gas_limit: Optional[int] = None) -> TransactionResult:
    """Deploys an artifact, confirms it and records it under contract_name"""
    artifact = load_artifact(contract or contract_name, config.artifacts_dir)
    args = list(args or [])
    factory = w3.eth.contract(abi=artifact["abi"], bytecode=artifact["bytecode"])

    tx_hash = sender.send(w3, factory.constructor(*args), get_tx_opts(w3, config, gas_limit))
    result = with_confirmation(w3, config, tx_hash)

    store.save(contract_name, result.address, artifact["abi"], result.tx_hash, result.receipt, args)
    log(f"Deployed {contract_name}", config, result)
    return result
