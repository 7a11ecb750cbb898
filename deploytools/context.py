"""
Deploy context handed to every migration function
"""

import logging
from typing import Any, Dict, List, Optional, Union

from web3 import Web3

from . import fork
from .artifacts import DeploymentStore, contract_at, get_contract, load_abi
from .config import NetworkConfig
from .errors import UnsupportedNetwork
from .proposal import ProposalAction, encode_function_call
from .transactions import (
    Sender,
    TransactionResult,
    deploy_with_confirmation,
    get_tx_opts,
    log as deploy_log,
    with_confirmation,
)

logger = logging.getLogger(__name__)


class DeployContext:
    """Web3 connection, named accounts and deployment records of a run"""

    def __init__(self, config: NetworkConfig, w3: Optional[Web3] = None,
                 store: Optional[DeploymentStore] = None):
        self.config = config
        self.w3 = w3 if w3 is not None else config.connect()
        self.store = store if store is not None else DeploymentStore(config.deployments_dir())

        if not config.deployer_addr:
            raise Exception("DEPLOYER_ADDR or DEPLOYER_PK not found in environment")
        self.deployer = Sender(config.deployer_addr, config.deployer_pk)
        self.guardian = Sender(config.guardian_addr) if config.guardian_addr else None

    # --- Accounts ---

    def account(self, address: str) -> Sender:
        """Sender for an account unlocked on the node"""
        return Sender(address)

    def impersonate(self, address: str) -> Sender:
        """Impersonates and funds an account. Only applicable on Fork."""
        if not self.config.is_fork:
            raise UnsupportedNetwork(f"Impersonating {address} only works on Fork")
        fork.impersonate_and_fund(self.w3, address)
        return Sender(address)

    def impersonate_guardian(self, guardian_addr: Optional[str] = None) -> Sender:
        guardian_addr = guardian_addr or self.config.guardian_addr
        if not guardian_addr:
            raise Exception("GUARDIAN_ADDR not found in environment")
        sender = self.impersonate(guardian_addr)
        self.log(f"Impersonated Guardian at {sender.address}")
        return sender

    # --- Transactions ---

    def log(self, msg: str, deploy_result: Optional[TransactionResult] = None):
        deploy_log(msg, self.config, deploy_result)

    def get_tx_opts(self, gas_limit: Optional[int] = None) -> Dict[str, Any]:
        return get_tx_opts(self.w3, self.config, gas_limit)

    def with_confirmation(self, tx_hash, log_abi: Optional[List[Dict[str, Any]]] = None) -> TransactionResult:
        return with_confirmation(self.w3, self.config, tx_hash, log_abi)

    def send(self, call, sender: Optional[Sender] = None, gas_limit: Optional[int] = None,
             log_abi: Optional[List[Dict[str, Any]]] = None) -> TransactionResult:
        """Sends a bound contract call (deployer by default) and waits for confirmation"""
        sender = sender or self.deployer
        tx_hash = sender.send(self.w3, call, self.get_tx_opts(gas_limit))
        return self.with_confirmation(tx_hash, log_abi)

    def send_action(self, action: ProposalAction, sender: Optional[Sender] = None,
                    gas_limit: Optional[int] = None) -> TransactionResult:
        """Sends a proposal action as a plain call, bypassing the governor"""
        sender = sender or self.deployer
        data = encode_function_call(action.signature, action.args)
        tx_hash = sender.send_raw(self.w3, action.target, data, tx_opts=self.get_tx_opts(gas_limit))
        return self.with_confirmation(tx_hash)

    def deploy_with_confirmation(self, contract_name: str, args: Optional[List[Any]] = None,
                                 contract: Optional[str] = None,
                                 gas_limit: Optional[int] = None) -> TransactionResult:
        return deploy_with_confirmation(
            self.w3, self.config, self.store, self.deployer,
            contract_name, args=args, contract=contract, gas_limit=gas_limit,
        )

    # --- Contracts ---

    def get_contract(self, name: str):
        return get_contract(self.w3, self.store, name)

    def contract_at(self, abi_or_name: Union[str, List[Dict[str, Any]]], address: str):
        return contract_at(self.w3, abi_or_name, address, self.config.artifacts_dir)

    def _named_contract(self, abi_name: str, address: Optional[str], env_name: str):
        if not address:
            raise Exception(f"{env_name} not found in environment")
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=load_abi(abi_name))

    def governor(self, address: Optional[str] = None):
        """Legacy governor (itself a timelock)"""
        return self._named_contract("governor", address or self.config.governor_addr, "GOVERNOR_ADDR")

    def governor_six(self):
        """Token-vote governor"""
        return self._named_contract("governor_six", self.config.governor_six_addr, "GOVERNOR_SIX_ADDR")

    def timelock(self):
        """Timelock controller executing the token-vote governor's proposals"""
        return self._named_contract("timelock_controller", self.config.timelock_addr, "TIMELOCK_ADDR")

    def chain_id(self) -> int:
        return self.w3.eth.chain_id
