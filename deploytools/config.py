"""
Network and environment settings for deployment runs
"""

import os
from typing import List, Optional

from dotenv import load_dotenv
from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware

# Load environment variables from .env file
load_dotenv()

PROVIDER_URL_VARS = {
    "mainnet": "PROVIDER_URL",
    "base": "BASE_PROVIDER_URL",
    "sonic": "SONIC_PROVIDER_URL",
    "holesky": "HOLESKY_PROVIDER_URL",
    "arbitrumOne": "ARBITRUM_PROVIDER_URL",
    "plume": "PLUME_PROVIDER_URL",
}

# Chains producing blocks with oversized extraData
POA_NETWORKS = ("base", "sonic", "holesky", "plume")

DEFAULT_LOCAL_PROVIDER_URL = "http://localhost:8545"


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


def _env_address(name: str) -> Optional[str]:
    value = os.getenv(name)
    if not value:
        return None
    return Web3.to_checksum_address(value)


def require_address(name: str) -> str:
    """Checksummed address from the environment, for addresses used by deploy scripts"""
    address = _env_address(name)
    if not address:
        raise Exception(f"{name} not found in environment")
    return address


class NetworkConfig:
    """Settings of a single deployment run, read from the environment"""

    def __init__(self, network: Optional[str] = None, fork: Optional[bool] = None):
        self.network = network or os.getenv("NETWORK", "hardhat")
        self.fork = _env_flag("FORK") if fork is None else fork
        self.fork_network = self._fork_network() if self.fork else None
        self.fork_test = _env_flag("FORK_TEST")
        self.smoke_test = _env_flag("SMOKE_TEST")
        self.ci = _env_flag("CI")
        self.verbose = _env_flag("VERBOSE")

        self.local_provider_url = os.getenv("LOCAL_PROVIDER_URL", DEFAULT_LOCAL_PROVIDER_URL)
        self.gas_multiplier = float(os.getenv("GAS_MULTIPLIER", "0") or 0)
        self.slack_webhook = os.getenv("SLACK_WEBHOOK")

        # Named accounts
        self.deployer_addr = _env_address("DEPLOYER_ADDR")
        self.deployer_pk = os.getenv("DEPLOYER_PK")
        self.governor_addr = _env_address("GOVERNOR_ADDR")
        self.governor_six_addr = _env_address("GOVERNOR_SIX_ADDR")
        self.timelock_addr = _env_address("TIMELOCK_ADDR")
        self.guardian_addr = _env_address("GUARDIAN_ADDR")

        self.artifacts_dir = os.getenv("ARTIFACTS_DIR", os.path.join(os.getcwd(), "artifacts"))
        self.deployments_root = os.getenv("DEPLOYMENTS_DIR", os.path.join(os.getcwd(), "deployments"))
        self.safe_json_dir = os.getenv("SAFE_JSON_DIR", os.getcwd())

        if self.deployer_pk and not self.deployer_addr:
            from eth_account import Account
            self.deployer_addr = Account.from_key(self.deployer_pk).address

    def _fork_network(self) -> str:
        """Chain a fork runs against: a live network name wins over FORK_NETWORK_NAME"""
        if self.network in PROVIDER_URL_VARS:
            return self.network
        return os.getenv("FORK_NETWORK_NAME", "mainnet")

    @property
    def chain(self) -> str:
        """Name of the chain whose state the run operates on"""
        return self.fork_network if self.fork else self.network

    @property
    def is_mainnet(self) -> bool:
        return self.network == "mainnet" and not self.fork

    @property
    def is_fork(self) -> bool:
        return self.fork

    @property
    def is_fork_test(self) -> bool:
        return self.fork and self.fork_test

    @property
    def is_test(self) -> bool:
        return self.network == "hardhat" and not self.fork

    @property
    def is_mainnet_or_fork(self) -> bool:
        return self.is_mainnet or self.fork

    @property
    def is_smoke_test(self) -> bool:
        return self.smoke_test

    @property
    def is_holesky(self) -> bool:
        return self.chain == "holesky" and not self.fork

    @property
    def is_sonic(self) -> bool:
        return self.chain == "sonic" and not self.fork

    @property
    def is_base(self) -> bool:
        return self.chain == "base" and not self.fork

    @property
    def is_arbitrum_one(self) -> bool:
        return self.chain == "arbitrumOne" and not self.fork

    @property
    def is_base_fork(self) -> bool:
        return self.fork and self.fork_network == "base"

    @property
    def is_sonic_fork(self) -> bool:
        return self.fork and self.fork_network == "sonic"

    @property
    def num_confirmations(self) -> int:
        """Blocks to wait on top of a receipt before a transaction counts as final"""
        if self.is_mainnet:
            return 3
        if self.is_holesky or self.is_sonic:
            return 4
        return 0

    @property
    def chain_provider_url(self) -> Optional[str]:
        """Upstream RPC of the chain (also what a fork was started from)"""
        return os.getenv(PROVIDER_URL_VARS.get(self.chain, "PROVIDER_URL"))

    @property
    def rpc_url(self) -> str:
        if self.fork or self.network in ("hardhat", "localhost"):
            return self.local_provider_url
        url = self.chain_provider_url
        if not url:
            raise Exception(f"{PROVIDER_URL_VARS.get(self.network, 'PROVIDER_URL')} not found in environment")
        return url

    @property
    def deployments_network(self) -> str:
        """Directory name under deployments/ holding records for this run"""
        if self.fork:
            return "hardhat" if self.fork_test else "localhost"
        return self.network

    def deployments_dir(self) -> str:
        return os.path.join(self.deployments_root, self.deployments_network)

    @property
    def allowed_proxy_governors(self) -> List[str]:
        """Timelocks a proxy may be initialised with"""
        raw = os.getenv("ALLOWED_PROXY_GOVERNORS", "")
        governors = [addr.strip().lower() for addr in raw.split(",") if addr.strip()]
        if self.timelock_addr and self.timelock_addr.lower() not in governors:
            governors.append(self.timelock_addr.lower())
        return governors

    def connect(self) -> Web3:
        """Initialize Web3 connection"""
        w3 = Web3(Web3.HTTPProvider(self.rpc_url))
        if self.chain in POA_NETWORKS:
            w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        if not w3.is_connected():
            raise ConnectionError(f"Could not connect to RPC URL: {self.rpc_url}")
        return w3

    def __repr__(self):
        mode = f"fork of {self.fork_network}" if self.fork else self.network
        return f"<NetworkConfig {mode}>"
