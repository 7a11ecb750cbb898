"""
Contract artifacts and the on-disk record of deployments
"""

import glob
import json
import logging
import os
import time
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Union

from web3 import Web3

from .errors import ArtifactNotFound, DeploymentNotFound

logger = logging.getLogger(__name__)

ABI_DIR = os.path.join(os.path.dirname(__file__), "abi")

MIGRATIONS_FILE = ".migrations.json"


def load_abi(name: str) -> List[Dict[str, Any]]:
    """Loads one of the ABIs bundled with this package (governor, timelock...)"""
    with open(os.path.join(ABI_DIR, f"{name}.json"), "r") as f:
        return json.load(f)


def load_artifact(name: str, artifacts_dir: str) -> Dict[str, Any]:
    """Loads a contract ABI and bytecode from its hardhat JSON artifact."""
    pattern = os.path.join(artifacts_dir, "**", f"{name}.json")
    matches = [m for m in glob.glob(pattern, recursive=True) if not m.endswith(".dbg.json")]
    if not matches:
        raise ArtifactNotFound(f"No artifact for {name} under {artifacts_dir}")
    with open(sorted(matches)[0], "r") as f:
        data = json.load(f)
    return {"abi": data["abi"], "bytecode": data.get("bytecode", "0x")}


def _jsonable(value):
    if isinstance(value, bytes):
        return Web3.to_hex(value)
    if isinstance(value, Mapping):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _write_json(path: str, data: Any):
    """Writes through a temporary file; nothing is written when serialization fails"""
    content = json.dumps(data, indent=2)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w") as f:
        f.write(content)
    os.replace(tmp_path, path)


class DeploymentStore:
    """Deployment records of a network, in the hardhat-deploy layout"""

    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, name: str) -> str:
        return os.path.join(self.directory, f"{name}.json")

    def has(self, name: str) -> bool:
        return os.path.exists(self._path(name))

    def get(self, name: str) -> Dict[str, Any]:
        if not self.has(name):
            raise DeploymentNotFound(f"No deployment named {name} in {self.directory}")
        with open(self._path(name), "r") as f:
            return json.load(f)

    def save(self, name: str, address: str, abi: List[Dict[str, Any]],
             tx_hash: Optional[str] = None, receipt: Optional[Dict[str, Any]] = None,
             args: Optional[List[Any]] = None):
        os.makedirs(self.directory, exist_ok=True)
        record = {
            "address": address,
            "abi": abi,
            "transactionHash": tx_hash,
            "receipt": _jsonable(receipt) if receipt is not None else None,
            "args": _jsonable(list(args or [])),
        }
        _write_json(self._path(name), record)
        logger.debug(f"Saved deployment record {name} at {address}")

    def migrations(self) -> Dict[str, int]:
        path = os.path.join(self.directory, MIGRATIONS_FILE)
        if not os.path.exists(path):
            return {}
        with open(path, "r") as f:
            return json.load(f)

    def record_migration(self, migration_id: str, timestamp: Optional[int] = None):
        migrations = self.migrations()
        migrations[migration_id] = int(time.time()) if timestamp is None else timestamp
        os.makedirs(self.directory, exist_ok=True)
        _write_json(os.path.join(self.directory, MIGRATIONS_FILE), migrations)


def contract_at(w3: Web3, abi_or_name: Union[str, List[Dict[str, Any]]], address: str,
                artifacts_dir: Optional[str] = None):
    """Binds an artifact (by name) or a raw ABI to an address"""
    if isinstance(abi_or_name, str):
        if artifacts_dir is None:
            raise ArtifactNotFound(f"Artifacts directory needed to resolve {abi_or_name}")
        abi = load_artifact(abi_or_name, artifacts_dir)["abi"]
    else:
        abi = abi_or_name
    return w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)


def get_contract(w3: Web3, store: DeploymentStore, name: str):
    """Contract bound to a recorded deployment"""
    record = store.get(name)
    return w3.eth.contract(address=Web3.to_checksum_address(record["address"]), abi=record["abi"])
