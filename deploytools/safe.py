"""
Transaction batches for the Safe (multisig) transaction builder
"""

import json
import logging
import os
import time
from typing import Any, Dict, List, Optional

from .proposal import split_signature_types

logger = logging.getLogger(__name__)

TX_BUILDER_VERSION = "1.16.1"


def _abi_signature(item: Dict[str, Any]) -> str:
    def canonical(inp):
        if inp["type"].startswith("tuple"):
            inner = ",".join(canonical(c) for c in inp.get("components", []))
            return f"({inner}){inp['type'][len('tuple'):]}"
        return inp["type"]

    return f"{item['name']}({','.join(canonical(i) for i in item.get('inputs', []))})"


def construct_contract_method(abi: List[Dict[str, Any]], signature: str) -> Dict[str, Any]:
    """ABI description of a function as the transaction builder expects it"""
    for item in abi:
        if item.get("type") == "function" and _abi_signature(item) == signature:
            return {
                "inputs": item.get("inputs", []),
                "name": item["name"],
                "payable": item.get("stateMutability") == "payable",
            }
    raise ValueError(f"Function {signature} not found in ABI ({len(split_signature_types(signature))} args)")


def build_gnosis_safe_json(chain_id: int, safe_address: str, targets: List[str],
                           contract_methods: List[Dict[str, Any]],
                           contract_inputs_values: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "version": "1.0",
        "chainId": str(chain_id),
        "createdAt": int(time.time()),
        "meta": {
            "name": "Transaction Batch",
            "description": "",
            "txBuilderVersion": TX_BUILDER_VERSION,
            "createdFromSafeAddress": safe_address,
            "createdFromOwnerAddress": "",
        },
        "transactions": [
            {
                "to": target,
                "value": "0",
                "data": None,
                "contractMethod": contract_methods[i],
                "contractInputsValues": contract_inputs_values[i],
            }
            for i, target in enumerate(targets)
        ],
    }


def build_and_write_gnosis_json(chain_id: int, safe_address: str, targets: List[str],
                                contract_methods: List[Dict[str, Any]],
                                contract_inputs_values: List[Dict[str, Any]], name: str,
                                output_dir: str, ci: bool = False) -> Optional[str]:
    """Writes the batch next to the deploy scripts, returns the file path (None on CI)"""
    data = build_gnosis_safe_json(chain_id, safe_address, targets, contract_methods, contract_inputs_values)
    if ci:
        return None

    file_name = os.path.join(output_dir, f"{int(time.time() * 1000)}-{name}-gov-tx.json")
    with open(file_name, "w") as f:
        json.dump(data, f, indent=2)
    logger.info(f"Wrote Gnosis Safe JSON to {file_name}")
    return file_name
