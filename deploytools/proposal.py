"""
Governance proposal data model and call encoding

A proposal is a named list of actions, each one a call of `signature` with
`args` on a target contract. It is turned into the argument lists of the
governor's propose() function right before submission.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import eth_abi
from hexbytes import HexBytes
from web3 import Web3


@dataclass
class ProposalAction:
    contract: Any
    signature: str
    args: Sequence[Any] = ()

    @property
    def target(self) -> str:
        address = self.contract if isinstance(self.contract, str) else self.contract.address
        return Web3.to_checksum_address(address)

    @classmethod
    def from_dict(cls, action: Dict[str, Any]) -> "ProposalAction":
        return cls(
            contract=action["contract"],
            signature=action["signature"],
            args=tuple(action.get("args") or ()),
        )


@dataclass
class Proposal:
    name: str
    actions: List[ProposalAction] = field(default_factory=list)
    opts: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, proposal: Dict[str, Any]) -> "Proposal":
        actions = [
            a if isinstance(a, ProposalAction) else ProposalAction.from_dict(a)
            for a in proposal.get("actions") or []
        ]
        return cls(name=proposal.get("name", ""), actions=actions, opts=dict(proposal.get("opts") or {}))

    @classmethod
    def coerce(cls, proposal: Union["Proposal", Dict[str, Any], None]) -> "Proposal":
        if proposal is None:
            return cls(name="")
        if isinstance(proposal, Proposal):
            return proposal
        return cls.from_dict(proposal)


def _split_top_level(inner: str) -> List[str]:
    parts = []
    depth = 0
    current = ""
    for char in inner:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += char
    if current:
        parts.append(current)
    return parts


def split_signature_types(signature: str) -> List[str]:
    """Argument types of a function signature, e.g. f(address,(uint256,bool)[])"""
    start = signature.find("(")
    if start < 0 or not signature.endswith(")"):
        raise ValueError(f"Malformed function signature: {signature}")
    return _split_top_level(signature[start + 1:-1])


def function_selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


def _normalize(abi_type: str, value: Any) -> Any:
    if not isinstance(value, (str, bytes)) and hasattr(value, "address"):
        value = value.address

    if abi_type.endswith("]"):
        element_type = abi_type[:abi_type.rindex("[")]
        return [_normalize(element_type, v) for v in value]
    if abi_type.startswith("("):
        component_types = _split_top_level(abi_type[1:-1])
        return tuple(_normalize(t, v) for t, v in zip(component_types, value))
    if abi_type == "address" and isinstance(value, str):
        return Web3.to_checksum_address(value)
    if abi_type.startswith("bytes") and isinstance(value, str):
        return bytes(HexBytes(value))
    return value


def encode_args(signature: str, args: Optional[Sequence[Any]] = None) -> bytes:
    """ABI encoded arguments, without the function selector"""
    types = split_signature_types(signature)
    args = list(args or [])
    if len(types) != len(args):
        raise ValueError(f"{signature} expects {len(types)} arguments, got {len(args)}")
    values = [_normalize(t, v) for t, v in zip(types, args)]
    return eth_abi.encode(types, values)


def encode_function_call(signature: str, args: Optional[Sequence[Any]] = None) -> str:
    return Web3.to_hex(function_selector(signature) + encode_args(signature, args))


def decode_args(signature: str, data: Union[str, bytes]) -> tuple:
    types = split_signature_types(signature)
    return eth_abi.decode(types, bytes(HexBytes(data)))


def propose_args(actions: Sequence[ProposalAction]) -> List[List[Any]]:
    """[targets, signatures, calldatas] for the legacy governor"""
    targets = [a.target for a in actions]
    signatures = [a.signature for a in actions]
    calldatas = [Web3.to_hex(encode_args(a.signature, a.args)) for a in actions]
    return [targets, signatures, calldatas]


def propose_governance_args(actions: Sequence[ProposalAction]) -> List[List[Any]]:
    """[targets, values, signatures, calldatas] for the token-vote governor"""
    targets, signatures, calldatas = propose_args(actions)
    return [targets, [0] * len(targets), signatures, calldatas]


def describe_action(i: int, target: str, signature: str, data: Union[str, bytes],
                    labels: Optional[Dict[str, str]] = None) -> str:
    """Human readable rendering of one proposal action"""
    labels = {k.lower(): v for k, v in (labels or {}).items()}

    def nice(address: str) -> str:
        label = labels.get(address.lower())
        return f"{label}   {address}" if label else address

    lines = [f"{i + 1}) {nice(target)}", f"     {signature}"]
    types = split_signature_types(signature)
    if not types:
        return "\n".join(lines)

    for abi_type, value in zip(types, decode_args(signature, data)):
        if abi_type == "address":
            lines.append(f" >>  {nice(Web3.to_checksum_address(value))}")
        elif abi_type == "bytes":
            lines.append(f" >>  {Web3.to_hex(value)}")
        else:
            lines.append(f" >>  {value}")
    return "\n".join(lines)
