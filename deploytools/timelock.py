"""
Proposals scheduled directly on the timelock controller by the guardian multisig
"""

import json
import logging
from typing import Any, List

from web3 import Web3

from . import fork
from .artifacts import load_abi
from .context import DeployContext
from .proposal import function_selector
from .safe import build_and_write_gnosis_json, construct_contract_method

logger = logging.getLogger(__name__)

# keccak256("PROPOSER_ROLE")
PROPOSER_ROLE = "0xb09aa5aeb3702cfd50b6b62bc4532604938f21248a27a1d5ca736082b6819cc1"

NO_PREDECESSOR = "0x" + "00" * 32

SCHEDULE_BATCH_SIGNATURE = "scheduleBatch(address[],uint256[],bytes[],bytes32,bytes32,uint256)"
EXECUTE_BATCH_SIGNATURE = "executeBatch(address[],uint256[],bytes[],bytes32,bytes32)"

REDUCED_MIN_DELAY = 60
MIN_DELAY = 172800


def batch_payloads(signatures: List[str], calldatas: List[str]) -> List[str]:
    """Selector followed by the encoded arguments, for each action"""
    return [
        Web3.to_hex(function_selector(sig)) + calldatas[i][2:]
        for i, sig in enumerate(signatures)
    ]


def use_transition_governance(ctx: DeployContext) -> bool:
    """Whether the guardian may still schedule operations on the timelock"""
    timelock = ctx.timelock()
    return timelock.functions.hasRole(PROPOSER_ROLE, ctx.config.guardian_addr).call()


def handle_transition_governance(ctx: DeployContext, description: str, propose_governance_args: List[List[Any]]):
    """
    Schedules and executes a batch on the timelock.

    The Safe transaction builder files for scheduleBatch and executeBatch are
    always written; on a fork the guardian is impersonated and both steps are
    carried out.
    """
    config = ctx.config
    w3 = ctx.w3
    timelock = ctx.timelock()
    abi = load_abi("timelock_controller")

    targets, values, signatures, calldatas = propose_governance_args
    payloads = batch_payloads(signatures, calldatas)
    salt = Web3.to_hex(Web3.keccak(text=description))
    args = [targets, values, payloads, NO_PREDECESSOR, salt]

    op_hash = timelock.functions.hashOperationBatch(*args).call()
    logger.info(f"Proposal Hash {Web3.to_hex(op_hash)}")

    if timelock.functions.isOperationDone(op_hash).call():
        return

    is_scheduled = timelock.functions.isOperation(op_hash).call()
    reduce_time = not is_scheduled
    delay = timelock.functions.getMinDelay().call()

    guardian = ctx.impersonate_guardian() if config.is_fork else None
    chain_id = ctx.chain_id()

    if not is_scheduled:
        build_and_write_gnosis_json(
            chain_id,
            config.guardian_addr,
            [timelock.address],
            [construct_contract_method(abi, SCHEDULE_BATCH_SIGNATURE)],
            [{
                "targets": json.dumps(targets),
                "values": json.dumps([str(v) for v in values]),
                "payloads": json.dumps(payloads),
                "predecessor": NO_PREDECESSOR,
                "salt": salt,
                "delay": str(delay),
            }],
            "scheduleBatch",
            config.safe_json_dir,
            ci=config.ci,
        )

        if guardian:
            if reduce_time:
                ctx.log("Reducing required queue time to 60 seconds")
                fork.set_storage_at(w3, timelock.address, fork.TIMELOCK_MIN_DELAY_SLOT, REDUCED_MIN_DELAY)
            ctx.log("Scheduling batch on Timelock...")
            ctx.send(timelock.functions.scheduleBatch(*args, REDUCED_MIN_DELAY), sender=guardian)

    if guardian and not timelock.functions.isOperationReady(op_hash).call():
        ctx.log("Preparing to execute...")
        fork.advance_time(w3, timelock.functions.getMinDelay().call() + 10)
        fork.advance_blocks(w3, 2)

    build_and_write_gnosis_json(
        chain_id,
        config.guardian_addr,
        [timelock.address],
        [construct_contract_method(abi, EXECUTE_BATCH_SIGNATURE)],
        [{
            "targets": json.dumps(targets),
            "values": json.dumps([str(v) for v in values]),
            "payloads": json.dumps(payloads),
            "predecessor": NO_PREDECESSOR,
            "salt": salt,
        }],
        "executeBatch",
        config.safe_json_dir,
        ci=config.ci,
    )

    if guardian:
        ctx.log("Executing batch on Timelock...")
        ctx.send(timelock.functions.executeBatch(*args), sender=guardian)

        if reduce_time:
            ctx.log(f"Setting queue time back to {MIN_DELAY} seconds")
            fork.set_storage_at(w3, timelock.address, fork.TIMELOCK_MIN_DELAY_SLOT, MIN_DELAY)
