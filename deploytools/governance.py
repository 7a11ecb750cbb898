"""
Governance proposal flows

Two governors are supported: the legacy governor (itself a timelock, queue and
execute are called by its admin, the guardian multisig) and the token-vote
governor whose proposals are voted on and then executed through a timelock
controller. On forks every proposal is pushed through to execution by
rewriting the governance durations in storage and mining blocks.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import eth_abi
from web3 import Web3
from web3.exceptions import ContractLogicError

from . import fork
from .artifacts import load_abi
from .context import DeployContext
from .errors import ProposalStateError, UnsupportedNetwork
from .notifications import notify
from .proposal import describe_action, encode_function_call

logger = logging.getLogger(__name__)

PROPOSAL_STATES = ["New", "Queue", "Expired", "Executed"]

GOVERNANCE_PROPOSAL_STATES = [
    "Pending",
    "Active",
    "Canceled",
    "Defeated",
    "Succeeded",
    "Queued",
    "Expired",
    "Executed",
]

GOVERNANCE_PROPOSE_SIGNATURE = "propose(address[],uint256[],string[],bytes[],string)"

# Legacy governor storage: slot 2 is the queue delay
GOVERNOR_DELAY_SLOT = 0x2
REDUCED_QUEUE_DELAY = 60
QUEUE_DELAY = 172800
THREE_DAYS = 259200

# Token-vote governor storage
PROPOSALS_SLOT = 1
TIMELOCK_IDS_SLOT = 10
EXTENDED_DEADLINES_SLOT = 12
# Timelock controller storage
TIMELOCK_TIMESTAMPS_SLOT = 1

EXISTING_PROPOSAL_VOTING_DELAY = 7200
REDUCED_VOTING_BLOCKS = 10

STATE_TRIES = 3


def _mapping_slot(key_type: str, key: Any, slot: int) -> int:
    """Storage slot of mapping[key] for a mapping declared at `slot`"""
    return int.from_bytes(Web3.keccak(eth_abi.encode([key_type, "uint256"], [key, slot])), "big")


def get_proposal_state(governor_six, proposal_id: int) -> str:
    """
    State name of a token-vote governor proposal.

    Reading the state is retried a few times; a revert for an unknown proposal
    propagates once the tries are exhausted.
    """
    last_error = None
    for _ in range(STATE_TRIES):
        try:
            state = governor_six.functions.state(int(proposal_id)).call()
            return GOVERNANCE_PROPOSAL_STATES[state]
        except Exception as e:
            last_error = e
            logger.debug(f"Fetching state of proposal {proposal_id} failed: {e}")
    raise last_error


def account_can_create_proposal(governor_six, account: str) -> bool:
    w3 = governor_six.w3
    block_number = w3.eth.block_number - 1
    votes = governor_six.functions.getVotes(Web3.to_checksum_address(account), block_number).call()
    threshold = governor_six.functions.proposalThreshold().call()
    return votes >= threshold


def show_proposal_actions(governor, proposal_id: int, labels: Optional[Dict[str, str]] = None) -> List[str]:
    """Logs and returns the decoded actions of an existing proposal"""
    actions = governor.functions.getActions(int(proposal_id)).call()
    if len(actions) == 4:
        targets, _values, signatures, calldatas = actions
    else:
        targets, signatures, calldatas = actions

    described = [
        describe_action(i, target, signatures[i], calldatas[i], labels)
        for i, target in enumerate(targets)
    ]
    logger.info(f"Proposal {proposal_id} on {governor.address}:")
    for description in described:
        logger.info(description)
    return described


def _configure_durations(ctx: DeployContext, reduce_queue_time: bool):
    fork.configure_governance_contract_durations(
        ctx.w3, ctx.governor_six().address, ctx.timelock().address, reduce_queue_time
    )


# --- Legacy governor ---

def execute_proposal(ctx: DeployContext, propose_args: List[List[Any]], description: str,
                     governor_addr: Optional[str] = None, guardian_addr: Optional[str] = None,
                     reduce_queue_time: bool = False) -> int:
    """Proposes, queues and executes a proposal on a local node or fork"""
    config = ctx.config
    if config.is_mainnet:
        raise UnsupportedNetwork("execute_proposal only works on local test network")

    if config.is_fork:
        guardian = ctx.impersonate_guardian(guardian_addr)
    else:
        guardian = ctx.account(guardian_addr or config.guardian_addr)

    governor = ctx.governor(governor_addr)
    admin = governor.functions.admin().call()
    ctx.log(f"Using governor contract at {governor.address} with admin {admin}")

    if reduce_queue_time:
        ctx.log("Reducing required queue time to 60 seconds")
        fork.set_storage_at(ctx.w3, governor.address, GOVERNOR_DELAY_SLOT, REDUCED_QUEUE_DELAY)
    else:
        ctx.log(f"Setting queue time back to {QUEUE_DELAY} seconds")
        fork.set_storage_at(ctx.w3, governor.address, GOVERNOR_DELAY_SLOT, QUEUE_DELAY)

    ctx.log(f"Submitting proposal for {description}")
    ctx.send(governor.functions.propose(*propose_args, description))
    proposal_id = governor.functions.proposalCount().call()
    ctx.log(f"Submitted proposal {proposal_id}")

    ctx.send(governor.functions.queue(proposal_id), sender=guardian)
    ctx.log(f"Proposal {proposal_id} queued")

    if reduce_queue_time:
        ctx.log("Advancing time by 61 seconds for TimeLock delay.")
        fork.advance_time(ctx.w3, REDUCED_QUEUE_DELAY + 1)
    else:
        ctx.log("Advancing time by 3 days for TimeLock delay.")
        fork.advance_time(ctx.w3, THREE_DAYS)

    ctx.send(governor.functions.execute(proposal_id), sender=guardian)
    ctx.log("Proposal executed")
    return proposal_id


def execute_proposal_on_fork(ctx: DeployContext, proposal_id: int,
                             execute_gas_limit: Optional[int] = None, skip_queue: bool = False):
    """Queues (unless already queued) and executes an existing legacy proposal"""
    if not ctx.config.is_fork:
        raise UnsupportedNetwork("Can only be used on Fork")

    guardian = ctx.impersonate_guardian()
    governor = ctx.governor()

    if not skip_queue:
        ctx.send(governor.functions.queue(int(proposal_id)), sender=guardian)
        ctx.log(f"Proposal {proposal_id} queued")

    ctx.log("Advancing time by 3 days for TimeLock delay.")
    fork.advance_time(ctx.w3, THREE_DAYS)

    ctx.send(governor.functions.execute(int(proposal_id)), sender=guardian, gas_limit=execute_gas_limit)
    ctx.log(f"Proposal {proposal_id} executed")


def send_proposal(ctx: DeployContext, propose_args: List[List[Any]], description: str,
                  governor_addr: Optional[str] = None) -> int:
    """Submits a proposal from the deployer; the multisig queues and executes it"""
    config = ctx.config
    if not config.is_mainnet and not config.is_fork:
        raise UnsupportedNetwork("send_proposal only works on Mainnet and Fork networks")

    governor = ctx.governor(governor_addr)
    if governor_addr:
        ctx.log(f"Using governor contract at {governor_addr}")

    ctx.log(f"Submitting proposal for {description} to governor {governor.address}")
    ctx.log(f"Args: {json.dumps(propose_args, indent=2)}")
    ctx.send(governor.functions.propose(*propose_args, description))

    proposal_id = governor.functions.proposalCount().call()
    ctx.log(f"Submitted proposal {proposal_id}")
    ctx.log(f"Next step: call the following methods on the governor at {governor.address} via multi-sig")
    ctx.log(f"   queue({proposal_id})")
    ctx.log(f"   execute({proposal_id})")
    ctx.log("Done")

    if config.is_mainnet:
        notify(config, f"Proposal {proposal_id} submitted: {description}",
               {"Governor": governor.address, "Proposal": proposal_id})
    return proposal_id


def handle_possibly_active_proposal(ctx: DeployContext, proposal_id: Optional[int], deploy_name: str,
                                    governor, reduce_queue_time: bool = False) -> bool:
    """
    Pushes an already submitted legacy proposal through on a fork.

    Returns True when the deployment itself must be skipped.
    """
    if not (ctx.config.is_fork and proposal_id):
        return False

    proposal_id = int(proposal_id)
    proposal_count = governor.functions.proposalCount().call()
    if proposal_count < proposal_id:
        logger.info(f"Proposal {deploy_name} not yet submitted at this block height. Continue deploy.")
        return False

    proposal_state = PROPOSAL_STATES[governor.functions.state(proposal_id).call()]

    if proposal_state in ("New", "Queue"):
        logger.info(
            f"Found proposal id: {proposal_id} on forked network. "
            f"Executing proposal containing deployment of: {deploy_name}"
        )
        _configure_durations(ctx, reduce_queue_time)
        execute_proposal_on_fork(ctx, proposal_id, skip_queue=proposal_state == "Queue")
        return True

    if proposal_state == "Executed":
        logger.info(f"Proposal {deploy_name} already executed. Nothing to do.")
        return True

    return False


# --- Token-vote governor ---

def submit_proposal_to_governance(ctx: DeployContext, propose_args: List[List[Any]], description: str,
                                  reduce_queue_time: bool = False) -> Tuple[str, int]:
    """
    Submits a proposal to the token-vote governor.

    On a fork the guardian proposes (after the governance durations have been
    rewritten), on mainnet the deployer does. Returns (state, proposal id).
    """
    config = ctx.config
    if not config.is_fork and not config.is_mainnet:
        raise UnsupportedNetwork("submit_proposal_to_governance only works on Fork & Mainnet networks")

    governor_six = ctx.governor_six()
    ctx.log(f"Submitting proposal for {description}")
    ctx.log(f"Args: {json.dumps(propose_args, indent=2)}")

    if config.is_mainnet:
        sender = ctx.deployer
    else:
        _configure_durations(ctx, reduce_queue_time)
        sender = ctx.impersonate_guardian()

    result = ctx.send(
        governor_six.functions.propose(*propose_args, description),
        sender=sender,
        log_abi=load_abi("governor_six"),
    )
    proposal_id = result.parsed_logs[0]["args"]["proposalId"]
    ctx.log(f"Submitted governance proposal {proposal_id}")

    if config.is_mainnet:
        notify(config, f"Governance proposal {proposal_id} submitted: {description}",
               {"Governor": governor_six.address, "Proposal": proposal_id})
    else:
        fork.advance_blocks(ctx.w3, 1)

    return get_proposal_state(governor_six, proposal_id), proposal_id


def submit_proposal_gnosis_safe(ctx: DeployContext, propose_args: List[List[Any]],
                                description: str) -> Dict[str, str]:
    """Calldata of the propose() call, to be submitted from the multisig"""
    config = ctx.config
    if not config.is_mainnet and not config.is_fork:
        raise UnsupportedNetwork("submit_proposal_gnosis_safe only works on Mainnet")

    governor_six = ctx.governor_six()
    ctx.log(f"Submitting proposal for {description}")
    ctx.log(f"Args: {json.dumps(propose_args, indent=2)}")

    data = encode_function_call(GOVERNANCE_PROPOSE_SIGNATURE, [*propose_args, description])
    result = {"to": governor_six.address, "data": data}

    ctx.log("Next step: go to Gnosis Safe Web -> New Transaction -> Contract Interaction")
    ctx.log('  - enable "Custom Data" toggle')
    ctx.log(f"  - set \"Enter address or ENS name\" to: '{result['to']}'")
    ctx.log('  - set "ETH value" to: 0')
    ctx.log('  - set "Data (Hex encoded)" to:')
    ctx.log(result["data"])
    ctx.log("  - click on 'Add Transaction'")

    if config.is_mainnet:
        notify(config, f"Governance proposal calldata ready for the multisig: {description}",
               {"Governor": governor_six.address})
    return result


def _expect_state(governor_six, proposal_id: int, expected: str):
    state = get_proposal_state(governor_six, proposal_id)
    if state != expected:
        raise ProposalStateError(f'Proposal state should now be "{expected}" but is {state}')


def execute_governance_proposal_on_fork(ctx: DeployContext, proposal_id: int, proposal_state: str,
                                        reduce_queue_time: bool = False,
                                        execute_gas_limit: Optional[int] = None,
                                        existing_proposal: bool = False):
    """Walks a token-vote proposal from its current state to Executed"""
    if not ctx.config.is_fork:
        raise UnsupportedNetwork("Can only be used on Fork")

    w3 = ctx.w3
    proposal_id = int(proposal_id)
    guardian = ctx.impersonate_guardian()
    governor_six = ctx.governor_six()
    timelock = ctx.timelock()

    _configure_durations(ctx, reduce_queue_time)

    if proposal_state == "Pending":
        # votingDelay changes do not apply to proposals that already exist
        if existing_proposal:
            voting_delay = EXISTING_PROPOSAL_VOTING_DELAY
        else:
            voting_delay = governor_six.functions.votingDelay().call()
        ctx.log(f"Advancing {voting_delay + 1} blocks to make transaction for from Pending to Active")
        fork.advance_blocks(w3, voting_delay + 1)
        proposal_state = "Active"
        _expect_state(governor_six, proposal_id, proposal_state)

    if proposal_state == "Active":
        try:
            ctx.send(governor_six.functions.castVote(proposal_id, 1), sender=guardian)
        except ContractLogicError as e:
            if "vote already cast" not in str(e):
                raise

        deadline_slot = _mapping_slot("uint256", proposal_id, PROPOSALS_SLOT) + 1
        extended_deadline_slot = _mapping_slot("uint256", proposal_id, EXTENDED_DEADLINES_SLOT)

        deadline = fork.get_storage_int(w3, governor_six.address, deadline_slot)
        current_block = w3.eth.block_number
        blocks_to_mine = deadline - current_block

        if blocks_to_mine > 0:
            if reduce_queue_time:
                blocks_to_mine = REDUCED_VOTING_BLOCKS
                fork.set_storage_at(w3, governor_six.address, deadline_slot, current_block + blocks_to_mine)
                fork.set_storage_at(w3, governor_six.address, extended_deadline_slot,
                                    current_block + blocks_to_mine)
            ctx.log(f"Advancing {blocks_to_mine} blocks to make transaction for from Active to Succeeded")
            fork.advance_blocks(w3, blocks_to_mine + 1)

        proposal_state = "Succeeded"
        _expect_state(governor_six, proposal_id, proposal_state)

    if proposal_state == "Succeeded":
        ctx.send(governor_six.functions.queue(proposal_id), sender=guardian)
        ctx.log("Proposal queued")
        proposal_state = "Queued"
        _expect_state(governor_six, proposal_id, proposal_state)

    ctx.log("preparing to execute")
    if proposal_state == "Queued":
        timelock_id = fork.get_storage_word(
            w3, governor_six.address, _mapping_slot("uint256", proposal_id, TIMELOCK_IDS_SLOT)
        )
        timestamp_slot = _mapping_slot("bytes32", timelock_id, TIMELOCK_TIMESTAMPS_SLOT)
        timelock_timestamp = fork.get_storage_int(w3, timelock.address, timestamp_slot)

        now = fork.block_timestamp(w3)
        time_to_advance = timelock_timestamp - now
        if time_to_advance > 0:
            if reduce_queue_time:
                time_to_advance = 30
                fork.set_storage_at(w3, timelock.address, timestamp_slot, now - 60)
            ctx.log(f"Advancing to the end of the queue period (on the timelock): {time_to_advance}")
            fork.advance_time(w3, time_to_advance + 1)
            fork.advance_blocks(w3, 2)

    ctx.send(governor_six.functions.execute(proposal_id), sender=guardian, gas_limit=execute_gas_limit)

    state = get_proposal_state(governor_six, proposal_id)
    if state != "Executed":
        raise ProposalStateError(f"Something is wrong! Proposal id: {proposal_id} in {state} state")
    ctx.log(f"Proposal id: {proposal_id} executed")


def handle_possibly_active_governance_proposal(ctx: DeployContext, proposal_id: Optional[int],
                                               deploy_name: str, governor_six,
                                               reduce_queue_time: bool = False,
                                               execute_gas_limit: Optional[int] = None) -> bool:
    """
    Handles a migration whose proposal may already exist at the forked block.

    Returns True when the deployment itself must be skipped.
    """
    if not (ctx.config.is_fork and proposal_id):
        return False

    try:
        proposal_state = get_proposal_state(governor_six, proposal_id)
    except ContractLogicError as e:
        if "invalid proposal id" in str(e) or "unknown proposal id" in str(e):
            logger.info(f"Proposal {deploy_name} not yet submitted at this block height. Continue deploy.")
            return False
        raise

    if proposal_state in ("Pending", "Active", "Succeeded", "Queued"):
        logger.info(
            f"Found proposal id: {proposal_id} on forked network with {proposal_state} state. "
            f"Executing proposal containing deployment of: {deploy_name}"
        )
        execute_governance_proposal_on_fork(
            ctx,
            proposal_id,
            proposal_state,
            reduce_queue_time=reduce_queue_time,
            execute_gas_limit=execute_gas_limit,
            existing_proposal=True,
        )
        return True

    logger.info(f"Proposal {deploy_name} is in {proposal_state} state. Nothing to do.")
    return True


def sanity_check_governance(ctx: DeployContext, deployer_is_proposer: bool = False):
    """Checks on mainnet that the deployer may propose and the vault is governed by the timelock"""
    if not ctx.config.is_mainnet:
        return

    if deployer_is_proposer:
        deployer_addr = ctx.deployer.address
        if not account_can_create_proposal(ctx.governor_six(), deployer_addr):
            raise ProposalStateError(
                f"Deployer {deployer_addr} doesn't have enough voting power to create a proposal."
            )

    vault_proxy = ctx.store.get("VaultProxy")
    vault = ctx.contract_at(load_abi("governable"), vault_proxy["address"])
    vault_governor = vault.functions.governor().call()
    timelock_addr = ctx.config.timelock_addr or ""

    if vault_governor.lower() != timelock_addr.lower():
        raise ProposalStateError(
            f"Environment has {timelock_addr} governor address configured "
            f"which is different from Vault's governor: {vault_governor}"
        )
