"""
Migrations: one-shot deployment scripts wrapped with governance handling

A deploy script builds a migration with one of the factories below and
exposes it as the module level name `migration`. The wrapped function gets
a DeployContext, deploys what it needs and returns the proposal (or None)
that must go through governance for the changes to take effect.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from web3 import Web3

from . import fork
from .config import NetworkConfig
from .context import DeployContext
from .errors import UnsupportedNetwork
from .governance import (
    execute_governance_proposal_on_fork,
    execute_proposal,
    handle_possibly_active_governance_proposal,
    handle_possibly_active_proposal,
    sanity_check_governance,
    send_proposal,
    submit_proposal_gnosis_safe,
    submit_proposal_to_governance,
)
from .proposal import Proposal, propose_args, propose_governance_args

logger = logging.getLogger(__name__)

LEGACY = "legacy"
GOVERNANCE = "governance"
GUARDIAN = "guardian"

# Migrations with a proposal recorded longer ago than this are not replayed on forks
OLD_PROPOSAL_AGE = 60 * 60 * 24 * 14

DEPLOYER_FORK_BALANCE_ETH = 1000000

DeployFunction = Callable[[DeployContext], Union[Proposal, Dict[str, Any], None]]


@dataclass
class MigrationOptions:
    deploy_name: str
    dependencies: List[str] = field(default_factory=list)
    force_deploy: bool = False
    force_skip: bool = False
    only_on_fork: bool = False
    proposal_id: Optional[Union[int, str]] = None
    reduce_queue_time: bool = False
    deployer_is_proposer: bool = False
    execute_gas_limit: Optional[int] = None
    skip_simulation: bool = False


class Migration:
    """A deployment function plus the rules deciding whether and how it runs"""

    def __init__(self, kind: str, options: MigrationOptions, fn: DeployFunction):
        self.kind = kind
        self.options = options
        self.fn = fn
        self.config: Optional[NetworkConfig] = None
        self.migrations: Dict[str, int] = {}
        self._now = time.time()

    @property
    def deploy_name(self) -> str:
        return self.options.deploy_name

    @property
    def dependencies(self) -> List[str]:
        return self.options.dependencies

    def prepare(self, config: NetworkConfig, migrations: Dict[str, int],
                now: Optional[float] = None) -> "Migration":
        """Binds the migration to a run: its network and the recorded migrations"""
        self.config = config
        # Recorded migrations only matter when replaying on a fork
        self.migrations = dict(migrations) if config.is_fork else {}
        self._now = time.time() if now is None else now
        return self

    def _recorded(self) -> bool:
        return bool(self.migrations.get(self.deploy_name))

    @property
    def older_proposal(self) -> bool:
        recorded_at = self.migrations.get(self.deploy_name)
        if recorded_at is None:
            return False
        return self._now - recorded_at >= OLD_PROPOSAL_AGE

    @property
    def id(self) -> str:
        """
        Name the run is recorded under.

        On a fork, a migration with a recent proposal gets a distinct id so
        that it runs (and executes its proposal) even though the live network
        already recorded it.
        """
        opts = self.options
        if self.config is None or opts.force_skip or opts.force_deploy or self.kind == GUARDIAN:
            return self.deploy_name
        if self.config.is_fork and opts.proposal_id and not self.older_proposal:
            return f"{self.deploy_name}_force"
        return self.deploy_name

    def _skip_off_fork(self) -> bool:
        config = self.config
        return self.options.only_on_fork or not config.is_mainnet or config.is_smoke_test

    def skip(self) -> bool:
        if self.config is None:
            raise RuntimeError(f"Migration {self.deploy_name} has not been prepared for a network")

        opts = self.options
        if opts.force_skip:
            return True
        if opts.force_deploy:
            return False

        is_fork = self.config.is_fork
        if self.kind == LEGACY:
            if self.older_proposal:
                return True
            if is_fork and opts.proposal_id:
                return False
            if is_fork:
                return self._recorded()
            return self._skip_off_fork()

        if self.kind == GOVERNANCE:
            if is_fork and opts.proposal_id:
                return self.older_proposal
            if is_fork:
                return self._recorded()
            return self._skip_off_fork()

        if is_fork:
            return self._recorded()
        return self._skip_off_fork()

    def run(self, ctx: DeployContext) -> bool:
        logger.info(f"Running {self.deploy_name} deployment...")
        if self.kind == GOVERNANCE and ctx.config.is_fork:
            fork.set_balance(ctx.w3, ctx.deployer.address, Web3.to_wei(DEPLOYER_FORK_BALANCE_ETH, "ether"))

        if self.kind == LEGACY:
            self._run_with_proposal(ctx)
        elif self.kind == GOVERNANCE:
            self._run_with_governance_proposal(ctx)
        else:
            self._run_with_guardian(ctx)

        logger.info(f"{self.deploy_name} deploy done.")
        return True

    def _build_proposal(self, ctx: DeployContext) -> Proposal:
        return Proposal.coerce(self.fn(ctx))

    def _run_with_proposal(self, ctx: DeployContext):
        opts = self.options
        config = ctx.config
        governor = ctx.governor() if config.is_fork and opts.proposal_id else None

        # Proposal already executed on the fork, or just executed by this call
        if handle_possibly_active_proposal(ctx, opts.proposal_id, self.deploy_name, governor,
                                           opts.reduce_queue_time):
            return

        sanity_check_governance(ctx)
        proposal = self._build_proposal(ctx)
        if not proposal.actions:
            return

        args = propose_args(proposal.actions)
        prop_opts = proposal.opts

        if config.is_mainnet:
            # Queue and execute are done by the multisig
            ctx.log("Sending proposal to governor...")
            send_proposal(ctx, args, proposal.name, governor_addr=prop_opts.get("governor_addr"))
            ctx.log("Proposal sent.")
        elif config.is_fork:
            ctx.log("Sending and executing proposal...")
            execute_proposal(
                ctx,
                args,
                proposal.name,
                governor_addr=prop_opts.get("governor_addr"),
                guardian_addr=prop_opts.get("guardian_addr"),
                reduce_queue_time=opts.reduce_queue_time,
            )
            ctx.log("Proposal executed.")
        else:
            governor_account = ctx.account(config.governor_addr)
            for action in proposal.actions:
                ctx.log(f"Sending governance action {action.signature} to {action.target}")
                ctx.send_action(action, sender=governor_account)
                logger.info(f"... {action.signature} completed")

    def _run_with_governance_proposal(self, ctx: DeployContext):
        opts = self.options
        config = ctx.config
        governor_six = ctx.governor_six() if config.is_fork and opts.proposal_id else None

        if handle_possibly_active_governance_proposal(
            ctx,
            opts.proposal_id,
            self.deploy_name,
            governor_six,
            reduce_queue_time=opts.reduce_queue_time,
            execute_gas_limit=opts.execute_gas_limit,
        ):
            return

        sanity_check_governance(ctx, deployer_is_proposer=opts.deployer_is_proposer)
        proposal = self._build_proposal(ctx)
        if not proposal.actions:
            ctx.log("No Proposal.")
            return

        args = propose_governance_args(proposal.actions)

        if config.is_mainnet:
            ctx.log("Building governance proposal...")
            if opts.deployer_is_proposer:
                submit_proposal_to_governance(ctx, args, proposal.name)
            else:
                submit_proposal_gnosis_safe(ctx, args, proposal.name)
            ctx.log("Proposal sent.")
        elif config.is_fork:
            if opts.skip_simulation:
                ctx.log("Building governance proposal...")
                submit_proposal_gnosis_safe(ctx, args, proposal.name)
            else:
                ctx.log("Sending the governance proposal to governance")
                state, proposal_id = submit_proposal_to_governance(
                    ctx, args, proposal.name, reduce_queue_time=opts.reduce_queue_time
                )
                ctx.log("Executing the proposal")
                execute_governance_proposal_on_fork(
                    ctx,
                    proposal_id,
                    state,
                    reduce_queue_time=opts.reduce_queue_time,
                    execute_gas_limit=opts.execute_gas_limit,
                    existing_proposal=False,
                )
            ctx.log("Proposal executed.")
        else:
            raise UnsupportedNetwork("deployment_with_governance_proposal not supported in local node environment")

    def _run_with_guardian(self, ctx: DeployContext):
        sanity_check_governance(ctx)
        proposal = self._build_proposal(ctx)

        if ctx.config.is_mainnet:
            logger.info("Manually create the multisig batch transaction with details:")
            for action in proposal.actions:
                logger.info(f"  {action.target} {action.signature} {list(action.args)}")
            return

        guardian = ctx.impersonate_guardian()
        guardian_actions = []
        for action in proposal.actions:
            ctx.log(f"Sending governance action {action.signature} to {action.target}")
            result = ctx.send_action(action, sender=guardian)
            guardian_actions.append({
                "sig": action.signature,
                "args": list(action.args),
                "to": action.target,
                "data": result.data,
                "value": str(result.value),
            })
            logger.info(f"... {action.signature} completed")

        logger.info(f"Execute the following actions using guardian safe: {guardian_actions}")

    def __repr__(self):
        return f"<Migration {self.deploy_name} ({self.kind})>"


def _options(opts: Union[MigrationOptions, Dict[str, Any]]) -> MigrationOptions:
    return opts if isinstance(opts, MigrationOptions) else MigrationOptions(**opts)


def deployment_with_proposal(opts: Union[MigrationOptions, Dict[str, Any]], fn: DeployFunction) -> Migration:
    """Migration whose actions go through the legacy governor"""
    return Migration(LEGACY, _options(opts), fn)


def deployment_with_governance_proposal(opts: Union[MigrationOptions, Dict[str, Any]],
                                        fn: DeployFunction) -> Migration:
    """Migration whose actions go through the token-vote governor"""
    return Migration(GOVERNANCE, _options(opts), fn)


def deployment_with_guardian_governor(opts: Union[MigrationOptions, Dict[str, Any]],
                                      fn: DeployFunction) -> Migration:
    """Migration whose actions are sent by the guardian multisig"""
    return Migration(GUARDIAN, _options(opts), fn)
