"""
Command line entry point: deploy scripts and proposal tooling by network name
"""

import logging
import os

import click

from .artifacts import load_abi
from .config import NetworkConfig
from .context import DeployContext
from .governance import (
    PROPOSAL_STATES,
    execute_governance_proposal_on_fork,
    execute_proposal_on_fork,
    get_proposal_state,
    show_proposal_actions,
)
from .runner import discover_migrations, run_migrations

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler('deploy.log'),
            logging.StreamHandler()
        ]
    )


def _governor(config: NetworkConfig, legacy: bool):
    if legacy:
        address, abi, env_name = config.governor_addr, "governor", "GOVERNOR_ADDR"
    else:
        address, abi, env_name = config.governor_six_addr, "governor_six", "GOVERNOR_SIX_ADDR"
    if not address:
        raise click.ClickException(f"{env_name} not found in environment")
    w3 = config.connect()
    return w3.eth.contract(address=address, abi=load_abi(abi))


network_option = click.option("--network", default=lambda: os.getenv("NETWORK", "hardhat"),
                              show_default="NETWORK or hardhat", help="Target network name")


@click.group()
@click.option("--verbose", is_flag=True, help="Debug logging")
def cli(verbose):
    """Deployment and governance tooling"""
    setup_logging(verbose)


@cli.command()
@network_option
@click.option("--fork/--no-fork", default=None, help="Run against a local fork (defaults to FORK)")
@click.option("--deploy-dir", default="deploy", show_default=True, help="Directory holding deploy/<network>/ scripts")
@click.option("--only", "only", multiple=True, help="Deploy name to run, may be repeated")
def deploy(network, fork, deploy_dir, only):
    """Run the deploy scripts of a network"""
    config = NetworkConfig(network, fork)
    ctx = DeployContext(config)
    logger.info(f"Deploying on {config!r} as {ctx.deployer.address}")

    migrations = discover_migrations(os.path.join(deploy_dir, config.chain))
    ran = run_migrations(ctx, migrations, tags=only)
    logger.info(f"Ran {len(ran)} migrations: {', '.join(ran) or '-'}")


@cli.command("proposal-state")
@click.argument("proposal_id", type=int)
@network_option
@click.option("--legacy", is_flag=True, help="Proposal of the legacy governor")
def proposal_state(proposal_id, network, legacy):
    """Print the state of a proposal"""
    config = NetworkConfig(network)
    governor = _governor(config, legacy)
    if legacy:
        state = PROPOSAL_STATES[governor.functions.state(proposal_id).call()]
    else:
        state = get_proposal_state(governor, proposal_id)
    click.echo(state)


@cli.command("show-proposal")
@click.argument("proposal_id", type=int)
@network_option
@click.option("--legacy", is_flag=True, help="Proposal of the legacy governor")
def show_proposal(proposal_id, network, legacy):
    """Print the decoded actions of a proposal"""
    config = NetworkConfig(network)
    governor = _governor(config, legacy)
    for description in show_proposal_actions(governor, proposal_id):
        click.echo(description)


@cli.command("execute-proposal")
@click.argument("proposal_id", type=int)
@network_option
@click.option("--legacy", is_flag=True, help="Proposal of the legacy governor")
@click.option("--reduce-queue-time", is_flag=True, help="Shorten voting and timelock delays")
def execute_proposal(proposal_id, network, legacy, reduce_queue_time):
    """Push an existing proposal through to execution on a fork"""
    config = NetworkConfig(network, fork=True)
    ctx = DeployContext(config)

    if legacy:
        governor = ctx.governor()
        state = PROPOSAL_STATES[governor.functions.state(proposal_id).call()]
        if state not in ("New", "Queue"):
            raise click.ClickException(f"Proposal {proposal_id} is in {state} state")
        execute_proposal_on_fork(ctx, proposal_id, skip_queue=state == "Queue")
        return

    state = get_proposal_state(ctx.governor_six(), proposal_id)
    if state not in ("Pending", "Active", "Succeeded", "Queued"):
        raise click.ClickException(f"Proposal {proposal_id} is in {state} state")
    execute_governance_proposal_on_fork(
        ctx, proposal_id, state, reduce_queue_time=reduce_queue_time, existing_proposal=True
    )


def main():
    cli()


if __name__ == "__main__":
    main()
