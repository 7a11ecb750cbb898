"""
Upgrade the superOETHb harvester; the guardian multisig governs it directly on Base
"""

from deploytools import deployment_with_guardian_governor
from deploytools.config import require_address


def deploy(ctx):
    harvester_proxy = ctx.get_contract("OETHBaseHarvesterProxy")
    amo_strategy_proxy = ctx.get_contract("AerodromeAMOStrategyProxy")

    harvester_impl = ctx.deploy_with_confirmation(
        "SuperOETHHarvester", [require_address("BASE_WETH")]
    )

    return {
        "name": "Upgrade superOETHb harvester",
        "actions": [
            {
                "contract": harvester_proxy,
                "signature": "upgradeTo(address)",
                "args": [harvester_impl.address],
            },
            {
                "contract": harvester_proxy,
                "signature": "setSupportedStrategy(address,bool)",
                "args": [amo_strategy_proxy.address, True],
            },
        ],
    }


migration = deployment_with_guardian_governor(
    {
        "deploy_name": "001_upgrade_harvester",
        "only_on_fork": False,
    },
    deploy,
)
