"""
Upgrade the vault core and the Morpho USDC strategy, and make the strategy the USDC default
"""

from deploytools import deployment_with_governance_proposal
from deploytools.config import require_address

USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"


def deploy(ctx):
    vault_proxy = ctx.get_contract("VaultProxy")
    vault_admin = ctx.contract_at("VaultAdmin", vault_proxy.address)
    strategy_proxy = ctx.get_contract("MorphoGauntletPrimeUSDCStrategyProxy")

    # Deployer actions
    vault_core_impl = ctx.deploy_with_confirmation("VaultCore")
    strategy_impl = ctx.deploy_with_confirmation(
        "Generalized4626Strategy",
        [[require_address("MORPHO_GAUNTLET_PRIME_USDC_VAULT"), vault_proxy.address], USDC],
    )

    # Governance actions
    return {
        "name": "Upgrade VaultCore and the Morpho Gauntlet Prime USDC strategy",
        "actions": [
            {
                "contract": vault_proxy,
                "signature": "upgradeTo(address)",
                "args": [vault_core_impl.address],
            },
            {
                "contract": strategy_proxy,
                "signature": "upgradeTo(address)",
                "args": [strategy_impl.address],
            },
            {
                "contract": vault_admin,
                "signature": "setAssetDefaultStrategy(address,address)",
                "args": [USDC, strategy_proxy.address],
            },
        ],
    }


migration = deployment_with_governance_proposal(
    {
        "deploy_name": "001_upgrade_vault_strategy",
        "force_deploy": False,
        "reduce_queue_time": True,
        "deployer_is_proposer": False,
    },
    deploy,
)
