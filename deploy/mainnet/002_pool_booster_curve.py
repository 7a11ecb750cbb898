"""
Curve pool boosters for OETH and OUSD, deployed deterministically with CreateX.

Yield of the Curve pool is then forwarded to the boosters by governance.
"""

import logging

import eth_abi
from hexbytes import HexBytes

from deploytools import deployment_with_governance_proposal
from deploytools.artifacts import load_abi, load_artifact
from deploytools.config import require_address
from deploytools.createx import createx_salt, deployed_address_from_receipt, encode_salt_for_createx
from deploytools.proposal import encode_function_call

logger = logging.getLogger(__name__)

CREATEX = "0xba5Ed099633D3B313e4D5F7bdc1305d3c28ba5Ed"
ARBITRUM_CHAIN_ID = 42161
FEE = 0


def deploy_pool_booster(ctx, createx, reward_token: str, gauge: str) -> str:
    """Deploys implementation and proxy of a booster, returns the proxy address"""
    deployer = ctx.deployer.address
    artifacts_dir = ctx.config.artifacts_dir
    strategist = require_address("MULTICHAIN_STRATEGIST")

    salt = createx_salt(reward_token, gauge, 1)
    encoded_salt = encode_salt_for_createx(deployer, False, salt)
    ctx.log(f"Encoded salt: {encoded_salt}")

    booster = load_artifact("CurvePoolBooster", artifacts_dir)
    init_code_impl = bytes(HexBytes(booster["bytecode"])) + eth_abi.encode(
        ["uint256", "address", "address"], [ARBITRUM_CHAIN_ID, reward_token, gauge]
    )
    result = ctx.send(createx.functions.deployCreate2(HexBytes(encoded_salt), init_code_impl))
    # event 0 is GovernorshipTransferred, event 1 is ContractCreation
    implementation = deployed_address_from_receipt(result.receipt)
    logger.info(f"Curve Booster Implementation deployed at: {implementation}")

    proxy = load_artifact("CurvePoolBoosterProxy", artifacts_dir)
    initialize_impl = encode_function_call(
        "initialize(address,uint16,address,address,address)",
        [
            strategist,
            FEE,
            strategist,
            require_address("CAMPAIGN_REMOTE_MANAGER"),
            require_address("VOTEMARKET"),
        ],
    )
    initialize_proxy = encode_function_call(
        "initialize(address,address,bytes)",
        [implementation, ctx.config.timelock_addr, initialize_impl],
    )
    result = ctx.send(
        createx.functions.deployCreate2AndInit(
            HexBytes(encoded_salt),
            HexBytes(proxy["bytecode"]),
            HexBytes(initialize_proxy),
            (0, 0),
            deployer,
        )
    )
    proxy_address = deployed_address_from_receipt(result.receipt)
    logger.info(f"Curve Booster Proxy deployed at: {proxy_address}")
    return proxy_address


def deploy(ctx):
    createx = ctx.contract_at(load_abi("createx"), CREATEX)
    oeth = ctx.get_contract("OETHProxy")
    ousd = ctx.get_contract("OUSDProxy")
    pool = require_address("CURVE_TRIOGN_POOL")
    gauge = require_address("CURVE_TRIOGN_GAUGE")

    oeth_booster = deploy_pool_booster(ctx, createx, oeth.address, gauge)
    ousd_booster = deploy_pool_booster(ctx, createx, ousd.address, gauge)

    return {
        "name": "Yield Forward from TriOGN Curve Pool -> Pool Boosters",
        "actions": [
            {
                "contract": oeth,
                "signature": "delegateYield(address,address)",
                "args": [pool, oeth_booster],
            },
            {
                "contract": ousd,
                "signature": "delegateYield(address,address)",
                "args": [pool, ousd_booster],
            },
        ],
    }


migration = deployment_with_governance_proposal(
    {
        "deploy_name": "002_pool_booster_curve",
        "dependencies": ["001_upgrade_vault_strategy"],
        "reduce_queue_time": True,
        "deployer_is_proposer": False,
    },
    deploy,
)
