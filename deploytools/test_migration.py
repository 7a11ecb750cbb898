#!/usr/bin/env python3
"""
Tests for migrations: skip rules, ids and the three governance flows
"""

from unittest.mock import MagicMock, call, patch

import pytest
from web3 import Web3

from deploytools.errors import UnsupportedNetwork
from deploytools.migration import (
    OLD_PROPOSAL_AGE,
    MigrationOptions,
    deployment_with_governance_proposal,
    deployment_with_guardian_governor,
    deployment_with_proposal,
)
from deploytools.proposal import ProposalAction, propose_args, propose_governance_args

VAULT = "0x000000000000000000000000000000000000dEaD"
STRATEGY = "0x1111111111111111111111111111111111111111"
NOW = 1700000000
RECENT = NOW - 60 * 60 * 24
OLD = NOW - OLD_PROPOSAL_AGE - 1

FACTORIES = {
    "legacy": deployment_with_proposal,
    "governance": deployment_with_governance_proposal,
    "guardian": deployment_with_guardian_governor,
}


def make_config(is_fork=False, is_mainnet=False, is_smoke_test=False):
    config = MagicMock()
    config.is_fork = is_fork
    config.is_mainnet = is_mainnet
    config.is_smoke_test = is_smoke_test
    return config


def prepared(kind, config, migrations=None, **opts):
    opts.setdefault("deploy_name", "120_upgrade")
    migration = FACTORIES[kind](opts, lambda ctx: None)
    return migration.prepare(config, migrations or {}, now=NOW)


class TestMigrationOptions:
    """Test class for migration factories"""

    def test_options_from_dict(self):
        """Test dict options are converted"""
        migration = deployment_with_proposal({"deploy_name": "001_core", "dependencies": ["000_mock"]},
                                             lambda ctx: None)
        assert isinstance(migration.options, MigrationOptions)
        assert migration.deploy_name == "001_core"
        assert migration.dependencies == ["000_mock"]

    def test_options_instance(self):
        """Test MigrationOptions are used as is"""
        opts = MigrationOptions(deploy_name="001_core", proposal_id=5)
        assert deployment_with_guardian_governor(opts, lambda ctx: None).options is opts

    def test_skip_requires_prepare(self):
        """Test migrations must be bound to a network first"""
        migration = deployment_with_proposal({"deploy_name": "001_core"}, lambda ctx: None)
        with pytest.raises(RuntimeError):
            migration.skip()
        assert migration.id == "001_core"


class TestSkip:
    """Test class for Migration.skip"""

    @pytest.mark.parametrize("kind", ["legacy", "governance", "guardian"])
    def test_force_flags(self, kind):
        """Test force_skip and force_deploy win over everything else"""
        assert prepared(kind, make_config(is_mainnet=True), force_skip=True, force_deploy=True).skip()
        assert not prepared(kind, make_config(), force_deploy=True).skip()

    @pytest.mark.parametrize("kind", ["legacy", "governance", "guardian"])
    @pytest.mark.parametrize("config, only_on_fork, expected", [
        (make_config(is_mainnet=True), False, False),
        (make_config(is_mainnet=True), True, True),
        (make_config(is_mainnet=True, is_smoke_test=True), False, True),
        (make_config(), False, True),
    ])
    def test_off_fork(self, kind, config, only_on_fork, expected):
        """Test live runs only deploy on mainnet"""
        assert prepared(kind, config, only_on_fork=only_on_fork).skip() is expected

    @pytest.mark.parametrize("kind", ["legacy", "governance", "guardian"])
    def test_fork_without_proposal(self, kind):
        """Test forks skip migrations the live network already ran"""
        config = make_config(is_fork=True)
        assert prepared(kind, config, {"120_upgrade": RECENT}).skip()
        assert not prepared(kind, config, {"119_other": RECENT}).skip()

    @pytest.mark.parametrize("kind", ["legacy", "governance"])
    def test_fork_with_recent_proposal(self, kind):
        """Test recent proposals are replayed on forks"""
        migration = prepared(kind, make_config(is_fork=True), {"120_upgrade": RECENT}, proposal_id=77)
        assert not migration.older_proposal
        assert not migration.skip()

    @pytest.mark.parametrize("kind", ["legacy", "governance"])
    def test_fork_with_old_proposal(self, kind):
        """Test proposals older than two weeks are not replayed"""
        migration = prepared(kind, make_config(is_fork=True), {"120_upgrade": OLD}, proposal_id=77)
        assert migration.older_proposal
        assert migration.skip()

    def test_records_ignored_off_fork(self):
        """Test recorded migrations are only consulted on forks"""
        migration = prepared("legacy", make_config(is_mainnet=True), {"120_upgrade": OLD})
        assert migration.migrations == {}
        assert not migration.skip()


class TestMigrationId:
    """Test class for Migration.id"""

    def test_plain_id(self):
        """Test id is the deploy name by default"""
        assert prepared("legacy", make_config(is_mainnet=True), proposal_id=77).id == "120_upgrade"
        assert prepared("governance", make_config(is_fork=True)).id == "120_upgrade"

    @pytest.mark.parametrize("migrations", [{}, {"120_upgrade": RECENT}])
    def test_force_id_on_fork(self, migrations):
        """Test migrations with a live proposal get a separate id on forks"""
        migration = prepared("governance", make_config(is_fork=True), migrations, proposal_id=77)
        assert migration.id == "120_upgrade_force"

    def test_old_proposal_keeps_id(self):
        """Test old proposals keep the deploy name"""
        migration = prepared("legacy", make_config(is_fork=True), {"120_upgrade": OLD}, proposal_id=77)
        assert migration.id == "120_upgrade"

    def test_guardian_keeps_id(self):
        """Test guardian migrations never use the force id"""
        migration = prepared("guardian", make_config(is_fork=True), proposal_id=77)
        assert migration.id == "120_upgrade"


class MigrationRunTest:
    """Shared fixtures of the run flow tests"""

    def setup_method(self):
        """Set up test fixtures before each test method"""
        self.actions = [
            ProposalAction(VAULT, "upgradeTo(address)", [STRATEGY]),
            ProposalAction(VAULT, "setAssetDefaultStrategy(address,address)", [STRATEGY, STRATEGY]),
        ]
        self.fn = MagicMock(return_value={"name": "Upgrade vault", "actions": self.actions})

    def make_ctx(self, **flags):
        ctx = MagicMock()
        ctx.config = make_config(**flags)
        ctx.deployer.address = STRATEGY
        return ctx


@patch("deploytools.migration.sanity_check_governance")
@patch("deploytools.migration.handle_possibly_active_proposal", return_value=False)
class TestLegacyRun(MigrationRunTest):
    """Test class for migrations through the legacy governor"""

    def migration(self, **opts):
        return deployment_with_proposal({"deploy_name": "040_vault", **opts}, self.fn)

    def test_local_node_sends_actions_as_governor(self, mock_handle, mock_sanity):
        """Test actions are sent directly from the governor account"""
        ctx = self.make_ctx()
        assert self.migration().run(ctx) is True

        ctx.account.assert_called_once_with(ctx.config.governor_addr)
        governor = ctx.account.return_value
        assert ctx.send_action.call_args_list == [call(a, sender=governor) for a in self.actions]
        mock_sanity.assert_called_once_with(ctx)

    @patch("deploytools.migration.send_proposal")
    def test_mainnet_submits_proposal(self, mock_send, mock_handle, mock_sanity):
        """Test mainnet proposals are submitted for the multisig"""
        ctx = self.make_ctx(is_mainnet=True)
        self.migration().run(ctx)
        mock_send.assert_called_once_with(ctx, propose_args(self.actions), "Upgrade vault", governor_addr=None)
        ctx.send_action.assert_not_called()

    @patch("deploytools.migration.execute_proposal")
    def test_fork_executes_proposal(self, mock_execute, mock_handle, mock_sanity):
        """Test forks propose, queue and execute"""
        ctx = self.make_ctx(is_fork=True)
        self.migration(reduce_queue_time=True).run(ctx)
        mock_execute.assert_called_once_with(
            ctx, propose_args(self.actions), "Upgrade vault",
            governor_addr=None, guardian_addr=None, reduce_queue_time=True,
        )

    def test_active_proposal_skips_deploy(self, mock_handle, mock_sanity):
        """Test an existing proposal replaces the deploy function"""
        mock_handle.return_value = True
        ctx = self.make_ctx(is_fork=True)

        assert self.migration(proposal_id=40).run(ctx) is True

        mock_handle.assert_called_once_with(ctx, 40, "040_vault", ctx.governor.return_value, False)
        self.fn.assert_not_called()

    def test_no_actions(self, mock_handle, mock_sanity):
        """Test deploy functions without a proposal"""
        self.fn.return_value = None
        ctx = self.make_ctx()
        self.migration().run(ctx)
        ctx.send_action.assert_not_called()


@patch("deploytools.migration.fork")
@patch("deploytools.migration.sanity_check_governance")
@patch("deploytools.migration.handle_possibly_active_governance_proposal", return_value=False)
class TestGovernanceRun(MigrationRunTest):
    """Test class for migrations through the token-vote governor"""

    def migration(self, **opts):
        return deployment_with_governance_proposal({"deploy_name": "120_upgrade", **opts}, self.fn)

    @patch("deploytools.migration.execute_governance_proposal_on_fork")
    @patch("deploytools.migration.submit_proposal_to_governance", return_value=("Pending", 5))
    def test_fork_submits_and_executes(self, mock_submit, mock_execute, mock_handle, mock_sanity, mock_fork):
        """Test forks fund the deployer, submit and execute"""
        ctx = self.make_ctx(is_fork=True)
        self.migration(execute_gas_limit=8000000).run(ctx)

        mock_fork.set_balance.assert_called_once_with(ctx.w3, STRATEGY, Web3.to_wei(1000000, "ether"))
        mock_submit.assert_called_once_with(
            ctx, propose_governance_args(self.actions), "Upgrade vault", reduce_queue_time=False
        )
        mock_execute.assert_called_once_with(
            ctx, 5, "Pending", reduce_queue_time=False, execute_gas_limit=8000000, existing_proposal=False
        )

    @patch("deploytools.migration.submit_proposal_gnosis_safe")
    def test_fork_skip_simulation(self, mock_safe, mock_handle, mock_sanity, mock_fork):
        """Test skip_simulation only builds the multisig calldata"""
        ctx = self.make_ctx(is_fork=True)
        self.migration(skip_simulation=True).run(ctx)
        mock_safe.assert_called_once_with(ctx, propose_governance_args(self.actions), "Upgrade vault")

    @patch("deploytools.migration.submit_proposal_gnosis_safe")
    @patch("deploytools.migration.submit_proposal_to_governance")
    def test_mainnet_multisig_proposer(self, mock_submit, mock_safe, mock_handle, mock_sanity, mock_fork):
        """Test the multisig proposes by default"""
        ctx = self.make_ctx(is_mainnet=True)
        self.migration().run(ctx)
        mock_safe.assert_called_once()
        mock_submit.assert_not_called()
        mock_fork.set_balance.assert_not_called()
        mock_sanity.assert_called_once_with(ctx, deployer_is_proposer=False)

    @patch("deploytools.migration.submit_proposal_gnosis_safe")
    @patch("deploytools.migration.submit_proposal_to_governance")
    def test_mainnet_deployer_proposer(self, mock_submit, mock_safe, mock_handle, mock_sanity, mock_fork):
        """Test the deployer proposes when it holds enough votes"""
        ctx = self.make_ctx(is_mainnet=True)
        self.migration(deployer_is_proposer=True).run(ctx)
        mock_submit.assert_called_once_with(ctx, propose_governance_args(self.actions), "Upgrade vault")
        mock_safe.assert_not_called()

    def test_local_node_unsupported(self, mock_handle, mock_sanity, mock_fork):
        """Test token-vote proposals need mainnet or a fork"""
        with pytest.raises(UnsupportedNetwork):
            self.migration().run(self.make_ctx())

    @patch("deploytools.migration.submit_proposal_to_governance")
    def test_existing_proposal(self, mock_submit, mock_handle, mock_sanity, mock_fork):
        """Test proposals found on the fork are executed instead of deploying"""
        mock_handle.return_value = True
        ctx = self.make_ctx(is_fork=True)
        self.migration(proposal_id="77", reduce_queue_time=True).run(ctx)

        mock_handle.assert_called_once_with(
            ctx, "77", "120_upgrade", ctx.governor_six.return_value,
            reduce_queue_time=True, execute_gas_limit=None,
        )
        self.fn.assert_not_called()
        mock_submit.assert_not_called()


@patch("deploytools.migration.sanity_check_governance")
class TestGuardianRun(MigrationRunTest):
    """Test class for migrations sent by the guardian multisig"""

    def migration(self):
        return deployment_with_guardian_governor({"deploy_name": "001_upgrade_harvester"}, self.fn)

    def test_mainnet_lists_actions(self, mock_sanity):
        """Test mainnet actions are left to the multisig"""
        ctx = self.make_ctx(is_mainnet=True)
        self.migration().run(ctx)
        ctx.impersonate_guardian.assert_not_called()
        ctx.send_action.assert_not_called()

    def test_fork_sends_as_guardian(self, mock_sanity):
        """Test actions are sent from the impersonated guardian"""
        ctx = self.make_ctx(is_fork=True)
        self.migration().run(ctx)
        guardian = ctx.impersonate_guardian.return_value
        assert ctx.send_action.call_args_list == [call(a, sender=guardian) for a in self.actions]
