#!/usr/bin/env python3
"""
Tests for deploy script discovery and the migration runner
"""

import textwrap
from unittest.mock import MagicMock, patch

import pytest

from deploytools.artifacts import DeploymentStore
from deploytools.errors import DeployError
from deploytools.migration import Migration, deployment_with_proposal
from deploytools.runner import discover_migrations, order_migrations, run_migrations

SCRIPT = textwrap.dedent('''
    from deploytools import deployment_with_proposal

    migration = deployment_with_proposal(
        {{"deploy_name": "{name}", "dependencies": {dependencies}}},
        lambda ctx: None,
    )
''')


def write_script(directory, name, dependencies=()):
    (directory / f"{name}.py").write_text(SCRIPT.format(name=name, dependencies=list(dependencies)))


def make_migration(name, dependencies=()):
    return deployment_with_proposal({"deploy_name": name, "dependencies": list(dependencies)}, lambda ctx: None)


def make_ctx(tmp_path):
    ctx = MagicMock()
    ctx.config.is_fork = False
    ctx.config.is_mainnet = True
    ctx.config.is_smoke_test = False
    ctx.store = DeploymentStore(str(tmp_path / "mainnet"))
    return ctx


class TestDiscovery:
    """Test class for deploy script discovery"""

    def test_scripts_in_file_order(self, tmp_path):
        """Test scripts are loaded sorted by file name"""
        write_script(tmp_path, "002_pool_booster")
        write_script(tmp_path, "001_upgrade_vault")
        (tmp_path / "_helpers.py").write_text("VALUE = 1\n")
        (tmp_path / "notes.txt").write_text("not a script\n")

        migrations = discover_migrations(str(tmp_path))
        assert [m.deploy_name for m in migrations] == ["001_upgrade_vault", "002_pool_booster"]

    def test_script_without_migration(self, tmp_path):
        """Test scripts must define a migration"""
        (tmp_path / "001_broken.py").write_text("VALUE = 1\n")
        with pytest.raises(DeployError):
            discover_migrations(str(tmp_path))

    def test_empty_directory(self, tmp_path):
        """Test networks without scripts"""
        assert discover_migrations(str(tmp_path / "missing")) == []


class TestOrdering:
    """Test class for dependency ordering"""

    def test_dependencies_run_first(self):
        """Test dependencies are moved ahead of their dependants"""
        migrations = [
            make_migration("003_strategy", ["002_oracle"]),
            make_migration("001_core"),
            make_migration("002_oracle", ["001_core"]),
        ]
        ordered = order_migrations(migrations)
        assert [m.deploy_name for m in ordered] == ["001_core", "002_oracle", "003_strategy"]

    def test_unknown_dependency(self):
        """Test dependencies on missing scripts"""
        with pytest.raises(DeployError, match="unknown"):
            order_migrations([make_migration("002_oracle", ["001_core"])])

    def test_circular_dependency(self):
        """Test dependency cycles"""
        with pytest.raises(DeployError, match="Circular"):
            order_migrations([make_migration("001_a", ["002_b"]), make_migration("002_b", ["001_a"])])


@patch.object(Migration, "run", return_value=True)
class TestRunMigrations:
    """Test class for sequential migration runs"""

    def test_runs_and_records(self, mock_run, tmp_path):
        """Test migrations run once and are recorded"""
        ctx = make_ctx(tmp_path)
        migrations = [make_migration("001_core"), make_migration("002_oracle")]

        assert run_migrations(ctx, migrations) == ["001_core", "002_oracle"]
        assert set(ctx.store.migrations()) == {"001_core", "002_oracle"}
        assert mock_run.call_count == 2

        assert run_migrations(ctx, migrations) == []
        assert mock_run.call_count == 2

    def test_only_selected(self, mock_run, tmp_path):
        """Test runs limited to selected deploy names"""
        ctx = make_ctx(tmp_path)
        migrations = [make_migration("001_core"), make_migration("002_oracle")]
        assert run_migrations(ctx, migrations, tags=["002_oracle"]) == ["002_oracle"]

    def test_skipped_migrations(self, mock_run, tmp_path):
        """Test skipped migrations are neither run nor recorded"""
        ctx = make_ctx(tmp_path)
        ctx.config.is_mainnet = False

        assert run_migrations(ctx, [make_migration("001_core")]) == []
        mock_run.assert_not_called()
        assert ctx.store.migrations() == {}

    def test_not_recorded_when_run_returns_false(self, mock_run, tmp_path):
        """Test migrations reporting no work are run again next time"""
        mock_run.return_value = False
        ctx = make_ctx(tmp_path)
        assert run_migrations(ctx, [make_migration("001_core")]) == []
        assert ctx.store.migrations() == {}

    def test_first_error_aborts(self, mock_run, tmp_path):
        """Test a failing migration stops the run"""
        mock_run.side_effect = [True, ValueError("reverted"), True]
        ctx = make_ctx(tmp_path)
        migrations = [make_migration("001_core"), make_migration("002_oracle"), make_migration("003_strategy")]

        with pytest.raises(ValueError):
            run_migrations(ctx, migrations)
        assert list(ctx.store.migrations()) == ["001_core"]
        assert mock_run.call_count == 2
