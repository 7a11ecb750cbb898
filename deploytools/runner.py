"""
Discovery and sequential execution of deploy scripts
"""

import glob
import importlib.util
import logging
import os
from typing import Iterable, List, Optional

from .context import DeployContext
from .errors import DeployError
from .migration import Migration

logger = logging.getLogger(__name__)


def discover_migrations(directory: str) -> List[Migration]:
    """Imports every deploy script of a directory, in file name order"""
    migrations = []
    for path in sorted(glob.glob(os.path.join(directory, "*.py"))):
        name = os.path.splitext(os.path.basename(path))[0]
        if name.startswith("_"):
            continue

        spec = importlib.util.spec_from_file_location(f"deploy_scripts.{name}", path)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        migration = getattr(module, "migration", None)
        if not isinstance(migration, Migration):
            raise DeployError(f"Deploy script {path} does not define a migration")
        migrations.append(migration)

    logger.debug(f"Found {len(migrations)} migrations in {directory}")
    return migrations


def order_migrations(migrations: List[Migration]) -> List[Migration]:
    """Keeps file order, except that dependencies always run first"""
    by_name = {m.deploy_name: m for m in migrations}
    ordered: List[Migration] = []
    visiting = set()

    def visit(migration: Migration):
        if migration in ordered:
            return
        if migration.deploy_name in visiting:
            raise DeployError(f"Circular dependency on {migration.deploy_name}")
        visiting.add(migration.deploy_name)
        for dependency in migration.dependencies:
            if dependency not in by_name:
                raise DeployError(f"{migration.deploy_name} depends on unknown migration {dependency}")
            visit(by_name[dependency])
        visiting.discard(migration.deploy_name)
        ordered.append(migration)

    for migration in migrations:
        visit(migration)
    return ordered


def run_migrations(ctx: DeployContext, migrations: List[Migration],
                   tags: Optional[Iterable[str]] = None) -> List[str]:
    """
    Runs migrations one after the other and records the ones that ran.

    A migration already recorded under its id is not run again. The first
    error aborts the whole run. Returns the ids of the migrations that ran.
    """
    tags = set(tags or [])
    recorded = ctx.store.migrations()
    ran = []

    for migration in order_migrations(migrations):
        if tags and migration.deploy_name not in tags:
            continue

        migration.prepare(ctx.config, recorded)
        migration_id = migration.id

        if migration_id in recorded:
            logger.info(f"Migration {migration_id} already executed. Skipping.")
            continue
        if migration.skip():
            logger.info(f"Skipping {migration_id}")
            continue

        if migration.run(ctx):
            ctx.store.record_migration(migration_id)
            recorded = ctx.store.migrations()
            ran.append(migration_id)

    return ran
