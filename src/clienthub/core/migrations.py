"""Multi-tenant migration helpers.

Runs Alembic migrations for the shared schema, for one tenant schema, or for
every active tenant schema. Used by scripts/migrate.py and tenant provisioning scripts.
"""

from __future__ import annotations

from argparse import Namespace

import structlog
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, text

from src.clienthub.config import get_settings

logger = structlog.get_logger(__name__)

SHARED_REVISION = "shared@head"
TENANT_REVISION = "tenant@head"


def _get_alembic_config(schema_name: str) -> Config:
    """Alembic Config for alembic.ini with ``-x schema=<schema_name>`` applied."""
    config = Config("alembic.ini")
    # context.get_x_argument() reads cmd_opts.x
    config.cmd_opts = Namespace(x=[f"schema={schema_name}"])
    return config


def migrate_shared(direction: str = "upgrade", revision: str = SHARED_REVISION) -> None:
    """Run migrations for the shared schema."""
    _migrate("shared", direction, revision)


def migrate_tenant(schema_name: str, direction: str = "upgrade", revision: str = TENANT_REVISION) -> None:
    """Run migration for a single tenant schema.

    Args:
        schema_name: The tenant schema name (e.g., "tenant_acme_advisors")
        direction: "upgrade" or "downgrade"
        revision: Target revision (default: the tenant branch head)
    """
    _migrate(schema_name, direction, revision)


def _migrate(schema_name: str, direction: str, revision: str) -> None:
    config = _get_alembic_config(schema_name)
    if direction == "upgrade":
        command.upgrade(config, revision)
    elif direction == "downgrade":
        command.downgrade(config, revision)
    else:
        raise ValueError(f"Invalid direction: {direction}")
    logger.info("schema_migrated", schema_name=schema_name, direction=direction, revision=revision)


def migrate_all_tenants(direction: str = "upgrade", revision: str = TENANT_REVISION) -> list[str]:
    """Run migrations for all active tenant schemas.

    Returns:
        List of schema names that were migrated.
    """
    settings = get_settings()
    engine = create_engine(settings.DATABASE_URL.replace("+asyncpg", "+psycopg2"))
    try:
        with engine.connect() as conn:
            result = conn.execute(
                text("SELECT schema_name FROM shared.tenants WHERE is_active = true ORDER BY created_at")
            )
            schemas = [row[0] for row in result]
    finally:
        engine.dispose()

    for schema_name in schemas:
        migrate_tenant(schema_name, direction, revision)
    return schemas
