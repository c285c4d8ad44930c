"""Tenant provisioning service.

Handles creating new tenants with isolated PostgreSQL schemas, every
tenant table from TenantBase.metadata, RLS policies, and Redis namespaces.
This is the core of the multi-tenant onboarding flow.
"""

from __future__ import annotations

import json
import re
import uuid

import structlog
from sqlalchemy import text

# Tenant models must be registered on TenantBase.metadata before create_all
from src.clienthub.billing import models as billing_models  # noqa: F401
from src.clienthub.clients import models as client_models  # noqa: F401
from src.clienthub.core.database import TenantBase, get_engine
from src.clienthub.core.exceptions import ConflictError, ValidationError
from src.clienthub.core.redis import get_redis_pool, tenant_key
from src.clienthub.core.tenant import TenantContext, schema_name_for
from src.clienthub.meetings import models as meeting_models  # noqa: F401
from src.clienthub.models import tenant as user_models  # noqa: F401
from src.clienthub.tasks import models as task_models  # noqa: F401
from src.clienthub.webhooks import models as webhook_models  # noqa: F401

logger = structlog.get_logger(__name__)

# Slug validation: lowercase alphanumeric + hyphens, 3-50 chars
SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]{1,48}[a-z0-9]$")

RLS_POLICY = """
    CREATE POLICY tenant_isolation ON "{schema}".{table}
    FOR ALL
    USING (tenant_id::text = current_setting('app.current_tenant_id', true))
    WITH CHECK (tenant_id::text = current_setting('app.current_tenant_id', true))
"""


def tenant_table_names() -> list[str]:
    """Tenant tables in dependency order."""
    return [table.name for table in TenantBase.metadata.sorted_tables]


async def provision_tenant(slug: str, name: str) -> dict:
    """Provision a new tenant with isolated schema, RLS, and Redis namespace.

    Steps:
    1. Validate slug format
    2. Check for duplicate slug
    3. Create PostgreSQL schema
    4. Create all tenant tables and enable RLS on each
    5. Insert tenant record in shared.tenants
    6. Initialize Redis namespace

    Raises:
        ValidationError: Invalid slug format
        ConflictError: Tenant with slug already exists
    """
    if not SLUG_PATTERN.match(slug):
        raise ValidationError(
            "Slug must be 3-50 chars, lowercase alphanumeric and hyphens only, "
            "must start and end with alphanumeric character.",
            code="invalid_slug",
        )

    schema_name = schema_name_for(slug)

    engine = get_engine()
    async with engine.begin() as conn:
        result = await conn.execute(
            text("SELECT id FROM shared.tenants WHERE slug = :slug"),
            {"slug": slug},
        )
        if result.first():
            raise ConflictError(f"Tenant with slug '{slug}' already exists")

        await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{schema_name}"'))

        # Map placeholder "tenant" schema to the new schema for DDL
        ddl_conn = await conn.execution_options(schema_translate_map={"tenant": schema_name})
        await ddl_conn.run_sync(TenantBase.metadata.create_all)

        for table in tenant_table_names():
            await conn.execute(text(f'ALTER TABLE "{schema_name}".{table} ENABLE ROW LEVEL SECURITY'))
            await conn.execute(text(f'ALTER TABLE "{schema_name}".{table} FORCE ROW LEVEL SECURITY'))
            await conn.execute(text(RLS_POLICY.format(schema=schema_name, table=table)))

        tenant_id = uuid.uuid4()
        await conn.execute(
            text("""
                INSERT INTO shared.tenants (id, slug, name, schema_name, is_active, created_at)
                VALUES (:id, :slug, :name, :schema_name, true, now())
            """),
            {"id": tenant_id, "slug": slug, "name": name, "schema_name": schema_name},
        )

    try:
        redis = get_redis_pool()
        await redis.set(tenant_key(str(tenant_id), "initialized"), "true")
    except Exception:
        logger.warning("tenant_redis_init_failed", tenant_slug=slug, exc_info=True)

    logger.info("tenant_provisioned", tenant_id=str(tenant_id), tenant_slug=slug, schema_name=schema_name)
    return {
        "tenant_id": str(tenant_id),
        "slug": slug,
        "name": name,
        "schema_name": schema_name,
    }


async def list_tenants() -> list[dict]:
    """List all active tenants."""
    engine = get_engine()
    async with engine.connect() as conn:
        result = await conn.execute(
            text(
                "SELECT id, slug, name, schema_name, is_active, created_at "
                "FROM shared.tenants WHERE is_active = true ORDER BY created_at"
            )
        )
        return [
            {
                "id": str(row.id),
                "slug": row.slug,
                "name": row.name,
                "schema_name": row.schema_name,
                "is_active": row.is_active,
                "created_at": row.created_at.isoformat() if row.created_at else None,
            }
            for row in result.fetchall()
        ]


async def list_tenant_contexts() -> list[TenantContext]:
    """Active tenants as TenantContext values (background workers)."""
    return [
        TenantContext(tenant_id=t["id"], tenant_slug=t["slug"], schema_name=t["schema_name"])
        for t in await list_tenants()
    ]


async def get_tenant_by_slug(slug: str) -> dict | None:
    """Look up a tenant by slug. Caches result in Redis for 5 minutes."""
    redis = get_redis_pool()

    try:
        cached = await redis.get(f"tenant:slug:{slug}")
        if cached:
            return json.loads(cached)
    except Exception:
        logger.warning("tenant_cache_get_failed", tenant_slug=slug)

    engine = get_engine()
    async with engine.connect() as conn:
        result = await conn.execute(
            text(
                "SELECT id, slug, name, schema_name, is_active, created_at "
                "FROM shared.tenants WHERE slug = :slug AND is_active = true"
            ),
            {"slug": slug},
        )
        row = result.first()
        if not row:
            return None

        tenant_data = {
            "id": str(row.id),
            "slug": row.slug,
            "name": row.name,
            "schema_name": row.schema_name,
            "is_active": row.is_active,
            "created_at": row.created_at.isoformat() if row.created_at else None,
        }

    try:
        await redis.set(f"tenant:slug:{slug}", json.dumps(tenant_data), ex=300)
    except Exception:
        logger.warning("tenant_cache_set_failed", tenant_slug=slug)

    return tenant_data
