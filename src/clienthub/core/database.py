"""Async SQLAlchemy engine with multi-tenant schema isolation.

Provides:
- SharedBase: Declarative base for shared schema tables (tenants, plans, dispatcher config)
- TenantBase: Declarative base for per-tenant schema tables (placeholder schema="tenant")
- get_shared_session(): Session for shared schema operations
- get_tenant_session(): Session with schema_translate_map for tenant isolation
- Pool checkout event that resets tenant context (RESET ALL) to prevent stale leaks
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import MetaData, event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.clienthub.config import get_settings
from src.clienthub.core.tenant import TenantContext, get_current_tenant

# ── Module-level engine (lazy init) ────────────────────────────────────────

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.DATABASE_URL,
            pool_size=20,
            max_overflow=10,
            echo=False,
        )

        # Reset session variables on every connection checkout so a tenant id
        # set by a previous request never leaks into the next one
        @event.listens_for(_engine.sync_engine, "checkout")
        def reset_tenant_context(dbapi_conn: Any, connection_record: Any, connection_proxy: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("RESET ALL")
            cursor.close()

    return _engine


# ── Declarative Bases ───────────────────────────────────────────────────────

shared_metadata = MetaData(schema="shared")
tenant_metadata = MetaData(schema="tenant")


class SharedBase(DeclarativeBase):
    """Base class for shared schema models (tenants, plans, dispatcher config)."""

    metadata = shared_metadata


class TenantBase(DeclarativeBase):
    """Base class for per-tenant schema models.

    Uses placeholder schema="tenant" which is remapped at runtime via
    schema_translate_map to the actual tenant schema (e.g., "tenant_acme").
    """

    metadata = tenant_metadata


# ── Session Factories ───────────────────────────────────────────────────────


async def get_shared_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession for the shared schema (no tenant scoping)."""
    engine = get_engine()
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


async def get_session_for_tenant(tenant: TenantContext) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session bound to ``tenant``'s schema with the RLS variable set."""
    engine = get_engine()

    async with engine.connect() as conn:
        # Map placeholder "tenant" schema to actual tenant schema
        conn = await conn.execution_options(
            schema_translate_map={"tenant": tenant.schema_name}
        )
        # Row level security policies read this setting
        await conn.execute(
            text("SELECT set_config('app.current_tenant_id', :tid, false)"),
            {"tid": tenant.tenant_id},
        )

        async with AsyncSession(bind=conn, expire_on_commit=False) as session:
            yield session


async def get_tenant_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a tenant-scoped AsyncSession for the tenant in the current context.

    1. Gets the current tenant from contextvars
    2. Creates a connection with schema_translate_map={"tenant": tenant.schema_name}
    3. Sets RLS context via app.current_tenant_id
    4. Yields the session
    """
    tenant = get_current_tenant()
    async for session in get_session_for_tenant(tenant):
        yield session


# ── Database Initialization ─────────────────────────────────────────────────


async def init_db() -> None:
    """Create the shared schema and shared tables, then seed reference rows."""
    # Shared models must be registered on SharedBase.metadata before create_all
    from src.clienthub.billing.models import PlanModel  # noqa: F401
    from src.clienthub.models.shared import PracticeModel  # noqa: F401
    from src.clienthub.webhooks.models import WebhookDispatcherConfigModel  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.execute(text("CREATE SCHEMA IF NOT EXISTS shared"))
        await conn.run_sync(SharedBase.metadata.create_all)

    from src.clienthub.billing.repository import seed_default_plans
    from src.clienthub.webhooks.repository import ensure_dispatcher_config

    await seed_default_plans(get_shared_session)
    await ensure_dispatcher_config(get_shared_session)


async def close_db() -> None:
    """Dispose of the engine and close all connections."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None
