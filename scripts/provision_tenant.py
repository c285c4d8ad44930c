#!/usr/bin/env python3
"""CLI script to provision a new tenant.

Usage:
    python scripts/provision_tenant.py --slug silva-advisors --name "Silva Advisors"
    python scripts/provision_tenant.py --slug silva-advisors --name "Silva Advisors" \
        --admin-email admin@silva.com.br --admin-password changeme123

Connects directly to the database using DATABASE_URL from environment or .env file.
Provisions schema, creates tables with RLS, registers tenant in shared.tenants.
Optionally creates an initial admin user on the free plan.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import uuid

from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def provision(slug: str, name: str, admin_email: str | None, admin_password: str | None) -> None:
    """Provision a tenant by calling the provisioning service directly."""
    from sqlalchemy import text

    from src.clienthub.billing.repository import BillingRepository, PlanRepository
    from src.clienthub.billing.service import BillingService
    from src.clienthub.core.database import get_engine, get_shared_session, get_tenant_session, init_db
    from src.clienthub.core.security import hash_password
    from src.clienthub.core.tenant import TenantContext, tenant_scope
    from src.clienthub.services.tenant_provisioning import provision_tenant

    # Creates the shared schema and seeds plans if needed
    await init_db()

    print(f"Provisioning tenant: slug={slug}, name={name}")
    result = await provision_tenant(slug=slug, name=name)
    print("Tenant provisioned successfully:")
    print(f"  ID:     {result['tenant_id']}")
    print(f"  Slug:   {result['slug']}")
    print(f"  Name:   {result['name']}")
    print(f"  Schema: {result['schema_name']}")

    if admin_email and admin_password:
        engine = get_engine()
        schema_name = result["schema_name"]
        tenant_id = result["tenant_id"]
        user_id = uuid.uuid4()

        async with engine.begin() as conn:
            # FORCE RLS applies to the table owner too
            await conn.execute(
                text("SELECT set_config('app.current_tenant_id', :tid, true)"),
                {"tid": tenant_id},
            )
            await conn.execute(
                text(f"""
                    INSERT INTO "{schema_name}".users
                        (id, tenant_id, email, name, role, is_active, hashed_password, created_at)
                    VALUES (:id, :tenant_id, :email, :name, 'admin', true, :hashed_password, now())
                """),
                {
                    "id": user_id,
                    "tenant_id": tenant_id,
                    "email": admin_email,
                    "name": f"Admin ({name})",
                    "hashed_password": hash_password(admin_password),
                },
            )
        print(f"  Admin user created: {admin_email}")

        billing = BillingService(PlanRepository(get_shared_session), BillingRepository(get_tenant_session))
        ctx = TenantContext(tenant_id=tenant_id, tenant_slug=slug, schema_name=schema_name)
        with tenant_scope(ctx):
            subscription = await billing.start_free_subscription(tenant_id, str(user_id))
        if subscription is not None:
            print(f"  Free subscription started (period ends {subscription.current_period_end:%Y-%m-%d})")

    await get_engine().dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Provision a new tenant")
    parser.add_argument("--slug", required=True, help="Tenant slug (e.g., silva-advisors)")
    parser.add_argument("--name", required=True, help="Tenant display name (e.g., 'Silva Advisors')")
    parser.add_argument("--admin-email", default=None, help="Initial admin user email")
    parser.add_argument("--admin-password", default=None, help="Initial admin user password")
    args = parser.parse_args()

    if (args.admin_email and not args.admin_password) or (args.admin_password and not args.admin_email):
        parser.error("--admin-email and --admin-password must be provided together")

    asyncio.run(provision(args.slug, args.name, args.admin_email, args.admin_password))


if __name__ == "__main__":
    main()
