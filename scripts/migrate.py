#!/usr/bin/env python3
"""CLI script to run Alembic migrations for the shared and tenant schemas.

Usage:
    python scripts/migrate.py                      # shared schema, then every active tenant
    python scripts/migrate.py --shared-only
    python scripts/migrate.py --schema tenant_acme_advisors
    python scripts/migrate.py --schema tenant_acme_advisors --downgrade 003_crm_tables

Run from the project root (alembic.ini is resolved relative to the working directory).
"""

from __future__ import annotations

import argparse

from src.clienthub.api.middleware.logging import configure_structlog
from src.clienthub.core.migrations import migrate_all_tenants, migrate_shared, migrate_tenant


def main() -> None:
    parser = argparse.ArgumentParser(description="Run ClientHub schema migrations")
    parser.add_argument("--schema", default=None, help="Migrate a single tenant schema")
    parser.add_argument("--shared-only", action="store_true", help="Migrate only the shared schema")
    parser.add_argument("--downgrade", default=None, metavar="REVISION", help="Downgrade --schema to REVISION")
    args = parser.parse_args()

    if args.downgrade and not args.schema:
        parser.error("--downgrade requires --schema")

    configure_structlog()

    if args.schema:
        if args.downgrade:
            migrate_tenant(args.schema, "downgrade", args.downgrade)
        else:
            migrate_tenant(args.schema)
        return

    migrate_shared()
    if args.shared_only:
        return
    migrated = migrate_all_tenants()
    print(f"Migrated {len(migrated)} tenant schema(s)")


if __name__ == "__main__":
    main()
