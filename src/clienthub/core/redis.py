"""Redis connection pool shared by the tenant lookup cache and provisioning.

Tenant lookups are cached under global ``tenant:lookup:{tenant_id}`` keys;
per-tenant keys use the ``t:{tenant_id}:`` prefix.
"""

from __future__ import annotations

import redis.asyncio as aioredis

from src.clienthub.config import get_settings

# ── Module-level Redis pool (lazy init) ─────────────────────────────────────

_redis_pool: aioredis.Redis | None = None


def get_redis_pool() -> aioredis.Redis:
    """Get or create the Redis connection pool singleton."""
    global _redis_pool
    if _redis_pool is None:
        settings = get_settings()
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.aclose()
        _redis_pool = None


def tenant_key(tenant_id: str, key: str) -> str:
    """Build a tenant-prefixed key: t:{tenant_id}:{key}."""
    return f"t:{tenant_id}:{key}"
