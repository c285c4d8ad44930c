"""Tenant resolution middleware with JWT and header-based modes.

Resolves tenant context from:
1. JWT claims in Authorization header (preferred for user requests)
2. X-Tenant-ID header (fallback for login, register and refresh)

After resolution, sets TenantContext in contextvars for the request scope.
"""

from __future__ import annotations

import json

import redis.asyncio as aioredis
import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.clienthub.core.database import get_engine
from src.clienthub.core.security import decode_token_claims
from src.clienthub.core.tenant import (
    SKIP_TENANT_PATHS,
    TenantContext,
    reset_tenant_context,
    set_tenant_context,
)

logger = structlog.get_logger(__name__)

CACHE_TTL_SECONDS = 300


class TenantAuthMiddleware(BaseHTTPMiddleware):
    """Middleware that resolves tenant from JWT claims or X-Tenant-ID header.

    Paths in SKIP_TENANT_PATHS are excluded from tenant resolution.
    """

    def __init__(self, app, redis_client: aioredis.Redis | None = None):
        super().__init__(app)
        self._redis = redis_client

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if any(path.startswith(skip) for skip in SKIP_TENANT_PATHS):
            return await call_next(request)

        tenant_ctx = await self._resolve_from_jwt(request)
        if not tenant_ctx:
            tenant_ctx = await self._resolve_from_header(request)

        if not tenant_ctx:
            # HTTPException raised here would bypass FastAPI's handlers
            return JSONResponse(
                status_code=400,
                content={
                    "detail": "Missing tenant context. Provide Authorization header with JWT or X-Tenant-ID header.",
                    "code": "tenant_required",
                },
            )

        token = set_tenant_context(tenant_ctx)
        try:
            return await call_next(request)
        finally:
            reset_tenant_context(token)

    async def _resolve_from_jwt(self, request: Request) -> TenantContext | None:
        """Extract tenant context from JWT claims in Authorization header."""
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return None

        payload = decode_token_claims(auth_header[7:])
        if not payload:
            return None

        tenant_id = payload.get("tenant_id")
        if not tenant_id or not payload.get("tenant_slug"):
            return None

        # The lookup also verifies that the tenant still exists and is active
        return await self._resolve_tenant_by_id(tenant_id)

    async def _resolve_from_header(self, request: Request) -> TenantContext | None:
        tenant_id = request.headers.get("X-Tenant-ID")
        if not tenant_id:
            return None
        return await self._resolve_tenant_by_id(tenant_id)

    async def _resolve_tenant_by_id(self, tenant_id: str) -> TenantContext | None:
        """Resolve tenant by ID, using Redis cache when available."""
        cache_key = f"tenant:lookup:{tenant_id}"
        if self._redis:
            try:
                cached = await self._redis.get(cache_key)
                if cached:
                    data = json.loads(cached)
                    return TenantContext(
                        tenant_id=data["tenant_id"],
                        tenant_slug=data["tenant_slug"],
                        schema_name=data["schema_name"],
                    )
            except Exception:
                logger.warning("tenant_cache_get_failed", tenant_id=tenant_id)

        engine = get_engine()
        async with engine.connect() as conn:
            result = await conn.execute(
                text("SELECT id, slug, schema_name FROM shared.tenants WHERE id::text = :tid AND is_active = true"),
                {"tid": tenant_id},
            )
            row = result.first()
        if not row:
            return None

        ctx = TenantContext(
            tenant_id=str(row.id),
            tenant_slug=row.slug,
            schema_name=row.schema_name,
        )
        if self._redis:
            try:
                await self._redis.set(
                    cache_key,
                    json.dumps({"tenant_id": ctx.tenant_id, "tenant_slug": ctx.tenant_slug, "schema_name": ctx.schema_name}),
                    ex=CACHE_TTL_SECONDS,
                )
            except Exception:
                logger.warning("tenant_cache_set_failed", tenant_id=tenant_id)
        return ctx
