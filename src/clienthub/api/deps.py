"""FastAPI dependency injection for tenant-scoped resources and authentication.

These dependencies are used in endpoint function signatures to inject
the correct tenant context, database session, and authenticated user.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.clienthub.core.database import get_tenant_session
from src.clienthub.core.security import verify_token
from src.clienthub.core.tenant import TenantContext, get_current_tenant
from src.clienthub.models.tenant import User

ADMIN_ROLE = "admin"


async def get_tenant() -> TenantContext:
    """Get the current tenant context (set by TenantAuthMiddleware)."""
    try:
        return get_current_tenant()
    except RuntimeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing tenant context",
        )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get a tenant-scoped database session."""
    async for session in get_tenant_session():
        yield session


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the current user from the Bearer JWT.

    Raises:
        HTTPException(401): If no valid authentication is provided.
        HTTPException(403): If the token's tenant doesn't match the current tenant context.
    """
    tenant = get_current_tenant()

    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_token(auth_header[7:], token_type="access")
    token_tenant_id = payload.get("tenant_id")
    if token_tenant_id and token_tenant_id != tenant.tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token tenant does not match request tenant context",
        )

    result = await db.execute(
        select(User).where(
            User.id == payload.get("sub"),
            User.tenant_id == tenant.tenant_id,
            User.is_active == True,  # noqa: E712
        )
    )
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Allow only users with the admin role."""
    if user.role != ADMIN_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return user
