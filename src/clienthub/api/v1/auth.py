"""Authentication API endpoints.

Provides registration, login, token refresh and current user info.
All endpoints except register, login and refresh require a valid JWT token.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.clienthub.api.deps import get_current_user, get_db
from src.clienthub.core.security import (
    create_access_token,
    create_refresh_token,
    hash_password,
    verify_password,
    verify_token,
)
from src.clienthub.core.tenant import TenantContext, get_current_tenant
from src.clienthub.models.tenant import User
from src.clienthub.schemas.auth import (
    LoginRequest,
    RegisterRequest,
    TokenRefreshRequest,
    TokenResponse,
    UserResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _issue_tokens(user: User, tenant: TenantContext) -> TokenResponse:
    token_data = {
        "sub": str(user.id),
        "tenant_id": str(user.tenant_id),
        "tenant_slug": tenant.tenant_slug,
        "email": user.email,
        "role": user.role,
    }
    return TokenResponse(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token(token_data),
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, request: Request, db: AsyncSession = Depends(get_db)):
    """Create a consultant account in the current tenant and sign it in.

    A free subscription is started when the free plan exists.
    """
    tenant = get_current_tenant()

    existing = await db.execute(
        select(User.id).where(User.email == body.email, User.tenant_id == tenant.tenant_id)
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    user = User(
        tenant_id=tenant.tenant_id,
        email=body.email,
        name=body.name,
        hashed_password=hash_password(body.password),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("user_registered", tenant_id=tenant.tenant_id, user_id=str(user.id))

    billing = getattr(request.app.state, "billing_service", None)
    if billing is not None:
        try:
            await billing.start_free_subscription(tenant.tenant_id, str(user.id))
        except Exception:
            logger.warning(
                "free_subscription_failed",
                tenant_id=tenant.tenant_id,
                user_id=str(user.id),
                exc_info=True,
            )

    return _issue_tokens(user, tenant)


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Authenticate a user and return JWT tokens.

    Requires X-Tenant-ID header (or tenant context from middleware) to scope
    the user lookup to the correct tenant.
    """
    tenant = get_current_tenant()

    result = await db.execute(
        select(User).where(
            User.email == body.email,
            User.tenant_id == tenant.tenant_id,
            User.is_active == True,  # noqa: E712
        )
    )
    user = result.scalar_one_or_none()

    if not user or not user.hashed_password or not verify_password(body.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    return _issue_tokens(user, tenant)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(body: TokenRefreshRequest, db: AsyncSession = Depends(get_db)):
    """Refresh an expired access token using a valid refresh token."""
    payload = verify_token(body.refresh_token, token_type="refresh")

    tenant = get_current_tenant()
    result = await db.execute(
        select(User).where(
            User.id == payload["sub"],
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

    return _issue_tokens(user, tenant)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Return current user info."""
    tenant = get_current_tenant()
    return UserResponse(
        id=str(current_user.id),
        email=current_user.email,
        name=current_user.name,
        role=current_user.role,
        tenant_id=str(current_user.tenant_id),
        tenant_slug=tenant.tenant_slug,
    )
