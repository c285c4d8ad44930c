"""REST API endpoints for plans, subscriptions and credit usage.

GET /api/v1/billing/plans is public (no tenant context). The /admin/users/
{user_id} routes let a tenant admin manage another consultant's
subscription; everything else acts on the caller's own subscription.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from src.clienthub.api.deps import get_current_user, get_tenant, require_admin
from src.clienthub.billing.schemas import (
    CreditCheck,
    ExtendSubscriptionRequest,
    PlanRead,
    SubscriptionRead,
    UpgradeRequest,
    UsageStats,
)
from src.clienthub.core.tenant import TenantContext
from src.clienthub.models.tenant import User

router = APIRouter(prefix="/api/v1/billing", tags=["billing"])


def _get_billing_service(request: Request) -> Any:
    """Retrieve BillingService from app.state, 503 if not available."""
    service = getattr(request.app.state, "billing_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Billing service not initialized",
        )
    return service


@router.get("/plans", response_model=list[PlanRead])
async def list_plans(request: Request) -> list[PlanRead]:
    """Active plans ordered by price."""
    service = _get_billing_service(request)
    return await service.list_plans()


@router.get("/subscription", response_model=SubscriptionRead | None)
async def get_subscription(
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> SubscriptionRead | None:
    service = _get_billing_service(request)
    return await service.get_subscription(tenant.tenant_id, str(user.id))


@router.get("/credits", response_model=CreditCheck)
async def can_use_credits(
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> CreditCheck:
    service = _get_billing_service(request)
    return await service.can_use_credits(tenant.tenant_id, str(user.id))


@router.get("/usage", response_model=UsageStats)
async def usage_stats(
    request: Request,
    days: int = Query(default=30, ge=1, le=365),
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> UsageStats:
    service = _get_billing_service(request)
    return await service.usage_stats(tenant.tenant_id, str(user.id), days=days)


@router.post("/upgrade", response_model=SubscriptionRead)
async def upgrade(
    body: UpgradeRequest,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> SubscriptionRead:
    """Switch to ``plan_name``, starting a fresh 30-day period."""
    service = _get_billing_service(request)
    return await service.upgrade(tenant.tenant_id, str(user.id), body.plan_name)


@router.post("/cancel", response_model=SubscriptionRead)
async def cancel_subscription(
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> SubscriptionRead:
    service = _get_billing_service(request)
    return await service.cancel_subscription(tenant.tenant_id, str(user.id))


# ── Admin ───────────────────────────────────────────────────────────────────


@router.post("/admin/users/{user_id}/reset-credits", response_model=SubscriptionRead)
async def reset_user_credits(
    user_id: uuid.UUID,
    request: Request,
    admin: User = Depends(require_admin),
    tenant: TenantContext = Depends(get_tenant),
) -> SubscriptionRead:
    service = _get_billing_service(request)
    return await service.reset_credits(tenant.tenant_id, str(user_id), str(admin.id))


@router.post("/admin/users/{user_id}/extend", response_model=SubscriptionRead)
async def extend_user_subscription(
    user_id: uuid.UUID,
    body: ExtendSubscriptionRequest,
    request: Request,
    admin: User = Depends(require_admin),
    tenant: TenantContext = Depends(get_tenant),
) -> SubscriptionRead:
    service = _get_billing_service(request)
    return await service.extend_subscription(tenant.tenant_id, str(user_id), body.days, str(admin.id))


@router.put("/admin/users/{user_id}/plan", response_model=SubscriptionRead)
async def change_user_plan(
    user_id: uuid.UUID,
    body: UpgradeRequest,
    request: Request,
    admin: User = Depends(require_admin),
    tenant: TenantContext = Depends(get_tenant),
) -> SubscriptionRead:
    """Switch another consultant to ``plan_name`` starting a fresh period."""
    service = _get_billing_service(request)
    return await service.change_plan(tenant.tenant_id, str(user_id), body.plan_name, str(admin.id))
