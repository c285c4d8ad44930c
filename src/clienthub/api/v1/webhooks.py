"""REST API endpoints for webhook configurations and the dispatcher.

Configuration, log, queue and stats endpoints are scoped to the
authenticated consultant. Dispatcher status and manual processing act on the
current tenant; changing the dispatcher configuration requires an admin.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel

from src.clienthub.api.deps import get_current_user, get_tenant, require_admin
from src.clienthub.core.tenant import TenantContext
from src.clienthub.models.tenant import User
from src.clienthub.webhooks.schemas import (
    DeliveryLogRead,
    DispatcherConfigUpdate,
    DispatcherStatus,
    DispatchResult,
    WebhookConfigCreate,
    WebhookConfigRead,
    WebhookConfigUpdate,
    WebhookQueueItem,
    WebhookStats,
    WebhookTestResult,
)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


class DispatcherConfigResponse(BaseModel):
    """Dispatcher configuration without the internal secret."""

    enabled: bool
    debounce_seconds: int


def _get_webhook_service(request: Request) -> Any:
    """Retrieve WebhookService from app.state, 503 if not available."""
    service = getattr(request.app.state, "webhook_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook service not initialized",
        )
    return service


# ── Configurations ───────────────────────────────────────────────────────────


@router.post("", response_model=WebhookConfigRead, status_code=status.HTTP_201_CREATED)
async def create_webhook(
    body: WebhookConfigCreate,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> WebhookConfigRead:
    """Create a webhook configuration. The secret key is generated server-side."""
    service = _get_webhook_service(request)
    return await service.create_webhook(tenant.tenant_id, str(user.id), body)


@router.get("", response_model=list[WebhookConfigRead])
async def list_webhooks(
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> list[WebhookConfigRead]:
    service = _get_webhook_service(request)
    return await service.list_webhooks(tenant.tenant_id, str(user.id))


@router.get("/logs", response_model=list[DeliveryLogRead])
async def get_all_webhook_logs(
    request: Request,
    limit: int = Query(default=100, ge=1, le=1000),
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> list[DeliveryLogRead]:
    service = _get_webhook_service(request)
    return await service.get_all_webhook_logs(tenant.tenant_id, str(user.id), limit=limit)


@router.get("/queue", response_model=list[WebhookQueueItem])
async def get_all_webhook_queue(
    request: Request,
    limit: int = Query(default=100, ge=1, le=1000),
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> list[WebhookQueueItem]:
    service = _get_webhook_service(request)
    return await service.get_all_webhook_queue(tenant.tenant_id, str(user.id), limit=limit)


# ── Dispatcher ───────────────────────────────────────────────────────────────


@router.get("/dispatcher/status", response_model=DispatcherStatus)
async def get_dispatcher_status(
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> DispatcherStatus:
    service = _get_webhook_service(request)
    return await service.get_dispatcher_status(tenant.tenant_id)


@router.patch("/dispatcher/config", response_model=DispatcherConfigResponse)
async def update_dispatcher_config(
    body: DispatcherConfigUpdate,
    request: Request,
    user: User = Depends(require_admin),
) -> DispatcherConfigResponse:
    service = _get_webhook_service(request)
    config = await service.update_dispatcher_config(body)
    return DispatcherConfigResponse(enabled=config.enabled, debounce_seconds=config.debounce_seconds)


@router.post("/dispatcher/process", response_model=DispatchResult)
async def force_process(
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> DispatchResult:
    """Process the tenant's due queue rows now, ignoring the debounce window."""
    service = _get_webhook_service(request)
    return await service.force_process(tenant.tenant_id)


# ── Single Configuration ─────────────────────────────────────────────────────


@router.get("/{config_id}", response_model=WebhookConfigRead)
async def get_webhook(
    config_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> WebhookConfigRead:
    service = _get_webhook_service(request)
    return await service.get_webhook(tenant.tenant_id, str(user.id), str(config_id))


@router.patch("/{config_id}", response_model=WebhookConfigRead)
async def update_webhook(
    config_id: uuid.UUID,
    body: WebhookConfigUpdate,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> WebhookConfigRead:
    service = _get_webhook_service(request)
    return await service.update_webhook(tenant.tenant_id, str(user.id), str(config_id), body)


@router.delete("/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_webhook(
    config_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> None:
    service = _get_webhook_service(request)
    await service.delete_webhook(tenant.tenant_id, str(user.id), str(config_id))


@router.post("/{config_id}/regenerate-secret", response_model=WebhookConfigRead)
async def regenerate_secret_key(
    config_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> WebhookConfigRead:
    service = _get_webhook_service(request)
    return await service.regenerate_secret_key(tenant.tenant_id, str(user.id), str(config_id))


@router.get("/{config_id}/logs", response_model=list[DeliveryLogRead])
async def get_webhook_logs(
    config_id: uuid.UUID,
    request: Request,
    limit: int = Query(default=100, ge=1, le=1000),
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> list[DeliveryLogRead]:
    service = _get_webhook_service(request)
    return await service.get_webhook_logs(tenant.tenant_id, str(user.id), str(config_id), limit=limit)


@router.get("/{config_id}/queue", response_model=list[WebhookQueueItem])
async def get_webhook_queue(
    config_id: uuid.UUID,
    request: Request,
    limit: int = Query(default=50, ge=1, le=1000),
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> list[WebhookQueueItem]:
    service = _get_webhook_service(request)
    return await service.get_webhook_queue(tenant.tenant_id, str(user.id), str(config_id), limit=limit)


@router.get("/{config_id}/stats", response_model=WebhookStats)
async def get_webhook_stats(
    config_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> WebhookStats:
    service = _get_webhook_service(request)
    return await service.get_webhook_stats(tenant.tenant_id, str(user.id), str(config_id))


@router.post("/{config_id}/test", response_model=WebhookTestResult)
async def send_test_webhook(
    config_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> WebhookTestResult:
    """Send a signed test.webhook delivery and report the outcome."""
    service = _get_webhook_service(request)
    return await service.send_test_webhook(tenant.tenant_id, str(user.id), str(config_id))
