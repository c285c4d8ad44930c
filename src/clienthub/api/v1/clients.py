"""REST API endpoints for clients.

Every endpoint is scoped to the authenticated consultant: clients owned by
other users of the same tenant are reported as not found.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from src.clienthub.api.deps import get_current_user, get_tenant
from src.clienthub.clients.schemas import (
    ClientCreate,
    ClientDetail,
    ClientFilter,
    ClientRead,
    ClientStatus,
    ClientUpdate,
    RiskLevel,
    RiskScoreBreakdown,
)
from src.clienthub.core.tenant import TenantContext
from src.clienthub.models.tenant import User

router = APIRouter(prefix="/api/v1/clients", tags=["clients"])


def _get_client_service(request: Request) -> Any:
    """Retrieve ClientService from app.state, 503 if not available."""
    service = getattr(request.app.state, "client_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Client service not initialized",
        )
    return service


@router.post("", response_model=ClientRead, status_code=status.HTTP_201_CREATED)
async def create_client(
    body: ClientCreate,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> ClientRead:
    service = _get_client_service(request)
    return await service.create_client(tenant.tenant_id, str(user.id), body)


@router.get("", response_model=list[ClientRead])
async def list_clients(
    request: Request,
    risk_level: RiskLevel | None = Query(default=None),
    no_advance_days: int | None = Query(default=None, ge=1, description="No activity for N days"),
    has_overdue_client_tasks: bool | None = Query(default=None),
    status_filter: ClientStatus | None = Query(default=None, alias="status"),
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> list[ClientRead]:
    """List clients ordered by risk score (highest first)."""
    service = _get_client_service(request)
    filters = ClientFilter(
        risk_level=risk_level,
        no_advance_days=no_advance_days,
        has_overdue_client_tasks=has_overdue_client_tasks,
        status=status_filter,
    )
    return await service.list_clients(tenant.tenant_id, str(user.id), filters)


@router.get("/search", response_model=ClientDetail)
async def find_client(
    request: Request,
    name: str = Query(..., min_length=1),
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> ClientDetail:
    """Look up a client by (partial) name and return it with its metrics."""
    service = _get_client_service(request)
    return await service.get_client(tenant.tenant_id, str(user.id), name=name)


@router.get("/{client_id}", response_model=ClientDetail)
async def get_client(
    client_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> ClientDetail:
    service = _get_client_service(request)
    return await service.get_client(tenant.tenant_id, str(user.id), client_id=str(client_id))


@router.patch("/{client_id}", response_model=ClientRead)
async def update_client(
    client_id: uuid.UUID,
    body: ClientUpdate,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> ClientRead:
    service = _get_client_service(request)
    return await service.update_client(tenant.tenant_id, str(user.id), str(client_id), body)


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_client(
    client_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> None:
    service = _get_client_service(request)
    await service.delete_client(tenant.tenant_id, str(user.id), str(client_id))


@router.post("/{client_id}/risk", response_model=RiskScoreBreakdown)
async def calculate_risk_score(
    client_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> RiskScoreBreakdown:
    """Recalculate and store the client's risk score, returning each factor."""
    service = _get_client_service(request)
    return await service.calculate_risk_score(tenant.tenant_id, str(user.id), str(client_id))
