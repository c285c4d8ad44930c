"""REST API endpoints for meetings and meeting types.

Meeting types live under /api/v1/meeting-types; meetings and their AI
summaries under /api/v1/meetings.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from src.clienthub.api.deps import get_current_user, get_tenant
from src.clienthub.core.tenant import TenantContext
from src.clienthub.meetings.schemas import (
    MeetingCreate,
    MeetingRead,
    MeetingTypeCreate,
    MeetingTypeOrder,
    MeetingTypeRead,
    MeetingTypeUpdate,
    SummarizeResult,
)
from src.clienthub.models.tenant import User

router = APIRouter(prefix="/api/v1/meetings", tags=["meetings"])
types_router = APIRouter(prefix="/api/v1/meeting-types", tags=["meetings"])


# ── Dependency Injection Helpers ─────────────────────────────────────────────


def _get_meeting_service(request: Request) -> Any:
    """Retrieve MeetingService from app.state, 503 if not available."""
    service = getattr(request.app.state, "meeting_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Meeting service not initialized",
        )
    return service


def _get_meeting_type_service(request: Request) -> Any:
    """Retrieve MeetingTypeService from app.state, 503 if not available."""
    service = getattr(request.app.state, "meeting_type_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Meeting type service not initialized",
        )
    return service


# ── Meeting Types ────────────────────────────────────────────────────────────


@types_router.get("", response_model=list[MeetingTypeRead])
async def list_meeting_types(
    request: Request,
    active_only: bool = Query(default=False),
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> list[MeetingTypeRead]:
    """System and custom meeting types, ordered by order_position."""
    service = _get_meeting_type_service(request)
    return await service.list_meeting_types(tenant.tenant_id, str(user.id), active_only=active_only)


@types_router.post("", response_model=MeetingTypeRead, status_code=status.HTTP_201_CREATED)
async def create_meeting_type(
    body: MeetingTypeCreate,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> MeetingTypeRead:
    service = _get_meeting_type_service(request)
    return await service.create_meeting_type(tenant.tenant_id, str(user.id), body)


@types_router.put("/order", response_model=list[MeetingTypeRead])
async def reorder_meeting_types(
    body: list[MeetingTypeOrder],
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> list[MeetingTypeRead]:
    service = _get_meeting_type_service(request)
    return await service.reorder_meeting_types(tenant.tenant_id, str(user.id), body)


@types_router.patch("/{type_id}", response_model=MeetingTypeRead)
async def update_meeting_type(
    type_id: uuid.UUID,
    body: MeetingTypeUpdate,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> MeetingTypeRead:
    service = _get_meeting_type_service(request)
    return await service.update_meeting_type(tenant.tenant_id, str(user.id), str(type_id), body)


@types_router.post("/{type_id}/toggle", response_model=MeetingTypeRead)
async def toggle_meeting_type(
    type_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> MeetingTypeRead:
    """Activate or deactivate a custom meeting type."""
    service = _get_meeting_type_service(request)
    return await service.toggle_meeting_type(tenant.tenant_id, str(user.id), str(type_id))


# ── Meetings ─────────────────────────────────────────────────────────────────


@router.post("", response_model=MeetingRead, status_code=status.HTTP_201_CREATED)
async def add_meeting(
    body: MeetingCreate,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> MeetingRead:
    service = _get_meeting_service(request)
    return await service.add_meeting(tenant.tenant_id, str(user.id), body)


@router.get("", response_model=list[MeetingRead])
async def list_meetings(
    request: Request,
    client_id: uuid.UUID | None = Query(default=None),
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> list[MeetingRead]:
    """Meetings, most recent first, optionally for one client."""
    service = _get_meeting_service(request)
    return await service.list_meetings(
        tenant.tenant_id, str(user.id), client_id=str(client_id) if client_id else None,
    )


@router.get("/{meeting_id}", response_model=MeetingRead)
async def get_meeting(
    meeting_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> MeetingRead:
    service = _get_meeting_service(request)
    return await service.get_meeting(tenant.tenant_id, str(user.id), str(meeting_id))


@router.delete("/{meeting_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_meeting(
    meeting_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> None:
    service = _get_meeting_service(request)
    await service.delete_meeting(tenant.tenant_id, str(user.id), str(meeting_id))


@router.post("/{meeting_id}/summarize", response_model=SummarizeResult)
async def summarize_meeting(
    meeting_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> SummarizeResult:
    """Generate the AI summary of a meeting transcript (consumes one credit).

    Suggested tasks are returned for review; they are not created.
    """
    service = _get_meeting_service(request)
    return await service.summarize_meeting(tenant.tenant_id, str(user.id), str(meeting_id))
