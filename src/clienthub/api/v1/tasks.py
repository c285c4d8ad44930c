"""REST API endpoints for tasks and the kanban board."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel

from src.clienthub.api.deps import get_current_user, get_tenant
from src.clienthub.core.tenant import TenantContext
from src.clienthub.models.tenant import User
from src.clienthub.tasks.schemas import (
    KanbanBoard,
    TaskCreate,
    TaskMove,
    TaskRead,
    TaskStatus,
    TaskUpdate,
)

router = APIRouter(prefix="/api/v1/tasks", tags=["tasks"])


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


def _get_task_service(request: Request) -> Any:
    """Retrieve TaskService from app.state, 503 if not available."""
    service = getattr(request.app.state, "task_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Task service not initialized",
        )
    return service


@router.post("", response_model=list[TaskRead], status_code=status.HTTP_201_CREATED)
async def create_tasks(
    body: list[TaskCreate],
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> list[TaskRead]:
    """Create a batch of tasks. The batch fails as a whole if any client is unknown."""
    service = _get_task_service(request)
    return await service.create_tasks(tenant.tenant_id, str(user.id), body)


@router.get("", response_model=list[TaskRead])
async def list_tasks(
    request: Request,
    client_id: uuid.UUID | None = Query(default=None),
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> list[TaskRead]:
    service = _get_task_service(request)
    return await service.list_tasks(
        tenant.tenant_id, str(user.id), client_id=str(client_id) if client_id else None,
    )


@router.get("/board", response_model=KanbanBoard)
async def kanban_board(
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> KanbanBoard:
    service = _get_task_service(request)
    return await service.kanban_board(tenant.tenant_id, str(user.id))


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> TaskRead:
    service = _get_task_service(request)
    return await service.get_task(tenant.tenant_id, str(user.id), str(task_id))


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: uuid.UUID,
    body: TaskUpdate,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> TaskRead:
    service = _get_task_service(request)
    return await service.update_task(tenant.tenant_id, str(user.id), str(task_id), body)


@router.put("/{task_id}/status", response_model=TaskRead)
async def update_task_status(
    task_id: uuid.UUID,
    body: TaskStatusUpdate,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> TaskRead:
    service = _get_task_service(request)
    return await service.update_task_status(tenant.tenant_id, str(user.id), str(task_id), body.status)


@router.put("/{task_id}/move", response_model=TaskRead)
async def move_task(
    task_id: uuid.UUID,
    body: TaskMove,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> TaskRead:
    """Move a task to another kanban column and/or position."""
    service = _get_task_service(request)
    return await service.move_task(tenant.tenant_id, str(user.id), str(task_id), body)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant),
) -> None:
    service = _get_task_service(request)
    await service.delete_task(tenant.tenant_id, str(user.id), str(task_id))
