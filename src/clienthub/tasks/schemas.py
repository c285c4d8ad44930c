"""Pydantic schemas for tasks and the kanban board."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from src.clienthub.schemas.common import UUIDStr


class TaskStatus(str, Enum):
    """Kanban columns, in board order."""

    BACKLOG = "backlog"
    PENDENTE = "pendente"
    EM_ANDAMENTO = "em_andamento"
    EM_REVISAO = "em_revisao"
    CONCLUIDA = "concluida"
    CANCELADA = "cancelada"


class TaskPriority(str, Enum):
    BAIXA = "baixa"
    MEDIA = "media"
    ALTA = "alta"
    URGENTE = "urgente"


class TaskOwner(str, Enum):
    """Who must act: the consultant or the client."""

    CONSULTANT = "Leonardo"
    CLIENT = "Cliente"


def _non_blank_title(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Task title must not be empty")
    return value


class TaskCreate(BaseModel):
    client_id: UUIDStr
    meeting_id: UUIDStr | None = None
    title: str
    description: str | None = None
    owner: TaskOwner
    due_date: date
    status: TaskStatus = TaskStatus.PENDENTE
    priority: TaskPriority = TaskPriority.MEDIA

    @field_validator("title")
    @classmethod
    def _validate_title(cls, v: str) -> str:
        return _non_blank_title(v)


class TaskUpdate(BaseModel):
    """Editable task fields (status changes go through update_task_status / move_task)."""

    title: str | None = None
    description: str | None = None
    owner: TaskOwner | None = None
    due_date: date | None = None
    priority: TaskPriority | None = None
    blocked: bool | None = None
    blocked_reason: str | None = None

    @field_validator("title")
    @classmethod
    def _validate_title(cls, v: str | None) -> str | None:
        return None if v is None else _non_blank_title(v)


class TaskMove(BaseModel):
    status: TaskStatus
    order_position: int = Field(ge=0)


class TaskRead(BaseModel):
    id: str
    tenant_id: str
    user_id: str
    client_id: str
    meeting_id: str | None = None
    title: str
    description: str | None = None
    owner: TaskOwner
    status: TaskStatus = TaskStatus.PENDENTE
    priority: TaskPriority = TaskPriority.MEDIA
    due_date: date | None = None
    completed_at: datetime | None = None
    assigned_date: date | None = None
    order_position: int = 0
    blocked: bool = False
    blocked_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class KanbanBoard(BaseModel):
    """Tasks grouped by status column, each column ordered by order_position."""

    columns: dict[str, list[TaskRead]] = Field(default_factory=dict)
    counts: dict[str, int] = Field(default_factory=dict)
