"""Task repository -- async persistence for tasks and kanban ordering.

Uses the session_factory callable pattern; every query filters by tenant_id
and the owning user_id.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import date, datetime, timezone
from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.clienthub.tasks.models import TaskModel
from src.clienthub.tasks.schemas import (
    TaskCreate,
    TaskOwner,
    TaskPriority,
    TaskRead,
    TaskStatus,
)

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


def _model_to_task(model: TaskModel) -> TaskRead:
    return TaskRead(
        id=str(model.id),
        tenant_id=str(model.tenant_id),
        user_id=str(model.user_id),
        client_id=str(model.client_id),
        meeting_id=str(model.meeting_id) if model.meeting_id else None,
        title=model.title,
        description=model.description,
        owner=TaskOwner(model.owner),
        status=TaskStatus(model.status),
        priority=TaskPriority(model.priority),
        due_date=model.due_date,
        completed_at=model.completed_at,
        assigned_date=model.assigned_date,
        order_position=model.order_position or 0,
        blocked=bool(model.blocked),
        blocked_reason=model.blocked_reason,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class TaskRepository:
    """Async CRUD for tasks.

    Args:
        session_factory: Async callable that yields tenant-scoped AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def _owned(self, tenant_id: str, user_id: str):
        return select(TaskModel).where(
            TaskModel.tenant_id == uuid.UUID(tenant_id),
            TaskModel.user_id == uuid.UUID(user_id),
        )

    async def _next_position(
        self, session: AsyncSession, tenant_id: str, user_id: str, status: str
    ) -> int:
        stmt = select(func.coalesce(func.max(TaskModel.order_position), -1)).where(
            TaskModel.tenant_id == uuid.UUID(tenant_id),
            TaskModel.user_id == uuid.UUID(user_id),
            TaskModel.status == status,
        )
        return int((await session.execute(stmt)).scalar_one()) + 1

    async def create_tasks(
        self, tenant_id: str, user_id: str, items: list[TaskCreate], assigned_date: date
    ) -> list[TaskRead]:
        """Insert ``items`` in one transaction, appending each to the end of its column."""
        async for session in self._session_factory():
            positions: dict[str, int] = {}
            models: list[TaskModel] = []
            for item in items:
                status = item.status.value
                if status not in positions:
                    positions[status] = await self._next_position(session, tenant_id, user_id, status)
                model = TaskModel(
                    tenant_id=uuid.UUID(tenant_id),
                    user_id=uuid.UUID(user_id),
                    client_id=uuid.UUID(item.client_id),
                    meeting_id=uuid.UUID(item.meeting_id) if item.meeting_id else None,
                    title=item.title,
                    description=item.description,
                    owner=item.owner.value,
                    status=status,
                    priority=item.priority.value,
                    due_date=item.due_date,
                    completed_at=datetime.now(timezone.utc) if item.status is TaskStatus.CONCLUIDA else None,
                    assigned_date=assigned_date,
                    order_position=positions[status],
                    blocked=False,
                )
                positions[status] += 1
                session.add(model)
                models.append(model)
            await session.commit()
            for model in models:
                await session.refresh(model)
            return [_model_to_task(m) for m in models]

    async def get_task(self, tenant_id: str, user_id: str, task_id: str) -> TaskRead | None:
        async for session in self._session_factory():
            stmt = self._owned(tenant_id, user_id).where(TaskModel.id == uuid.UUID(task_id))
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _model_to_task(model) if model else None

    async def update_task(
        self, tenant_id: str, user_id: str, task_id: str, changes: dict[str, Any]
    ) -> TaskRead | None:
        async for session in self._session_factory():
            stmt = self._owned(tenant_id, user_id).where(TaskModel.id == uuid.UUID(task_id))
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is None:
                return None
            for field, value in changes.items():
                setattr(model, field, value)
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_task(model)

    async def move_task(
        self,
        tenant_id: str,
        user_id: str,
        task_id: str,
        changes: dict[str, Any],
        order_position: int,
    ) -> TaskRead | None:
        """Place a task at ``order_position`` in the column named by ``changes["status"]``.

        Tasks already at or after that position in the target column shift down by one.
        """
        async for session in self._session_factory():
            stmt = self._owned(tenant_id, user_id).where(TaskModel.id == uuid.UUID(task_id))
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is None:
                return None
            await session.execute(
                update(TaskModel)
                .where(
                    TaskModel.tenant_id == uuid.UUID(tenant_id),
                    TaskModel.user_id == uuid.UUID(user_id),
                    TaskModel.status == changes["status"],
                    TaskModel.order_position >= order_position,
                    TaskModel.id != model.id,
                )
                .values(order_position=TaskModel.order_position + 1)
            )
            for field, value in changes.items():
                setattr(model, field, value)
            model.order_position = order_position
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_task(model)

    async def delete_task(self, tenant_id: str, user_id: str, task_id: str) -> bool:
        async for session in self._session_factory():
            stmt = self._owned(tenant_id, user_id).where(TaskModel.id == uuid.UUID(task_id))
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is None:
                return False
            await session.delete(model)
            await session.commit()
            return True

    async def list_tasks(
        self,
        tenant_id: str,
        user_id: str,
        *,
        client_id: str | None = None,
        statuses: list[str] | None = None,
        owner: str | None = None,
        due_before: date | None = None,
    ) -> list[TaskRead]:
        """Owned tasks ordered by due_date ascending, optionally filtered."""
        async for session in self._session_factory():
            stmt = self._owned(tenant_id, user_id)
            if client_id is not None:
                stmt = stmt.where(TaskModel.client_id == uuid.UUID(client_id))
            if statuses:
                stmt = stmt.where(TaskModel.status.in_(statuses))
            if owner is not None:
                stmt = stmt.where(TaskModel.owner == owner)
            if due_before is not None:
                stmt = stmt.where(TaskModel.due_date < due_before)
            stmt = stmt.order_by(TaskModel.due_date.asc().nulls_last(), TaskModel.created_at.asc())
            result = await session.execute(stmt)
            return [_model_to_task(m) for m in result.scalars().all()]

    async def list_board_tasks(self, tenant_id: str, user_id: str) -> list[TaskRead]:
        """Owned tasks ordered by status then order_position."""
        async for session in self._session_factory():
            stmt = self._owned(tenant_id, user_id).order_by(
                TaskModel.status, TaskModel.order_position.asc(), TaskModel.created_at.asc()
            )
            result = await session.execute(stmt)
            return [_model_to_task(m) for m in result.scalars().all()]

    async def count_completed_since(
        self, tenant_id: str, user_id: str, client_id: str, since: datetime
    ) -> int:
        async for session in self._session_factory():
            stmt = select(func.count()).select_from(TaskModel).where(
                TaskModel.tenant_id == uuid.UUID(tenant_id),
                TaskModel.user_id == uuid.UUID(user_id),
                TaskModel.client_id == uuid.UUID(client_id),
                TaskModel.status == TaskStatus.CONCLUIDA.value,
                TaskModel.completed_at >= since,
            )
            return int((await session.execute(stmt)).scalar_one())

    async def clients_with_overdue_client_tasks(
        self, tenant_id: str, user_id: str, today: date
    ) -> set[str]:
        """Ids of clients with open, client-owned tasks due before ``today``."""
        async for session in self._session_factory():
            stmt = (
                select(TaskModel.client_id)
                .where(
                    TaskModel.tenant_id == uuid.UUID(tenant_id),
                    TaskModel.user_id == uuid.UUID(user_id),
                    TaskModel.owner == TaskOwner.CLIENT.value,
                    TaskModel.status.in_([TaskStatus.PENDENTE.value, TaskStatus.EM_ANDAMENTO.value]),
                    TaskModel.due_date < today,
                )
                .distinct()
            )
            result = await session.execute(stmt)
            return {str(row) for row in result.scalars().all()}
