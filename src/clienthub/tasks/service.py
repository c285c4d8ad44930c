"""Task service -- batch creation, status workflow, kanban moves and listing."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog

from src.clienthub.clients.repository import ClientRepository
from src.clienthub.core.exceptions import NotFoundError, ValidationError
from src.clienthub.tasks.repository import TaskRepository
from src.clienthub.tasks.schemas import (
    KanbanBoard,
    TaskCreate,
    TaskMove,
    TaskRead,
    TaskStatus,
    TaskUpdate,
)
from src.clienthub.tasks.workflow import BOARD_ORDER, is_completion, status_changes
from src.clienthub.webhooks.emitter import WebhookEmitter
from src.clienthub.webhooks.schemas import WebhookEventType

logger = structlog.get_logger(__name__)


def _task_event_data(task: TaskRead) -> dict[str, Any]:
    return {
        "id": task.id,
        "client_id": task.client_id,
        "meeting_id": task.meeting_id,
        "title": task.title,
        "description": task.description,
        "owner": task.owner.value,
        "status": task.status.value,
        "priority": task.priority.value,
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "created_at": task.created_at.isoformat() if task.created_at else None,
    }


class TaskService:
    """Task operations for one consultant.

    Args:
        repository: TaskRepository.
        clients: ClientRepository used to check client ownership.
        emitter: WebhookEmitter for task.* events (None disables emission).
    """

    def __init__(
        self,
        repository: TaskRepository,
        clients: ClientRepository,
        emitter: WebhookEmitter | None = None,
    ) -> None:
        self._repository = repository
        self._clients = clients
        self._emitter = emitter

    async def _emit(self, tenant_id: str, user_id: str, event: WebhookEventType, data: dict) -> None:
        if self._emitter is not None:
            await self._emitter.trigger_webhooks(tenant_id, user_id, event, data)

    async def _require_task(self, tenant_id: str, user_id: str, task_id: str) -> TaskRead:
        task = await self._repository.get_task(tenant_id, user_id, task_id)
        if task is None:
            raise NotFoundError(f"Task not found: {task_id}")
        return task

    async def create_tasks(
        self, tenant_id: str, user_id: str, items: list[TaskCreate]
    ) -> list[TaskRead]:
        """Create a batch of tasks; every referenced client must belong to ``user_id``.

        Raises:
            ValidationError: The batch is empty.
            NotFoundError: A client does not exist or belongs to another consultant.
        """
        if not items:
            raise ValidationError("At least one task is required")

        client_ids = sorted({item.client_id for item in items})
        owned = await self._clients.owned_client_ids(tenant_id, user_id, client_ids)
        missing = [c for c in client_ids if c not in owned]
        if missing:
            raise NotFoundError("One or more clients not found", details={"client_ids": missing})

        today = datetime.now(timezone.utc).date()
        tasks = await self._repository.create_tasks(tenant_id, user_id, items, assigned_date=today)
        logger.info("tasks_created", tenant_id=tenant_id, user_id=user_id, count=len(tasks))

        for task in tasks:
            await self._emit(tenant_id, user_id, WebhookEventType.TASK_CREATED, _task_event_data(task))
        return tasks

    async def get_task(self, tenant_id: str, user_id: str, task_id: str) -> TaskRead:
        return await self._require_task(tenant_id, user_id, task_id)

    async def update_task_status(
        self, tenant_id: str, user_id: str, task_id: str, status: TaskStatus
    ) -> TaskRead:
        current = await self._require_task(tenant_id, user_id, task_id)
        now = datetime.now(timezone.utc)
        task = await self._repository.update_task(tenant_id, user_id, task_id, status_changes(status, now))
        if task is None:
            raise NotFoundError(f"Task not found: {task_id}")
        await self._after_status_change(tenant_id, user_id, current.status, task)
        return task

    async def move_task(
        self, tenant_id: str, user_id: str, task_id: str, move: TaskMove
    ) -> TaskRead:
        """Move a task on the kanban board to ``move.status`` at ``move.order_position``."""
        current = await self._require_task(tenant_id, user_id, task_id)
        changes = status_changes(move.status, datetime.now(timezone.utc))
        if move.status is current.status:
            # Reordering within a column keeps the original completion time
            changes.pop("completed_at")
        task = await self._repository.move_task(
            tenant_id, user_id, task_id, changes, move.order_position,
        )
        if task is None:
            raise NotFoundError(f"Task not found: {task_id}")
        await self._after_status_change(tenant_id, user_id, current.status, task)
        return task

    async def _after_status_change(
        self, tenant_id: str, user_id: str, previous: TaskStatus, task: TaskRead
    ) -> None:
        if previous is not task.status:
            logger.info(
                "task_status_changed",
                tenant_id=tenant_id,
                task_id=task.id,
                previous_status=previous.value,
                status=task.status.value,
            )
        if is_completion(previous, task.status):
            data = _task_event_data(task)
            data["completed_at"] = task.completed_at.isoformat() if task.completed_at else None
            await self._emit(tenant_id, user_id, WebhookEventType.TASK_COMPLETED, data)

    async def update_task(
        self, tenant_id: str, user_id: str, task_id: str, data: TaskUpdate
    ) -> TaskRead:
        changes: dict[str, Any] = {}
        for field, value in data.model_dump(exclude_unset=True).items():
            if field in ("title", "owner", "priority", "blocked") and value is None:
                continue
            changes[field] = getattr(value, "value", value)
        if changes.get("blocked") is False:
            changes["blocked_reason"] = None

        task = await self._repository.update_task(tenant_id, user_id, task_id, changes)
        if task is None:
            raise NotFoundError(f"Task not found: {task_id}")
        return task

    async def delete_task(self, tenant_id: str, user_id: str, task_id: str) -> None:
        if not await self._repository.delete_task(tenant_id, user_id, task_id):
            raise NotFoundError(f"Task not found: {task_id}")

    async def list_tasks(
        self, tenant_id: str, user_id: str, client_id: str | None = None
    ) -> list[TaskRead]:
        """Tasks ordered by due date; a ``client_id`` must belong to ``user_id``."""
        if client_id is not None:
            if await self._clients.get_client(tenant_id, user_id, client_id) is None:
                raise NotFoundError(f"Client not found: {client_id}")
        return await self._repository.list_tasks(tenant_id, user_id, client_id=client_id)

    async def kanban_board(self, tenant_id: str, user_id: str) -> KanbanBoard:
        tasks = await self._repository.list_board_tasks(tenant_id, user_id)
        columns: dict[str, list[TaskRead]] = {status.value: [] for status in BOARD_ORDER}
        for task in tasks:
            columns[task.status.value].append(task)
        for column in columns.values():
            column.sort(key=lambda t: t.order_position)
        return KanbanBoard(
            columns=columns,
            counts={status: len(items) for status, items in columns.items()},
        )
