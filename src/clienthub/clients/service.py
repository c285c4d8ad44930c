"""Client service -- CRUD, activity metrics, risk scoring and client.* webhook events."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from src.clienthub.clients.repository import ClientRepository
from src.clienthub.clients.risk import evaluate_risk
from src.clienthub.clients.schemas import (
    RISK_RANGES,
    ClientCreate,
    ClientDetail,
    ClientFilter,
    ClientMetrics,
    ClientRead,
    ClientUpdate,
    RiskScoreBreakdown,
)
from src.clienthub.core.exceptions import NotFoundError, ValidationError
from src.clienthub.meetings.repository import MeetingRepository
from src.clienthub.tasks.repository import TaskRepository
from src.clienthub.tasks.schemas import TaskOwner
from src.clienthub.tasks.workflow import OPEN_STATUSES
from src.clienthub.webhooks.emitter import WebhookEmitter
from src.clienthub.webhooks.schemas import WebhookEventType

logger = structlog.get_logger(__name__)

RECENT_MEETINGS = 3
COMPLETED_WINDOW_DAYS = 7

# Fields reported in client.* payloads and previous_values
_EVENT_FIELDS = ("name", "email", "phone", "status", "risk_score", "revenue_bracket")


def _event_data(client: ClientRead) -> dict[str, Any]:
    data: dict[str, Any] = {"id": client.id}
    for field in _EVENT_FIELDS:
        value = getattr(client, field)
        data[field] = getattr(value, "value", value)
    return data


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class ClientService:
    """Client operations for one consultant.

    Args:
        repository: ClientRepository.
        meetings: MeetingRepository for recent meetings in client metrics.
        tasks: TaskRepository for task metrics and the overdue filter.
        emitter: WebhookEmitter for client.* events (None disables emission).
    """

    def __init__(
        self,
        repository: ClientRepository,
        meetings: MeetingRepository,
        tasks: TaskRepository,
        emitter: WebhookEmitter | None = None,
    ) -> None:
        self._repository = repository
        self._meetings = meetings
        self._tasks = tasks
        self._emitter = emitter

    async def _emit(
        self,
        tenant_id: str,
        user_id: str,
        event: WebhookEventType,
        data: dict[str, Any],
        previous_values: dict[str, Any] | None = None,
    ) -> None:
        if self._emitter is not None:
            await self._emitter.trigger_webhooks(tenant_id, user_id, event, data, previous_values)

    async def create_client(self, tenant_id: str, user_id: str, data: ClientCreate) -> ClientRead:
        client = await self._repository.create_client(tenant_id, user_id, data)
        logger.info("client_created", tenant_id=tenant_id, user_id=user_id, client_id=client.id)

        payload = _event_data(client)
        payload["created_at"] = _isoformat(client.created_at)
        await self._emit(tenant_id, user_id, WebhookEventType.CLIENT_CREATED, payload)
        return client

    async def get_client(
        self,
        tenant_id: str,
        user_id: str,
        client_id: str | None = None,
        name: str | None = None,
    ) -> ClientDetail:
        """Look a client up by id (preferred) or name and compute its metrics.

        Raises:
            ValidationError: Neither ``client_id`` nor ``name`` was given.
            NotFoundError: No matching client owned by ``user_id``.
        """
        if client_id:
            client = await self._repository.get_client(tenant_id, user_id, client_id)
        elif name and name.strip():
            client = await self._repository.find_client_by_name(tenant_id, user_id, name.strip())
        else:
            raise ValidationError("Either id or name must be provided", code="client_lookup_required")

        if client is None:
            raise NotFoundError(f"Client not found: {client_id or name}")
        return ClientDetail(client=client, metrics=await self._metrics(tenant_id, user_id, client))

    async def _metrics(self, tenant_id: str, user_id: str, client: ClientRead) -> ClientMetrics:
        now = datetime.now(timezone.utc)
        today = now.date()

        recent = await self._meetings.list_meetings(
            tenant_id, user_id, client_id=client.id, limit=RECENT_MEETINGS,
        )
        pending = await self._tasks.list_tasks(
            tenant_id, user_id, client_id=client.id, statuses=sorted(s.value for s in OPEN_STATUSES),
        )
        overdue = [
            task for task in pending
            if task.owner is TaskOwner.CLIENT and task.due_date is not None and task.due_date < today
        ]
        completed = await self._tasks.count_completed_since(
            tenant_id, user_id, client.id, now - timedelta(days=COMPLETED_WINDOW_DAYS),
        )

        days_since = None
        if client.last_activity_date is not None:
            last = client.last_activity_date
            if last.tzinfo is None:
                last = last.replace(tzinfo=timezone.utc)
            days_since = (now - last).days

        return ClientMetrics(
            recent_meetings=recent,
            pending_tasks=pending,
            overdue_client_tasks=overdue,
            days_since_last_advance=days_since,
            completed_last_7_days=completed,
        )

    async def calculate_risk_score(
        self, tenant_id: str, user_id: str, client_id: str
    ) -> RiskScoreBreakdown:
        """Recompute the client's risk score, persist it and return the breakdown.

        client.updated is emitted only when the stored score changes.

        Raises:
            NotFoundError: The client does not exist or belongs to another user.
        """
        detail = await self.get_client(tenant_id, user_id, client_id=client_id)
        meetings = await self._meetings.list_meetings(tenant_id, user_id, client_id=client_id)
        breakdown = evaluate_risk(
            detail.metrics.days_since_last_advance,
            len(detail.metrics.overdue_client_tasks),
            detail.metrics.completed_last_7_days,
            meetings,
        )
        logger.info(
            "client_risk_scored",
            tenant_id=tenant_id,
            client_id=client_id,
            score=breakdown.total_score,
            factors=[f.factor for f in breakdown.factors],
        )

        previous = detail.client
        if breakdown.total_score == previous.risk_score:
            return breakdown

        client = await self._repository.update_client(
            tenant_id, user_id, client_id, {"risk_score": breakdown.total_score},
        )
        if client is None:
            raise NotFoundError(f"Client not found: {client_id}")

        payload = _event_data(client)
        payload["updated_at"] = _isoformat(client.updated_at)
        await self._emit(
            tenant_id,
            user_id,
            WebhookEventType.CLIENT_UPDATED,
            payload,
            {k: v for k, v in _event_data(previous).items() if k != "id"},
        )
        return breakdown

    async def list_clients(
        self, tenant_id: str, user_id: str, filters: ClientFilter | None = None
    ) -> list[ClientRead]:
        """Owned clients ordered by risk_score descending, narrowed by ``filters``."""
        filters = filters or ClientFilter()
        inactive_before = None
        if filters.no_advance_days:
            inactive_before = datetime.now(timezone.utc) - timedelta(days=filters.no_advance_days)

        clients = await self._repository.list_clients(
            tenant_id,
            user_id,
            risk_range=RISK_RANGES[filters.risk_level] if filters.risk_level else None,
            inactive_before=inactive_before,
            status=filters.status.value if filters.status else None,
        )

        if filters.has_overdue_client_tasks is not None:
            flagged = await self._tasks.clients_with_overdue_client_tasks(
                tenant_id, user_id, datetime.now(timezone.utc).date(),
            )
            clients = [
                c for c in clients
                if (c.id in flagged) is filters.has_overdue_client_tasks
            ]
        return clients

    async def update_client(
        self, tenant_id: str, user_id: str, client_id: str, data: ClientUpdate
    ) -> ClientRead:
        """Apply a partial update and emit client.updated (plus status / metadata events).

        Raises:
            NotFoundError: The client does not exist or belongs to another user.
        """
        previous = await self._repository.get_client(tenant_id, user_id, client_id)
        if previous is None:
            raise NotFoundError(f"Client not found: {client_id}")

        changes: dict[str, Any] = {}
        for field, value in data.model_dump(exclude_unset=True).items():
            if field in ("name", "status", "risk_score", "metadata") and value is None:
                continue
            changes[field] = getattr(value, "value", value)

        client = await self._repository.update_client(tenant_id, user_id, client_id, changes)
        if client is None:
            raise NotFoundError(f"Client not found: {client_id}")
        logger.info(
            "client_updated",
            tenant_id=tenant_id,
            client_id=client_id,
            fields=sorted(changes),
        )

        payload = _event_data(client)
        payload["updated_at"] = _isoformat(client.updated_at)
        previous_values = {k: v for k, v in _event_data(previous).items() if k != "id"}
        await self._emit(
            tenant_id, user_id, WebhookEventType.CLIENT_UPDATED, payload, previous_values,
        )

        if previous.status is not client.status:
            await self._emit(
                tenant_id,
                user_id,
                WebhookEventType.CLIENT_STATUS_CHANGED,
                {
                    "id": client.id,
                    "name": client.name,
                    "status": client.status.value,
                    "previous_status": previous.status.value,
                    "changed_at": datetime.now(timezone.utc).isoformat(),
                },
            )

        if "metadata" in changes and previous.metadata != client.metadata:
            await self._emit(
                tenant_id,
                user_id,
                WebhookEventType.CLIENT_METADATA_UPDATED,
                {
                    "id": client.id,
                    "name": client.name,
                    "metadata": client.metadata,
                    "updated_at": _isoformat(client.updated_at),
                },
                {"metadata": previous.metadata},
            )
        return client

    async def delete_client(self, tenant_id: str, user_id: str, client_id: str) -> None:
        client = await self._repository.get_client(tenant_id, user_id, client_id)
        if client is None or not await self._repository.delete_client(tenant_id, user_id, client_id):
            raise NotFoundError(f"Client not found: {client_id}")
        logger.info("client_deleted", tenant_id=tenant_id, client_id=client_id)

        payload = _event_data(client)
        payload["deleted_at"] = datetime.now(timezone.utc).isoformat()
        await self._emit(tenant_id, user_id, WebhookEventType.CLIENT_DELETED, payload)
