"""In-memory repository doubles shared by the service and API tests.

Each double mirrors the async interface of its SQLAlchemy repository and
returns the same pydantic Read schemas, so services run unchanged against
plain Python dicts.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any

from src.clienthub.billing.schemas import PlanRead, SubscriptionRead, SubscriptionStatus, UsageLogRead
from src.clienthub.clients.schemas import ClientCreate, ClientRead
from src.clienthub.meetings.schemas import (
    SYSTEM_MEETING_TYPES,
    MeetingCreate,
    MeetingRead,
    MeetingSummary,
    MeetingTypeCreate,
    MeetingTypeOrder,
    MeetingTypeRead,
    SuggestedTask,
)
from src.clienthub.tasks.schemas import TaskCreate, TaskOwner, TaskRead, TaskStatus
from src.clienthub.webhooks.schemas import (
    DeliveryLogCreate,
    DeliveryLogRead,
    DispatcherConfig,
    DispatcherConfigUpdate,
    DispatcherRun,
    QueueStatus,
    WebhookConfigCreate,
    WebhookConfigRead,
    WebhookQueueItem,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ── Webhooks ────────────────────────────────────────────────────────────────


class InMemoryWebhookRepository:
    """Dict-backed stand-in for WebhookRepository."""

    def __init__(self) -> None:
        self.configs: dict[str, WebhookConfigRead] = {}
        self.queue: dict[str, WebhookQueueItem] = {}
        self.logs: list[DeliveryLogRead] = []
        self.runs: dict[str, DispatcherRun] = {}

    # configurations

    async def create_config(
        self, tenant_id: str, user_id: str, data: WebhookConfigCreate, secret_key: str
    ) -> WebhookConfigRead:
        now = _now()
        config = WebhookConfigRead(
            id=_new_id(),
            tenant_id=tenant_id,
            user_id=user_id,
            name=data.name,
            url=data.url,
            secret_key=secret_key,
            enabled=data.enabled,
            events=[e.value for e in data.events],
            headers=dict(data.headers),
            http_method=data.http_method.value,
            created_at=now,
            updated_at=now,
        )
        self.configs[config.id] = config
        return config

    async def get_config(self, tenant_id: str, user_id: str, config_id: str) -> WebhookConfigRead | None:
        config = self.configs.get(config_id)
        if config is None or config.tenant_id != tenant_id or config.user_id != user_id:
            return None
        return config

    async def get_config_by_id(self, tenant_id: str, config_id: str) -> WebhookConfigRead | None:
        config = self.configs.get(config_id)
        if config is None or config.tenant_id != tenant_id:
            return None
        return config

    async def list_configs(self, tenant_id: str, user_id: str) -> list[WebhookConfigRead]:
        configs = [c for c in self.configs.values() if c.tenant_id == tenant_id and c.user_id == user_id]
        return sorted(configs, key=lambda c: c.created_at, reverse=True)

    async def list_subscribed_configs(
        self, tenant_id: str, user_id: str, event_type: str
    ) -> list[WebhookConfigRead]:
        return [
            c for c in await self.list_configs(tenant_id, user_id)
            if c.enabled and event_type in c.events
        ]

    async def update_config(
        self, tenant_id: str, user_id: str, config_id: str, changes: dict[str, Any]
    ) -> WebhookConfigRead | None:
        config = await self.get_config(tenant_id, user_id, config_id)
        if config is None:
            return None
        updated = config.model_copy(update={**changes, "updated_at": _now()})
        self.configs[config_id] = updated
        return updated

    async def delete_config(self, tenant_id: str, user_id: str, config_id: str) -> bool:
        if await self.get_config(tenant_id, user_id, config_id) is None:
            return False
        del self.configs[config_id]
        for queue_id in [q.id for q in self.queue.values() if q.webhook_config_id == config_id]:
            del self.queue[queue_id]
        self.logs = [log for log in self.logs if log.webhook_config_id != config_id]
        return True

    async def record_delivery_success(self, tenant_id: str, config_id: str, delivered_at: datetime) -> None:
        config = self.configs[config_id]
        self.configs[config_id] = config.model_copy(
            update={"last_triggered_at": delivered_at, "failure_count": 0},
        )

    async def increment_failure_count(self, tenant_id: str, config_id: str) -> None:
        config = self.configs[config_id]
        self.configs[config_id] = config.model_copy(update={"failure_count": config.failure_count + 1})

    # queue

    async def enqueue_event(
        self,
        tenant_id: str,
        config_id: str,
        event_type: str,
        event_id: str,
        payload: dict[str, Any],
        max_attempts: int = 5,
    ) -> WebhookQueueItem:
        now = _now()
        item = WebhookQueueItem(
            id=_new_id(),
            tenant_id=tenant_id,
            webhook_config_id=config_id,
            event_type=event_type,
            event_id=event_id,
            payload=payload,
            max_attempts=max_attempts,
            scheduled_for=now,
            created_at=now,
        )
        self.queue[item.id] = item
        return item

    async def claim_due_events(self, tenant_id: str, now: datetime, limit: int) -> list[WebhookQueueItem]:
        due = sorted(
            (
                q for q in self.queue.values()
                if q.tenant_id == tenant_id and q.status is QueueStatus.PENDING and q.scheduled_for <= now
            ),
            key=lambda q: q.scheduled_for,
        )[:limit]
        claimed = []
        for item in due:
            updated = item.model_copy(update={"status": QueueStatus.PROCESSING, "claimed_at": now})
            self.queue[item.id] = updated
            claimed.append(updated)
        return claimed

    async def release_stale_events(self, tenant_id: str, claimed_before: datetime) -> int:
        stale = [
            q for q in self.queue.values()
            if q.tenant_id == tenant_id
            and q.status is QueueStatus.PROCESSING
            and q.claimed_at is not None
            and q.claimed_at <= claimed_before
        ]
        for item in stale:
            self._set(item.id, status=QueueStatus.PENDING, claimed_at=None)
        return len(stale)

    async def count_events(
        self,
        tenant_id: str,
        status: QueueStatus = QueueStatus.PENDING,
        due_before: datetime | None = None,
    ) -> int:
        return sum(
            1 for q in self.queue.values()
            if q.tenant_id == tenant_id
            and q.status is status
            and (due_before is None or q.scheduled_for <= due_before)
        )

    def _set(self, queue_id: str, **values: Any) -> None:
        self.queue[queue_id] = self.queue[queue_id].model_copy(update=values)

    async def complete_event(self, tenant_id: str, queue_id: str, processed_at: datetime) -> None:
        self._set(queue_id, status=QueueStatus.COMPLETED, processed_at=processed_at)

    async def fail_event(
        self,
        tenant_id: str,
        queue_id: str,
        processed_at: datetime,
        attempts: int | None = None,
    ) -> None:
        values: dict[str, Any] = {"status": QueueStatus.FAILED, "processed_at": processed_at}
        if attempts is not None:
            values["attempts"] = attempts
        self._set(queue_id, **values)

    async def reschedule_event(
        self, tenant_id: str, queue_id: str, attempts: int, scheduled_for: datetime
    ) -> None:
        self._set(queue_id, status=QueueStatus.PENDING, attempts=attempts, scheduled_for=scheduled_for)

    async def list_queue(
        self,
        tenant_id: str,
        user_id: str,
        config_id: str | None = None,
        limit: int = 100,
    ) -> list[WebhookQueueItem]:
        owned = {c.id for c in await self.list_configs(tenant_id, user_id)}
        items = [
            q for q in self.queue.values()
            if q.webhook_config_id in owned and (config_id is None or q.webhook_config_id == config_id)
        ]
        return sorted(items, key=lambda q: q.created_at, reverse=True)[:limit]

    # delivery logs

    async def add_delivery_log(self, tenant_id: str, entry: DeliveryLogCreate) -> DeliveryLogRead:
        log = DeliveryLogRead(id=_new_id(), tenant_id=tenant_id, created_at=_now(), **entry.model_dump())
        self.logs.append(log)
        return log

    async def list_delivery_logs(
        self,
        tenant_id: str,
        user_id: str,
        config_id: str | None = None,
        limit: int = 100,
    ) -> list[DeliveryLogRead]:
        owned = {c.id for c in await self.list_configs(tenant_id, user_id)}
        logs = [
            log for log in self.logs
            if log.webhook_config_id in owned and (config_id is None or log.webhook_config_id == config_id)
        ]
        return list(reversed(logs))[:limit]

    async def delivery_totals(self, tenant_id: str, config_id: str) -> tuple[int, int, int]:
        logs = [log for log in self.logs if log.webhook_config_id == config_id]
        total_duration = sum(log.duration_ms or 0 for log in logs)
        return len(logs), sum(1 for log in logs if log.success), total_duration

    # dispatcher runs

    async def create_run(
        self,
        tenant_id: str,
        triggered_by: str,
        *,
        success: bool | None = None,
        error_message: str | None = None,
        completed: bool = False,
    ) -> DispatcherRun:
        now = _now()
        run = DispatcherRun(
            id=_new_id(),
            tenant_id=tenant_id,
            triggered_by=triggered_by,
            started_at=now,
            completed_at=now if completed else None,
            success=success,
            error_message=error_message,
        )
        self.runs[run.id] = run
        return run

    async def finish_run(
        self,
        tenant_id: str,
        run_id: str,
        events_processed: int,
        success: bool,
        error_message: str | None = None,
    ) -> None:
        self.runs[run_id] = self.runs[run_id].model_copy(update={
            "completed_at": _now(),
            "events_processed": events_processed,
            "success": success,
            "error_message": error_message,
        })

    async def latest_run(self, tenant_id: str, triggered_by: str | None = None) -> DispatcherRun | None:
        runs = [
            r for r in self.runs.values()
            if r.tenant_id == tenant_id and (triggered_by is None or r.triggered_by == triggered_by)
        ]
        return max(runs, key=lambda r: r.started_at) if runs else None


class InMemoryDispatcherConfigStore:
    def __init__(self, enabled: bool = True, debounce_seconds: int = 0, internal_secret: str = "s3cret") -> None:
        self.config = DispatcherConfig(
            enabled=enabled, debounce_seconds=debounce_seconds, internal_secret=internal_secret,
        )

    async def get(self) -> DispatcherConfig:
        return self.config

    async def update(self, data: DispatcherConfigUpdate) -> DispatcherConfig:
        self.config = self.config.model_copy(update=data.model_dump(exclude_none=True))
        return self.config


class RecordingEmitter:
    """Captures trigger_webhooks() calls instead of queueing them."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any], dict[str, Any] | None]] = []

    async def trigger_webhooks(
        self,
        tenant_id: str,
        user_id: str,
        event_type: Any,
        data: dict[str, Any],
        previous_values: dict[str, Any] | None = None,
    ) -> int:
        self.events.append((getattr(event_type, "value", event_type), data, previous_values))
        return 1

    def names(self) -> list[str]:
        return [name for name, _, _ in self.events]


# ── Clients ─────────────────────────────────────────────────────────────────


class InMemoryClientRepository:
    def __init__(self) -> None:
        self.clients: dict[str, ClientRead] = {}

    async def create_client(self, tenant_id: str, user_id: str, data: ClientCreate) -> ClientRead:
        now = _now()
        client = ClientRead(
            id=_new_id(),
            tenant_id=tenant_id,
            user_id=user_id,
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        self.clients[client.id] = client
        return client

    async def get_client(self, tenant_id: str, user_id: str, client_id: str) -> ClientRead | None:
        client = self.clients.get(client_id)
        if client is None or client.tenant_id != tenant_id or client.user_id != user_id:
            return None
        return client

    def _owned(self, tenant_id: str, user_id: str) -> list[ClientRead]:
        return [c for c in self.clients.values() if c.tenant_id == tenant_id and c.user_id == user_id]

    async def find_client_by_name(self, tenant_id: str, user_id: str, name: str) -> ClientRead | None:
        matches = [c for c in self._owned(tenant_id, user_id) if name.lower() in c.name.lower()]
        return min(matches, key=lambda c: c.created_at) if matches else None

    async def list_clients(
        self,
        tenant_id: str,
        user_id: str,
        *,
        risk_range: tuple[int, int] | None = None,
        inactive_before: datetime | None = None,
        status: str | None = None,
    ) -> list[ClientRead]:
        clients = self._owned(tenant_id, user_id)
        if risk_range is not None:
            low, high = risk_range
            clients = [c for c in clients if low <= c.risk_score <= high]
        if inactive_before is not None:
            clients = [
                c for c in clients
                if c.last_activity_date is None or c.last_activity_date < inactive_before
            ]
        if status is not None:
            clients = [c for c in clients if c.status.value == status]
        return sorted(clients, key=lambda c: (-c.risk_score, c.created_at))

    async def owned_client_ids(self, tenant_id: str, user_id: str, client_ids: list[str]) -> set[str]:
        return {c.id for c in self._owned(tenant_id, user_id) if c.id in client_ids}

    async def update_client(
        self, tenant_id: str, user_id: str, client_id: str, changes: dict[str, Any]
    ) -> ClientRead | None:
        client = await self.get_client(tenant_id, user_id, client_id)
        if client is None:
            return None
        updated = ClientRead(**{**client.model_dump(), **changes, "updated_at": _now()})
        self.clients[client_id] = updated
        return updated

    async def touch_activity(self, tenant_id: str, user_id: str, client_id: str, at: datetime) -> None:
        await self.update_client(tenant_id, user_id, client_id, {"last_activity_date": at})

    async def delete_client(self, tenant_id: str, user_id: str, client_id: str) -> bool:
        if await self.get_client(tenant_id, user_id, client_id) is None:
            return False
        del self.clients[client_id]
        return True


# ── Meetings ────────────────────────────────────────────────────────────────


class InMemoryMeetingRepository:
    def __init__(self) -> None:
        self.types: dict[str, MeetingTypeRead] = {}
        self.meetings: dict[str, MeetingRead] = {}

    def _user_types(self, tenant_id: str, user_id: str) -> list[MeetingTypeRead]:
        return [t for t in self.types.values() if t.tenant_id == tenant_id and t.user_id == user_id]

    async def ensure_system_types(self, tenant_id: str, user_id: str) -> int:
        existing = {t.code for t in self._user_types(tenant_id, user_id) if t.is_system}
        missing = [row for row in SYSTEM_MEETING_TYPES if row["code"] not in existing]
        for row in missing:
            meeting_type = MeetingTypeRead(
                id=_new_id(), tenant_id=tenant_id, user_id=user_id, is_system=True, **row,
            )
            self.types[meeting_type.id] = meeting_type
        return len(missing)

    async def list_meeting_types(
        self, tenant_id: str, user_id: str, active_only: bool = False
    ) -> list[MeetingTypeRead]:
        types = [t for t in self._user_types(tenant_id, user_id) if t.is_active or not active_only]
        return sorted(types, key=lambda t: t.order_position)

    async def get_meeting_type(self, tenant_id: str, type_id: str) -> MeetingTypeRead | None:
        meeting_type = self.types.get(type_id)
        return meeting_type if meeting_type and meeting_type.tenant_id == tenant_id else None

    async def get_meeting_type_by_code(self, tenant_id: str, user_id: str, code: str) -> MeetingTypeRead | None:
        for meeting_type in self._user_types(tenant_id, user_id):
            if meeting_type.code == code.upper():
                return meeting_type
        return None

    async def count_custom_types(self, tenant_id: str, user_id: str) -> int:
        return sum(1 for t in self._user_types(tenant_id, user_id) if not t.is_system)

    async def create_meeting_type(
        self, tenant_id: str, user_id: str, data: MeetingTypeCreate, order_position: int
    ) -> MeetingTypeRead:
        meeting_type = MeetingTypeRead(
            id=_new_id(),
            tenant_id=tenant_id,
            user_id=user_id,
            order_position=order_position,
            **data.model_dump(),
        )
        self.types[meeting_type.id] = meeting_type
        return meeting_type

    async def update_meeting_type(
        self, tenant_id: str, type_id: str, changes: dict[str, Any]
    ) -> MeetingTypeRead | None:
        meeting_type = await self.get_meeting_type(tenant_id, type_id)
        if meeting_type is None:
            return None
        updated = meeting_type.model_copy(update={**changes, "updated_at": _now()})
        self.types[type_id] = updated
        return updated

    async def reorder_meeting_types(
        self, tenant_id: str, user_id: str, orders: list[MeetingTypeOrder]
    ) -> int:
        updated = 0
        for item in orders:
            meeting_type = self.types.get(item.id)
            if meeting_type is None or meeting_type.user_id != user_id or meeting_type.is_system:
                continue
            self.types[item.id] = meeting_type.model_copy(update={"order_position": item.order_position})
            updated += 1
        return updated

    async def count_meetings_of_type(self, tenant_id: str, user_id: str, code: str) -> int:
        return sum(
            1 for m in self.meetings.values()
            if m.tenant_id == tenant_id and m.user_id == user_id and m.meeting_type == code
        )

    async def create_meeting(self, tenant_id: str, user_id: str, data: MeetingCreate) -> MeetingRead:
        now = _now()
        meeting = MeetingRead(
            id=_new_id(),
            tenant_id=tenant_id,
            user_id=user_id,
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        self.meetings[meeting.id] = meeting
        return meeting

    async def get_meeting(self, tenant_id: str, user_id: str, meeting_id: str) -> MeetingRead | None:
        meeting = self.meetings.get(meeting_id)
        if meeting is None or meeting.tenant_id != tenant_id or meeting.user_id != user_id:
            return None
        return meeting

    async def list_meetings(
        self,
        tenant_id: str,
        user_id: str,
        client_id: str | None = None,
        limit: int | None = None,
    ) -> list[MeetingRead]:
        meetings = [
            m for m in self.meetings.values()
            if m.tenant_id == tenant_id and m.user_id == user_id
            and (client_id is None or m.client_id == client_id)
        ]
        meetings.sort(key=lambda m: m.meeting_date, reverse=True)
        return meetings[:limit] if limit is not None else meetings

    async def update_meeting(
        self, tenant_id: str, user_id: str, meeting_id: str, changes: dict[str, Any]
    ) -> MeetingRead | None:
        meeting = await self.get_meeting(tenant_id, user_id, meeting_id)
        if meeting is None:
            return None
        updated = meeting.model_copy(update={**changes, "updated_at": _now()})
        self.meetings[meeting_id] = updated
        return updated

    async def delete_meeting(self, tenant_id: str, user_id: str, meeting_id: str) -> bool:
        if await self.get_meeting(tenant_id, user_id, meeting_id) is None:
            return False
        del self.meetings[meeting_id]
        return True


# ── Tasks ───────────────────────────────────────────────────────────────────


class InMemoryTaskRepository:
    def __init__(self) -> None:
        self.tasks: dict[str, TaskRead] = {}

    def _owned(self, tenant_id: str, user_id: str) -> list[TaskRead]:
        return [t for t in self.tasks.values() if t.tenant_id == tenant_id and t.user_id == user_id]

    def _next_position(self, tenant_id: str, user_id: str, status: str) -> int:
        column = [t.order_position for t in self._owned(tenant_id, user_id) if t.status.value == status]
        return max(column) + 1 if column else 0

    async def create_tasks(
        self, tenant_id: str, user_id: str, items: list[TaskCreate], assigned_date: date
    ) -> list[TaskRead]:
        created = []
        for item in items:
            now = _now()
            task = TaskRead(
                id=_new_id(),
                tenant_id=tenant_id,
                user_id=user_id,
                assigned_date=assigned_date,
                order_position=self._next_position(tenant_id, user_id, item.status.value),
                completed_at=now if item.status is TaskStatus.CONCLUIDA else None,
                created_at=now,
                updated_at=now,
                **item.model_dump(),
            )
            self.tasks[task.id] = task
            created.append(task)
        return created

    async def get_task(self, tenant_id: str, user_id: str, task_id: str) -> TaskRead | None:
        task = self.tasks.get(task_id)
        if task is None or task.tenant_id != tenant_id or task.user_id != user_id:
            return None
        return task

    async def update_task(
        self, tenant_id: str, user_id: str, task_id: str, changes: dict[str, Any]
    ) -> TaskRead | None:
        task = await self.get_task(tenant_id, user_id, task_id)
        if task is None:
            return None
        updated = TaskRead(**{**task.model_dump(), **changes, "updated_at": _now()})
        self.tasks[task_id] = updated
        return updated

    async def move_task(
        self,
        tenant_id: str,
        user_id: str,
        task_id: str,
        changes: dict[str, Any],
        order_position: int,
    ) -> TaskRead | None:
        task = await self.get_task(tenant_id, user_id, task_id)
        if task is None:
            return None
        for other in self._owned(tenant_id, user_id):
            if other.id != task_id and other.status.value == changes["status"] and other.order_position >= order_position:
                self.tasks[other.id] = other.model_copy(update={"order_position": other.order_position + 1})
        return await self.update_task(
            tenant_id, user_id, task_id, {**changes, "order_position": order_position},
        )

    async def delete_task(self, tenant_id: str, user_id: str, task_id: str) -> bool:
        if await self.get_task(tenant_id, user_id, task_id) is None:
            return False
        del self.tasks[task_id]
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
        tasks = self._owned(tenant_id, user_id)
        if client_id is not None:
            tasks = [t for t in tasks if t.client_id == client_id]
        if statuses:
            tasks = [t for t in tasks if t.status.value in statuses]
        if owner is not None:
            tasks = [t for t in tasks if t.owner.value == owner]
        if due_before is not None:
            tasks = [t for t in tasks if t.due_date is not None and t.due_date < due_before]
        return sorted(tasks, key=lambda t: (t.due_date or date.max, t.created_at))

    async def list_board_tasks(self, tenant_id: str, user_id: str) -> list[TaskRead]:
        return sorted(self._owned(tenant_id, user_id), key=lambda t: (t.status.value, t.order_position))

    async def count_completed_since(
        self, tenant_id: str, user_id: str, client_id: str, since: datetime
    ) -> int:
        return sum(
            1 for t in self._owned(tenant_id, user_id)
            if t.client_id == client_id
            and t.status is TaskStatus.CONCLUIDA
            and t.completed_at is not None
            and t.completed_at >= since
        )

    async def clients_with_overdue_client_tasks(
        self, tenant_id: str, user_id: str, today: date
    ) -> set[str]:
        return {
            t.client_id for t in self._owned(tenant_id, user_id)
            if t.owner is TaskOwner.CLIENT
            and t.status in (TaskStatus.PENDENTE, TaskStatus.EM_ANDAMENTO)
            and t.due_date is not None
            and t.due_date < today
        }


# ── Billing ─────────────────────────────────────────────────────────────────


def default_plans() -> list[PlanRead]:
    return [
        PlanRead(id=_new_id(), name="free", display_name="Free", credits_per_month=10),
        PlanRead(id=_new_id(), name="pro", display_name="Pro", price_monthly=9900, credits_per_month=100),
        PlanRead(id=_new_id(), name="unlimited", display_name="Unlimited", price_monthly=29900),
        PlanRead(id=_new_id(), name="legacy", display_name="Legacy", is_active=False, credits_per_month=5),
    ]


class InMemoryPlanRepository:
    def __init__(self, plans: list[PlanRead] | None = None) -> None:
        self.plans = {p.id: p for p in (plans if plans is not None else default_plans())}

    async def list_plans(self, active_only: bool = True) -> list[PlanRead]:
        plans = [p for p in self.plans.values() if p.is_active or not active_only]
        return sorted(plans, key=lambda p: p.price_monthly)

    async def get_plan(self, plan_id: str) -> PlanRead | None:
        return self.plans.get(plan_id)

    async def get_plan_by_name(self, name: str) -> PlanRead | None:
        for plan in self.plans.values():
            if plan.name == name:
                return plan
        return None


class InMemoryBillingRepository:
    def __init__(self) -> None:
        self.subscriptions: dict[str, SubscriptionRead] = {}
        self.usage: list[UsageLogRead] = []

    async def get_active_subscription(self, tenant_id: str, user_id: str) -> SubscriptionRead | None:
        for subscription in self.subscriptions.values():
            if (
                subscription.tenant_id == tenant_id
                and subscription.user_id == user_id
                and subscription.status is SubscriptionStatus.ACTIVE
            ):
                return subscription.model_copy()
        return None

    async def create_subscription(
        self, tenant_id: str, user_id: str, plan_id: str, start: datetime, end: datetime
    ) -> SubscriptionRead:
        subscription = SubscriptionRead(
            id=_new_id(),
            tenant_id=tenant_id,
            user_id=user_id,
            plan_id=plan_id,
            status=SubscriptionStatus.ACTIVE,
            current_period_start=start,
            current_period_end=end,
            created_at=_now(),
        )
        self.subscriptions[subscription.id] = subscription
        return subscription.model_copy()

    async def update_subscription(
        self, tenant_id: str, subscription_id: str, changes: dict[str, Any]
    ) -> SubscriptionRead | None:
        subscription = self.subscriptions.get(subscription_id)
        if subscription is None:
            return None
        updated = SubscriptionRead(**{**subscription.model_dump(), **changes, "updated_at": _now()})
        self.subscriptions[subscription_id] = updated
        return updated.model_copy()

    async def record_usage(
        self,
        tenant_id: str,
        user_id: str,
        subscription_id: str,
        action_type: str,
        metadata: dict[str, Any],
        *,
        increment_credits: bool,
    ) -> UsageLogRead:
        log = UsageLogRead(
            id=_new_id(),
            user_id=user_id,
            subscription_id=subscription_id,
            action_type=action_type,
            metadata=metadata,
            created_at=_now(),
        )
        self.usage.append(log)
        if increment_credits:
            subscription = self.subscriptions[subscription_id]
            self.subscriptions[subscription_id] = subscription.model_copy(
                update={"credits_used": subscription.credits_used + 1},
            )
        return log

    async def list_usage(self, tenant_id: str, user_id: str, since: datetime) -> list[UsageLogRead]:
        return [log for log in self.usage if log.user_id == user_id and log.created_at >= since]


# ── LLM ─────────────────────────────────────────────────────────────────────


class FakeLLM:
    """Records structured_completion() calls and returns a canned summary."""

    def __init__(self, result: MeetingSummary | None = None, error: Exception | None = None) -> None:
        self.result = result or MeetingSummary(
            summary=["Gastos altos com cartão"],
            decisions=["Montar orçamento mensal"],
            suggested_tasks=[SuggestedTask(title="Enviar faturas", owner="Cliente")],
            risk_signals=["depois vejo"],
        )
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def structured_completion(self, messages, response_model, **kwargs):
        self.calls.append({"messages": messages, "response_model": response_model, **kwargs})
        if self.error is not None:
            raise self.error
        return self.result
