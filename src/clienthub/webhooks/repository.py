"""Webhook repository -- async persistence for configurations, queue, logs and runs.

WebhookRepository uses the session_factory callable pattern: every method
opens a session via ``async for session in self._session_factory()`` and
takes tenant_id as its first argument. User-facing reads additionally filter
by the owning user_id.

DispatcherConfigStore reads and writes the single shared-schema row that
switches the dispatcher on or off.
"""

from __future__ import annotations

import secrets
import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.clienthub.config import get_settings
from src.clienthub.webhooks.models import (
    DISPATCHER_CONFIG_ID,
    WebhookConfigurationModel,
    WebhookDeliveryLogModel,
    WebhookDispatcherConfigModel,
    WebhookDispatcherRunModel,
    WebhookEventQueueModel,
)
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

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_config(model: WebhookConfigurationModel) -> WebhookConfigRead:
    return WebhookConfigRead(
        id=str(model.id),
        tenant_id=str(model.tenant_id),
        user_id=str(model.user_id),
        name=model.name,
        url=model.url,
        secret_key=model.secret_key,
        enabled=model.enabled,
        events=list(model.events or []),
        headers=dict(model.headers or {}),
        http_method=model.http_method or "POST",
        last_triggered_at=model.last_triggered_at,
        failure_count=model.failure_count or 0,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_queue_item(model: WebhookEventQueueModel) -> WebhookQueueItem:
    return WebhookQueueItem(
        id=str(model.id),
        tenant_id=str(model.tenant_id),
        webhook_config_id=str(model.webhook_config_id),
        event_type=model.event_type,
        event_id=model.event_id,
        payload=model.payload or {},
        status=QueueStatus(model.status),
        attempts=model.attempts or 0,
        max_attempts=model.max_attempts or 5,
        scheduled_for=model.scheduled_for,
        processed_at=model.processed_at,
        claimed_at=model.claimed_at,
        created_at=model.created_at,
    )


def _model_to_log(model: WebhookDeliveryLogModel) -> DeliveryLogRead:
    return DeliveryLogRead(
        id=str(model.id),
        tenant_id=str(model.tenant_id),
        webhook_config_id=str(model.webhook_config_id),
        event_type=model.event_type,
        event_id=model.event_id,
        payload=model.payload or {},
        status_code=model.status_code,
        response_body=model.response_body,
        response_headers=model.response_headers,
        attempt_number=model.attempt_number,
        error_message=model.error_message,
        duration_ms=model.duration_ms,
        success=model.success,
        created_at=model.created_at,
    )


def _model_to_run(model: WebhookDispatcherRunModel) -> DispatcherRun:
    return DispatcherRun(
        id=str(model.id),
        tenant_id=str(model.tenant_id),
        triggered_by=model.triggered_by,
        started_at=model.started_at,
        completed_at=model.completed_at,
        events_processed=model.events_processed or 0,
        success=model.success,
        error_message=model.error_message,
    )


def _owned_config_ids(tenant_id: str, user_id: str):
    return select(WebhookConfigurationModel.id).where(
        WebhookConfigurationModel.tenant_id == uuid.UUID(tenant_id),
        WebhookConfigurationModel.user_id == uuid.UUID(user_id),
    )


# ── Repository ──────────────────────────────────────────────────────────────


class WebhookRepository:
    """Async CRUD for webhook configurations, the events queue, delivery logs and dispatcher runs.

    Args:
        session_factory: Async callable that yields tenant-scoped AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    # ── Configurations ──────────────────────────────────────────────────────

    async def create_config(
        self, tenant_id: str, user_id: str, data: WebhookConfigCreate, secret_key: str
    ) -> WebhookConfigRead:
        async for session in self._session_factory():
            model = WebhookConfigurationModel(
                tenant_id=uuid.UUID(tenant_id),
                user_id=uuid.UUID(user_id),
                name=data.name,
                url=data.url,
                secret_key=secret_key,
                enabled=data.enabled,
                events=[e.value for e in data.events],
                headers=dict(data.headers),
                http_method=data.http_method.value,
                failure_count=0,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_config(model)

    async def get_config(
        self, tenant_id: str, user_id: str, config_id: str
    ) -> WebhookConfigRead | None:
        """Get a configuration owned by ``user_id``."""
        async for session in self._session_factory():
            stmt = select(WebhookConfigurationModel).where(
                WebhookConfigurationModel.tenant_id == uuid.UUID(tenant_id),
                WebhookConfigurationModel.user_id == uuid.UUID(user_id),
                WebhookConfigurationModel.id == uuid.UUID(config_id),
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _model_to_config(model) if model else None

    async def get_config_by_id(self, tenant_id: str, config_id: str) -> WebhookConfigRead | None:
        """Get a configuration regardless of owner (dispatcher use)."""
        async for session in self._session_factory():
            stmt = select(WebhookConfigurationModel).where(
                WebhookConfigurationModel.tenant_id == uuid.UUID(tenant_id),
                WebhookConfigurationModel.id == uuid.UUID(config_id),
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _model_to_config(model) if model else None

    async def list_configs(self, tenant_id: str, user_id: str) -> list[WebhookConfigRead]:
        async for session in self._session_factory():
            stmt = (
                select(WebhookConfigurationModel)
                .where(
                    WebhookConfigurationModel.tenant_id == uuid.UUID(tenant_id),
                    WebhookConfigurationModel.user_id == uuid.UUID(user_id),
                )
                .order_by(WebhookConfigurationModel.created_at.desc())
            )
            result = await session.execute(stmt)
            return [_model_to_config(m) for m in result.scalars().all()]

    async def list_subscribed_configs(
        self, tenant_id: str, user_id: str, event_type: str
    ) -> list[WebhookConfigRead]:
        """Enabled configurations of ``user_id`` whose events include ``event_type``."""
        async for session in self._session_factory():
            stmt = select(WebhookConfigurationModel).where(
                WebhookConfigurationModel.tenant_id == uuid.UUID(tenant_id),
                WebhookConfigurationModel.user_id == uuid.UUID(user_id),
                WebhookConfigurationModel.enabled.is_(True),
            )
            result = await session.execute(stmt)
            return [
                _model_to_config(m)
                for m in result.scalars().all()
                if event_type in (m.events or [])
            ]

    async def update_config(
        self, tenant_id: str, user_id: str, config_id: str, changes: dict[str, Any]
    ) -> WebhookConfigRead | None:
        """Apply ``changes`` (column name -> value) to an owned configuration."""
        async for session in self._session_factory():
            stmt = select(WebhookConfigurationModel).where(
                WebhookConfigurationModel.tenant_id == uuid.UUID(tenant_id),
                WebhookConfigurationModel.user_id == uuid.UUID(user_id),
                WebhookConfigurationModel.id == uuid.UUID(config_id),
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is None:
                return None
            for field, value in changes.items():
                setattr(model, field, value)
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_config(model)

    async def delete_config(self, tenant_id: str, user_id: str, config_id: str) -> bool:
        async for session in self._session_factory():
            stmt = select(WebhookConfigurationModel).where(
                WebhookConfigurationModel.tenant_id == uuid.UUID(tenant_id),
                WebhookConfigurationModel.user_id == uuid.UUID(user_id),
                WebhookConfigurationModel.id == uuid.UUID(config_id),
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is None:
                return False
            await session.delete(model)
            await session.commit()
            return True

    async def record_delivery_success(
        self, tenant_id: str, config_id: str, delivered_at: datetime
    ) -> None:
        """Reset the consecutive failure counter after a 2xx delivery."""
        async for session in self._session_factory():
            await session.execute(
                update(WebhookConfigurationModel)
                .where(
                    WebhookConfigurationModel.tenant_id == uuid.UUID(tenant_id),
                    WebhookConfigurationModel.id == uuid.UUID(config_id),
                )
                .values(failure_count=0, last_triggered_at=delivered_at)
            )
            await session.commit()

    async def increment_failure_count(self, tenant_id: str, config_id: str) -> None:
        async for session in self._session_factory():
            await session.execute(
                update(WebhookConfigurationModel)
                .where(
                    WebhookConfigurationModel.tenant_id == uuid.UUID(tenant_id),
                    WebhookConfigurationModel.id == uuid.UUID(config_id),
                )
                .values(failure_count=WebhookConfigurationModel.failure_count + 1)
            )
            await session.commit()

    # ── Events Queue ────────────────────────────────────────────────────────

    async def enqueue_event(
        self,
        tenant_id: str,
        config_id: str,
        event_type: str,
        event_id: str,
        payload: dict[str, Any],
        max_attempts: int = 5,
    ) -> WebhookQueueItem:
        """Insert a ``pending`` row scheduled for immediate delivery."""
        async for session in self._session_factory():
            model = WebhookEventQueueModel(
                tenant_id=uuid.UUID(tenant_id),
                webhook_config_id=uuid.UUID(config_id),
                event_type=event_type,
                event_id=event_id,
                payload=payload,
                status=QueueStatus.PENDING.value,
                attempts=0,
                max_attempts=max_attempts,
                scheduled_for=datetime.now(timezone.utc),
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_queue_item(model)

    async def claim_due_events(
        self, tenant_id: str, now: datetime, limit: int
    ) -> list[WebhookQueueItem]:
        """Atomically move up to ``limit`` due ``pending`` rows to ``processing``.

        Rows locked by a concurrent claimer are skipped, so two dispatcher
        runs never deliver the same row.
        """
        async for session in self._session_factory():
            due = (
                select(WebhookEventQueueModel.id)
                .where(
                    WebhookEventQueueModel.tenant_id == uuid.UUID(tenant_id),
                    WebhookEventQueueModel.status == QueueStatus.PENDING.value,
                    WebhookEventQueueModel.scheduled_for <= now,
                )
                .order_by(WebhookEventQueueModel.scheduled_for)
                .limit(limit)
                .with_for_update(skip_locked=True)
            )
            stmt = (
                update(WebhookEventQueueModel)
                .where(WebhookEventQueueModel.id.in_(due))
                .values(status=QueueStatus.PROCESSING.value, claimed_at=now)
                .returning(WebhookEventQueueModel)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            claimed = [_model_to_queue_item(m) for m in result.scalars().all()]
            await session.commit()
            claimed.sort(key=lambda item: item.scheduled_for)
            return claimed

    async def release_stale_events(self, tenant_id: str, claimed_before: datetime) -> int:
        """Return ``processing`` rows claimed before ``claimed_before`` to ``pending``.

        Covers claims abandoned by a crashed or cancelled dispatcher. Attempts
        are left unchanged since the delivery outcome is unknown.
        """
        async for session in self._session_factory():
            result = await session.execute(
                update(WebhookEventQueueModel)
                .where(
                    WebhookEventQueueModel.tenant_id == uuid.UUID(tenant_id),
                    WebhookEventQueueModel.status == QueueStatus.PROCESSING.value,
                    WebhookEventQueueModel.claimed_at <= claimed_before,
                )
                .values(status=QueueStatus.PENDING.value, claimed_at=None)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount or 0

    async def count_events(
        self,
        tenant_id: str,
        status: QueueStatus = QueueStatus.PENDING,
        due_before: datetime | None = None,
    ) -> int:
        async for session in self._session_factory():
            stmt = select(func.count(WebhookEventQueueModel.id)).where(
                WebhookEventQueueModel.tenant_id == uuid.UUID(tenant_id),
                WebhookEventQueueModel.status == status.value,
            )
            if due_before is not None:
                stmt = stmt.where(WebhookEventQueueModel.scheduled_for <= due_before)
            return int((await session.execute(stmt)).scalar_one())

    async def _set_event_state(self, tenant_id: str, queue_id: str, **values: Any) -> None:
        async for session in self._session_factory():
            await session.execute(
                update(WebhookEventQueueModel)
                .where(
                    WebhookEventQueueModel.tenant_id == uuid.UUID(tenant_id),
                    WebhookEventQueueModel.id == uuid.UUID(queue_id),
                )
                .values(**values)
            )
            await session.commit()

    async def complete_event(self, tenant_id: str, queue_id: str, processed_at: datetime) -> None:
        await self._set_event_state(
            tenant_id, queue_id,
            status=QueueStatus.COMPLETED.value,
            processed_at=processed_at,
        )

    async def fail_event(
        self,
        tenant_id: str,
        queue_id: str,
        processed_at: datetime,
        attempts: int | None = None,
    ) -> None:
        values: dict[str, Any] = {
            "status": QueueStatus.FAILED.value,
            "processed_at": processed_at,
        }
        if attempts is not None:
            values["attempts"] = attempts
        await self._set_event_state(tenant_id, queue_id, **values)

    async def reschedule_event(
        self, tenant_id: str, queue_id: str, attempts: int, scheduled_for: datetime
    ) -> None:
        await self._set_event_state(
            tenant_id, queue_id,
            status=QueueStatus.PENDING.value,
            attempts=attempts,
            scheduled_for=scheduled_for,
        )

    async def list_queue(
        self,
        tenant_id: str,
        user_id: str,
        config_id: str | None = None,
        limit: int = 100,
    ) -> list[WebhookQueueItem]:
        """Queue rows of the user's configurations, newest first."""
        async for session in self._session_factory():
            stmt = select(WebhookEventQueueModel).where(
                WebhookEventQueueModel.tenant_id == uuid.UUID(tenant_id),
                WebhookEventQueueModel.webhook_config_id.in_(_owned_config_ids(tenant_id, user_id)),
            )
            if config_id is not None:
                stmt = stmt.where(WebhookEventQueueModel.webhook_config_id == uuid.UUID(config_id))
            stmt = stmt.order_by(WebhookEventQueueModel.created_at.desc()).limit(limit)
            result = await session.execute(stmt)
            return [_model_to_queue_item(m) for m in result.scalars().all()]

    # ── Delivery Logs ───────────────────────────────────────────────────────

    async def add_delivery_log(self, tenant_id: str, entry: DeliveryLogCreate) -> DeliveryLogRead:
        async for session in self._session_factory():
            model = WebhookDeliveryLogModel(
                tenant_id=uuid.UUID(tenant_id),
                webhook_config_id=uuid.UUID(entry.webhook_config_id),
                event_type=entry.event_type,
                event_id=entry.event_id,
                payload=entry.payload,
                status_code=entry.status_code,
                response_body=entry.response_body,
                response_headers=entry.response_headers,
                attempt_number=entry.attempt_number,
                error_message=entry.error_message,
                duration_ms=entry.duration_ms,
                success=entry.success,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_log(model)

    async def list_delivery_logs(
        self,
        tenant_id: str,
        user_id: str,
        config_id: str | None = None,
        limit: int = 100,
    ) -> list[DeliveryLogRead]:
        async for session in self._session_factory():
            stmt = select(WebhookDeliveryLogModel).where(
                WebhookDeliveryLogModel.tenant_id == uuid.UUID(tenant_id),
                WebhookDeliveryLogModel.webhook_config_id.in_(_owned_config_ids(tenant_id, user_id)),
            )
            if config_id is not None:
                stmt = stmt.where(WebhookDeliveryLogModel.webhook_config_id == uuid.UUID(config_id))
            stmt = stmt.order_by(WebhookDeliveryLogModel.created_at.desc()).limit(limit)
            result = await session.execute(stmt)
            return [_model_to_log(m) for m in result.scalars().all()]

    async def delivery_totals(self, tenant_id: str, config_id: str) -> tuple[int, int, int]:
        """Return (total attempts, successful attempts, summed duration in ms).

        Attempts without a recorded duration add 0 to the sum.
        """
        async for session in self._session_factory():
            stmt = select(
                func.count(WebhookDeliveryLogModel.id),
                func.count(WebhookDeliveryLogModel.id).filter(WebhookDeliveryLogModel.success.is_(True)),
                func.coalesce(func.sum(WebhookDeliveryLogModel.duration_ms), 0),
            ).where(
                WebhookDeliveryLogModel.tenant_id == uuid.UUID(tenant_id),
                WebhookDeliveryLogModel.webhook_config_id == uuid.UUID(config_id),
            )
            total, successes, total_duration = (await session.execute(stmt)).one()
            return int(total or 0), int(successes or 0), int(total_duration or 0)

    # ── Dispatcher Runs ─────────────────────────────────────────────────────

    async def create_run(
        self,
        tenant_id: str,
        triggered_by: str,
        *,
        success: bool | None = None,
        error_message: str | None = None,
        completed: bool = False,
    ) -> DispatcherRun:
        """Record the start of a dispatcher run (or a run that already ended)."""
        async for session in self._session_factory():
            now = datetime.now(timezone.utc)
            model = WebhookDispatcherRunModel(
                tenant_id=uuid.UUID(tenant_id),
                triggered_by=triggered_by,
                started_at=now,
                completed_at=now if completed else None,
                events_processed=0,
                success=success,
                error_message=error_message,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_run(model)

    async def finish_run(
        self,
        tenant_id: str,
        run_id: str,
        events_processed: int,
        success: bool,
        error_message: str | None = None,
    ) -> None:
        async for session in self._session_factory():
            await session.execute(
                update(WebhookDispatcherRunModel)
                .where(
                    WebhookDispatcherRunModel.tenant_id == uuid.UUID(tenant_id),
                    WebhookDispatcherRunModel.id == uuid.UUID(run_id),
                )
                .values(
                    completed_at=datetime.now(timezone.utc),
                    events_processed=events_processed,
                    success=success,
                    error_message=error_message,
                )
            )
            await session.commit()

    async def latest_run(
        self, tenant_id: str, triggered_by: str | None = None
    ) -> DispatcherRun | None:
        async for session in self._session_factory():
            stmt = select(WebhookDispatcherRunModel).where(
                WebhookDispatcherRunModel.tenant_id == uuid.UUID(tenant_id),
            )
            if triggered_by is not None:
                stmt = stmt.where(WebhookDispatcherRunModel.triggered_by == triggered_by)
            stmt = stmt.order_by(WebhookDispatcherRunModel.started_at.desc()).limit(1)
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _model_to_run(model) if model else None


# ── Dispatcher Config (shared schema) ───────────────────────────────────────


def _model_to_dispatcher_config(model: WebhookDispatcherConfigModel) -> DispatcherConfig:
    return DispatcherConfig(
        enabled=model.enabled,
        debounce_seconds=model.debounce_seconds,
        internal_secret=model.internal_secret,
    )


async def ensure_dispatcher_config(session_factory: SessionFactory) -> DispatcherConfig:
    """Create the single dispatcher config row if it does not exist yet.

    The internal secret comes from WEBHOOK_INTERNAL_SECRET, or is generated
    once when that setting is empty.
    """
    settings = get_settings()
    async for session in session_factory():
        model = await session.get(WebhookDispatcherConfigModel, DISPATCHER_CONFIG_ID)
        if model is None:
            model = WebhookDispatcherConfigModel(
                id=DISPATCHER_CONFIG_ID,
                enabled=settings.WEBHOOK_DISPATCHER_ENABLED,
                debounce_seconds=settings.WEBHOOK_DEBOUNCE_SECONDS,
                internal_secret=settings.WEBHOOK_INTERNAL_SECRET or secrets.token_hex(32),
            )
            session.add(model)
            await session.commit()
            logger.info("webhook_dispatcher_config_created", enabled=model.enabled)
        elif settings.WEBHOOK_INTERNAL_SECRET and model.internal_secret != settings.WEBHOOK_INTERNAL_SECRET:
            model.internal_secret = settings.WEBHOOK_INTERNAL_SECRET
            await session.commit()
            logger.info("webhook_dispatcher_secret_rotated")
        return _model_to_dispatcher_config(model)


class DispatcherConfigStore:
    """Reads and updates the platform-wide dispatcher config row.

    Args:
        session_factory: Async callable yielding shared-schema sessions.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get(self) -> DispatcherConfig:
        async for session in self._session_factory():
            model = await session.get(WebhookDispatcherConfigModel, DISPATCHER_CONFIG_ID)
            if model is not None:
                return _model_to_dispatcher_config(model)
        return await ensure_dispatcher_config(self._session_factory)

    async def update(self, data: DispatcherConfigUpdate) -> DispatcherConfig:
        await ensure_dispatcher_config(self._session_factory)
        async for session in self._session_factory():
            model = await session.get(WebhookDispatcherConfigModel, DISPATCHER_CONFIG_ID)
            if data.enabled is not None:
                model.enabled = data.enabled
            if data.debounce_seconds is not None:
                model.debounce_seconds = data.debounce_seconds
            await session.commit()
            await session.refresh(model)
            logger.info(
                "webhook_dispatcher_config_updated",
                enabled=model.enabled,
                debounce_seconds=model.debounce_seconds,
            )
            return _model_to_dispatcher_config(model)
