"""Webhook service -- the user-facing operations behind /api/v1/webhooks.

Configuration CRUD, secret rotation, log / queue introspection, delivery
statistics, test sends, dispatcher status and manual processing.
"""

from __future__ import annotations

import hmac
from typing import Any

import structlog

from src.clienthub.core.exceptions import NotFoundError
from src.clienthub.webhooks.dispatcher import WebhookDispatcher
from src.clienthub.webhooks.repository import DispatcherConfigStore, WebhookRepository
from src.clienthub.webhooks.schemas import (
    DeliveryLogRead,
    DispatcherConfig,
    DispatcherConfigUpdate,
    DispatcherStatus,
    DispatchResult,
    TriggerSource,
    WebhookConfigCreate,
    WebhookConfigRead,
    WebhookConfigUpdate,
    WebhookQueueItem,
    WebhookStats,
    WebhookTestResult,
)
from src.clienthub.webhooks.signing import generate_secret_key
from src.clienthub.webhooks.sweeper import DispatchSweeper
from src.clienthub.webhooks.tester import WebhookTester

logger = structlog.get_logger(__name__)

LOG_LIMIT = 100
CONFIG_QUEUE_LIMIT = 50
ALL_QUEUE_LIMIT = 100


class WebhookService:
    """Coordinates repository, dispatcher, sweeper and tester for the API layer."""

    def __init__(
        self,
        repository: WebhookRepository,
        dispatcher: WebhookDispatcher,
        config_store: DispatcherConfigStore,
        tester: WebhookTester,
        sweeper: DispatchSweeper | None = None,
    ) -> None:
        self._repository = repository
        self._dispatcher = dispatcher
        self._config_store = config_store
        self._tester = tester
        self._sweeper = sweeper

    # ── Configurations ──────────────────────────────────────────────────────

    async def create_webhook(
        self, tenant_id: str, user_id: str, data: WebhookConfigCreate
    ) -> WebhookConfigRead:
        config = await self._repository.create_config(tenant_id, user_id, data, generate_secret_key())
        logger.info(
            "webhook_config_created",
            tenant_id=tenant_id,
            webhook_config_id=config.id,
            events=config.events,
        )
        return config

    async def get_webhook(self, tenant_id: str, user_id: str, config_id: str) -> WebhookConfigRead:
        config = await self._repository.get_config(tenant_id, user_id, config_id)
        if config is None:
            raise NotFoundError(f"Webhook configuration not found: {config_id}")
        return config

    async def list_webhooks(self, tenant_id: str, user_id: str) -> list[WebhookConfigRead]:
        return await self._repository.list_configs(tenant_id, user_id)

    async def update_webhook(
        self, tenant_id: str, user_id: str, config_id: str, data: WebhookConfigUpdate
    ) -> WebhookConfigRead:
        changes: dict[str, Any] = {}
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None:
                continue
            if field == "events":
                value = [getattr(e, "value", e) for e in value]
            elif field == "http_method":
                value = getattr(value, "value", value)
            changes[field] = value

        config = await self._repository.update_config(tenant_id, user_id, config_id, changes)
        if config is None:
            raise NotFoundError(f"Webhook configuration not found: {config_id}")
        return config

    async def delete_webhook(self, tenant_id: str, user_id: str, config_id: str) -> None:
        if not await self._repository.delete_config(tenant_id, user_id, config_id):
            raise NotFoundError(f"Webhook configuration not found: {config_id}")
        logger.info("webhook_config_deleted", tenant_id=tenant_id, webhook_config_id=config_id)

    async def regenerate_secret_key(
        self, tenant_id: str, user_id: str, config_id: str
    ) -> WebhookConfigRead:
        config = await self._repository.update_config(
            tenant_id, user_id, config_id, {"secret_key": generate_secret_key()},
        )
        if config is None:
            raise NotFoundError(f"Webhook configuration not found: {config_id}")
        logger.info("webhook_secret_regenerated", tenant_id=tenant_id, webhook_config_id=config_id)
        return config

    # ── Introspection ───────────────────────────────────────────────────────

    async def get_webhook_logs(
        self, tenant_id: str, user_id: str, config_id: str, limit: int = LOG_LIMIT
    ) -> list[DeliveryLogRead]:
        await self.get_webhook(tenant_id, user_id, config_id)
        return await self._repository.list_delivery_logs(tenant_id, user_id, config_id, limit=limit)

    async def get_all_webhook_logs(
        self, tenant_id: str, user_id: str, limit: int = LOG_LIMIT
    ) -> list[DeliveryLogRead]:
        return await self._repository.list_delivery_logs(tenant_id, user_id, None, limit=limit)

    async def get_webhook_queue(
        self, tenant_id: str, user_id: str, config_id: str, limit: int = CONFIG_QUEUE_LIMIT
    ) -> list[WebhookQueueItem]:
        await self.get_webhook(tenant_id, user_id, config_id)
        return await self._repository.list_queue(tenant_id, user_id, config_id, limit=limit)

    async def get_all_webhook_queue(
        self, tenant_id: str, user_id: str, limit: int = ALL_QUEUE_LIMIT
    ) -> list[WebhookQueueItem]:
        return await self._repository.list_queue(tenant_id, user_id, None, limit=limit)

    async def get_webhook_stats(self, tenant_id: str, user_id: str, config_id: str) -> WebhookStats:
        """Delivery totals for one configuration (every logged attempt counts)."""
        await self.get_webhook(tenant_id, user_id, config_id)
        total, successes, total_duration = await self._repository.delivery_totals(tenant_id, config_id)
        if total == 0:
            return WebhookStats()
        return WebhookStats(
            total_deliveries=total,
            success_count=successes,
            failure_count=total - successes,
            success_rate=successes / total * 100,
            average_duration=round(total_duration / total),
        )

    async def send_test_webhook(
        self, tenant_id: str, user_id: str, config_id: str
    ) -> WebhookTestResult:
        return await self._tester.send_test_webhook(tenant_id, user_id, config_id)

    # ── Dispatcher ──────────────────────────────────────────────────────────

    async def get_dispatcher_status(self, tenant_id: str) -> DispatcherStatus:
        config = await self._config_store.get()
        pending = await self._repository.count_events(tenant_id)
        last_run = await self._repository.latest_run(tenant_id)
        return DispatcherStatus(
            enabled=config.enabled,
            pending_events=pending,
            last_run_at=last_run.started_at if last_run else None,
            last_run_success=last_run.success if last_run else None,
            last_run_error=last_run.error_message if last_run else None,
            debounce_seconds=config.debounce_seconds,
        )

    async def update_dispatcher_config(self, data: DispatcherConfigUpdate) -> DispatcherConfig:
        return await self._config_store.update(data)

    async def force_process(self, tenant_id: str) -> DispatchResult:
        """Run the dispatcher now for ``tenant_id``, bypassing the debounce window."""
        return await self._dispatcher.dispatch(tenant_id, triggered_by=TriggerSource.MANUAL.value)

    async def verify_internal_secret(self, provided: str | None) -> bool:
        """Constant-time check of an X-Internal-Secret value against the dispatcher secret."""
        config = await self._config_store.get()
        if not provided or not config.internal_secret:
            return False
        return hmac.compare_digest(provided.encode("utf-8"), config.internal_secret.encode("utf-8"))

    async def dispatch_all_tenants(self) -> DispatchResult:
        """Dispatch due rows for every tenant (internal HTTP entry point)."""
        if self._sweeper is None:
            raise RuntimeError("Dispatch sweeper not configured")
        processed = await self._sweeper.sweep_once(
            TriggerSource.INTERNAL_HTTP.value, respect_enabled=False,
        )
        if processed == 0:
            return DispatchResult(message="No pending webhook events", processed=0)
        return DispatchResult(message="Webhook events processed", processed=processed)
