"""Background sweep that runs the dispatcher for every tenant on an interval.

Retries are stored as ``pending`` rows with a future ``scheduled_for``; no
insert happens when they become due, so the debounced trigger never fires
for them. The sweep delivers them (and anything a debounced notification
skipped) without waiting for new activity, after releasing claims abandoned
by a crashed or cancelled dispatcher.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import structlog

from src.clienthub.core.tenant import TenantContext, tenant_scope
from src.clienthub.webhooks.dispatcher import WebhookDispatcher
from src.clienthub.webhooks.repository import DispatcherConfigStore, WebhookRepository
from src.clienthub.webhooks.schemas import TriggerSource

logger = structlog.get_logger(__name__)

TenantLister = Callable[[], Awaitable[list[TenantContext]]]


class DispatchSweeper:
    """Runs WebhookDispatcher.dispatch() for each active tenant with due rows.

    Args:
        dispatcher: WebhookDispatcher to invoke.
        repository: WebhookRepository used to check for due rows first.
        config_store: DispatcherConfigStore; a disabled dispatcher skips sweeps.
        list_tenants: Async callable returning the active tenants.
        interval_seconds: Delay between sweeps in run_forever().
    """

    def __init__(
        self,
        dispatcher: WebhookDispatcher,
        repository: WebhookRepository,
        config_store: DispatcherConfigStore,
        list_tenants: TenantLister,
        interval_seconds: int = 60,
    ) -> None:
        self._dispatcher = dispatcher
        self._repository = repository
        self._config_store = config_store
        self._list_tenants = list_tenants
        self._interval = interval_seconds
        self._running = False

    async def sweep_once(
        self,
        triggered_by: str = TriggerSource.SCHEDULED_SWEEP.value,
        *,
        respect_enabled: bool = True,
    ) -> int:
        """Dispatch due rows for every tenant. Returns the total rows processed.

        A failing tenant is logged and does not stop the sweep of the others.
        """
        if respect_enabled:
            config = await self._config_store.get()
            if not config.enabled:
                logger.debug("webhook_sweep_skipped", reason="disabled")
                return 0

        processed = 0
        for tenant in await self._list_tenants():
            with tenant_scope(tenant):
                try:
                    await self._dispatcher.release_stale_claims(tenant.tenant_id)
                    due = await self._repository.count_events(
                        tenant.tenant_id, due_before=datetime.now(timezone.utc),
                    )
                    if due == 0:
                        continue
                    result = await self._dispatcher.dispatch(tenant.tenant_id, triggered_by=triggered_by)
                    processed += result.processed
                except Exception as exc:
                    logger.error(
                        "webhook_sweep_tenant_failed",
                        tenant_id=tenant.tenant_id,
                        tenant_slug=tenant.tenant_slug,
                        error=str(exc),
                    )

        if processed:
            logger.info("webhook_sweep_completed", triggered_by=triggered_by, processed=processed)
        return processed

    async def run_forever(self) -> None:
        """Sweep every ``interval_seconds`` until stop() is called."""
        self._running = True
        logger.info("webhook_sweeper_started", interval_seconds=self._interval)
        while self._running:
            try:
                await self.sweep_once()
            except Exception as exc:
                logger.error("webhook_sweep_failed", error=str(exc))
            await asyncio.sleep(self._interval)
        logger.info("webhook_sweeper_stopped")

    def stop(self) -> None:
        """Signal run_forever() to exit after the current iteration."""
        self._running = False
