"""Debounced dispatch trigger fired after events are queued.

When a pending row is inserted the emitter calls DispatchTrigger.notify().
If the dispatcher is enabled and no ``database_trigger`` run started within
``debounce_seconds``, a run row is recorded and a dispatch is scheduled in
the background; otherwise the notification is dropped and the already
scheduled (or next sweep) run picks the row up.

The scheduled dispatch waits ``debounce_seconds`` before claiming, so a
burst of inserts inside the window is delivered by a single run.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import structlog

from src.clienthub.webhooks.dispatcher import WebhookDispatcher
from src.clienthub.webhooks.repository import DispatcherConfigStore, WebhookRepository
from src.clienthub.webhooks.schemas import TriggerSource

logger = structlog.get_logger(__name__)


class DispatchTrigger:
    """Schedules background dispatcher runs, at most one per debounce window per tenant.

    Args:
        repository: WebhookRepository used for run bookkeeping.
        config_store: DispatcherConfigStore providing enabled / debounce_seconds.
        dispatcher: WebhookDispatcher executed for scheduled runs.
    """

    def __init__(
        self,
        repository: WebhookRepository,
        config_store: DispatcherConfigStore,
        dispatcher: WebhookDispatcher,
    ) -> None:
        self._repository = repository
        self._config_store = config_store
        self._dispatcher = dispatcher
        self._tasks: set[asyncio.Task] = set()

    async def notify(self, tenant_id: str) -> str | None:
        """React to a pending insert for ``tenant_id``.

        Returns:
            The id of the run that was scheduled, or None when the
            notification was skipped (disabled, debounced, or failed).
            Never raises.
        """
        source = TriggerSource.DATABASE_TRIGGER.value
        try:
            config = await self._config_store.get()
            if not config.enabled:
                logger.debug("webhook_trigger_skipped", tenant_id=tenant_id, reason="disabled")
                return None

            last_run = await self._repository.latest_run(tenant_id, triggered_by=source)
            window_start = datetime.now(timezone.utc) - timedelta(seconds=config.debounce_seconds)
            if last_run is not None and last_run.started_at > window_start:
                logger.debug(
                    "webhook_trigger_skipped",
                    tenant_id=tenant_id,
                    reason="debounced",
                    last_run_id=last_run.id,
                )
                return None

            run = await self._repository.create_run(tenant_id, source)
        except Exception as exc:
            logger.error("webhook_trigger_failed", tenant_id=tenant_id, error=str(exc))
            await self._record_failed_run(tenant_id, str(exc))
            return None

        task = asyncio.create_task(
            self._run_after_delay(tenant_id, run.id, config.debounce_seconds),
            name=f"webhook_dispatch_{tenant_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("webhook_dispatch_scheduled", tenant_id=tenant_id, run_id=run.id)
        return run.id

    async def _run_after_delay(self, tenant_id: str, run_id: str, delay: int) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        try:
            await self._dispatcher.dispatch(
                tenant_id,
                triggered_by=TriggerSource.DATABASE_TRIGGER.value,
                run_id=run_id,
            )
        except Exception as exc:
            # Already recorded on the run row by the dispatcher
            logger.error("webhook_scheduled_dispatch_failed", tenant_id=tenant_id, run_id=run_id, error=str(exc))

    async def _record_failed_run(self, tenant_id: str, error: str) -> None:
        try:
            await self._repository.create_run(
                tenant_id,
                TriggerSource.DATABASE_TRIGGER.value,
                success=False,
                error_message=error,
                completed=True,
            )
        except Exception as exc:
            logger.error("webhook_trigger_run_record_failed", tenant_id=tenant_id, error=str(exc))

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled dispatch to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        """Cancel scheduled dispatches (application shutdown)."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
