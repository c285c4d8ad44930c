"""Webhook emission -- fans a business event out to subscribed configurations.

Services call ``trigger_webhooks()`` after their own write has committed. A
failure here is logged and swallowed: it never fails the client, meeting or
task operation that produced the event.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.clienthub.webhooks.repository import WebhookRepository
from src.clienthub.webhooks.schemas import WebhookEventType, WebhookQueueItem
from src.clienthub.webhooks.signing import build_event_payload, generate_event_id
from src.clienthub.webhooks.trigger import DispatchTrigger

logger = structlog.get_logger(__name__)


class WebhookEmitter:
    """Queues webhook events and notifies the dispatch trigger.

    Args:
        repository: WebhookRepository for config lookup and queue inserts.
        trigger: DispatchTrigger notified after rows are queued (None disables
            immediate dispatch; the sweep still delivers).
        max_attempts: Attempts allowed per queued row.
    """

    def __init__(
        self,
        repository: WebhookRepository,
        trigger: DispatchTrigger | None = None,
        max_attempts: int = 5,
    ) -> None:
        self._repository = repository
        self._trigger = trigger
        self._max_attempts = max_attempts

    async def queue_webhook_event(
        self,
        tenant_id: str,
        config_id: str,
        event_type: str,
        event_id: str,
        payload: dict[str, Any],
        *,
        notify: bool = True,
    ) -> WebhookQueueItem:
        """Insert one ``pending`` queue row for ``config_id``."""
        item = await self._repository.enqueue_event(
            tenant_id,
            config_id,
            event_type,
            event_id,
            payload,
            max_attempts=self._max_attempts,
        )
        if notify and self._trigger is not None:
            await self._trigger.notify(tenant_id)
        return item

    async def trigger_webhooks(
        self,
        tenant_id: str,
        user_id: str,
        event_type: WebhookEventType | str,
        data: dict[str, Any],
        previous_values: dict[str, Any] | None = None,
    ) -> int:
        """Queue ``event_type`` for every enabled configuration of ``user_id`` that subscribes to it.

        All configurations receive the same payload and event id.

        Returns:
            Number of queue rows inserted (0 on error).
        """
        event_name = event_type.value if isinstance(event_type, WebhookEventType) else event_type
        try:
            configs = await self._repository.list_subscribed_configs(tenant_id, user_id, event_name)
            if not configs:
                return 0

            event_id = generate_event_id()
            payload = build_event_payload(event_name, data, previous_values, event_id=event_id)
            for config in configs:
                await self.queue_webhook_event(
                    tenant_id, config.id, event_name, event_id, payload, notify=False,
                )

            logger.info(
                "webhook_event_queued",
                tenant_id=tenant_id,
                event_type=event_name,
                event_id=event_id,
                configurations=len(configs),
            )
        except Exception as exc:
            logger.error(
                "webhook_trigger_error",
                tenant_id=tenant_id,
                user_id=user_id,
                event_type=event_name,
                error=str(exc),
            )
            return 0

        if self._trigger is not None:
            await self._trigger.notify(tenant_id)
        return len(configs)
