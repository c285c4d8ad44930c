"""Webhook dispatcher -- claims due queue rows and delivers them over HTTP.

One dispatch() call per tenant:

1. Claim up to ``batch_size`` ``pending`` rows whose ``scheduled_for`` has
   passed, moving them to ``processing``.
2. Deliver them concurrently. Each delivery is signed with the
   configuration's secret (HMAC-SHA256 over the compact JSON body).
3. On 2xx the row becomes ``completed`` and the configuration's failure
   counter resets. Otherwise the attempt counter grows and the row is either
   rescheduled with backoff (60s, 5m, 30m, 2h, 12h) or marked ``failed``
   once ``max_attempts`` is reached.

Every HTTP attempt is written to the delivery log and every invocation to
the dispatcher runs table.

A row never stays in ``processing``: an error while handling it counts as a
failed attempt, and claims older than ``stale_claim_seconds`` (left behind by
a crashed or cancelled process) are released back to ``pending`` before each
claim.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta, timezone

import httpx
import structlog

from src.clienthub.core.monitoring import (
    webhook_deliveries_total,
    webhook_delivery_duration_seconds,
    webhook_dispatch_runs_total,
)
from src.clienthub.webhooks.repository import WebhookRepository
from src.clienthub.webhooks.schemas import (
    DeliveryLogCreate,
    DispatchResult,
    TriggerSource,
    WebhookConfigRead,
    WebhookQueueItem,
)
from src.clienthub.webhooks.signing import serialize_payload, signed_headers

logger = structlog.get_logger(__name__)

BACKOFF_DELAYS: tuple[int, ...] = (60, 300, 1800, 7200, 43200)
MAX_RESPONSE_BODY = 10_000
BODYLESS_METHODS = frozenset({"GET", "HEAD", "DELETE"})
STALE_CLAIM_FACTOR = 6

NO_PENDING_MESSAGE = "No pending webhook events"
PROCESSED_MESSAGE = "Webhook events processed"


def retry_delay_seconds(attempts: int) -> int:
    """Backoff before the next try, given the attempts made so far (1-based)."""
    index = attempts - 1
    if 0 <= index < len(BACKOFF_DELAYS):
        return BACKOFF_DELAYS[index]
    return BACKOFF_DELAYS[-1]


class WebhookDispatcher:
    """Delivers queued webhook events for one tenant per dispatch() call.

    Args:
        repository: WebhookRepository (or compatible test double).
        batch_size: Maximum rows claimed per run.
        timeout: Per-request HTTP timeout in seconds.
        failure_threshold: Consecutive failures after which a configuration
            is no longer called and its rows fail immediately.
        user_agent: Value of the User-Agent header.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
        stale_claim_seconds: Age after which a ``processing`` claim counts as
            abandoned. Defaults to six delivery timeouts, at least one minute.
    """

    def __init__(
        self,
        repository: WebhookRepository,
        *,
        batch_size: int = 50,
        timeout: float = 10.0,
        failure_threshold: int = 10,
        user_agent: str = "ClientHub-Webhooks/1.0",
        transport: httpx.AsyncBaseTransport | None = None,
        stale_claim_seconds: float | None = None,
    ) -> None:
        self._repository = repository
        self._batch_size = batch_size
        self._timeout = timeout
        self._failure_threshold = failure_threshold
        self._user_agent = user_agent
        self._transport = transport
        if stale_claim_seconds is None:
            stale_claim_seconds = max(60.0, timeout * STALE_CLAIM_FACTOR)
        self._stale_claim_seconds = stale_claim_seconds

    async def release_stale_claims(self, tenant_id: str) -> int:
        """Put abandoned ``processing`` rows of ``tenant_id`` back in the queue."""
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=self._stale_claim_seconds)
        released = await self._repository.release_stale_events(tenant_id, cutoff)
        if released:
            logger.warning("webhook_stale_claims_released", tenant_id=tenant_id, released=released)
        return released

    async def dispatch(
        self,
        tenant_id: str,
        triggered_by: str = TriggerSource.MANUAL.value,
        run_id: str | None = None,
    ) -> DispatchResult:
        """Claim and deliver due events for ``tenant_id``.

        Args:
            tenant_id: Tenant whose queue is processed.
            triggered_by: Recorded on the run row when a new run is created.
            run_id: Existing run row to complete (created by DispatchTrigger).

        Returns:
            DispatchResult with the number of rows claimed.
        """
        if run_id is None:
            run = await self._repository.create_run(tenant_id, triggered_by)
            run_id = run.id

        try:
            await self.release_stale_claims(tenant_id)
            now = datetime.now(timezone.utc)
            events = await self._repository.claim_due_events(tenant_id, now, self._batch_size)
            if not events:
                await self._repository.finish_run(tenant_id, run_id, 0, True)
                webhook_dispatch_runs_total.labels(triggered_by=triggered_by, status="empty").inc()
                return DispatchResult(message=NO_PENDING_MESSAGE, processed=0)

            logger.info(
                "webhook_dispatch_started",
                tenant_id=tenant_id,
                run_id=run_id,
                triggered_by=triggered_by,
                claimed=len(events),
            )

            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                results = await asyncio.gather(
                    *(self._process_event(client, tenant_id, event) for event in events),
                    return_exceptions=True,
                )

            errors: list[str] = []
            for event, outcome in zip(events, results):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    errors.append(f"{event.event_id}: {outcome}")
                    logger.error(
                        "webhook_event_processing_error",
                        tenant_id=tenant_id,
                        queue_id=event.id,
                        event_id=event.event_id,
                        error=str(outcome),
                    )

            error_message = "; ".join(errors) if errors else None
            await self._repository.finish_run(tenant_id, run_id, len(events), not errors, error_message)
            webhook_dispatch_runs_total.labels(
                triggered_by=triggered_by, status="error" if errors else "success",
            ).inc()
            logger.info(
                "webhook_dispatch_completed",
                tenant_id=tenant_id,
                run_id=run_id,
                processed=len(events),
                errors=len(errors),
            )
            return DispatchResult(message=PROCESSED_MESSAGE, processed=len(events))

        except asyncio.CancelledError:
            logger.warning("webhook_dispatch_cancelled", tenant_id=tenant_id, run_id=run_id)
            await self._repository.finish_run(tenant_id, run_id, 0, False, "Dispatch cancelled")
            raise

        except Exception as exc:
            webhook_dispatch_runs_total.labels(triggered_by=triggered_by, status="error").inc()
            logger.error("webhook_dispatch_failed", tenant_id=tenant_id, run_id=run_id, error=str(exc))
            await self._repository.finish_run(tenant_id, run_id, 0, False, str(exc))
            raise

    async def _process_event(
        self,
        client: httpx.AsyncClient,
        tenant_id: str,
        event: WebhookQueueItem,
    ) -> str:
        """Deliver one claimed row and move it to its next state. Returns the outcome label.

        Any error after the claim, cancellation included, is recorded as a
        failed attempt before it propagates.
        """
        try:
            return await self._handle_event(client, tenant_id, event)
        except BaseException as exc:
            await self._settle_after_error(tenant_id, event, exc)
            raise

    async def _settle_after_error(
        self, tenant_id: str, event: WebhookQueueItem, exc: BaseException
    ) -> None:
        now = datetime.now(timezone.utc)
        attempts = event.attempts + 1
        try:
            if attempts >= event.max_attempts:
                await self._repository.fail_event(tenant_id, event.id, processed_at=now, attempts=attempts)
            else:
                retry_at = now + timedelta(seconds=retry_delay_seconds(attempts))
                await self._repository.reschedule_event(tenant_id, event.id, attempts, retry_at)
        except Exception as settle_exc:
            # Row stays in processing until release_stale_claims() frees it
            logger.error(
                "webhook_event_settle_failed",
                tenant_id=tenant_id,
                queue_id=event.id,
                error=str(settle_exc),
                cause=str(exc) or exc.__class__.__name__,
            )

    async def _handle_event(
        self,
        client: httpx.AsyncClient,
        tenant_id: str,
        event: WebhookQueueItem,
    ) -> str:
        config = await self._repository.get_config_by_id(tenant_id, event.webhook_config_id)
        now = datetime.now(timezone.utc)

        if config is None or not config.enabled:
            await self._repository.fail_event(tenant_id, event.id, processed_at=now)
            webhook_deliveries_total.labels(tenant_id=tenant_id, outcome="skipped").inc()
            logger.info(
                "webhook_event_skipped",
                tenant_id=tenant_id,
                queue_id=event.id,
                reason="config_missing" if config is None else "config_disabled",
            )
            return "skipped"

        if config.failure_count >= self._failure_threshold:
            await self._repository.fail_event(tenant_id, event.id, processed_at=now)
            webhook_deliveries_total.labels(tenant_id=tenant_id, outcome="skipped").inc()
            logger.warning(
                "webhook_event_skipped",
                tenant_id=tenant_id,
                queue_id=event.id,
                webhook_config_id=config.id,
                reason="failure_threshold",
                failure_count=config.failure_count,
            )
            return "skipped"

        success, log_entry = await self._deliver(client, tenant_id, config, event)
        await self._repository.add_delivery_log(tenant_id, log_entry)

        done_at = datetime.now(timezone.utc)
        if success:
            await self._repository.record_delivery_success(tenant_id, config.id, done_at)
            await self._repository.complete_event(tenant_id, event.id, processed_at=done_at)
            webhook_deliveries_total.labels(tenant_id=tenant_id, outcome="success").inc()
            return "success"

        attempts = event.attempts + 1
        if attempts >= event.max_attempts:
            await self._repository.fail_event(tenant_id, event.id, processed_at=done_at, attempts=attempts)
            outcome = "failed"
        else:
            retry_at = done_at + timedelta(seconds=retry_delay_seconds(attempts))
            await self._repository.reschedule_event(tenant_id, event.id, attempts, retry_at)
            outcome = "retry"
        await self._repository.increment_failure_count(tenant_id, config.id)

        webhook_deliveries_total.labels(tenant_id=tenant_id, outcome=outcome).inc()
        logger.warning(
            "webhook_delivery_failed",
            tenant_id=tenant_id,
            queue_id=event.id,
            event_id=event.event_id,
            webhook_config_id=config.id,
            attempts=attempts,
            max_attempts=event.max_attempts,
            outcome=outcome,
            status_code=log_entry.status_code,
            error=log_entry.error_message,
        )
        return outcome

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        tenant_id: str,
        config: WebhookConfigRead,
        event: WebhookQueueItem,
    ) -> tuple[bool, DeliveryLogCreate]:
        body = serialize_payload(event.payload)
        headers = signed_headers(
            body,
            config.secret_key,
            event_type=event.event_type,
            event_id=event.event_id,
            user_agent=self._user_agent,
        )
        headers.update(config.headers or {})
        method = (config.http_method or "POST").upper()

        status_code: int | None = None
        response_body: str | None = None
        response_headers: dict[str, str] | None = None
        error_message: str | None = None
        success = False

        start = time.perf_counter()
        try:
            response = await client.request(
                method,
                config.url,
                headers=headers,
                content=None if method in BODYLESS_METHODS else body.encode("utf-8"),
            )
            status_code = response.status_code
            response_body = response.text[:MAX_RESPONSE_BODY]
            response_headers = dict(response.headers)
            success = response.is_success
            if not success:
                error_message = f"HTTP {status_code}"
        except httpx.HTTPError as exc:
            error_message = str(exc) or exc.__class__.__name__
        duration = time.perf_counter() - start

        webhook_delivery_duration_seconds.labels(tenant_id=tenant_id).observe(duration)

        return success, DeliveryLogCreate(
            webhook_config_id=config.id,
            event_type=event.event_type,
            event_id=event.event_id,
            payload=event.payload,
            status_code=status_code,
            response_body=response_body,
            response_headers=response_headers,
            attempt_number=event.attempts + 1,
            error_message=error_message,
            duration_ms=int(duration * 1000),
            success=success,
        )
