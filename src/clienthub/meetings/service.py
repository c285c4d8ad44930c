"""Meeting and meeting-type services.

MeetingTypeService enforces the custom-type rules (reserved codes, per-user
limit, immutable system types). MeetingService records meetings, produces
AI summaries against the consultant's credit balance and emits meeting.*
webhook events.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog

from src.clienthub.billing.service import BillingService
from src.clienthub.clients.repository import ClientRepository
from src.clienthub.core.exceptions import (
    AuthorizationError,
    ConflictError,
    CreditLimitError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from src.clienthub.meetings.repository import MeetingRepository
from src.clienthub.meetings.schemas import (
    CUSTOM_ORDER_OFFSET,
    MAX_CUSTOM_TYPES,
    MeetingCreate,
    MeetingRead,
    MeetingTypeCreate,
    MeetingTypeOrder,
    MeetingTypeRead,
    MeetingTypeUpdate,
    SummarizeResult,
)
from src.clienthub.meetings.summarizer import MeetingSummarizer
from src.clienthub.webhooks.emitter import WebhookEmitter
from src.clienthub.webhooks.schemas import WebhookEventType

logger = structlog.get_logger(__name__)

SUMMARY_ACTION = "meeting_processed"


# ── Meeting Types ───────────────────────────────────────────────────────────


class MeetingTypeService:
    def __init__(self, repository: MeetingRepository) -> None:
        self._repository = repository

    async def list_meeting_types(
        self, tenant_id: str, user_id: str, active_only: bool = False
    ) -> list[MeetingTypeRead]:
        await self._repository.ensure_system_types(tenant_id, user_id)
        return await self._repository.list_meeting_types(tenant_id, user_id, active_only=active_only)

    async def get_active_type(self, tenant_id: str, user_id: str, code: str) -> MeetingTypeRead | None:
        """The user's active meeting type with ``code``, or None."""
        await self._repository.ensure_system_types(tenant_id, user_id)
        meeting_type = await self._repository.get_meeting_type_by_code(tenant_id, user_id, code)
        if meeting_type is None or not meeting_type.is_active:
            return None
        return meeting_type

    async def create_meeting_type(
        self, tenant_id: str, user_id: str, data: MeetingTypeCreate
    ) -> MeetingTypeRead:
        """Create a custom meeting type.

        Raises:
            ValidationError: The user already has the maximum number of custom types.
            ConflictError: The user already has a type with this code.
        """
        await self._repository.ensure_system_types(tenant_id, user_id)
        count = await self._repository.count_custom_types(tenant_id, user_id)
        if count >= MAX_CUSTOM_TYPES:
            raise ValidationError(
                f"Limit of {MAX_CUSTOM_TYPES} custom meeting types reached",
                code="meeting_type_limit_reached",
            )
        if await self._repository.get_meeting_type_by_code(tenant_id, user_id, data.code) is not None:
            raise ConflictError(f"Meeting type code already exists: {data.code}")

        meeting_type = await self._repository.create_meeting_type(
            tenant_id, user_id, data, order_position=count + CUSTOM_ORDER_OFFSET,
        )
        logger.info("meeting_type_created", tenant_id=tenant_id, user_id=user_id, code=meeting_type.code)
        return meeting_type

    async def _require_editable(self, tenant_id: str, user_id: str, type_id: str) -> MeetingTypeRead:
        meeting_type = await self._repository.get_meeting_type(tenant_id, type_id)
        if meeting_type is None:
            raise NotFoundError(f"Meeting type not found: {type_id}")
        if meeting_type.is_system:
            raise AuthorizationError("System meeting types cannot be modified", code="system_meeting_type")
        if meeting_type.user_id != user_id:
            raise AuthorizationError("Meeting type belongs to another user")
        return meeting_type

    async def update_meeting_type(
        self, tenant_id: str, user_id: str, type_id: str, data: MeetingTypeUpdate
    ) -> MeetingTypeRead:
        await self._require_editable(tenant_id, user_id, type_id)
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        updated = await self._repository.update_meeting_type(tenant_id, type_id, changes)
        if updated is None:
            raise NotFoundError(f"Meeting type not found: {type_id}")
        return updated

    async def toggle_meeting_type(self, tenant_id: str, user_id: str, type_id: str) -> MeetingTypeRead:
        """Flip is_active. A type still used by meetings cannot be deactivated."""
        meeting_type = await self._require_editable(tenant_id, user_id, type_id)
        if meeting_type.is_active:
            used = await self._repository.count_meetings_of_type(tenant_id, user_id, meeting_type.code)
            if used > 0:
                raise ValidationError(
                    f"Meeting type {meeting_type.code} is used by {used} meeting(s)",
                    code="meeting_type_in_use",
                )
        updated = await self._repository.update_meeting_type(
            tenant_id, type_id, {"is_active": not meeting_type.is_active},
        )
        if updated is None:
            raise NotFoundError(f"Meeting type not found: {type_id}")
        logger.info(
            "meeting_type_toggled",
            tenant_id=tenant_id,
            code=updated.code,
            is_active=updated.is_active,
        )
        return updated

    async def reorder_meeting_types(
        self, tenant_id: str, user_id: str, orders: list[MeetingTypeOrder]
    ) -> list[MeetingTypeRead]:
        await self._repository.reorder_meeting_types(tenant_id, user_id, orders)
        return await self._repository.list_meeting_types(tenant_id, user_id)


# ── Meetings ────────────────────────────────────────────────────────────────


class MeetingService:
    """Meeting records and AI summaries.

    Args:
        repository: MeetingRepository.
        types: MeetingTypeService used to validate meeting type codes.
        clients: ClientRepository for ownership checks and activity updates.
        billing: BillingService for credit checks and consumption.
        summarizer: MeetingSummarizer (None when no AI provider is configured).
        emitter: WebhookEmitter for meeting.* events.
    """

    def __init__(
        self,
        repository: MeetingRepository,
        types: MeetingTypeService,
        clients: ClientRepository,
        billing: BillingService,
        summarizer: MeetingSummarizer | None = None,
        emitter: WebhookEmitter | None = None,
    ) -> None:
        self._repository = repository
        self._types = types
        self._clients = clients
        self._billing = billing
        self._summarizer = summarizer
        self._emitter = emitter

    async def _emit(self, tenant_id: str, user_id: str, event: WebhookEventType, data: dict[str, Any]) -> None:
        if self._emitter is not None:
            await self._emitter.trigger_webhooks(tenant_id, user_id, event, data)

    async def add_meeting(self, tenant_id: str, user_id: str, data: MeetingCreate) -> MeetingRead:
        """Record a meeting with an owned client.

        Raises:
            NotFoundError: The client does not exist or belongs to another user.
            ValidationError: The meeting type is unknown or inactive.
        """
        if await self._clients.get_client(tenant_id, user_id, data.client_id) is None:
            raise NotFoundError(f"Client not found: {data.client_id}")
        if await self._types.get_active_type(tenant_id, user_id, data.meeting_type) is None:
            raise ValidationError(
                f"Unknown or inactive meeting type: {data.meeting_type}",
                code="invalid_meeting_type",
            )

        meeting = await self._repository.create_meeting(tenant_id, user_id, data)
        await self._clients.touch_activity(tenant_id, user_id, data.client_id, datetime.now(timezone.utc))
        logger.info(
            "meeting_created",
            tenant_id=tenant_id,
            meeting_id=meeting.id,
            client_id=meeting.client_id,
            meeting_type=meeting.meeting_type,
        )

        await self._emit(
            tenant_id,
            user_id,
            WebhookEventType.MEETING_CREATED,
            {
                "id": meeting.id,
                "client_id": meeting.client_id,
                "type": meeting.meeting_type,
                "datetime": meeting.meeting_date.isoformat(),
                "has_transcript": bool(meeting.transcript_text),
                "created_at": meeting.created_at.isoformat() if meeting.created_at else None,
            },
        )
        return meeting

    async def get_meeting(self, tenant_id: str, user_id: str, meeting_id: str) -> MeetingRead:
        meeting = await self._repository.get_meeting(tenant_id, user_id, meeting_id)
        if meeting is None:
            raise NotFoundError(f"Meeting not found: {meeting_id}")
        return meeting

    async def list_meetings(
        self, tenant_id: str, user_id: str, client_id: str | None = None
    ) -> list[MeetingRead]:
        if client_id is not None and await self._clients.get_client(tenant_id, user_id, client_id) is None:
            raise NotFoundError(f"Client not found: {client_id}")
        return await self._repository.list_meetings(tenant_id, user_id, client_id=client_id)

    async def delete_meeting(self, tenant_id: str, user_id: str, meeting_id: str) -> None:
        if not await self._repository.delete_meeting(tenant_id, user_id, meeting_id):
            raise NotFoundError(f"Meeting not found: {meeting_id}")
        logger.info("meeting_deleted", tenant_id=tenant_id, meeting_id=meeting_id)

    async def summarize_meeting(self, tenant_id: str, user_id: str, meeting_id: str) -> SummarizeResult:
        """Generate and store the AI summary of a meeting, consuming one credit.

        Raises:
            NotFoundError: The meeting does not exist or belongs to another user.
            CreditLimitError: No active subscription or no credits left.
            ValidationError: The meeting has no transcript.
            ExternalServiceError: The AI provider is unavailable or failed.
        """
        meeting = await self.get_meeting(tenant_id, user_id, meeting_id)

        check = await self._billing.can_use_credits(tenant_id, user_id)
        if not check.allowed:
            raise CreditLimitError(check.reason or "Credit limit reached")
        if not (meeting.transcript_text or "").strip():
            raise ValidationError("No transcript available for this meeting", code="transcript_required")
        if self._summarizer is None:
            raise ExternalServiceError("AI summaries are not configured", code="llm_unavailable")

        client = await self._clients.get_client(tenant_id, user_id, meeting.client_id)
        summary = await self._summarizer.summarize(
            meeting.transcript_text or "",
            meeting.meeting_type,
            client.name if client else "",
        )

        processed_at = datetime.now(timezone.utc)
        updated = await self._repository.update_meeting(
            tenant_id,
            user_id,
            meeting_id,
            {
                "summary": "\n".join(summary.summary),
                "decisions": summary.decisions,
                "risk_signals": summary.risk_signals,
                "summarized_at": processed_at,
            },
        )
        if updated is None:
            raise NotFoundError(f"Meeting not found: {meeting_id}")

        remaining = await self._billing.consume_credit(
            tenant_id,
            user_id,
            SUMMARY_ACTION,
            {"meeting_id": meeting_id, "meeting_type": meeting.meeting_type},
        )
        logger.info(
            "meeting_summarized",
            tenant_id=tenant_id,
            meeting_id=meeting_id,
            suggested_tasks=len(summary.suggested_tasks),
        )

        await self._emit(
            tenant_id,
            user_id,
            WebhookEventType.MEETING_SUMMARY_GENERATED,
            {
                "id": meeting_id,
                "client_id": meeting.client_id,
                "type": meeting.meeting_type,
                "summary": summary.summary,
                "decisions": summary.decisions,
                "risk_signals": summary.risk_signals,
                "suggested_tasks_count": len(summary.suggested_tasks),
                "processed_at": processed_at.isoformat(),
            },
        )
        return SummarizeResult(
            meeting=updated,
            suggested_tasks=summary.suggested_tasks,
            credits_remaining=remaining.remaining,
        )
