"""Meeting repository -- meeting types and meetings (tenant schema).

Uses the session_factory callable pattern; methods take tenant_id first,
then the owning user_id.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.clienthub.meetings.models import MeetingModel, MeetingTypeModel
from src.clienthub.meetings.schemas import (
    SYSTEM_MEETING_TYPES,
    MeetingCreate,
    MeetingRead,
    MeetingTypeCreate,
    MeetingTypeOrder,
    MeetingTypeRead,
)

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


def _model_to_type(model: MeetingTypeModel) -> MeetingTypeRead:
    return MeetingTypeRead(
        id=str(model.id),
        tenant_id=str(model.tenant_id),
        user_id=str(model.user_id),
        code=model.code,
        display_name=model.display_name,
        description=model.description or "",
        color=model.color,
        icon=model.icon,
        is_system=bool(model.is_system),
        is_active=bool(model.is_active),
        order_position=model.order_position or 0,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_meeting(model: MeetingModel) -> MeetingRead:
    return MeetingRead(
        id=str(model.id),
        tenant_id=str(model.tenant_id),
        user_id=str(model.user_id),
        client_id=str(model.client_id),
        meeting_type=model.meeting_type,
        meeting_date=model.meeting_date,
        transcript_text=model.transcript_text,
        summary=model.summary,
        decisions=list(model.decisions or []),
        risk_signals=list(model.risk_signals or []),
        summarized_at=model.summarized_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class MeetingRepository:
    """Async persistence for meeting types and meetings.

    Args:
        session_factory: Async callable that yields tenant-scoped AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    # ── Meeting Types ───────────────────────────────────────────────────────

    def _owned_types(self, tenant_id: str, user_id: str):
        return select(MeetingTypeModel).where(
            MeetingTypeModel.tenant_id == uuid.UUID(tenant_id),
            MeetingTypeModel.user_id == uuid.UUID(user_id),
        )

    async def ensure_system_types(self, tenant_id: str, user_id: str) -> int:
        """Insert any missing system meeting types for ``user_id``. Returns rows inserted."""
        async for session in self._session_factory():
            stmt = select(MeetingTypeModel.code).where(
                MeetingTypeModel.tenant_id == uuid.UUID(tenant_id),
                MeetingTypeModel.user_id == uuid.UUID(user_id),
                MeetingTypeModel.is_system.is_(True),
            )
            existing = set((await session.execute(stmt)).scalars().all())
            missing = [row for row in SYSTEM_MEETING_TYPES if row["code"] not in existing]
            for row in missing:
                session.add(
                    MeetingTypeModel(
                        tenant_id=uuid.UUID(tenant_id),
                        user_id=uuid.UUID(user_id),
                        is_system=True,
                        is_active=True,
                        **row,
                    )
                )
            if missing:
                await session.commit()
                logger.info(
                    "system_meeting_types_seeded",
                    tenant_id=tenant_id,
                    user_id=user_id,
                    count=len(missing),
                )
            return len(missing)

    async def list_meeting_types(
        self, tenant_id: str, user_id: str, active_only: bool = False
    ) -> list[MeetingTypeRead]:
        async for session in self._session_factory():
            stmt = self._owned_types(tenant_id, user_id)
            if active_only:
                stmt = stmt.where(MeetingTypeModel.is_active.is_(True))
            stmt = stmt.order_by(MeetingTypeModel.order_position.asc(), MeetingTypeModel.code.asc())
            result = await session.execute(stmt)
            return [_model_to_type(m) for m in result.scalars().all()]

    async def get_meeting_type(self, tenant_id: str, type_id: str) -> MeetingTypeRead | None:
        """Get a meeting type regardless of owner (callers check ownership)."""
        async for session in self._session_factory():
            stmt = select(MeetingTypeModel).where(
                MeetingTypeModel.tenant_id == uuid.UUID(tenant_id),
                MeetingTypeModel.id == uuid.UUID(type_id),
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _model_to_type(model) if model else None

    async def get_meeting_type_by_code(
        self, tenant_id: str, user_id: str, code: str
    ) -> MeetingTypeRead | None:
        async for session in self._session_factory():
            stmt = self._owned_types(tenant_id, user_id).where(MeetingTypeModel.code == code)
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _model_to_type(model) if model else None

    async def count_custom_types(self, tenant_id: str, user_id: str) -> int:
        async for session in self._session_factory():
            stmt = select(func.count()).select_from(MeetingTypeModel).where(
                MeetingTypeModel.tenant_id == uuid.UUID(tenant_id),
                MeetingTypeModel.user_id == uuid.UUID(user_id),
                MeetingTypeModel.is_system.is_(False),
            )
            return int((await session.execute(stmt)).scalar_one())

    async def create_meeting_type(
        self, tenant_id: str, user_id: str, data: MeetingTypeCreate, order_position: int
    ) -> MeetingTypeRead:
        async for session in self._session_factory():
            model = MeetingTypeModel(
                tenant_id=uuid.UUID(tenant_id),
                user_id=uuid.UUID(user_id),
                code=data.code,
                display_name=data.display_name,
                description=data.description,
                color=data.color,
                icon=data.icon,
                is_system=False,
                is_active=True,
                order_position=order_position,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_type(model)

    async def update_meeting_type(
        self, tenant_id: str, type_id: str, changes: dict[str, Any]
    ) -> MeetingTypeRead | None:
        async for session in self._session_factory():
            stmt = select(MeetingTypeModel).where(
                MeetingTypeModel.tenant_id == uuid.UUID(tenant_id),
                MeetingTypeModel.id == uuid.UUID(type_id),
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is None:
                return None
            for field, value in changes.items():
                setattr(model, field, value)
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_type(model)

    async def reorder_meeting_types(
        self, tenant_id: str, user_id: str, orders: list[MeetingTypeOrder]
    ) -> int:
        """Set order_position on the user's custom types; system rows are left alone."""
        updated = 0
        async for session in self._session_factory():
            for item in orders:
                result = await session.execute(
                    update(MeetingTypeModel)
                    .where(
                        MeetingTypeModel.tenant_id == uuid.UUID(tenant_id),
                        MeetingTypeModel.user_id == uuid.UUID(user_id),
                        MeetingTypeModel.id == uuid.UUID(item.id),
                        MeetingTypeModel.is_system.is_(False),
                    )
                    .values(order_position=item.order_position, updated_at=datetime.now(timezone.utc))
                )
                updated += result.rowcount or 0
            await session.commit()
        return updated

    # ── Meetings ────────────────────────────────────────────────────────────

    def _owned_meetings(self, tenant_id: str, user_id: str):
        return select(MeetingModel).where(
            MeetingModel.tenant_id == uuid.UUID(tenant_id),
            MeetingModel.user_id == uuid.UUID(user_id),
        )

    async def count_meetings_of_type(self, tenant_id: str, user_id: str, code: str) -> int:
        async for session in self._session_factory():
            stmt = select(func.count()).select_from(MeetingModel).where(
                MeetingModel.tenant_id == uuid.UUID(tenant_id),
                MeetingModel.user_id == uuid.UUID(user_id),
                MeetingModel.meeting_type == code,
            )
            return int((await session.execute(stmt)).scalar_one())

    async def create_meeting(self, tenant_id: str, user_id: str, data: MeetingCreate) -> MeetingRead:
        async for session in self._session_factory():
            model = MeetingModel(
                tenant_id=uuid.UUID(tenant_id),
                user_id=uuid.UUID(user_id),
                client_id=uuid.UUID(data.client_id),
                meeting_type=data.meeting_type,
                meeting_date=data.meeting_date,
                transcript_text=data.transcript_text or None,
                decisions=[],
                risk_signals=[],
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_meeting(model)

    async def get_meeting(self, tenant_id: str, user_id: str, meeting_id: str) -> MeetingRead | None:
        async for session in self._session_factory():
            stmt = self._owned_meetings(tenant_id, user_id).where(MeetingModel.id == uuid.UUID(meeting_id))
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _model_to_meeting(model) if model else None

    async def list_meetings(
        self,
        tenant_id: str,
        user_id: str,
        client_id: str | None = None,
        limit: int | None = None,
    ) -> list[MeetingRead]:
        """Owned meetings, most recent meeting_date first."""
        async for session in self._session_factory():
            stmt = self._owned_meetings(tenant_id, user_id)
            if client_id is not None:
                stmt = stmt.where(MeetingModel.client_id == uuid.UUID(client_id))
            stmt = stmt.order_by(MeetingModel.meeting_date.desc())
            if limit is not None:
                stmt = stmt.limit(limit)
            result = await session.execute(stmt)
            return [_model_to_meeting(m) for m in result.scalars().all()]

    async def update_meeting(
        self, tenant_id: str, user_id: str, meeting_id: str, changes: dict[str, Any]
    ) -> MeetingRead | None:
        async for session in self._session_factory():
            stmt = self._owned_meetings(tenant_id, user_id).where(MeetingModel.id == uuid.UUID(meeting_id))
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is None:
                return None
            for field, value in changes.items():
                setattr(model, field, value)
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_meeting(model)

    async def delete_meeting(self, tenant_id: str, user_id: str, meeting_id: str) -> bool:
        async for session in self._session_factory():
            stmt = self._owned_meetings(tenant_id, user_id).where(MeetingModel.id == uuid.UUID(meeting_id))
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is None:
                return False
            await session.delete(model)
            await session.commit()
            return True
