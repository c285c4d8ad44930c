"""Client repository -- async CRUD over the tenant ``clients`` table.

Every query filters by tenant_id and the owning consultant's user_id.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.clienthub.clients.models import ClientModel
from src.clienthub.clients.schemas import ClientCreate, ClientRead, ClientStatus

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]

# Read-schema field -> model attribute where they differ
_COLUMN_NAMES = {"metadata": "metadata_json"}


def _model_to_client(model: ClientModel) -> ClientRead:
    return ClientRead(
        id=str(model.id),
        tenant_id=str(model.tenant_id),
        user_id=str(model.user_id),
        name=model.name,
        email=model.email,
        phone=model.phone,
        revenue_bracket=model.revenue_bracket,
        status=ClientStatus(model.status or ClientStatus.PROSPECTO.value),
        risk_score=model.risk_score or 0,
        last_activity_date=model.last_activity_date,
        metadata=dict(model.metadata_json or {}),
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class ClientRepository:
    """Async persistence for clients.

    Args:
        session_factory: Async callable that yields tenant-scoped AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def _owned(self, tenant_id: str, user_id: str):
        return select(ClientModel).where(
            ClientModel.tenant_id == uuid.UUID(tenant_id),
            ClientModel.user_id == uuid.UUID(user_id),
        )

    async def create_client(self, tenant_id: str, user_id: str, data: ClientCreate) -> ClientRead:
        async for session in self._session_factory():
            model = ClientModel(
                tenant_id=uuid.UUID(tenant_id),
                user_id=uuid.UUID(user_id),
                name=data.name,
                email=data.email,
                phone=data.phone,
                revenue_bracket=data.revenue_bracket,
                status=data.status.value,
                risk_score=data.risk_score,
                metadata_json=dict(data.metadata),
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_client(model)

    async def get_client(self, tenant_id: str, user_id: str, client_id: str) -> ClientRead | None:
        async for session in self._session_factory():
            stmt = self._owned(tenant_id, user_id).where(ClientModel.id == uuid.UUID(client_id))
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _model_to_client(model) if model else None

    async def find_client_by_name(self, tenant_id: str, user_id: str, name: str) -> ClientRead | None:
        """Case-insensitive substring match; the oldest matching client wins."""
        async for session in self._session_factory():
            stmt = (
                self._owned(tenant_id, user_id)
                .where(ClientModel.name.ilike(f"%{name}%"))
                .order_by(ClientModel.created_at.asc())
                .limit(1)
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _model_to_client(model) if model else None

    async def list_clients(
        self,
        tenant_id: str,
        user_id: str,
        *,
        risk_range: tuple[int, int] | None = None,
        inactive_before: datetime | None = None,
        status: str | None = None,
    ) -> list[ClientRead]:
        """List owned clients ordered by risk_score descending.

        Args:
            risk_range: Inclusive (min, max) risk_score bounds.
            inactive_before: Keep clients with no activity or activity older than this.
            status: Keep clients in this status only.
        """
        async for session in self._session_factory():
            stmt = self._owned(tenant_id, user_id)
            if risk_range is not None:
                low, high = risk_range
                stmt = stmt.where(ClientModel.risk_score >= low, ClientModel.risk_score <= high)
            if inactive_before is not None:
                stmt = stmt.where(
                    or_(
                        ClientModel.last_activity_date.is_(None),
                        ClientModel.last_activity_date < inactive_before,
                    )
                )
            if status is not None:
                stmt = stmt.where(ClientModel.status == status)
            stmt = stmt.order_by(ClientModel.risk_score.desc(), ClientModel.created_at.asc())
            result = await session.execute(stmt)
            return [_model_to_client(m) for m in result.scalars().all()]

    async def owned_client_ids(self, tenant_id: str, user_id: str, client_ids: list[str]) -> set[str]:
        """Subset of ``client_ids`` that exist and belong to ``user_id``."""
        if not client_ids:
            return set()
        async for session in self._session_factory():
            stmt = select(ClientModel.id).where(
                ClientModel.tenant_id == uuid.UUID(tenant_id),
                ClientModel.user_id == uuid.UUID(user_id),
                ClientModel.id.in_([uuid.UUID(c) for c in client_ids]),
            )
            result = await session.execute(stmt)
            return {str(row) for row in result.scalars().all()}

    async def update_client(
        self, tenant_id: str, user_id: str, client_id: str, changes: dict[str, Any]
    ) -> ClientRead | None:
        """Apply ``changes`` (read-schema field name -> value) to an owned client."""
        async for session in self._session_factory():
            stmt = self._owned(tenant_id, user_id).where(ClientModel.id == uuid.UUID(client_id))
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is None:
                return None
            for field, value in changes.items():
                setattr(model, _COLUMN_NAMES.get(field, field), value)
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_client(model)

    async def touch_activity(
        self, tenant_id: str, user_id: str, client_id: str, at: datetime
    ) -> None:
        await self.update_client(tenant_id, user_id, client_id, {"last_activity_date": at})

    async def delete_client(self, tenant_id: str, user_id: str, client_id: str) -> bool:
        async for session in self._session_factory():
            stmt = self._owned(tenant_id, user_id).where(ClientModel.id == uuid.UUID(client_id))
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is None:
                return False
            await session.delete(model)
            await session.commit()
            return True
