"""Billing repositories.

PlanRepository reads the shared ``plans`` table; BillingRepository owns the
tenant-scoped subscriptions and usage logs. Both use the session_factory
callable pattern.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.clienthub.billing.models import PlanModel, SubscriptionModel, UsageLogModel
from src.clienthub.billing.schemas import (
    DEFAULT_PLANS,
    PlanRead,
    SubscriptionRead,
    SubscriptionStatus,
    UsageLogRead,
)

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_plan(model: PlanModel) -> PlanRead:
    return PlanRead(
        id=str(model.id),
        name=model.name,
        display_name=model.display_name,
        description=model.description or "",
        price_monthly=model.price_monthly or 0,
        currency=model.currency or "BRL",
        credits_per_month=model.credits_per_month,
        features=list(model.features or []),
        is_active=bool(model.is_active),
    )


def _model_to_subscription(model: SubscriptionModel) -> SubscriptionRead:
    return SubscriptionRead(
        id=str(model.id),
        tenant_id=str(model.tenant_id),
        user_id=str(model.user_id),
        plan_id=str(model.plan_id),
        status=SubscriptionStatus(model.status),
        current_period_start=model.current_period_start,
        current_period_end=model.current_period_end,
        credits_used=model.credits_used or 0,
        cancel_at_period_end=bool(model.cancel_at_period_end),
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_usage(model: UsageLogModel) -> UsageLogRead:
    return UsageLogRead(
        id=str(model.id),
        user_id=str(model.user_id),
        subscription_id=str(model.subscription_id) if model.subscription_id else None,
        action_type=model.action_type,
        credits_consumed=model.credits_consumed or 0,
        metadata=dict(model.metadata_json or {}),
        created_at=model.created_at,
    )


async def seed_default_plans(session_factory: SessionFactory) -> int:
    """Insert the default plans that are missing by name. Returns rows inserted."""
    async for session in session_factory():
        existing = set((await session.execute(select(PlanModel.name))).scalars().all())
        missing = [plan for plan in DEFAULT_PLANS if plan["name"] not in existing]
        for plan in missing:
            session.add(PlanModel(currency="BRL", is_active=True, **plan))
        if missing:
            await session.commit()
            logger.info("default_plans_seeded", plans=[p["name"] for p in missing])
        return len(missing)
    return 0


# ── Plans ───────────────────────────────────────────────────────────────────


class PlanRepository:
    """Read access to the shared plan catalogue.

    Args:
        session_factory: Async callable yielding shared-schema sessions.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def list_plans(self, active_only: bool = True) -> list[PlanRead]:
        async for session in self._session_factory():
            stmt = select(PlanModel)
            if active_only:
                stmt = stmt.where(PlanModel.is_active.is_(True))
            stmt = stmt.order_by(PlanModel.price_monthly.asc())
            result = await session.execute(stmt)
            return [_model_to_plan(m) for m in result.scalars().all()]

    async def get_plan(self, plan_id: str) -> PlanRead | None:
        async for session in self._session_factory():
            model = await session.get(PlanModel, uuid.UUID(plan_id))
            return _model_to_plan(model) if model else None

    async def get_plan_by_name(self, name: str) -> PlanRead | None:
        async for session in self._session_factory():
            stmt = select(PlanModel).where(PlanModel.name == name)
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _model_to_plan(model) if model else None


# ── Subscriptions and Usage ─────────────────────────────────────────────────


class BillingRepository:
    """Tenant-scoped subscriptions and usage logs.

    Args:
        session_factory: Async callable that yields tenant-scoped AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get_active_subscription(self, tenant_id: str, user_id: str) -> SubscriptionRead | None:
        """Most recently created ``active`` subscription of ``user_id``."""
        async for session in self._session_factory():
            stmt = (
                select(SubscriptionModel)
                .where(
                    SubscriptionModel.tenant_id == uuid.UUID(tenant_id),
                    SubscriptionModel.user_id == uuid.UUID(user_id),
                    SubscriptionModel.status == SubscriptionStatus.ACTIVE.value,
                )
                .order_by(SubscriptionModel.created_at.desc())
                .limit(1)
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            return _model_to_subscription(model) if model else None

    async def create_subscription(
        self,
        tenant_id: str,
        user_id: str,
        plan_id: str,
        period_start: datetime,
        period_end: datetime,
    ) -> SubscriptionRead:
        async for session in self._session_factory():
            model = SubscriptionModel(
                tenant_id=uuid.UUID(tenant_id),
                user_id=uuid.UUID(user_id),
                plan_id=uuid.UUID(plan_id),
                status=SubscriptionStatus.ACTIVE.value,
                current_period_start=period_start,
                current_period_end=period_end,
                credits_used=0,
                cancel_at_period_end=False,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_subscription(model)

    async def update_subscription(
        self, tenant_id: str, subscription_id: str, changes: dict[str, Any]
    ) -> SubscriptionRead | None:
        async for session in self._session_factory():
            stmt = select(SubscriptionModel).where(
                SubscriptionModel.tenant_id == uuid.UUID(tenant_id),
                SubscriptionModel.id == uuid.UUID(subscription_id),
            )
            model = (await session.execute(stmt)).scalar_one_or_none()
            if model is None:
                return None
            for field, value in changes.items():
                setattr(model, field, value)
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_subscription(model)

    async def record_usage(
        self,
        tenant_id: str,
        user_id: str,
        subscription_id: str | None,
        action_type: str,
        metadata: dict[str, Any],
        *,
        increment_credits: bool,
    ) -> UsageLogRead:
        """Insert a usage log and, when metered, bump credits_used in the same transaction."""
        async for session in self._session_factory():
            log = UsageLogModel(
                tenant_id=uuid.UUID(tenant_id),
                user_id=uuid.UUID(user_id),
                subscription_id=uuid.UUID(subscription_id) if subscription_id else None,
                action_type=action_type,
                credits_consumed=1,
                metadata_json=dict(metadata),
            )
            session.add(log)
            if increment_credits and subscription_id:
                await session.execute(
                    update(SubscriptionModel)
                    .where(
                        SubscriptionModel.tenant_id == uuid.UUID(tenant_id),
                        SubscriptionModel.id == uuid.UUID(subscription_id),
                    )
                    .values(
                        credits_used=SubscriptionModel.credits_used + 1,
                        updated_at=datetime.now(timezone.utc),
                    )
                )
            await session.commit()
            await session.refresh(log)
            return _model_to_usage(log)

    async def list_usage(self, tenant_id: str, user_id: str, since: datetime) -> list[UsageLogRead]:
        async for session in self._session_factory():
            stmt = (
                select(UsageLogModel)
                .where(
                    UsageLogModel.tenant_id == uuid.UUID(tenant_id),
                    UsageLogModel.user_id == uuid.UUID(user_id),
                    UsageLogModel.created_at >= since,
                )
                .order_by(UsageLogModel.created_at.desc())
            )
            result = await session.execute(stmt)
            return [_model_to_usage(m) for m in result.scalars().all()]
