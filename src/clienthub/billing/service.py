"""Billing service -- credit checks and subscription lifecycle.

Credits are consumed one at a time by metered actions (AI meeting
summaries). A plan whose ``credits_per_month`` is None is unlimited: usage
is still logged but credits_used is not incremented.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from src.clienthub.billing.repository import BillingRepository, PlanRepository
from src.clienthub.billing.schemas import (
    FREE_PLAN,
    PERIOD_DAYS,
    CreditCheck,
    PlanRead,
    SubscriptionRead,
    SubscriptionStatus,
    UsageStats,
)
from src.clienthub.core.exceptions import CreditLimitError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)

NO_SUBSCRIPTION = "No active subscription found"
LIMIT_REACHED = "You have reached your plan's credit limit. Upgrade to continue."


class BillingService:
    """Plan catalogue, subscriptions and credit metering.

    Args:
        plans: PlanRepository over the shared schema.
        repository: BillingRepository over the tenant schema.
    """

    def __init__(self, plans: PlanRepository, repository: BillingRepository) -> None:
        self._plans = plans
        self._repository = repository

    async def list_plans(self) -> list[PlanRead]:
        return await self._plans.list_plans(active_only=True)

    async def get_subscription(self, tenant_id: str, user_id: str) -> SubscriptionRead | None:
        """Active subscription with its plan attached, or None."""
        subscription = await self._repository.get_active_subscription(tenant_id, user_id)
        if subscription is None:
            return None
        subscription.plan = await self._plans.get_plan(subscription.plan_id)
        return subscription

    async def start_free_subscription(self, tenant_id: str, user_id: str) -> SubscriptionRead | None:
        """Subscribe a new user to the free plan; None when no free plan exists."""
        plan = await self._plans.get_plan_by_name(FREE_PLAN)
        if plan is None:
            logger.warning("free_plan_missing", tenant_id=tenant_id, user_id=user_id)
            return None
        now = datetime.now(timezone.utc)
        subscription = await self._repository.create_subscription(
            tenant_id, user_id, plan.id, now, now + timedelta(days=PERIOD_DAYS),
        )
        subscription.plan = plan
        return subscription

    @staticmethod
    def _check(subscription: SubscriptionRead | None) -> CreditCheck:
        if subscription is None:
            return CreditCheck(allowed=False, reason=NO_SUBSCRIPTION)
        plan = subscription.plan
        if plan is not None and plan.credits_per_month is None:
            return CreditCheck(allowed=True)
        limit = plan.credits_per_month if plan is not None else 0
        remaining = (limit or 0) - subscription.credits_used
        if remaining <= 0:
            return CreditCheck(allowed=False, reason=LIMIT_REACHED, remaining=0)
        return CreditCheck(allowed=True, remaining=remaining)

    async def can_use_credits(self, tenant_id: str, user_id: str) -> CreditCheck:
        return self._check(await self.get_subscription(tenant_id, user_id))

    async def consume_credit(
        self,
        tenant_id: str,
        user_id: str,
        action_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> CreditCheck:
        """Consume one credit for ``action_type``. Returns the check after consumption.

        Raises:
            NotFoundError: No active subscription.
            CreditLimitError: The plan's credits are exhausted.
        """
        subscription = await self.get_subscription(tenant_id, user_id)
        if subscription is None:
            raise NotFoundError(NO_SUBSCRIPTION, code="subscription_not_found")
        check = self._check(subscription)
        if not check.allowed:
            raise CreditLimitError(check.reason or LIMIT_REACHED)

        metered = check.remaining is not None
        await self._repository.record_usage(
            tenant_id,
            user_id,
            subscription.id,
            action_type,
            metadata or {},
            increment_credits=metered,
        )
        logger.info(
            "credit_consumed",
            tenant_id=tenant_id,
            user_id=user_id,
            action_type=action_type,
            remaining=check.remaining - 1 if metered else None,
        )
        if not metered:
            return CreditCheck(allowed=True)
        remaining = check.remaining - 1
        return CreditCheck(allowed=remaining > 0, remaining=remaining, reason=None if remaining > 0 else LIMIT_REACHED)

    async def usage_stats(self, tenant_id: str, user_id: str, days: int = 30) -> UsageStats:
        since = datetime.now(timezone.utc) - timedelta(days=days)
        logs = await self._repository.list_usage(tenant_id, user_id, since)
        by_type: dict[str, int] = defaultdict(int)
        for log in logs:
            by_type[log.action_type] += log.credits_consumed
        return UsageStats(
            total=sum(log.credits_consumed for log in logs),
            by_type=dict(by_type),
            logs=logs,
        )

    async def upgrade(self, tenant_id: str, user_id: str, plan_name: str) -> SubscriptionRead:
        """Cancel the current subscription and start a fresh 30-day period on ``plan_name``."""
        plan = await self._plans.get_plan_by_name(plan_name)
        if plan is None or not plan.is_active:
            raise NotFoundError(f"Plan not found: {plan_name}", code="plan_not_found")

        current = await self._repository.get_active_subscription(tenant_id, user_id)
        if current is not None:
            await self._repository.update_subscription(
                tenant_id, current.id, {"status": SubscriptionStatus.CANCELLED.value},
            )

        now = datetime.now(timezone.utc)
        subscription = await self._repository.create_subscription(
            tenant_id, user_id, plan.id, now, now + timedelta(days=PERIOD_DAYS),
        )
        subscription.plan = plan
        logger.info(
            "subscription_upgraded",
            tenant_id=tenant_id,
            user_id=user_id,
            plan=plan.name,
            previous_subscription_id=current.id if current else None,
        )
        return subscription

    async def cancel_subscription(self, tenant_id: str, user_id: str) -> SubscriptionRead:
        """Mark the active subscription to end with its current period.

        Raises:
            NotFoundError: No active subscription.
            ValidationError: The active plan is the free plan.
        """
        subscription = await self.get_subscription(tenant_id, user_id)
        if subscription is None:
            raise NotFoundError(NO_SUBSCRIPTION, code="subscription_not_found")
        if subscription.plan is not None and subscription.plan.name == FREE_PLAN:
            raise ValidationError("The free plan cannot be cancelled", code="free_plan_not_cancellable")

        updated = await self._repository.update_subscription(
            tenant_id, subscription.id, {"cancel_at_period_end": True},
        )
        if updated is None:
            raise NotFoundError(NO_SUBSCRIPTION, code="subscription_not_found")
        updated.plan = subscription.plan
        logger.info("subscription_cancel_scheduled", tenant_id=tenant_id, user_id=user_id)
        return updated

    # ── Admin ───────────────────────────────────────────────────────────────

    async def _require_active(self, tenant_id: str, user_id: str) -> SubscriptionRead:
        subscription = await self._repository.get_active_subscription(tenant_id, user_id)
        if subscription is None:
            raise NotFoundError(NO_SUBSCRIPTION, code="subscription_not_found")
        return subscription

    async def reset_credits(self, tenant_id: str, user_id: str, admin_id: str) -> SubscriptionRead:
        """Zero credits_used on the user's active subscription."""
        subscription = await self._require_active(tenant_id, user_id)
        updated = await self._repository.update_subscription(
            tenant_id, subscription.id, {"credits_used": 0},
        )
        if updated is None:
            raise NotFoundError(NO_SUBSCRIPTION, code="subscription_not_found")
        updated.plan = await self._plans.get_plan(updated.plan_id)
        logger.info(
            "credits_reset",
            tenant_id=tenant_id,
            user_id=user_id,
            admin_id=admin_id,
            previous_credits_used=subscription.credits_used,
        )
        return updated

    async def extend_subscription(
        self, tenant_id: str, user_id: str, days: int, admin_id: str
    ) -> SubscriptionRead:
        """Push current_period_end of the active subscription ``days`` further out."""
        if days < 1:
            raise ValidationError("Extension must be at least one day", code="invalid_extension")
        subscription = await self._require_active(tenant_id, user_id)
        period_end = subscription.current_period_end + timedelta(days=days)
        updated = await self._repository.update_subscription(
            tenant_id, subscription.id, {"current_period_end": period_end},
        )
        if updated is None:
            raise NotFoundError(NO_SUBSCRIPTION, code="subscription_not_found")
        updated.plan = await self._plans.get_plan(updated.plan_id)
        logger.info(
            "subscription_extended",
            tenant_id=tenant_id,
            user_id=user_id,
            admin_id=admin_id,
            days=days,
            period_end=period_end.isoformat(),
        )
        return updated

    async def change_plan(
        self, tenant_id: str, user_id: str, plan_name: str, admin_id: str
    ) -> SubscriptionRead:
        """Move another user to ``plan_name`` with a fresh period and zero credits used."""
        subscription = await self.upgrade(tenant_id, user_id, plan_name)
        logger.info(
            "subscription_changed_by_admin",
            tenant_id=tenant_id,
            user_id=user_id,
            admin_id=admin_id,
            plan=plan_name,
        )
        return subscription
