"""BillingService tests: plans, free subscriptions, credits, upgrades, cancellation and admin actions."""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.clienthub.billing.schemas import SubscriptionStatus
from src.clienthub.billing.service import BillingService
from src.clienthub.core.exceptions import CreditLimitError, NotFoundError, ValidationError
from tests.doubles import InMemoryPlanRepository


@pytest.mark.asyncio
async def test_list_plans_hides_inactive(billing_service):
    plans = await billing_service.list_plans()
    assert [p.name for p in plans] == ["free", "pro", "unlimited"]


@pytest.mark.asyncio
async def test_start_free_subscription(billing_service, tenant_id, user_id):
    subscription = await billing_service.start_free_subscription(tenant_id, user_id)

    assert subscription.status is SubscriptionStatus.ACTIVE
    assert subscription.plan.name == "free"
    assert (subscription.current_period_end - subscription.current_period_start).days == 30


@pytest.mark.asyncio
async def test_start_free_subscription_without_free_plan(billing_repo, tenant_id, user_id):
    service = BillingService(InMemoryPlanRepository(plans=[]), billing_repo)
    assert await service.start_free_subscription(tenant_id, user_id) is None


@pytest.mark.asyncio
async def test_no_subscription_blocks_usage(billing_service, tenant_id, user_id):
    check = await billing_service.can_use_credits(tenant_id, user_id)
    assert check.allowed is False
    assert check.reason is not None
    with pytest.raises(NotFoundError):
        await billing_service.consume_credit(tenant_id, user_id, "meeting_processed")


@pytest.mark.asyncio
async def test_consume_until_exhausted(billing_service, tenant_id, user_id):
    await billing_service.start_free_subscription(tenant_id, user_id)

    for expected in range(9, -1, -1):
        check = await billing_service.consume_credit(tenant_id, user_id, "meeting_processed")
        assert check.remaining == expected

    assert check.allowed is False
    assert (await billing_service.can_use_credits(tenant_id, user_id)).allowed is False
    with pytest.raises(CreditLimitError):
        await billing_service.consume_credit(tenant_id, user_id, "meeting_processed")


@pytest.mark.asyncio
async def test_unlimited_plan_never_runs_out(billing_service, billing_repo, tenant_id, user_id):
    await billing_service.upgrade(tenant_id, user_id, "unlimited")

    for _ in range(3):
        check = await billing_service.consume_credit(tenant_id, user_id, "meeting_processed")
        assert check.allowed is True
        assert check.remaining is None

    subscription = await billing_service.get_subscription(tenant_id, user_id)
    assert subscription.credits_used == 0
    assert len(billing_repo.usage) == 3


@pytest.mark.asyncio
async def test_usage_stats_group_by_action(billing_service, tenant_id, user_id):
    await billing_service.start_free_subscription(tenant_id, user_id)
    await billing_service.consume_credit(tenant_id, user_id, "meeting_processed", {"meeting_id": "m1"})
    await billing_service.consume_credit(tenant_id, user_id, "meeting_processed")
    await billing_service.consume_credit(tenant_id, user_id, "email_generated")

    stats = await billing_service.usage_stats(tenant_id, user_id, days=30)

    assert stats.total == 3
    assert stats.by_type == {"meeting_processed": 2, "email_generated": 1}
    assert len(stats.logs) == 3


@pytest.mark.asyncio
async def test_upgrade_cancels_previous_subscription(billing_service, billing_repo, tenant_id, user_id):
    free = await billing_service.start_free_subscription(tenant_id, user_id)

    pro = await billing_service.upgrade(tenant_id, user_id, "pro")

    assert pro.plan.name == "pro"
    assert pro.credits_used == 0
    assert billing_repo.subscriptions[free.id].status is SubscriptionStatus.CANCELLED
    assert (await billing_service.get_subscription(tenant_id, user_id)).id == pro.id


@pytest.mark.asyncio
async def test_upgrade_to_unknown_or_inactive_plan(billing_service, tenant_id, user_id):
    with pytest.raises(NotFoundError):
        await billing_service.upgrade(tenant_id, user_id, "enterprise")
    with pytest.raises(NotFoundError):
        await billing_service.upgrade(tenant_id, user_id, "legacy")


@pytest.mark.asyncio
async def test_cancel_schedules_end_of_period(billing_service, tenant_id, user_id):
    await billing_service.upgrade(tenant_id, user_id, "pro")

    cancelled = await billing_service.cancel_subscription(tenant_id, user_id)

    assert cancelled.cancel_at_period_end is True
    assert cancelled.status is SubscriptionStatus.ACTIVE
    assert cancelled.plan.name == "pro"


@pytest.mark.asyncio
async def test_free_plan_cannot_be_cancelled(billing_service, tenant_id, user_id):
    await billing_service.start_free_subscription(tenant_id, user_id)
    with pytest.raises(ValidationError):
        await billing_service.cancel_subscription(tenant_id, user_id)


@pytest.mark.asyncio
async def test_cancel_without_subscription(billing_service, tenant_id, user_id):
    with pytest.raises(NotFoundError):
        await billing_service.cancel_subscription(tenant_id, user_id)


# ── Admin ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_reset_credits(billing_service, tenant_id, user_id, other_user_id):
    await billing_service.start_free_subscription(tenant_id, user_id)
    for _ in range(3):
        await billing_service.consume_credit(tenant_id, user_id, "meeting_summary")

    reset = await billing_service.reset_credits(tenant_id, user_id, other_user_id)

    assert reset.credits_used == 0
    assert reset.plan.name == "free"
    assert (await billing_service.can_use_credits(tenant_id, user_id)).remaining == 10


@pytest.mark.asyncio
async def test_extend_subscription_moves_period_end(billing_service, tenant_id, user_id, other_user_id):
    started = await billing_service.start_free_subscription(tenant_id, user_id)

    extended = await billing_service.extend_subscription(tenant_id, user_id, 10, other_user_id)

    assert extended.current_period_end == started.current_period_end + timedelta(days=10)
    assert extended.current_period_start == started.current_period_start


@pytest.mark.asyncio
async def test_extend_rejects_non_positive_days(billing_service, tenant_id, user_id, other_user_id):
    await billing_service.start_free_subscription(tenant_id, user_id)
    with pytest.raises(ValidationError):
        await billing_service.extend_subscription(tenant_id, user_id, 0, other_user_id)


@pytest.mark.asyncio
async def test_admin_actions_need_active_subscription(billing_service, tenant_id, user_id, other_user_id):
    with pytest.raises(NotFoundError):
        await billing_service.reset_credits(tenant_id, user_id, other_user_id)
    with pytest.raises(NotFoundError):
        await billing_service.extend_subscription(tenant_id, user_id, 5, other_user_id)


@pytest.mark.asyncio
async def test_change_plan_replaces_subscription(billing_service, billing_repo, tenant_id, user_id, other_user_id):
    free = await billing_service.start_free_subscription(tenant_id, user_id)
    await billing_service.consume_credit(tenant_id, user_id, "meeting_summary")

    changed = await billing_service.change_plan(tenant_id, user_id, "pro", other_user_id)

    assert changed.plan.name == "pro"
    assert changed.credits_used == 0
    assert billing_repo.subscriptions[free.id].status is SubscriptionStatus.CANCELLED
