"""Pydantic schemas for plans, subscriptions and credit usage."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

FREE_PLAN = "free"
PERIOD_DAYS = 30

DEFAULT_PLANS: list[dict[str, Any]] = [
    {
        "name": "free",
        "display_name": "Free",
        "description": "Para conhecer a plataforma",
        "price_monthly": 0,
        "credits_per_month": 5,
        "features": ["5 créditos/mês", "Kanban de tarefas", "Tipos de reunião personalizados"],
    },
    {
        "name": "standard",
        "display_name": "Standard",
        "description": "Para consultores em crescimento",
        "price_monthly": 7495,
        "credits_per_month": 10,
        "features": ["10 créditos/mês", "Resumos com IA", "Webhooks"],
    },
    {
        "name": "premium",
        "display_name": "Premium",
        "description": "Solução completa para profissionais",
        "price_monthly": 9995,
        "credits_per_month": 15,
        "features": ["15 créditos/mês", "Resumos com IA", "Webhooks", "Suporte prioritário"],
    },
    {
        "name": "infinity",
        "display_name": "Infinity",
        "description": "Para carteiras grandes",
        "price_monthly": 17495,
        "credits_per_month": 30,
        "features": ["30 créditos/mês", "Todos os recursos", "Suporte prioritário"],
    },
    {
        "name": "private",
        "display_name": "Private",
        "description": "Para escritórios e equipes",
        "price_monthly": 32495,
        "credits_per_month": None,
        "features": ["Créditos ilimitados", "Todos os recursos", "Suporte dedicado"],
    },
]


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    PENDING = "pending"


class PlanRead(BaseModel):
    id: str
    name: str
    display_name: str
    description: str = ""
    price_monthly: int = 0  # cents
    currency: str = "BRL"
    credits_per_month: int | None = None
    features: list[str] = Field(default_factory=list)
    is_active: bool = True

    @property
    def unlimited(self) -> bool:
        return self.credits_per_month is None


class SubscriptionRead(BaseModel):
    id: str
    tenant_id: str
    user_id: str
    plan_id: str
    status: SubscriptionStatus
    current_period_start: datetime
    current_period_end: datetime
    credits_used: int = 0
    cancel_at_period_end: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    plan: PlanRead | None = None


class CreditCheck(BaseModel):
    allowed: bool
    reason: str | None = None
    remaining: int | None = None  # None when unlimited


class UsageLogRead(BaseModel):
    id: str
    user_id: str
    subscription_id: str | None = None
    action_type: str
    credits_consumed: int = 1
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


class UsageStats(BaseModel):
    total: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    logs: list[UsageLogRead] = Field(default_factory=list)


class UpgradeRequest(BaseModel):
    plan_name: str


class ExtendSubscriptionRequest(BaseModel):
    days: int = Field(ge=1)
