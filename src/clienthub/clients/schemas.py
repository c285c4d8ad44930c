"""Pydantic schemas for clients.

- Enums: ClientStatus, RiskLevel (with RISK_RANGES)
- Payloads: ClientCreate, ClientUpdate, ClientFilter
- Reads: ClientRead, ClientMetrics, ClientDetail
- Risk: RiskClassification, RiskFactor, RiskScoreBreakdown
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from src.clienthub.meetings.schemas import MeetingRead
from src.clienthub.tasks.schemas import TaskRead


class ClientStatus(str, Enum):
    ATIVO = "ativo"
    INATIVO = "inativo"
    PROSPECTO = "prospecto"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Inclusive risk_score bounds per level
RISK_RANGES: dict[RiskLevel, tuple[int, int]] = {
    RiskLevel.LOW: (0, 39),
    RiskLevel.MEDIUM: (40, 69),
    RiskLevel.HIGH: (70, 100),
}


def _non_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Client name must not be empty")
    return value


class ClientCreate(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None
    revenue_bracket: str | None = None
    status: ClientStatus = ClientStatus.PROSPECTO
    risk_score: int = Field(default=0, ge=0, le=100)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        return _non_blank(v)


class ClientUpdate(BaseModel):
    """Partial update; only fields explicitly set are applied."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    revenue_bracket: str | None = None
    status: ClientStatus | None = None
    risk_score: int | None = Field(default=None, ge=0, le=100)
    last_activity_date: datetime | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str | None) -> str | None:
        return None if v is None else _non_blank(v)


class ClientRead(BaseModel):
    id: str
    tenant_id: str
    user_id: str
    name: str
    email: str | None = None
    phone: str | None = None
    revenue_bracket: str | None = None
    status: ClientStatus = ClientStatus.PROSPECTO
    risk_score: int = 0
    last_activity_date: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ClientFilter(BaseModel):
    """Filters for list_clients()."""

    risk_level: RiskLevel | None = None
    no_advance_days: int | None = Field(default=None, ge=1)
    has_overdue_client_tasks: bool | None = None
    status: ClientStatus | None = None


class ClientMetrics(BaseModel):
    recent_meetings: list[MeetingRead] = Field(default_factory=list)
    pending_tasks: list[TaskRead] = Field(default_factory=list)
    overdue_client_tasks: list[TaskRead] = Field(default_factory=list)
    days_since_last_advance: int | None = None
    completed_last_7_days: int = 0


class ClientDetail(BaseModel):
    client: ClientRead
    metrics: ClientMetrics


# ── Risk Score ──────────────────────────────────────────────────────────────


class RiskClassification(str, Enum):
    BAIXO = "Baixo"
    MEDIO = "Médio"
    ALTO = "Alto"


class RiskFactor(BaseModel):
    factor: str
    impact: int
    description: str


class RiskScoreBreakdown(BaseModel):
    """Result of a risk calculation; ``total_score`` is persisted on the client."""

    total_score: int = Field(ge=0, le=100)
    classification: RiskClassification
    factors: list[RiskFactor] = Field(default_factory=list)
