"""Pydantic schemas for meetings and meeting types.

Defines:
- System meeting types (C1-C4, FUP) and the custom-type rules
- Meeting type payloads: MeetingTypeCreate / MeetingTypeUpdate / MeetingTypeRead / MeetingTypeOrder
- Meeting payloads: MeetingCreate / MeetingRead
- AI summary structures: SuggestedTask, MeetingSummary, SummarizeResult
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from src.clienthub.schemas.common import UUIDStr

# ── Meeting Types ───────────────────────────────────────────────────────────

RESERVED_CODES = frozenset({"C1", "C2", "C3", "C4", "FUP"})
MAX_CUSTOM_TYPES = 10
CUSTOM_ORDER_OFFSET = 10
DEFAULT_COLOR = "#3B82F6"
DEFAULT_ICON = "Calendar"
CODE_PATTERN = re.compile(r"^[A-Z0-9_]{2,10}$")

SYSTEM_MEETING_TYPES: list[dict[str, Any]] = [
    {
        "code": "C1",
        "display_name": "C1 Análise",
        "description": "Mapear situação atual, dores e objetivos do cliente",
        "color": "#3B82F6",
        "icon": "Search",
        "order_position": 1,
    },
    {
        "code": "C2",
        "display_name": "C2 Proteção",
        "description": "Avaliar coberturas de seguro e riscos patrimoniais",
        "color": "#10B981",
        "icon": "Shield",
        "order_position": 2,
    },
    {
        "code": "C3",
        "display_name": "C3 Investimentos",
        "description": "Definir estratégia de alocação e liquidez",
        "color": "#F59E0B",
        "icon": "TrendingUp",
        "order_position": 3,
    },
    {
        "code": "C4",
        "display_name": "C4 Consolidação",
        "description": "Revisar todo o planejamento e criar roadmap",
        "color": "#8B5CF6",
        "icon": "CheckCircle",
        "order_position": 4,
    },
    {
        "code": "FUP",
        "display_name": "Follow-up",
        "description": "Verificar progresso e criar micro-entregáveis",
        "color": "#EC4899",
        "icon": "RefreshCw",
        "order_position": 5,
    },
]


class MeetingTypeCreate(BaseModel):
    """Custom meeting type. ``code`` is uppercased before validation."""

    code: str
    display_name: str = Field(min_length=1, max_length=100)
    description: str = ""
    color: str = DEFAULT_COLOR
    icon: str = DEFAULT_ICON

    @field_validator("code")
    @classmethod
    def _validate_code(cls, v: str) -> str:
        code = v.strip().upper()
        if not 2 <= len(code) <= 10:
            raise ValueError("Code must be between 2 and 10 characters")
        if not CODE_PATTERN.match(code):
            raise ValueError("Code may only contain uppercase letters, digits and underscores")
        if code in RESERVED_CODES:
            raise ValueError(f"Code {code} is reserved")
        return code


class MeetingTypeUpdate(BaseModel):
    display_name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    order_position: int | None = None


class MeetingTypeOrder(BaseModel):
    id: UUIDStr
    order_position: int


class MeetingTypeRead(BaseModel):
    id: str
    tenant_id: str
    user_id: str
    code: str
    display_name: str
    description: str = ""
    color: str = DEFAULT_COLOR
    icon: str = DEFAULT_ICON
    is_system: bool = False
    is_active: bool = True
    order_position: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Meetings ────────────────────────────────────────────────────────────────


class MeetingCreate(BaseModel):
    client_id: UUIDStr
    meeting_type: str
    meeting_date: datetime
    transcript_text: str | None = None

    @field_validator("meeting_type")
    @classmethod
    def _normalize_type(cls, v: str) -> str:
        return v.strip().upper()


class MeetingRead(BaseModel):
    id: str
    tenant_id: str
    user_id: str
    client_id: str
    meeting_type: str
    meeting_date: datetime
    transcript_text: str | None = None
    summary: str | None = None
    decisions: list[str] = Field(default_factory=list)
    risk_signals: list[str] = Field(default_factory=list)
    summarized_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── AI Summary ──────────────────────────────────────────────────────────────


class SuggestedTask(BaseModel):
    """Task proposed by the summarizer; the consultant decides whether to create it."""

    title: str
    description: str | None = None
    owner: str = "Leonardo"
    due_date: date | None = None
    priority: str = "media"


class MeetingSummary(BaseModel):
    """Structured completion returned by the summarizer."""

    summary: list[str] = Field(default_factory=list)
    decisions: list[str] = Field(default_factory=list)
    suggested_tasks: list[SuggestedTask] = Field(default_factory=list)
    risk_signals: list[str] = Field(default_factory=list)

    @field_validator("summary", "decisions", "risk_signals", mode="before")
    @classmethod
    def _coerce_list(cls, v: Any) -> Any:
        # Models sometimes answer with a single string instead of a list
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        return v


class SummarizeResult(BaseModel):
    meeting: MeetingRead
    suggested_tasks: list[SuggestedTask] = Field(default_factory=list)
    credits_remaining: int | None = None
