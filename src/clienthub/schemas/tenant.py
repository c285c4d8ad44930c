"""Request and response bodies for practice onboarding."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class PracticeCreate(BaseModel):
    # slug becomes the practice schema name: tenant_<slug with "_" for "-">
    slug: str = Field(
        min_length=3,
        max_length=50,
        pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$",
        examples=["silva-planejamento"],
    )
    name: str = Field(max_length=200, examples=["Silva Planejamento Financeiro"])

    @field_validator("slug", mode="before")
    @classmethod
    def _normalize_slug(cls, v: str) -> str:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("Practice name must not be empty")
        return v


class PracticeRead(BaseModel):
    id: str
    slug: str
    name: str
    schema_name: str
    is_active: bool = True
    created_at: datetime | None = None
