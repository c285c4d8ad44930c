"""Pydantic schemas for outbound webhooks.

Defines:
- Enums: WebhookEventType, HttpMethod, QueueStatus, TriggerSource, WebhookTestErrorType
- Configuration payloads: WebhookConfigCreate / WebhookConfigUpdate / WebhookConfigRead
- Queue and delivery records: WebhookQueueItem, DeliveryLogCreate, DeliveryLogRead
- Dispatcher records: DispatcherRun, DispatcherConfig, DispatcherStatus, DispatchResult
- Introspection results: WebhookStats, WebhookTestResult
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


# ── Enums ───────────────────────────────────────────────────────────────────


class WebhookEventType(str, Enum):
    """Business events a configuration can subscribe to."""

    CLIENT_CREATED = "client.created"
    CLIENT_UPDATED = "client.updated"
    CLIENT_DELETED = "client.deleted"
    CLIENT_STATUS_CHANGED = "client.status_changed"
    CLIENT_METADATA_UPDATED = "client.metadata_updated"
    MEETING_CREATED = "meeting.created"
    MEETING_SUMMARY_GENERATED = "meeting.summary_generated"
    EMAIL_GENERATED = "email.generated"
    TASK_CREATED = "task.created"
    TASK_COMPLETED = "task.completed"


TEST_EVENT_TYPE = "test.webhook"

DEFAULT_EVENTS: list[WebhookEventType] = [
    WebhookEventType.CLIENT_CREATED,
    WebhookEventType.CLIENT_UPDATED,
    WebhookEventType.CLIENT_DELETED,
]


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


class QueueStatus(str, Enum):
    """Lifecycle of a queued delivery: pending -> processing -> completed | failed."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TriggerSource(str, Enum):
    """What started a dispatcher run."""

    DATABASE_TRIGGER = "database_trigger"
    SCHEDULED_SWEEP = "scheduled_sweep"
    MANUAL = "manual"
    INTERNAL_HTTP = "internal_http"


class WebhookTestErrorType(str, Enum):
    TIMEOUT = "timeout"
    DNS_ERROR = "dns_error"
    SSL_ERROR = "ssl_error"
    CONNECTION_ERROR = "connection_error"


# ── Configuration ───────────────────────────────────────────────────────────


def _check_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Webhook name must not be empty")
    return value


def _check_url(value: str) -> str:
    value = value.strip()
    if not URL_PATTERN.match(value):
        raise ValueError("Webhook URL must start with http:// or https://")
    return value


def _dedupe_events(events: list[WebhookEventType]) -> list[WebhookEventType]:
    seen: list[WebhookEventType] = []
    for event in events:
        if event not in seen:
            seen.append(event)
    return seen


class WebhookConfigCreate(BaseModel):
    """Fields accepted when creating a webhook configuration."""

    name: str
    url: str
    events: list[WebhookEventType] = Field(default_factory=lambda: list(DEFAULT_EVENTS))
    headers: dict[str, str] = Field(default_factory=dict)
    http_method: HttpMethod = HttpMethod.POST
    enabled: bool = True

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        return _check_name(v)

    @field_validator("url")
    @classmethod
    def _validate_url(cls, v: str) -> str:
        return _check_url(v)

    @field_validator("events")
    @classmethod
    def _validate_events(cls, v: list[WebhookEventType]) -> list[WebhookEventType]:
        return _dedupe_events(v)


class WebhookConfigUpdate(BaseModel):
    """Partial update; only fields that are set are applied."""

    name: str | None = None
    url: str | None = None
    events: list[WebhookEventType] | None = None
    headers: dict[str, str] | None = None
    http_method: HttpMethod | None = None
    enabled: bool | None = None

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str | None) -> str | None:
        return None if v is None else _check_name(v)

    @field_validator("url")
    @classmethod
    def _validate_url(cls, v: str | None) -> str | None:
        return None if v is None else _check_url(v)

    @field_validator("events")
    @classmethod
    def _validate_events(cls, v: list[WebhookEventType] | None) -> list[WebhookEventType] | None:
        return None if v is None else _dedupe_events(v)


class WebhookConfigRead(BaseModel):
    """Persisted webhook configuration."""

    id: str
    tenant_id: str
    user_id: str
    name: str
    url: str
    secret_key: str
    enabled: bool = True
    events: list[str] = Field(default_factory=list)
    headers: dict[str, str] = Field(default_factory=dict)
    http_method: str = "POST"
    last_triggered_at: datetime | None = None
    failure_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Queue and Delivery Log ──────────────────────────────────────────────────


class WebhookQueueItem(BaseModel):
    """A row of the webhook events queue."""

    id: str
    tenant_id: str
    webhook_config_id: str
    event_type: str
    event_id: str
    payload: dict[str, Any]
    status: QueueStatus = QueueStatus.PENDING
    attempts: int = 0
    max_attempts: int = 5
    scheduled_for: datetime
    processed_at: datetime | None = None
    claimed_at: datetime | None = None
    created_at: datetime | None = None


class DeliveryLogCreate(BaseModel):
    """Outcome of one delivery attempt, as written by the dispatcher or tester."""

    webhook_config_id: str
    event_type: str
    event_id: str
    payload: dict[str, Any]
    status_code: int | None = None
    response_body: str | None = None
    response_headers: dict[str, str] | None = None
    attempt_number: int = 1
    error_message: str | None = None
    duration_ms: int | None = None
    success: bool = False


class DeliveryLogRead(DeliveryLogCreate):
    id: str
    tenant_id: str
    created_at: datetime | None = None


# ── Dispatcher ──────────────────────────────────────────────────────────────


class DispatcherRun(BaseModel):
    id: str
    tenant_id: str
    triggered_by: str
    started_at: datetime
    completed_at: datetime | None = None
    events_processed: int = 0
    success: bool | None = None
    error_message: str | None = None


class DispatcherConfig(BaseModel):
    """Platform-wide dispatcher settings."""

    enabled: bool = True
    debounce_seconds: int = Field(default=2, ge=0)
    internal_secret: str = ""


class DispatcherConfigUpdate(BaseModel):
    enabled: bool | None = None
    debounce_seconds: int | None = Field(default=None, ge=0, le=3600)


class DispatcherStatus(BaseModel):
    enabled: bool
    pending_events: int
    last_run_at: datetime | None = None
    last_run_success: bool | None = None
    last_run_error: str | None = None
    debounce_seconds: int


class DispatchResult(BaseModel):
    message: str
    processed: int = 0


# ── Introspection ───────────────────────────────────────────────────────────


class WebhookStats(BaseModel):
    total_deliveries: int = 0
    success_count: int = 0
    failure_count: int = 0
    success_rate: float = 0.0  # percent
    average_duration: int = 0  # milliseconds


class WebhookTestResult(BaseModel):
    """Outcome of send_test_webhook()."""

    success: bool
    status_code: int | None = None
    duration: int = 0  # milliseconds
    body: str | None = None
    headers: dict[str, str] | None = None
    error: str | None = None
    error_type: WebhookTestErrorType | None = None
