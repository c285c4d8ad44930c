"""Webhook persistence models.

Tenant-scoped tables (TenantBase, placeholder schema "tenant"):
- WebhookConfigurationModel: endpoint, secret, subscribed events, failure counter
- WebhookEventQueueModel: one row per (event, configuration) awaiting delivery
- WebhookDeliveryLogModel: one row per HTTP attempt
- WebhookDispatcherRunModel: bookkeeping for every dispatcher invocation

Shared table (SharedBase):
- WebhookDispatcherConfigModel: single-row platform switch for the dispatcher
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.clienthub.core.database import SharedBase, TenantBase

DISPATCHER_CONFIG_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")


class WebhookConfigurationModel(TenantBase):
    """A user's outbound webhook endpoint."""

    __tablename__ = "webhook_configurations"
    __table_args__ = (
        Index("ix_webhook_configurations_owner", "tenant_id", "user_id"),
        {"schema": "tenant"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tenant.users.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    secret_key: Mapped[str] = mapped_column(String(128), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"))
    events: Mapped[list] = mapped_column(JSON, default=list, server_default=text("'[]'::json"))
    headers: Mapped[dict] = mapped_column(JSON, default=dict, server_default=text("'{}'::json"))
    http_method: Mapped[str] = mapped_column(String(10), default="POST", server_default=text("'POST'"))
    last_triggered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failure_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class WebhookEventQueueModel(TenantBase):
    """Pending / processing / completed / failed delivery of one event to one configuration."""

    __tablename__ = "webhook_events_queue"
    __table_args__ = (
        Index("ix_webhook_events_queue_due", "tenant_id", "status", "scheduled_for"),
        Index("ix_webhook_events_queue_config", "webhook_config_id"),
        {"schema": "tenant"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    webhook_config_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tenant.webhook_configurations.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    event_id: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", server_default=text("'pending'"))
    attempts: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    max_attempts: Mapped[int] = mapped_column(Integer, default=5, server_default=text("5"))
    scheduled_for: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    # set when a dispatcher claims the row; used to release abandoned claims
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class WebhookDeliveryLogModel(TenantBase):
    """Outcome of a single HTTP delivery attempt."""

    __tablename__ = "webhook_delivery_logs"
    __table_args__ = (
        Index("ix_webhook_delivery_logs_config_created", "webhook_config_id", "created_at"),
        {"schema": "tenant"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    webhook_config_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tenant.webhook_configurations.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    event_id: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_headers: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    attempt_number: Mapped[int] = mapped_column(Integer, default=1, server_default=text("1"))
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class WebhookDispatcherRunModel(TenantBase):
    """One dispatcher invocation (debounced trigger, sweep, manual or internal HTTP)."""

    __tablename__ = "webhook_dispatcher_runs"
    __table_args__ = (
        Index("ix_webhook_dispatcher_runs_started", "tenant_id", "triggered_by", "started_at"),
        {"schema": "tenant"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    triggered_by: Mapped[str] = mapped_column(String(50), nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    events_processed: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    success: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)


class WebhookDispatcherConfigModel(SharedBase):
    """Platform-wide dispatcher switch. Exactly one row (DISPATCHER_CONFIG_ID)."""

    __tablename__ = "webhook_dispatcher_config"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=DISPATCHER_CONFIG_ID,
    )
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"))
    debounce_seconds: Mapped[int] = mapped_column(Integer, default=2, server_default=text("2"))
    internal_secret: Mapped[str] = mapped_column(String(128), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=True,
    )
