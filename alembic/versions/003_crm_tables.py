"""Add CRM and billing tables: clients, meeting types, meetings, tasks,
subscriptions and usage logs.

Revision ID: 003_crm_tables
Revises: 002_initial_tenant
Create Date: 2026-10-18

Every table carries tenant_id with an RLS policy for tenant isolation and a
user_id owner column; repositories additionally filter by owner.
"""

from typing import Sequence, Union

from alembic import context, op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSON, UUID

# revision identifiers, used by Alembic.
revision: str = "003_crm_tables"
down_revision: Union[str, None] = "002_initial_tenant"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLES = ("clients", "meeting_types", "meetings", "tasks", "subscriptions", "usage_logs")


def _id_columns() -> list[sa.Column]:
    return [
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("tenant_id", UUID(as_uuid=True), nullable=False),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("tenant.users.id", ondelete="CASCADE"),
            nullable=False,
        ),
    ]


def _enable_rls(schema: str, table: str) -> None:
    op.execute(f'ALTER TABLE "{schema}".{table} ENABLE ROW LEVEL SECURITY')
    op.execute(f'ALTER TABLE "{schema}".{table} FORCE ROW LEVEL SECURITY')
    op.execute(f"""
        CREATE POLICY tenant_isolation ON "{schema}".{table}
        FOR ALL
        USING (tenant_id::text = current_setting('app.current_tenant_id', true))
        WITH CHECK (tenant_id::text = current_setting('app.current_tenant_id', true))
    """)


def upgrade() -> None:
    cmd_kwargs = context.get_x_argument(as_dictionary=True)
    schema = cmd_kwargs.get("schema", "tenant")

    # ── clients ──────────────────────────────────────────────────────────

    op.create_table(
        "clients",
        *_id_columns(),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("revenue_bracket", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), server_default=sa.text("'prospecto'"), nullable=False),
        sa.Column("risk_score", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_activity_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", JSON(), server_default=sa.text("'{}'::json"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("risk_score BETWEEN 0 AND 100", name="ck_clients_risk_score"),
        schema="tenant",
    )
    op.create_index("ix_clients_owner_risk", "clients", ["tenant_id", "user_id", "risk_score"], schema="tenant")

    # ── meeting_types ────────────────────────────────────────────────────

    op.create_table(
        "meeting_types",
        *_id_columns(),
        sa.Column("code", sa.String(10), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), server_default=sa.text("''"), nullable=False),
        sa.Column("color", sa.String(20), server_default=sa.text("'#3B82F6'"), nullable=False),
        sa.Column("icon", sa.String(50), server_default=sa.text("'Calendar'"), nullable=False),
        sa.Column("is_system", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("order_position", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("tenant_id", "user_id", "code", name="uq_meeting_types_user_code"),
        schema="tenant",
    )

    # ── meetings ─────────────────────────────────────────────────────────

    op.create_table(
        "meetings",
        *_id_columns(),
        sa.Column(
            "client_id",
            UUID(as_uuid=True),
            sa.ForeignKey("tenant.clients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("meeting_type", sa.String(10), nullable=False),
        sa.Column("meeting_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("transcript_text", sa.Text(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("decisions", JSON(), server_default=sa.text("'[]'::json"), nullable=False),
        sa.Column("risk_signals", JSON(), server_default=sa.text("'[]'::json"), nullable=False),
        sa.Column("summarized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        schema="tenant",
    )
    op.create_index(
        "ix_meetings_client_date", "meetings", ["tenant_id", "client_id", "meeting_date"], schema="tenant",
    )

    # ── tasks ────────────────────────────────────────────────────────────

    op.create_table(
        "tasks",
        *_id_columns(),
        sa.Column(
            "client_id",
            UUID(as_uuid=True),
            sa.ForeignKey("tenant.clients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "meeting_id",
            UUID(as_uuid=True),
            sa.ForeignKey("tenant.meetings.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("owner", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'pendente'"), nullable=False),
        sa.Column("priority", sa.String(20), server_default=sa.text("'media'"), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_date", sa.Date(), nullable=True),
        sa.Column("order_position", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("blocked", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("blocked_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        schema="tenant",
    )
    op.create_index("ix_tasks_client_due", "tasks", ["tenant_id", "client_id", "due_date"], schema="tenant")
    op.create_index(
        "ix_tasks_board", "tasks", ["tenant_id", "user_id", "status", "order_position"], schema="tenant",
    )

    # ── subscriptions / usage_logs ───────────────────────────────────────

    op.create_table(
        "subscriptions",
        *_id_columns(),
        sa.Column("plan_id", UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(20), server_default=sa.text("'active'"), nullable=False),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("credits_used", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("cancel_at_period_end", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        schema="tenant",
    )
    op.create_index(
        "ix_subscriptions_user_status", "subscriptions", ["tenant_id", "user_id", "status"], schema="tenant",
    )

    op.create_table(
        "usage_logs",
        *_id_columns(),
        sa.Column(
            "subscription_id",
            UUID(as_uuid=True),
            sa.ForeignKey("tenant.subscriptions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("credits_consumed", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("metadata", JSON(), server_default=sa.text("'{}'::json"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        schema="tenant",
    )
    op.create_index(
        "ix_usage_logs_user_created", "usage_logs", ["tenant_id", "user_id", "created_at"], schema="tenant",
    )

    for table in TABLES:
        _enable_rls(schema, table)


def downgrade() -> None:
    cmd_kwargs = context.get_x_argument(as_dictionary=True)
    schema = cmd_kwargs.get("schema", "tenant")

    # Drop policies then tables in reverse order
    for table in reversed(TABLES):
        op.execute(f'DROP POLICY IF EXISTS tenant_isolation ON "{schema}".{table}')
        op.drop_table(table, schema="tenant")
