"""Initial schema - tenants, import configs, leads, balances and audit tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Tenants
    op.create_table(
        "tenants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("stripe_customer_id", sa.String(100)),
        sa.Column("stripe_payment_method_id", sa.String(100)),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Import configurations
    op.create_table(
        "import_configs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tenants.id"), nullable=False,
        ),
        sa.Column("source_platform", sa.String(30), nullable=False),
        sa.Column("campaign_id", sa.String(255), nullable=False),
        sa.Column("campaign_name", sa.String(255)),
        sa.Column("api_credentials", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("lead_mapping", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("pricing", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("filters", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_import_configs_tenant_id", "import_configs", ["tenant_id"])
    op.create_index(
        "uq_import_configs_active_campaign", "import_configs",
        ["tenant_id", "campaign_id", "source_platform"],
        unique=True,
        postgresql_where=sa.text("active"),
    )

    # Imported leads
    op.create_table(
        "imported_leads",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tenants.id"), nullable=False,
        ),
        sa.Column(
            "config_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("import_configs.id"), nullable=True,
        ),
        sa.Column("campaign_id", sa.String(255), nullable=False),
        sa.Column("source_platform", sa.String(30), nullable=False),
        sa.Column("source_lead_id", sa.String(255), nullable=False),
        sa.Column("lead_data", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("quality_score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("cost_cents", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("failure_reason", sa.String(255)),
        sa.Column("metadata", postgresql.JSONB, server_default="{}"),
        sa.Column("imported_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "tenant_id", "campaign_id", "source_lead_id",
            name="uq_imported_leads_source_lead",
        ),
    )
    op.create_index("ix_imported_leads_tenant_id", "imported_leads", ["tenant_id"])
    op.create_index("ix_imported_leads_status", "imported_leads", ["status"])
    op.create_index("ix_imported_leads_imported_at", "imported_leads", ["imported_at"])

    # Balances - one row per tenant, never negative
    op.create_table(
        "balances",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tenants.id"), nullable=False, unique=True,
        ),
        sa.Column("balance_cents", sa.Integer, nullable=False, server_default="0"),
        sa.Column("reserved_cents", sa.Integer, nullable=False, server_default="0"),
        sa.Column("auto_recharge_enabled", sa.Boolean, server_default=sa.false()),
        sa.Column("recharge_threshold_cents", sa.Integer, server_default="10000"),
        sa.Column("recharge_amount_cents", sa.Integer, server_default="50000"),
        sa.Column("last_recharge_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("balance_cents >= 0", name="ck_balances_non_negative"),
    )

    # Balance transactions - append-only ledger trail
    op.create_table(
        "balance_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tenants.id"), nullable=False,
        ),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("amount_cents", sa.Integer, nullable=False),
        sa.Column("description", sa.String(255)),
        sa.Column(
            "lead_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("imported_leads.id"), nullable=True,
        ),
        sa.Column("reference_id", sa.String(255)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_balance_transactions_tenant_id", "balance_transactions", ["tenant_id"])
    op.create_index("ix_balance_transactions_lead_id", "balance_transactions", ["lead_id"])
    op.create_index(
        "uq_balance_transactions_reference_id", "balance_transactions",
        ["reference_id"], unique=True,
    )

    # Notifications
    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tenants.id"), nullable=False,
        ),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("data", postgresql.JSONB, server_default="{}"),
        sa.Column("read", sa.Boolean, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_tenant_id", "notifications", ["tenant_id"])

    # Webhook audit trail - records every incoming webhook before processing
    op.create_table(
        "webhook_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("payload_hash", sa.String(64), nullable=False),
        sa.Column("raw_payload", postgresql.JSONB, nullable=False),
        sa.Column(
            "tenant_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tenants.id"), nullable=True,
        ),
        sa.Column("processing_status", sa.String(20), nullable=False, server_default="received"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("correlation_id", sa.String(64), nullable=True),
    )
    op.create_index("ix_webhook_events_source", "webhook_events", ["source"])
    op.create_index("ix_webhook_events_payload_hash", "webhook_events", ["payload_hash"])
    op.create_index("ix_webhook_events_tenant_id", "webhook_events", ["tenant_id"])
    op.create_index("ix_webhook_events_correlation_id", "webhook_events", ["correlation_id"])

    # Custom integration bearer tokens
    op.create_table(
        "webhook_tokens",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("tenants.id"), nullable=False,
        ),
        sa.Column("token", sa.String(128), nullable=False, unique=True),
        sa.Column("label", sa.String(100)),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_webhook_tokens_tenant_id", "webhook_tokens", ["tenant_id"])


def downgrade() -> None:
    op.drop_table("webhook_tokens")
    op.drop_table("webhook_events")
    op.drop_table("notifications")
    op.drop_table("balance_transactions")
    op.drop_table("balances")
    op.drop_table("imported_leads")
    op.drop_table("import_configs")
    op.drop_table("tenants")
