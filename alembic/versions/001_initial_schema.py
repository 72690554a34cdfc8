"""Initial schema - payments ledger, webhook audit trail, clients, sync logs, mappings.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from datetime import datetime, timezone
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JsonType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    # Payments ledger
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("transaction_id", sa.String(128), nullable=False, unique=True),
        sa.Column("client_id", sa.Integer, nullable=False),
        sa.Column("source_customer_id", sa.String(64)),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency_code", sa.String(3), nullable=False),
        sa.Column("payment_type", sa.String(64)),
        sa.Column("payment_method", sa.String(64)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("uisp_response", sa.Text),
        sa.Column("error_message", sa.Text),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_retry_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_payments_client_id", "payments", ["client_id"])
    op.create_index("ix_payments_source_customer_id", "payments", ["source_customer_id"])
    op.create_index("ix_payments_status", "payments", ["status"])
    op.create_index("ix_payments_created_at", "payments", ["created_at"])

    # Webhook audit trail
    op.create_table(
        "webhook_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("payload", JsonType, nullable=False),
        sa.Column("payload_hash", sa.String(64), nullable=False),
        sa.Column("headers", JsonType, nullable=False),
        sa.Column("ip_address", sa.String(64)),
        sa.Column("validated", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("processed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("error_message", sa.Text),
        sa.Column("correlation_id", sa.String(64)),
    )
    op.create_index("ix_webhook_logs_received_at", "webhook_logs", ["received_at"])
    op.create_index("ix_webhook_logs_payload_hash", "webhook_logs", ["payload_hash"])
    op.create_index("ix_webhook_logs_correlation_id", "webhook_logs", ["correlation_id"])

    # Local copy of UISP clients
    op.create_table(
        "clients",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("uisp_id", sa.Integer, nullable=False, unique=True),
        sa.Column("custom_id", sa.String(64)),
        sa.Column("first_name", sa.String(255)),
        sa.Column("last_name", sa.String(255)),
        sa.Column("company_name", sa.String(255)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(64)),
        sa.Column("street1", sa.String(255)),
        sa.Column("street2", sa.String(255)),
        sa.Column("city", sa.String(128)),
        sa.Column("country", sa.String(64)),
        sa.Column("state", sa.String(64)),
        sa.Column("zip_code", sa.String(32)),
        sa.Column("balance", sa.Numeric(14, 2)),
        sa.Column("account_balance", sa.Numeric(14, 2)),
        sa.Column("account_outstanding", sa.Numeric(14, 2)),
        sa.Column("currency_code", sa.String(3)),
        sa.Column("is_active", sa.Boolean),
        sa.Column("is_suspended", sa.Boolean),
        sa.Column("registration_date", sa.String(64)),
        sa.Column("previous_isp", sa.String(255)),
        sa.Column("tax_id", sa.String(64)),
        sa.Column("company_tax_id", sa.String(64)),
        sa.Column("note", sa.Text),
        sa.Column("uisp_data", JsonType),
        sa.Column("synced_at", sa.DateTime(timezone=True)),
        sa.Column("last_payment_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_clients_custom_id", "clients", ["custom_id"])
    op.create_index("ix_clients_email", "clients", ["email"])
    op.create_index("ix_clients_is_active", "clients", ["is_active"])
    op.create_index("ix_clients_is_suspended", "clients", ["is_suspended"])
    op.create_index("ix_clients_synced_at", "clients", ["synced_at"])

    # Sync run history
    op.create_table(
        "sync_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("sync_type", sa.String(50), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("status", sa.String(20), nullable=False, server_default="in_progress"),
        sa.Column("total_records", sa.Integer, nullable=False, server_default="0"),
        sa.Column("synced_records", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed_records", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text),
    )
    op.create_index("ix_sync_logs_started_at", "sync_logs", ["started_at"])

    # Splynx -> UISP mappings
    mappings = op.create_table(
        "customer_mappings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("splynx_customer_id", sa.String(64), nullable=False, unique=True),
        sa.Column("uisp_client_id", sa.Integer, nullable=False),
        sa.Column("notes", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_customer_mappings_uisp_client_id", "customer_mappings", ["uisp_client_id"])

    # Operational fallback mapping present since the first deployment
    now = datetime.now(timezone.utc)
    op.bulk_insert(mappings, [
        {
            "splynx_customer_id": "838",
            "uisp_client_id": 1211,
            "notes": "Initial mapping",
            "created_at": now,
            "updated_at": now,
        },
    ])


def downgrade() -> None:
    op.drop_table("customer_mappings")
    op.drop_table("sync_logs")
    op.drop_table("clients")
    op.drop_table("webhook_logs")
    op.drop_table("payments")
