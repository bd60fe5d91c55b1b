"""premium core schema

Revision ID: c4d5e6f7a8b9
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "c4d5e6f7a8b9"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(bind, table_name: str) -> bool:
    try:
        return sa.inspect(bind).has_table(table_name)
    except Exception:
        return False


def _create_listings(bind):
    if _table_exists(bind, "listings"):
        return
    op.create_table(
        "listings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(length=160), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("property_type", sa.String(length=24), nullable=True),
        sa.Column("city", sa.String(length=64), nullable=True),
        sa.Column("state", sa.String(length=64), nullable=True),
        sa.Column("price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_promoted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_listings_user_id", "listings", ["user_id"])
    op.create_index("ix_listings_property_type", "listings", ["property_type"])
    op.create_index("ix_listings_city", "listings", ["city"])
    op.create_index("ix_listings_is_promoted", "listings", ["is_promoted"])
    op.create_index("ix_listings_created_at", "listings", ["created_at"])


def _create_ad_payments(bind):
    if _table_exists(bind, "ad_payments"):
        return
    op.create_table(
        "ad_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("external_order_id", sa.String(length=160), nullable=True),
        sa.Column("transaction_id", sa.String(length=160), nullable=True),
        sa.Column("amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="IDR"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("payment_method", sa.String(length=64), nullable=True),
        sa.Column("payment_date", sa.DateTime(), nullable=True),
        sa.Column("invoice_url", sa.String(length=512), nullable=True),
        sa.Column("billing_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_ad_payments_user_id", "ad_payments", ["user_id"])
    op.create_index("ix_ad_payments_external_order_id", "ad_payments", ["external_order_id"], unique=True)
    op.create_index("ix_ad_payments_transaction_id", "ad_payments", ["transaction_id"])
    op.create_index("ix_ad_payments_status", "ad_payments", ["status"])


def _create_premium_listings(bind):
    if _table_exists(bind, "premium_listings"):
        return
    op.create_table(
        "premium_listings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("property_id", sa.String(length=36), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("plan_id", sa.String(length=64), nullable=False),
        sa.Column("payment_id", sa.Integer(), sa.ForeignKey("ad_payments.id"), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=False),
        sa.Column("views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("inquiries", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("favorites", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("conversion_rate", sa.Float(), nullable=False, server_default="0"),
        sa.Column("daily_views_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_premium_listings_property_id", "premium_listings", ["property_id"])
    op.create_index("ix_premium_listings_user_id", "premium_listings", ["user_id"])
    op.create_index("ix_premium_listings_payment_id", "premium_listings", ["payment_id"])
    op.create_index("ix_premium_listings_status", "premium_listings", ["status"])
    op.create_index("ix_premium_listings_end_date", "premium_listings", ["end_date"])


def _create_activity_logs(bind):
    if _table_exists(bind, "activity_logs"):
        return
    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("resource", sa.String(length=64), nullable=False),
        sa.Column("resource_id", sa.String(length=160), nullable=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("request_id", sa.String(length=80), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_resource", "activity_logs", ["resource"])
    op.create_index("ix_activity_logs_resource_id", "activity_logs", ["resource_id"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])


def _create_webhook_events(bind):
    if _table_exists(bind, "webhook_events"):
        return
    op.create_table(
        "webhook_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("event_id", sa.String(length=200), nullable=False),
        sa.Column("reference", sa.String(length=160), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("request_id", sa.String(length=80), nullable=True),
        sa.Column("payload_hash", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("event_id"),
    )


def _create_idempotency_keys(bind):
    if _table_exists(bind, "idempotency_keys"):
        return
    op.create_table(
        "idempotency_keys",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("scope", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("request_hash", sa.String(length=64), nullable=False),
        sa.Column("response_json", sa.Text(), nullable=True),
        sa.Column("status_code", sa.Integer(), nullable=False, server_default="200"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("scope", "key", name="uq_idempotency_scope_key"),
    )
    op.create_index("ix_idempotency_keys_key", "idempotency_keys", ["key"])


def _create_reconciliation_reports(bind):
    if _table_exists(bind, "reconciliation_reports"):
        return
    op.create_table(
        "reconciliation_reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("scope", sa.String(length=64), nullable=False),
        sa.Column("summary_json", sa.Text(), nullable=True),
        sa.Column("drift_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_reconciliation_reports_created_at", "reconciliation_reports", ["created_at"])


def _create_job_runs(bind):
    if _table_exists(bind, "job_runs"):
        return
    op.create_table(
        "job_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("job_name", sa.String(length=64), nullable=False),
        sa.Column("ran_at", sa.DateTime(), nullable=False),
        sa.Column("ok", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
    )
    op.create_index("ix_job_runs_job_name", "job_runs", ["job_name"])
    op.create_index("ix_job_runs_ran_at", "job_runs", ["ran_at"])
    op.create_index("ix_job_runs_ok", "job_runs", ["ok"])


def upgrade():
    bind = op.get_bind()
    _create_listings(bind)
    _create_ad_payments(bind)
    _create_premium_listings(bind)
    _create_activity_logs(bind)
    _create_webhook_events(bind)
    _create_idempotency_keys(bind)
    _create_reconciliation_reports(bind)
    _create_job_runs(bind)


def downgrade():
    bind = op.get_bind()
    for table_name in (
        "job_runs",
        "reconciliation_reports",
        "idempotency_keys",
        "webhook_events",
        "activity_logs",
        "premium_listings",
        "ad_payments",
        "listings",
    ):
        if _table_exists(bind, table_name):
            op.drop_table(table_name)
