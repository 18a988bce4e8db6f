"""membership schema

Revision ID: 001_membership_schema
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "001_membership_schema"
down_revision = None
branch_labels = None
depends_on = None

_CURRENT_PAID = (
    "external_subscription_ref IS NOT NULL "
    "AND status IN ('active', 'past_due', 'unpaid')"
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # Users
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("first_name", sa.String(length=80), nullable=False),
        sa.Column("last_name", sa.String(length=80), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("avatar_url", sa.String(length=512), nullable=True),
        sa.Column("billing_customer_ref", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sa.UniqueConstraint("billing_customer_ref"),
    )

    # Tiers
    op.create_table(
        "membership_tiers",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("external_price_ref", sa.String(length=255), nullable=True),
        sa.Column("external_product_ref", sa.String(length=255), nullable=True),
        sa.Column("benefits", sa.JSON(), nullable=True),
        sa.Column(
            "billing_interval",
            sa.Enum("month", "year", name="billinginterval"),
            nullable=True,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    # Memberships
    op.create_table(
        "memberships",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("tier_id", sa.UUID(), nullable=False),
        sa.Column("external_customer_ref", sa.String(length=255), nullable=True),
        sa.Column("external_subscription_ref", sa.String(length=255), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "active",
                "past_due",
                "unpaid",
                "cancelled",
                "expired",
                "refunded",
                name="membershipstatus",
            ),
            nullable=False,
        ),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=True),
        sa.Column("last_payment_status", sa.String(length=40), nullable=True),
        sa.Column("last_payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_payment_attempts", sa.Integer(), nullable=True),
        sa.Column(
            "last_failed_payment_date", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("grace_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_reason", sa.String(length=40), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["tier_id"], ["membership_tiers.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_memberships_external_customer_ref",
        "memberships",
        ["external_customer_ref"],
    )
    op.create_index(
        "ix_memberships_external_subscription_ref",
        "memberships",
        ["external_subscription_ref"],
    )
    op.create_index("ix_memberships_user_status", "memberships", ["user_id", "status"])
    op.create_index(
        "uq_memberships_user_current_paid",
        "memberships",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text(_CURRENT_PAID),
    )

    # Payments
    op.create_table(
        "payments",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("payment_method", sa.String(length=40), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "pending",
                "completed",
                "failed",
                "refunded",
                "disputed",
                "cancelled",
                "updated",
                name="paymentstatus",
            ),
            nullable=False,
        ),
        sa.Column(
            "transaction_type",
            sa.Enum(
                "one_time", "subscription", "refund", "dispute", name="transactiontype"
            ),
            nullable=False,
        ),
        sa.Column("external_charge_ref", sa.String(length=255), nullable=True),
        sa.Column("external_invoice_ref", sa.String(length=255), nullable=True),
        sa.Column("external_subscription_ref", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "external_charge_ref", "status", name="uq_payments_charge_status"
        ),
        sa.UniqueConstraint(
            "external_invoice_ref", "status", name="uq_payments_invoice_status"
        ),
    )
    op.create_index("ix_payments_user_id", "payments", ["user_id"])
    op.create_index(
        "ix_payments_external_subscription_ref",
        "payments",
        ["external_subscription_ref"],
    )

    # Webhook events
    op.create_table(
        "webhook_events",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("provider", sa.String(length=80), nullable=False),
        sa.Column("event_type", sa.String(length=120), nullable=False),
        sa.Column("event_id", sa.String(length=255), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("pending", "processed", "failed", name="webhookeventstatus"),
            nullable=True,
        ),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id", name="uq_webhook_events_event_id"),
    )

    # QR codes
    op.create_table(
        "qr_codes",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("code", sa.String(length=128), nullable=False),
        sa.Column("display_url", sa.String(length=512), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )
    op.create_index("ix_qr_codes_user_id", "qr_codes", ["user_id"])
    op.create_index(
        "ix_qr_codes_active_expires", "qr_codes", ["is_active", "expires_at"]
    )

    op.create_table(
        "qr_scans",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("qr_code_id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("scanned_by", sa.UUID(), nullable=True),
        sa.Column("store_name", sa.String(length=200), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("scanned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "success", "expired", "invalid", "already_used", name="scanstatus"
            ),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["qr_code_id"], ["qr_codes.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("qr_code_id"),
    )
    op.create_index("ix_qr_scans_user_id", "qr_scans", ["user_id"])
    op.create_index("ix_qr_scans_scanned_at", "qr_scans", ["scanned_at"])


def downgrade() -> None:
    op.drop_table("qr_scans")
    op.drop_table("qr_codes")
    op.drop_table("webhook_events")
    op.drop_table("payments")
    op.drop_table("memberships")
    op.drop_table("membership_tiers")
    op.drop_table("users")
    for enum_name in (
        "scanstatus",
        "webhookeventstatus",
        "transactiontype",
        "paymentstatus",
        "membershipstatus",
        "billinginterval",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
