import enum
import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base, TimestampMixin


class BillingInterval(str, enum.Enum):
    month = "month"
    year = "year"


class MembershipStatus(str, enum.Enum):
    active = "active"
    past_due = "past_due"
    unpaid = "unpaid"
    cancelled = "cancelled"
    expired = "expired"
    refunded = "refunded"


# Statuses that still entitle the member to the tier's benefits.
CURRENT_STATUSES = (
    MembershipStatus.active,
    MembershipStatus.past_due,
    MembershipStatus.unpaid,
)

_CURRENT_PAID_PREDICATE = text(
    "external_subscription_ref IS NOT NULL "
    "AND status IN ('active', 'past_due', 'unpaid')"
)


class MembershipTier(TimestampMixin, Base):
    __tablename__ = "membership_tiers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    external_price_ref: Mapped[str | None] = mapped_column(String(255))
    external_product_ref: Mapped[str | None] = mapped_column(String(255))
    benefits: Mapped[list | None] = mapped_column(JSON, default=list)
    billing_interval: Mapped[BillingInterval] = mapped_column(
        Enum(BillingInterval), default=BillingInterval.month
    )

    memberships = relationship("Membership", back_populates="tier")

    @property
    def is_paid(self) -> bool:
        return self.price > 0


class Membership(TimestampMixin, Base):
    __tablename__ = "memberships"
    __table_args__ = (
        # Store-level backstop against two live paid subscriptions per user.
        Index(
            "uq_memberships_user_current_paid",
            "user_id",
            unique=True,
            postgresql_where=_CURRENT_PAID_PREDICATE,
            sqlite_where=_CURRENT_PAID_PREDICATE,
        ),
        Index("ix_memberships_user_status", "user_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    tier_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("membership_tiers.id"), nullable=False
    )
    external_customer_ref: Mapped[str | None] = mapped_column(String(255), index=True)
    external_subscription_ref: Mapped[str | None] = mapped_column(
        String(255), index=True
    )
    status: Mapped[MembershipStatus] = mapped_column(
        Enum(MembershipStatus), default=MembershipStatus.active, nullable=False
    )
    current_period_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    current_period_end: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, default=False)

    last_payment_status: Mapped[str | None] = mapped_column(String(40))
    last_payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    failed_payment_attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_failed_payment_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    grace_period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    refund_reason: Mapped[str | None] = mapped_column(String(40))

    tier = relationship("MembershipTier", back_populates="memberships")
    user = relationship("User")
