from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.membership import BillingInterval, MembershipStatus

# ── Tiers ────────────────────────────────────────────────


class MembershipTierRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: UUID
    name: str
    price: Decimal
    benefits: list[str] = Field(default_factory=list)
    billing_interval: BillingInterval
    is_paid: bool


# ── Memberships ──────────────────────────────────────────


class MembershipRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: UUID
    user_id: UUID
    tier_id: UUID
    status: MembershipStatus
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool
    last_payment_status: str | None = None
    last_payment_date: datetime | None = None
    failed_payment_attempts: int = 0
    grace_period_end: datetime | None = None
    refunded_at: datetime | None = None
    refund_reason: str | None = None


class MembershipStatusRead(BaseModel):
    membership: MembershipRead
    tier_name: str
    benefits: list[str]
    is_paid_member: bool
    current_period_end: datetime


class FreeMembershipRequest(BaseModel):
    tier_id: UUID


class SubscribeRequest(BaseModel):
    tier_id: UUID
    payment_method_id: str = Field(min_length=1, max_length=255)


class SubscribeResponse(BaseModel):
    membership: MembershipRead
    subscription_id: str | None = None
    client_secret: str | None = None


class ConfirmSubscriptionRequest(BaseModel):
    subscription_id: str = Field(min_length=1, max_length=255)
    client_secret: str = Field(min_length=1, max_length=512)


class PaymentMethodUpdate(BaseModel):
    payment_method_id: str = Field(min_length=1, max_length=255)


class ChangeTierRequest(BaseModel):
    tier_id: UUID


class RefundRequest(BaseModel):
    charge_id: str = Field(min_length=1, max_length=255)
    amount: Decimal
    reason: str = Field(min_length=1, max_length=40)
