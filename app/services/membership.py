"""Membership ledger: local subscription state and its reconciliation with Stripe.

Every mutation re-reads the rows it changes under a row lock, commits, and
only then sends notifications. Provider events carry absolute target states,
so replaying one converges on the same row, with the single exception of the
failed-payment counter, which the webhook ingress protects by de-duplicating
event ids.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import (
    Conflict,
    GatewayError,
    InvalidInput,
    NoActiveMembership,
    UserNotFound,
)
from app.metrics import MEMBERSHIP_DOWNGRADES
from app.models.billing import Payment, PaymentStatus, TransactionType
from app.models.membership import (
    CURRENT_STATUSES,
    BillingInterval,
    Membership,
    MembershipStatus,
    MembershipTier,
)
from app.models.user import User
from app.services import email as email_service
from app.services.billing_gateway import (
    StripeGateway,
    billing_gateway,
    client_secret_of,
    period_bounds,
)
from app.services.common import (
    coerce_uuid,
    ensure_aware,
    from_minor_units,
    from_timestamp,
    require_uuid,
    utcnow,
)
from app.services.payments import PaymentLedger
from app.services.tiers import MembershipTiers

logger = logging.getLogger(__name__)

REFUND_REASONS = frozenset({"duplicate", "fraudulent", "requested_by_customer"})

_ACTIVE_PROVIDER_STATUSES = {"active", "trialing"}
_TERMINAL_PROVIDER_STATUSES = {"canceled", "unpaid"}


def map_provider_status(provider_status: str | None) -> MembershipStatus:
    if provider_status in _ACTIVE_PROVIDER_STATUSES:
        return MembershipStatus.active
    if provider_status == "past_due":
        return MembershipStatus.past_due
    return MembershipStatus.unpaid


def _interval_delta(interval: BillingInterval | None) -> timedelta:
    if interval == BillingInterval.year:
        return timedelta(days=365)
    return timedelta(days=30)


def _object_id(value: Any) -> str | None:
    """Provider references arrive either as ids or as expanded objects."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def _invoice_subscription_ref(invoice: dict[str, Any]) -> str | None:
    ref = _object_id(invoice.get("subscription"))
    if ref:
        return ref
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return _object_id(details.get("subscription"))


def _invoice_period_end(invoice: dict[str, Any]) -> datetime | None:
    lines = (invoice.get("lines") or {}).get("data") or []
    if not lines:
        return None
    period = lines[0].get("period") or {}
    return from_timestamp(period.get("end"))


class MembershipService:
    def __init__(self, db: Session, gateway: StripeGateway | None = None) -> None:
        self.db = db
        self.gateway = gateway or billing_gateway
        self._outbox: list[Callable[[], Any]] = []

    # ── Notifications ────────────────────────────────────

    def _notify(self, send: Callable[[], Any]) -> None:
        self._outbox.append(send)

    def flush_notifications(self) -> None:
        """Run queued side effects (emails, provider clean-up).

        Call only after the owning transaction committed.
        """
        pending, self._outbox = self._outbox, []
        for send in pending:
            send()

    def discard_notifications(self) -> None:
        self._outbox = []

    def _commit(self) -> None:
        self.db.commit()
        self.flush_notifications()

    # ── Lookups ──────────────────────────────────────────

    def _get_user(self, user_id: object) -> User:
        user = self.db.get(User, require_uuid(user_id))
        if not user:
            raise UserNotFound("User not found")
        return user

    def current_membership(
        self, user_id: object, lock: bool = False
    ) -> Membership | None:
        stmt = (
            select(Membership)
            .where(
                Membership.user_id == coerce_uuid(user_id),
                Membership.status.in_(CURRENT_STATUSES),
            )
            .order_by(Membership.current_period_end.desc())
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.db.scalars(stmt).first()

    def _current_paid_membership(
        self, user_id: object, lock: bool = False
    ) -> Membership | None:
        stmt = (
            select(Membership)
            .where(
                Membership.user_id == coerce_uuid(user_id),
                Membership.status.in_(CURRENT_STATUSES),
                Membership.external_subscription_ref.is_not(None),
            )
            .order_by(Membership.current_period_end.desc())
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.db.scalars(stmt).first()

    def _current_free_memberships(self, user_id: object) -> list[Membership]:
        stmt = (
            select(Membership)
            .where(
                Membership.user_id == coerce_uuid(user_id),
                Membership.status.in_(CURRENT_STATUSES),
                Membership.external_subscription_ref.is_(None),
            )
            .with_for_update()
        )
        return list(self.db.scalars(stmt).all())

    def _find_for_event(
        self, subscription_ref: str | None, customer_ref: str | None
    ) -> Membership | None:
        """Locate the row a provider event refers to.

        Subscription id first; a customer id only matches current rows.
        """
        if subscription_ref:
            membership = self.db.scalars(
                select(Membership)
                .where(Membership.external_subscription_ref == subscription_ref)
                .order_by(Membership.current_period_end.desc())
                .with_for_update()
            ).first()
            if membership:
                return membership
        if customer_ref:
            return self.db.scalars(
                select(Membership)
                .where(
                    Membership.external_customer_ref == customer_ref,
                    Membership.status.in_(CURRENT_STATUSES),
                )
                .order_by(Membership.current_period_end.desc())
                .with_for_update()
            ).first()
        return None

    def _resolve_user_id(
        self, customer_ref: str | None, charge_ref: str | None = None
    ):
        if customer_ref:
            user_id = self.db.scalars(
                select(User.id).where(User.billing_customer_ref == customer_ref)
            ).first()
            if user_id:
                return user_id
            user_id = self.db.scalars(
                select(Membership.user_id).where(
                    Membership.external_customer_ref == customer_ref
                )
            ).first()
            if user_id:
                return user_id
        if charge_ref:
            return self.db.scalars(
                select(Payment.user_id).where(Payment.external_charge_ref == charge_ref)
            ).first()
        return None

    # ── Free tier ────────────────────────────────────────

    def create(self, user_id: object, tier_id: object) -> Membership:
        """Grant a free-tier membership for one year."""
        user = self._get_user(user_id)
        tier = MembershipTiers.find_by_id(self.db, tier_id)
        if tier.is_paid:
            raise InvalidInput("Paid tiers require a subscription")

        current = self.current_membership(user.id, lock=True)
        if current:
            if current.tier_id == tier.id:
                return current
            raise Conflict("User already has a current membership")

        now = utcnow()
        membership = Membership(
            user_id=user.id,
            tier_id=tier.id,
            status=MembershipStatus.active,
            current_period_start=now,
            current_period_end=now + timedelta(days=settings.free_membership_days),
        )
        self.db.add(membership)
        try:
            self._commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict("User already has a current membership") from exc
        self.db.refresh(membership)
        logger.info("Created free membership %s for user %s", membership.id, user.id)
        return membership

    # ── Paid subscriptions ───────────────────────────────

    def _ensure_customer(self, user: User) -> str:
        if user.billing_customer_ref:
            return user.billing_customer_ref
        customer_ref = self.gateway.create_customer(user.email, user.display_name)
        user.billing_customer_ref = customer_ref
        self.db.commit()
        return customer_ref

    def _mirror_period(
        self, membership: Membership, subscription: dict[str, Any]
    ) -> None:
        start, end = period_bounds(subscription)
        if start is not None:
            membership.current_period_start = from_timestamp(start)
        if end is not None:
            membership.current_period_end = from_timestamp(end)

    def subscribe(
        self, user_id: object, tier_id: object, payment_method_ref: str
    ) -> dict[str, Any]:
        if not payment_method_ref:
            raise InvalidInput("A payment method is required")
        user = self._get_user(user_id)
        tier = MembershipTiers.find_by_id(self.db, tier_id)
        if not tier.is_paid:
            raise InvalidInput("Free tiers do not need a subscription")
        if not tier.external_price_ref:
            raise InvalidInput("Membership tier is not available for purchase")

        customer_ref = self._ensure_customer(user)

        current = self._current_paid_membership(user.id, lock=True)
        if current:
            if not current.cancel_at_period_end:
                raise Conflict("User already has an active paid membership")
            return self._resume(current, tier)

        subscription = self.gateway.create_subscription(
            customer_ref, tier.external_price_ref, payment_method_ref, user.email
        )
        subscription_ref = subscription["id"]
        status = map_provider_status(subscription.get("status"))
        now = utcnow()
        membership = Membership(
            user_id=user.id,
            tier_id=tier.id,
            external_customer_ref=customer_ref,
            external_subscription_ref=subscription_ref,
            status=status,
            current_period_start=now,
            current_period_end=now + _interval_delta(tier.billing_interval),
            cancel_at_period_end=False,
            last_payment_status=(
                "succeeded" if status == MembershipStatus.active else "pending"
            ),
            last_payment_date=now if status == MembershipStatus.active else None,
            failed_payment_attempts=0,
        )
        self._mirror_period(membership, subscription)
        self.db.add(membership)

        for free in self._current_free_memberships(user.id):
            free.status = MembershipStatus.cancelled

        self._notify(
            lambda: email_service.send_subscription_receipt(
                user.email,
                user.first_name,
                tier.name,
                tier.price,
                tier.billing_interval.value,
                membership.current_period_start,
                membership.current_period_end,
                list(tier.benefits or []),
            )
        )
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            self.discard_notifications()
            self._compensate(subscription_ref)
            raise Conflict("User already has an active paid membership") from exc
        self._commit()
        self.db.refresh(membership)
        logger.info(
            "User %s subscribed to %s (subscription=%s, status=%s)",
            user.id,
            tier.name,
            subscription_ref,
            status.value,
        )
        return {
            "membership": membership,
            "subscription_id": subscription_ref,
            "client_secret": client_secret_of(subscription),
        }

    def _compensate(self, subscription_ref: str) -> None:
        """Cancel a provider subscription the ledger no longer tracks."""
        try:
            self.gateway.cancel_subscription(subscription_ref)
        except GatewayError:
            logger.error(
                "Could not cancel orphaned subscription %s", subscription_ref
            )

    def _resume(self, membership: Membership, tier: MembershipTier) -> dict[str, Any]:
        # Resume and price move travel in one request.
        if tier.id != membership.tier_id:
            subscription = self.gateway.update_subscription(
                membership.external_subscription_ref,
                tier.external_price_ref,
                cancel_at_period_end=False,
            )
            membership.tier_id = tier.id
        else:
            subscription = self.gateway.set_subscription_cancel_at_period_end(
                membership.external_subscription_ref, False
            )
        membership.cancel_at_period_end = False
        self._mirror_period(membership, subscription)
        self._commit()
        self.db.refresh(membership)
        logger.info(
            "Resumed subscription %s for user %s",
            membership.external_subscription_ref,
            membership.user_id,
        )
        return {
            "membership": membership,
            "subscription_id": membership.external_subscription_ref,
            "client_secret": None,
        }

    def cancel(self, user_id: object) -> Membership:
        """Stop renewal at period end; benefits last until then."""
        user = self._get_user(user_id)
        membership = self._current_paid_membership(user.id, lock=True)
        if not membership:
            raise NoActiveMembership("No active paid membership found")
        self.gateway.set_subscription_cancel_at_period_end(
            membership.external_subscription_ref, True
        )
        membership.cancel_at_period_end = True
        self._commit()
        self.db.refresh(membership)
        logger.info(
            "Membership %s set to cancel at period end", membership.id
        )
        return membership

    def change_tier(self, user_id: object, new_tier_id: object) -> Membership:
        user = self._get_user(user_id)
        tier = MembershipTiers.find_by_id(self.db, new_tier_id)
        if not tier.is_paid or not tier.external_price_ref:
            raise InvalidInput("Only paid tiers can be switched to")
        membership = self._current_paid_membership(user.id, lock=True)
        if not membership:
            raise NoActiveMembership("No active paid membership found")
        if membership.tier_id == tier.id:
            return membership
        subscription = self.gateway.update_subscription(
            membership.external_subscription_ref, tier.external_price_ref
        )
        membership.tier_id = tier.id
        self._mirror_period(membership, subscription)
        self._commit()
        self.db.refresh(membership)
        logger.info("Membership %s moved to tier %s", membership.id, tier.name)
        return membership

    def refund(
        self,
        user_id: object,
        external_charge_ref: str,
        amount: Decimal | str | float,
        reason: str,
    ) -> Membership:
        if reason not in REFUND_REASONS:
            raise InvalidInput(
                "Invalid refund reason",
                details={"allowed": sorted(REFUND_REASONS)},
            )
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, ValueError) as exc:
            raise InvalidInput("Invalid refund amount") from exc
        if not amount.is_finite() or amount <= 0:
            raise InvalidInput("Refund amount must be positive")
        if not external_charge_ref:
            raise InvalidInput("A charge reference is required")

        user = self._get_user(user_id)
        membership = self._current_paid_membership(user.id, lock=True)
        if not membership:
            raise NoActiveMembership("No active paid membership found")

        self.gateway.refund(external_charge_ref, amount, reason)

        now = utcnow()
        membership.status = MembershipStatus.refunded
        membership.refunded_at = now
        membership.refund_reason = reason
        membership.last_payment_status = "refunded"
        self._notify(
            lambda: email_service.send_refund_confirmation(
                user.email, user.first_name, amount, reason
            )
        )
        self._commit()
        self.db.refresh(membership)
        logger.info(
            "Refunded %s on %s for membership %s (%s)",
            amount,
            external_charge_ref,
            membership.id,
            reason,
        )
        return membership

    def confirm(
        self, user_id: object, subscription_ref: str, client_secret: str
    ) -> Membership:
        """Confirm the first payment of a subscription the client authenticated.

        The payment intent id is the part of the client secret before
        ``_secret_``.
        """
        payment_intent_ref = (client_secret or "").split("_secret_")[0]
        if not subscription_ref or not payment_intent_ref.startswith("pi_"):
            raise InvalidInput("A subscription and payment client secret are required")
        user = self._get_user(user_id)
        membership = self.db.scalars(
            select(Membership)
            .where(
                Membership.user_id == user.id,
                Membership.external_subscription_ref == subscription_ref,
                Membership.status.in_(CURRENT_STATUSES),
            )
            .with_for_update()
        ).first()
        if not membership:
            raise NoActiveMembership("Membership not found for subscription")

        intent = self.gateway.confirm_payment_intent(payment_intent_ref)
        if intent.get("status") != "succeeded":
            self.db.rollback()
            raise InvalidInput(
                "Payment confirmation failed",
                details={"status": intent.get("status")},
            )

        membership.status = MembershipStatus.active
        membership.last_payment_status = "succeeded"
        membership.last_payment_date = utcnow()
        self._commit()
        self.db.refresh(membership)
        logger.info(
            "Confirmed payment %s for subscription %s",
            payment_intent_ref,
            subscription_ref,
        )
        return membership

    def update_payment_method(self, user_id: object, payment_method_ref: str) -> str:
        """Make a new card the default for future invoices."""
        if not payment_method_ref:
            raise InvalidInput("A payment method is required")
        user = self._get_user(user_id)
        if not user.billing_customer_ref:
            raise InvalidInput("No billing customer found for user")
        self.gateway.attach_payment_method(user.billing_customer_ref, payment_method_ref)
        self.gateway.set_default_payment_method(
            user.billing_customer_ref, payment_method_ref
        )
        logger.info("Updated default payment method for user %s", user.id)
        return payment_method_ref

    # ── Status ───────────────────────────────────────────

    def membership_status(self, user_id: object) -> dict[str, Any]:
        user = self._get_user(user_id)
        membership = self.current_membership(user.id)
        if not membership:
            raise NoActiveMembership("No active membership found")
        tier = membership.tier
        return {
            "membership": membership,
            "tier_name": tier.name,
            "benefits": list(tier.benefits or []),
            "is_paid_member": tier.is_paid,
            "current_period_end": ensure_aware(membership.current_period_end),
        }

    # ── Reconciliation ───────────────────────────────────

    def reconcile(self, event: dict[str, Any]) -> str:
        """Apply one provider event and commit. Returns "applied" or "ignored"."""
        try:
            outcome = self.apply_event(event)
        except Exception:
            self.db.rollback()
            self.discard_notifications()
            raise
        self._commit()
        return outcome

    def apply_event(self, event: dict[str, Any]) -> str:
        """Apply one provider event without committing.

        Queued notifications must be flushed by the caller after commit.
        """
        event_type = event.get("type", "")
        data = (event.get("data") or {}).get("object") or {}
        handler = self._handlers().get(event_type)
        if handler is None:
            logger.info("Ignoring unhandled billing event type %s", event_type)
            return "ignored"
        return handler(data)

    def _handlers(self) -> dict[str, Callable[[dict[str, Any]], str]]:
        return {
            "customer.subscription.updated": self._on_subscription_updated,
            "customer.subscription.deleted": self._on_subscription_deleted,
            "invoice.payment_succeeded": self._on_invoice_paid,
            "invoice.payment_failed": self._on_invoice_failed,
            "charge.succeeded": self._on_charge_succeeded,
            "charge.failed": self._on_charge_failed,
            "charge.refunded": self._on_charge_refunded,
            "charge.dispute.created": self._on_dispute_created,
        }

    def _closed(self, membership: Membership, event_ref: str | None) -> bool:
        """Rows outside the current statuses are history; events never reopen them."""
        if membership.status in CURRENT_STATUSES:
            return False
        logger.info(
            "Leaving %s membership %s unchanged for %s",
            membership.status.value,
            membership.id,
            event_ref,
        )
        return True

    def _downgrade_to_free(self, membership: Membership, reason: str) -> None:
        free_tier = MembershipTiers.find_free_tier(self.db)
        now = utcnow()
        membership.tier_id = free_tier.id
        membership.status = MembershipStatus.active
        membership.external_customer_ref = None
        membership.external_subscription_ref = None
        membership.current_period_start = now
        membership.current_period_end = now + timedelta(
            days=settings.free_membership_days
        )
        membership.cancel_at_period_end = False
        membership.failed_payment_attempts = 0
        membership.grace_period_end = None
        MEMBERSHIP_DOWNGRADES.labels(reason=reason).inc()
        user = membership.user
        if user:
            self._notify(
                lambda: email_service.send_downgrade_notice(user.email, user.first_name)
            )
        logger.info(
            "Downgraded membership %s to free tier (%s)", membership.id, reason
        )

    def _on_subscription_updated(self, subscription: dict[str, Any]) -> str:
        membership = self._find_for_event(
            subscription.get("id"), _object_id(subscription.get("customer"))
        )
        if not membership:
            logger.warning(
                "No membership for subscription %s", subscription.get("id")
            )
            return "ignored"
        if self._closed(membership, subscription.get("id")):
            return "ignored"
        provider_status = subscription.get("status")
        if provider_status in _TERMINAL_PROVIDER_STATUSES:
            self._downgrade_to_free(membership, reason="subscription_" + provider_status)
            return "applied"
        membership.status = map_provider_status(provider_status)
        membership.cancel_at_period_end = bool(subscription.get("cancel_at_period_end"))
        self._mirror_period(membership, subscription)
        return "applied"

    def _on_subscription_deleted(self, subscription: dict[str, Any]) -> str:
        membership = self._find_for_event(
            subscription.get("id"), _object_id(subscription.get("customer"))
        )
        if not membership:
            logger.warning(
                "No membership for deleted subscription %s", subscription.get("id")
            )
            return "ignored"
        if self._closed(membership, subscription.get("id")):
            return "ignored"
        self._downgrade_to_free(membership, reason="subscription_deleted")
        return "applied"

    def _on_invoice_paid(self, invoice: dict[str, Any]) -> str:
        subscription_ref = _invoice_subscription_ref(invoice)
        customer_ref = _object_id(invoice.get("customer"))
        membership = self._find_for_event(subscription_ref, customer_ref)
        now = utcnow()
        user_id = membership.user_id if membership else self._resolve_user_id(customer_ref)
        if user_id is None:
            logger.warning("No user for paid invoice %s", invoice.get("id"))
            return "ignored"

        PaymentLedger.record(
            self.db,
            user_id=user_id,
            amount=from_minor_units(invoice.get("amount_paid")),
            status=PaymentStatus.completed,
            transaction_type=TransactionType.subscription,
            description="Membership subscription payment",
            invoice_ref=invoice.get("id"),
            charge_ref=_object_id(invoice.get("charge")),
            subscription_ref=subscription_ref,
        )
        if not membership or self._closed(membership, invoice.get("id")):
            return "applied"

        membership.status = MembershipStatus.active
        membership.last_payment_status = "succeeded"
        membership.last_payment_date = now
        membership.failed_payment_attempts = 0
        membership.grace_period_end = None
        period_end = _invoice_period_end(invoice)
        if period_end:
            membership.current_period_end = period_end
        user = membership.user
        if user:
            renewed_until = membership.current_period_end
            self._notify(
                lambda: email_service.send_payment_succeeded(
                    user.email, user.first_name, renewed_until
                )
            )
        return "applied"

    def _on_invoice_failed(self, invoice: dict[str, Any]) -> str:
        subscription_ref = _invoice_subscription_ref(invoice)
        customer_ref = _object_id(invoice.get("customer"))
        membership = self._find_for_event(subscription_ref, customer_ref)
        user_id = membership.user_id if membership else self._resolve_user_id(customer_ref)
        if user_id is None:
            logger.warning("No user for failed invoice %s", invoice.get("id"))
            return "ignored"

        PaymentLedger.record(
            self.db,
            user_id=user_id,
            amount=from_minor_units(invoice.get("amount_due")),
            status=PaymentStatus.failed,
            transaction_type=TransactionType.subscription,
            description="Membership subscription payment failed",
            invoice_ref=invoice.get("id"),
            subscription_ref=subscription_ref,
        )
        if not membership or self._closed(membership, invoice.get("id")):
            return "applied"

        now = utcnow()
        membership.failed_payment_attempts = (membership.failed_payment_attempts or 0) + 1
        membership.status = MembershipStatus.past_due
        membership.last_payment_status = "failed"
        membership.last_failed_payment_date = now
        if membership.grace_period_end is None:
            membership.grace_period_end = now + timedelta(days=settings.grace_period_days)

        grace_end = ensure_aware(membership.grace_period_end)
        exhausted = (
            membership.failed_payment_attempts >= settings.max_failed_payment_attempts
            or now > grace_end
        )
        if exhausted:
            stale_ref = membership.external_subscription_ref
            self._downgrade_to_free(membership, reason="payment_failed")
            if stale_ref:
                self._notify(lambda: self._compensate(stale_ref))
            return "applied"

        user = membership.user
        if user:
            self._notify(
                lambda: email_service.send_payment_failed(
                    user.email, user.first_name, grace_end
                )
            )
        return "applied"

    def _record_charge(
        self,
        charge: dict[str, Any],
        status: PaymentStatus,
        transaction_type: TransactionType,
        amount: Decimal,
        description: str,
        charge_ref: str | None = None,
    ) -> str:
        charge_ref = charge_ref or charge.get("id")
        user_id = self._resolve_user_id(_object_id(charge.get("customer")), charge_ref)
        if user_id is None:
            logger.warning("No user for charge %s", charge_ref)
            return "ignored"
        PaymentLedger.record(
            self.db,
            user_id=user_id,
            amount=amount,
            status=status,
            transaction_type=transaction_type,
            description=description,
            charge_ref=charge_ref,
            invoice_ref=None,
        )
        return "applied"

    def _on_charge_succeeded(self, charge: dict[str, Any]) -> str:
        return self._record_charge(
            charge,
            PaymentStatus.completed,
            TransactionType.one_time,
            from_minor_units(charge.get("amount")),
            charge.get("description") or "Card payment",
        )

    def _on_charge_failed(self, charge: dict[str, Any]) -> str:
        return self._record_charge(
            charge,
            PaymentStatus.failed,
            TransactionType.one_time,
            from_minor_units(charge.get("amount")),
            charge.get("failure_message") or "Card payment failed",
        )

    def _on_charge_refunded(self, charge: dict[str, Any]) -> str:
        return self._record_charge(
            charge,
            PaymentStatus.refunded,
            TransactionType.refund,
            -from_minor_units(charge.get("amount_refunded")),
            "Refund",
        )

    def _on_dispute_created(self, dispute: dict[str, Any]) -> str:
        return self._record_charge(
            dispute,
            PaymentStatus.disputed,
            TransactionType.dispute,
            from_minor_units(dispute.get("amount")),
            "Dispute: " + (dispute.get("reason") or "unspecified"),
            charge_ref=_object_id(dispute.get("charge")),
        )
