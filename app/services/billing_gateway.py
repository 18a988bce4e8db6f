"""Stripe billing gateway integration."""

import logging
from decimal import Decimal
from typing import Any

import stripe

from app.config import settings
from app.errors import GatewayError
from app.services.common import to_minor_units

logger = logging.getLogger(__name__)


def as_dict(obj: Any) -> dict[str, Any]:
    """Normalise a Stripe object (or plain mapping) into a nested dict."""
    if obj is None:
        return {}
    for attr in ("to_dict_recursive", "to_dict"):
        converter = getattr(obj, attr, None)
        if callable(converter):
            return converter()
    return dict(obj)


def period_bounds(subscription: dict[str, Any]) -> tuple[int | None, int | None]:
    """Return (start, end) epoch seconds of the subscription's billing period.

    Newer API versions report the period on the subscription item instead of
    the subscription itself.
    """
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")
    if start is None or end is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            start = start or items[0].get("current_period_start")
            end = end or items[0].get("current_period_end")
    return start, end


def client_secret_of(subscription: dict[str, Any]) -> str | None:
    invoice = subscription.get("latest_invoice")
    if not isinstance(invoice, dict):
        return None
    intent = invoice.get("payment_intent")
    if isinstance(intent, dict) and intent.get("client_secret"):
        return intent["client_secret"]
    confirmation = invoice.get("confirmation_secret")
    if isinstance(confirmation, dict):
        return confirmation.get("client_secret")
    return None


class StripeGateway:
    """Thin wrapper around the Stripe API."""

    def __init__(self) -> None:
        self._secret_key = settings.stripe_secret_key
        self._webhook_secret = settings.stripe_webhook_secret
        self._client: stripe.StripeClient | None = None

    def is_configured(self) -> bool:
        return bool(self._secret_key)

    def _stripe(self) -> stripe.StripeClient:
        if not self.is_configured():
            raise GatewayError("Billing gateway is not configured")
        if self._client is None:
            self._client = stripe.StripeClient(self._secret_key)
        return self._client

    def _fail(self, operation: str, exc: Exception) -> GatewayError:
        logger.error("Stripe %s failed: %s", operation, exc)
        return GatewayError(
            "Billing provider request failed", provider_message=str(exc)
        )

    # ── Customers ────────────────────────────────────────

    def create_customer(self, email: str, name: str) -> str:
        """Create a Stripe customer and return its id."""
        client = self._stripe()
        try:
            customer = client.customers.create(
                params={
                    "email": email,
                    "name": name,
                }
            )
        except stripe.StripeError as exc:
            raise self._fail("create_customer", exc) from exc
        customer_id: str = as_dict(customer)["id"]
        logger.info("Created Stripe customer: %s", customer_id)
        return customer_id

    def attach_payment_method(self, customer_ref: str, payment_method_ref: str) -> None:
        client = self._stripe()
        try:
            client.payment_methods.attach(
                payment_method_ref, params={"customer": customer_ref}
            )
        except stripe.StripeError as exc:
            # Re-attaching the customer's own card is not an error.
            if "already been attached" in str(exc) or "already attached" in str(exc):
                logger.info("Payment method already attached: %s", payment_method_ref)
                return
            raise self._fail("attach_payment_method", exc) from exc

    def set_default_payment_method(
        self, customer_ref: str, payment_method_ref: str
    ) -> None:
        client = self._stripe()
        try:
            client.customers.update(
                customer_ref,
                params={
                    "invoice_settings": {
                        "default_payment_method": payment_method_ref,
                    }
                },
            )
        except stripe.StripeError as exc:
            raise self._fail("set_default_payment_method", exc) from exc

    # ── Subscriptions ────────────────────────────────────

    def create_subscription(
        self,
        customer_ref: str,
        price_ref: str,
        payment_method_ref: str,
        email: str,
    ) -> dict[str, Any]:
        """Attach the payment method and start a subscription on one price."""
        self.attach_payment_method(customer_ref, payment_method_ref)
        self.set_default_payment_method(customer_ref, payment_method_ref)
        client = self._stripe()
        try:
            subscription = client.subscriptions.create(
                params={
                    "customer": customer_ref,
                    "items": [{"price": price_ref}],
                    "payment_behavior": "allow_incomplete",
                    "payment_settings": {
                        "save_default_payment_method": "on_subscription"
                    },
                    "expand": ["latest_invoice.payment_intent"],
                    "metadata": {"email": email},
                }
            )
        except stripe.StripeError as exc:
            raise self._fail("create_subscription", exc) from exc
        result = as_dict(subscription)
        logger.info(
            "Created Stripe subscription %s (status=%s)",
            result.get("id"),
            result.get("status"),
        )
        return result

    def update_subscription(
        self,
        subscription_ref: str,
        new_price_ref: str,
        cancel_at_period_end: bool | None = None,
    ) -> dict[str, Any]:
        """Move the subscription's single item onto a new price.

        ``cancel_at_period_end`` is sent in the same request when given.
        """
        client = self._stripe()
        try:
            current = as_dict(client.subscriptions.retrieve(subscription_ref))
            items = (current.get("items") or {}).get("data") or []
            if not items:
                raise GatewayError("Subscription has no items to update")
            params: dict[str, Any] = {
                "items": [{"id": items[0]["id"], "price": new_price_ref}],
                "proration_behavior": "create_prorations",
            }
            if cancel_at_period_end is not None:
                params["cancel_at_period_end"] = cancel_at_period_end
            subscription = client.subscriptions.update(subscription_ref, params=params)
        except stripe.StripeError as exc:
            raise self._fail("update_subscription", exc) from exc
        logger.info("Updated Stripe subscription %s to %s", subscription_ref, new_price_ref)
        return as_dict(subscription)

    def set_subscription_cancel_at_period_end(
        self, subscription_ref: str, cancel: bool
    ) -> dict[str, Any]:
        client = self._stripe()
        try:
            subscription = client.subscriptions.update(
                subscription_ref, params={"cancel_at_period_end": cancel}
            )
        except stripe.StripeError as exc:
            raise self._fail("set_subscription_cancel_at_period_end", exc) from exc
        logger.info(
            "Set cancel_at_period_end=%s on Stripe subscription %s",
            cancel,
            subscription_ref,
        )
        return as_dict(subscription)

    def cancel_subscription(self, subscription_ref: str) -> dict[str, Any]:
        """Terminate a subscription immediately."""
        client = self._stripe()
        try:
            subscription = client.subscriptions.cancel(subscription_ref)
        except stripe.StripeError as exc:
            raise self._fail("cancel_subscription", exc) from exc
        logger.info("Cancelled Stripe subscription %s", subscription_ref)
        return as_dict(subscription)

    # ── Payment intents ──────────────────────────────────

    def confirm_payment_intent(self, payment_intent_ref: str) -> dict[str, Any]:
        """Confirm a subscription's first payment if it still awaits confirmation."""
        client = self._stripe()
        try:
            intent = as_dict(client.payment_intents.retrieve(payment_intent_ref))
            if intent.get("status") == "requires_confirmation":
                intent = as_dict(client.payment_intents.confirm(payment_intent_ref))
        except stripe.StripeError as exc:
            raise self._fail("confirm_payment_intent", exc) from exc
        logger.info(
            "Payment intent %s is %s", payment_intent_ref, intent.get("status")
        )
        return intent

    # ── Refunds ──────────────────────────────────────────

    def refund(self, charge_ref: str, amount: Decimal, reason: str) -> dict[str, Any]:
        client = self._stripe()
        params: dict[str, Any] = {"amount": to_minor_units(amount), "reason": reason}
        # Checkout flows hand out payment intent ids rather than charge ids.
        if charge_ref.startswith("pi_"):
            params["payment_intent"] = charge_ref
        else:
            params["charge"] = charge_ref
        try:
            refund = client.refunds.create(params=params)
        except stripe.StripeError as exc:
            raise self._fail("refund", exc) from exc
        result = as_dict(refund)
        logger.info("Created Stripe refund %s for %s", result.get("id"), charge_ref)
        return result

    # ── Webhook ──────────────────────────────────────────

    def construct_event(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify the Stripe-Signature header and parse the event.

        Raises ValueError for a bad payload and
        ``stripe.SignatureVerificationError`` for a bad signature.
        """
        if not self._webhook_secret:
            raise GatewayError("Billing webhook secret is not configured")
        event = stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        return as_dict(event)


billing_gateway = StripeGateway()
