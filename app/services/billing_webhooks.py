import logging
from typing import Any

import stripe
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import InvalidInput, WebhookProcessingError
from app.metrics import WEBHOOK_EVENTS
from app.models.billing import WebhookEvent, WebhookEventStatus
from app.services.billing_gateway import StripeGateway, billing_gateway
from app.services.common import utcnow
from app.services.membership import MembershipService

logger = logging.getLogger(__name__)

PROVIDER = "stripe"


class BillingWebhookService:
    """Verify, de-duplicate and apply billing provider events."""

    def __init__(
        self,
        db: Session,
        gateway: StripeGateway | None = None,
        memberships: MembershipService | None = None,
    ) -> None:
        self.db = db
        self.gateway = gateway or billing_gateway
        self.memberships = memberships or MembershipService(db, self.gateway)

    def verify(self, payload: bytes, signature: str) -> dict[str, Any]:
        if not signature:
            raise InvalidInput("Missing webhook signature")
        try:
            return self.gateway.construct_event(payload, signature)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            logger.warning("Rejected billing webhook: %s", exc)
            raise InvalidInput("Invalid webhook signature") from exc

    def _find(self, event_id: str) -> WebhookEvent | None:
        return self.db.scalars(
            select(WebhookEvent)
            .where(WebhookEvent.event_id == event_id)
            .with_for_update()
        ).first()

    def handle(self, payload: bytes, signature: str) -> dict[str, Any]:
        event = self.verify(payload, signature)
        event_id = str(event.get("id") or "")
        event_type = event.get("type", "")
        if not event_id:
            raise InvalidInput("Webhook event has no id")

        record = self._find(event_id)
        if record and record.status == WebhookEventStatus.processed:
            WEBHOOK_EVENTS.labels(event_type=event_type, outcome="duplicate").inc()
            logger.info(
                "Skipping duplicate webhook %s",
                event_id,
                extra={"event_id": event_id, "event_type": event_type},
            )
            return {"received": True, "duplicate": True}

        if record is None:
            record = WebhookEvent(
                provider=PROVIDER,
                event_type=event_type,
                event_id=event_id,
                payload=event,
                status=WebhookEventStatus.pending,
            )
            self.db.add(record)
            try:
                self.db.flush()
            except IntegrityError:
                # Another worker stored the same event first.
                self.db.rollback()
                WEBHOOK_EVENTS.labels(event_type=event_type, outcome="duplicate").inc()
                return {"received": True, "duplicate": True}

        try:
            outcome = self.memberships.apply_event(event)
            record.status = WebhookEventStatus.processed
            record.error_message = None
            record.processed_at = utcnow()
            self.db.commit()
        except Exception as exc:
            self.db.rollback()
            self.memberships.discard_notifications()
            logger.exception(
                "Failed to process webhook %s",
                event_id,
                extra={"event_id": event_id, "event_type": event_type},
            )
            self._mark_failed(event_id, event_type, event, str(exc))
            WEBHOOK_EVENTS.labels(event_type=event_type, outcome="failed").inc()
            raise WebhookProcessingError("Webhook processing failed") from exc

        self.memberships.flush_notifications()
        WEBHOOK_EVENTS.labels(event_type=event_type, outcome=outcome).inc()
        logger.info(
            "Processed webhook %s (%s): %s",
            event_id,
            event_type,
            outcome,
            extra={"event_id": event_id, "event_type": event_type},
        )
        return {"received": True}

    def _mark_failed(
        self, event_id: str, event_type: str, event: dict[str, Any], error: str
    ) -> None:
        record = self._find(event_id)
        if record is None:
            record = WebhookEvent(
                provider=PROVIDER,
                event_type=event_type,
                event_id=event_id,
                payload=event,
            )
            self.db.add(record)
        record.status = WebhookEventStatus.failed
        record.error_message = error[:2000]
        self.db.commit()
