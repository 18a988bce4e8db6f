import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.billing import Payment, PaymentStatus, TransactionType
from app.services.common import coerce_uuid, utcnow

logger = logging.getLogger(__name__)


class PaymentLedger:
    """Append-only record of money movements reported by the provider."""

    @staticmethod
    def find_existing(
        db: Session,
        status: PaymentStatus,
        charge_ref: str | None = None,
        invoice_ref: str | None = None,
    ) -> Payment | None:
        if charge_ref:
            found = db.scalars(
                select(Payment).where(
                    Payment.external_charge_ref == charge_ref,
                    Payment.status == status,
                )
            ).first()
            if found:
                return found
        if invoice_ref:
            return db.scalars(
                select(Payment).where(
                    Payment.external_invoice_ref == invoice_ref,
                    Payment.status == status,
                )
            ).first()
        return None

    @staticmethod
    def record(
        db: Session,
        user_id: object,
        amount: Decimal,
        status: PaymentStatus,
        transaction_type: TransactionType,
        description: str | None = None,
        payment_method: str | None = "card",
        charge_ref: str | None = None,
        invoice_ref: str | None = None,
        subscription_ref: str | None = None,
        date: datetime | None = None,
    ) -> Payment:
        """Add a payment row unless one already exists for the same ref and status.

        Replayed provider events land here more than once. The caller owns
        the transaction; nothing is committed.
        """
        existing = PaymentLedger.find_existing(db, status, charge_ref, invoice_ref)
        if existing:
            logger.info(
                "Payment already recorded for %s (%s)",
                charge_ref or invoice_ref,
                status.value,
            )
            return existing
        payment = Payment(
            user_id=coerce_uuid(user_id),
            amount=amount,
            status=status,
            transaction_type=transaction_type,
            description=description,
            payment_method=payment_method,
            external_charge_ref=charge_ref,
            external_invoice_ref=invoice_ref,
            external_subscription_ref=subscription_ref,
            date=date or utcnow(),
        )
        db.add(payment)
        db.flush()
        logger.info(
            "Recorded %s payment %s for user %s", status.value, payment.id, user_id
        )
        return payment

    @staticmethod
    def list_for_user(
        db: Session, user_id: object, limit: int, offset: int
    ) -> tuple[list[Payment], int]:
        query = db.query(Payment).filter(Payment.user_id == coerce_uuid(user_id))
        total = query.count()
        items = list(
            query.order_by(Payment.date.desc()).limit(limit).offset(offset).all()
        )
        return items, total


payment_ledger = PaymentLedger()
