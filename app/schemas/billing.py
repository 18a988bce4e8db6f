from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from app.models.billing import PaymentStatus, TransactionType


class PaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: UUID
    amount: Decimal
    date: datetime
    description: str | None = None
    payment_method: str | None = None
    status: PaymentStatus
    transaction_type: TransactionType
    external_charge_ref: str | None = None
    external_invoice_ref: str | None = None


class WebhookAck(BaseModel):
    received: bool = True
    duplicate: bool = False
