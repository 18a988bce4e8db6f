"""Stripe webhook endpoint: no user auth, signature verified."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.schemas.billing import WebhookAck
from app.services.billing_webhooks import BillingWebhookService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    body = await request.body()
    signature = request.headers.get("stripe-signature", "")
    return BillingWebhookService(db).handle(body, signature)
