from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_user
from app.schemas.billing import PaymentRead
from app.schemas.common import ListResponse
from app.services.payments import payment_ledger
from app.services.response import list_response

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("", response_model=ListResponse[PaymentRead])
def list_payments(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    auth=Depends(require_user),
    db: Session = Depends(get_db),
):
    items, total = payment_ledger.list_for_user(db, auth["user_id"], limit, offset)
    return list_response(items, limit, offset, total=total)
