from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_user
from app.schemas.membership import (
    ChangeTierRequest,
    ConfirmSubscriptionRequest,
    FreeMembershipRequest,
    MembershipRead,
    MembershipStatusRead,
    MembershipTierRead,
    PaymentMethodUpdate,
    RefundRequest,
    SubscribeRequest,
    SubscribeResponse,
)
from app.services.membership import MembershipService
from app.services.tiers import membership_tiers

router = APIRouter(prefix="/memberships", tags=["memberships"])


@router.get("/tiers", response_model=list[MembershipTierRead])
def list_tiers(db: Session = Depends(get_db)):
    return membership_tiers.find_all(db, sort_by_price=True)


@router.get("/status", response_model=MembershipStatusRead)
def membership_status(auth=Depends(require_user), db: Session = Depends(get_db)):
    result = MembershipService(db).membership_status(auth["user_id"])
    return MembershipStatusRead(
        membership=MembershipRead.model_validate(result["membership"]),
        tier_name=result["tier_name"],
        benefits=result["benefits"],
        is_paid_member=result["is_paid_member"],
        current_period_end=result["current_period_end"],
    )


@router.post(
    "/free", response_model=MembershipRead, status_code=status.HTTP_201_CREATED
)
def join_free_tier(
    payload: FreeMembershipRequest,
    auth=Depends(require_user),
    db: Session = Depends(get_db),
):
    return MembershipService(db).create(auth["user_id"], payload.tier_id)


@router.post(
    "/subscribe",
    response_model=SubscribeResponse,
    status_code=status.HTTP_201_CREATED,
)
def subscribe(
    payload: SubscribeRequest,
    auth=Depends(require_user),
    db: Session = Depends(get_db),
):
    result = MembershipService(db).subscribe(
        auth["user_id"], payload.tier_id, payload.payment_method_id
    )
    return SubscribeResponse(
        membership=MembershipRead.model_validate(result["membership"]),
        subscription_id=result["subscription_id"],
        client_secret=result["client_secret"],
    )


@router.post("/confirm", response_model=MembershipRead)
def confirm_subscription(
    payload: ConfirmSubscriptionRequest,
    auth=Depends(require_user),
    db: Session = Depends(get_db),
):
    return MembershipService(db).confirm(
        auth["user_id"], payload.subscription_id, payload.client_secret
    )


@router.post("/payment-method", response_model=PaymentMethodUpdate)
def update_payment_method(
    payload: PaymentMethodUpdate,
    auth=Depends(require_user),
    db: Session = Depends(get_db),
):
    payment_method_id = MembershipService(db).update_payment_method(
        auth["user_id"], payload.payment_method_id
    )
    return PaymentMethodUpdate(payment_method_id=payment_method_id)


@router.post("/cancel", response_model=MembershipRead)
def cancel(auth=Depends(require_user), db: Session = Depends(get_db)):
    return MembershipService(db).cancel(auth["user_id"])


@router.post("/change-tier", response_model=MembershipRead)
def change_tier(
    payload: ChangeTierRequest,
    auth=Depends(require_user),
    db: Session = Depends(get_db),
):
    return MembershipService(db).change_tier(auth["user_id"], payload.tier_id)


@router.post("/refund", response_model=MembershipRead)
def refund(
    payload: RefundRequest,
    auth=Depends(require_user),
    db: Session = Depends(get_db),
):
    return MembershipService(db).refund(
        auth["user_id"], payload.charge_id, payload.amount, payload.reason
    )
