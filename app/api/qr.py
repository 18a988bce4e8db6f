from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_db, optional_user, require_user
from app.models.qr import ScanStatus
from app.schemas.qr import (
    QRCodeGenerated,
    QRVerifyResponse,
    ScanRead,
    ScanRequest,
    ScanResponse,
)
from app.services.qr_code import QRCodeService

router = APIRouter(prefix="/qr", tags=["qr"])

_STATUS_CODES = {
    ScanStatus.success: status.HTTP_200_OK,
    ScanStatus.invalid: status.HTTP_404_NOT_FOUND,
    ScanStatus.expired: status.HTTP_410_GONE,
    ScanStatus.already_used: status.HTTP_409_CONFLICT,
}


def _respond(body: QRVerifyResponse | ScanResponse) -> JSONResponse:
    return JSONResponse(
        status_code=_STATUS_CODES[body.status],
        content=body.model_dump(mode="json"),
    )


@router.post(
    "/generate",
    response_model=QRCodeGenerated,
    status_code=status.HTTP_201_CREATED,
)
def generate_qr_code(auth=Depends(require_user), db: Session = Depends(get_db)):
    return QRCodeService(db).generate(auth["user_id"])


@router.get("/verify/{code}", response_model=QRVerifyResponse)
def verify_qr_code(code: str, db: Session = Depends(get_db)):
    result = QRCodeService(db).verify(code)
    return _respond(QRVerifyResponse(**result))


@router.post("/verify/{code}", response_model=ScanResponse)
def record_qr_scan(
    code: str,
    payload: ScanRequest,
    presenter=Depends(optional_user),
    db: Session = Depends(get_db),
):
    location = None
    if payload.location is not None:
        location = (payload.location.latitude, payload.location.longitude)
    result = QRCodeService(db).record_scan(
        code,
        payload.store_name,
        scanned_by=presenter["user_id"] if presenter else None,
        location=location,
    )
    scan = ScanRead.model_validate(result["scan"]) if result["scan"] else None
    return _respond(ScanResponse(status=result["status"], scan=scan))
