"""Short-lived, single-use QR codes that prove membership at partner stores."""

import base64
import io
import logging
import secrets
from datetime import timedelta
from typing import Any

import qrcode
import qrcode.image.svg
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import InvalidInput, UserNotFound
from app.metrics import QR_SCANS
from app.models.qr import QRCode, QRScan, ScanStatus
from app.models.user import User
from app.services.common import coerce_uuid, ensure_aware, require_uuid, utcnow
from app.services.membership import MembershipService

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def render_svg_data_uri(data: str) -> str:
    """Encode ``data`` as a QR symbol and return it as an SVG data URI."""
    image = qrcode.make(data, image_factory=qrcode.image.svg.SvgPathImage)
    buffer = io.BytesIO()
    image.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


def validate_location(location: tuple[float, float] | None) -> None:
    if location is None:
        return
    latitude, longitude = location
    if latitude is None or longitude is None:
        raise InvalidInput("Location needs both latitude and longitude")
    if not -90 <= latitude <= 90:
        raise InvalidInput("Latitude must be between -90 and 90")
    if not -180 <= longitude <= 180:
        raise InvalidInput("Longitude must be between -180 and 180")


class QRCodeService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _find(self, code: str) -> QRCode | None:
        if not code:
            return None
        return self.db.scalars(select(QRCode).where(QRCode.code == code)).first()

    def _is_expired(self, qr: QRCode) -> bool:
        return utcnow() >= ensure_aware(qr.expires_at)

    def _expire(self, qr: QRCode) -> None:
        self.db.execute(
            update(QRCode)
            .where(QRCode.id == qr.id, QRCode.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        logger.info("QR code %s expired", qr.id)

    # ── Generation ───────────────────────────────────────

    def generate(self, user_id: object) -> dict[str, Any]:
        user = self.db.get(User, require_uuid(user_id))
        if not user:
            raise UserNotFound("User not found")

        code = secrets.token_hex(TOKEN_BYTES)
        display_url = f"{settings.frontend_url.rstrip('/')}/qr/verify/{code}"
        qr = QRCode(
            user_id=user.id,
            code=code,
            display_url=display_url,
            expires_at=utcnow() + timedelta(seconds=settings.qr_code_ttl_seconds),
            is_active=True,
        )
        self.db.add(qr)
        self.db.commit()
        self.db.refresh(qr)
        logger.info("Generated QR code %s for user %s", qr.id, user.id)
        return {
            "code": qr.code,
            "display_url": qr.display_url,
            "expires_at": ensure_aware(qr.expires_at),
            "image": render_svg_data_uri(display_url),
        }

    # ── Verification ─────────────────────────────────────

    def _member_view(self, user_id) -> dict[str, Any]:
        user = self.db.get(User, user_id)
        view: dict[str, Any] = {
            "name": user.display_name if user else None,
            "avatar_url": user.avatar_url if user else None,
            "tier_name": None,
            "benefits": [],
            "is_paid_member": False,
        }
        membership = MembershipService(self.db).current_membership(user_id)
        if membership and membership.tier:
            view["tier_name"] = membership.tier.name
            view["benefits"] = list(membership.tier.benefits or [])
            view["is_paid_member"] = membership.tier.is_paid
        return view

    def verify(self, code: str) -> dict[str, Any]:
        """Check a presented code without consuming it."""
        qr = self._find(code)
        if qr is None or not qr.is_active:
            return {"status": ScanStatus.invalid, "member": None}
        if self._is_expired(qr):
            self._expire(qr)
            return {"status": ScanStatus.expired, "member": None}
        return {
            "status": ScanStatus.success,
            "member": self._member_view(qr.user_id),
            "expires_at": ensure_aware(qr.expires_at),
        }

    # ── Redemption ───────────────────────────────────────

    def _result(self, status: ScanStatus, scan: QRScan | None = None) -> dict[str, Any]:
        QR_SCANS.labels(status=status.value).inc()
        return {"status": status, "scan": scan}

    def record_scan(
        self,
        code: str,
        store_name: str,
        scanned_by: object = None,
        location: tuple[float, float] | None = None,
    ) -> dict[str, Any]:
        """Redeem a code exactly once.

        Only the caller whose conditional update flips ``is_active`` writes
        the scan row; everyone else sees ``already_used``.
        """
        validate_location(location)
        store_name = (store_name or "").strip()
        if not store_name:
            raise InvalidInput("Store name is required")
        scanned_by = coerce_uuid(scanned_by)

        qr = self._find(code)
        if qr is None:
            return self._result(ScanStatus.invalid)
        if not qr.is_active:
            used = self.db.scalars(
                select(QRScan.id).where(QRScan.qr_code_id == qr.id)
            ).first()
            return self._result(ScanStatus.already_used if used else ScanStatus.invalid)
        if self._is_expired(qr):
            self._expire(qr)
            return self._result(ScanStatus.expired)

        result = self.db.execute(
            update(QRCode)
            .where(QRCode.id == qr.id, QRCode.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            return self._result(ScanStatus.already_used)

        latitude, longitude = location if location else (None, None)
        scan = QRScan(
            qr_code_id=qr.id,
            user_id=qr.user_id,
            scanned_by=scanned_by,
            store_name=store_name,
            latitude=latitude,
            longitude=longitude,
            scanned_at=utcnow(),
            status=ScanStatus.success,
        )
        self.db.add(scan)
        self.db.commit()
        self.db.refresh(scan)
        logger.info("QR code %s redeemed at %s", qr.id, store_name)
        return self._result(ScanStatus.success, scan)

    # ── Housekeeping ─────────────────────────────────────

    def cleanup_expired_codes(self) -> int:
        result = self.db.execute(
            update(QRCode)
            .where(QRCode.is_active.is_(True), QRCode.expires_at <= utcnow())
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        count = result.rowcount or 0
        if count:
            logger.info("Deactivated %d expired QR codes", count)
        return count
