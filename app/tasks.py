import logging

from app.celery_app import celery_app
from app.db import SessionLocal
from app.services.qr_code import QRCodeService

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.cleanup_expired_qr_codes")
def cleanup_expired_qr_codes() -> int:
    session = SessionLocal()
    try:
        return QRCodeService(session).cleanup_expired_codes()
    except Exception:
        logger.exception("QR code cleanup failed")
        session.rollback()
        raise
    finally:
        session.close()
