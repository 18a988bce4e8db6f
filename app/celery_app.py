import logging
import os
from datetime import timedelta

from celery import Celery

from app.config import settings

logger = logging.getLogger(__name__)


def _env_value(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return value


def get_celery_config() -> dict:
    broker = _env_value("CELERY_BROKER_URL") or settings.redis_url
    backend = _env_value("CELERY_RESULT_BACKEND") or settings.redis_url
    timezone = _env_value("CELERY_TIMEZONE") or "UTC"
    return {
        "broker_url": broker,
        "result_backend": backend,
        "timezone": timezone,
        "task_ignore_result": True,
    }


def build_beat_schedule() -> dict:
    interval_seconds = max(settings.qr_cleanup_interval_seconds, 1)
    return {
        "cleanup_expired_qr_codes": {
            "task": "app.tasks.cleanup_expired_qr_codes",
            "schedule": timedelta(seconds=interval_seconds),
        }
    }


celery_app = Celery("community")
celery_app.conf.update(get_celery_config())
celery_app.conf.beat_schedule = build_beat_schedule()
celery_app.conf.include = ["app.tasks"]
