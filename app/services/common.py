"""Shared service utilities: UUID coercion, timestamps, money conversion."""
from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from app.errors import InvalidInput


def coerce_uuid(value: Any) -> uuid.UUID | None:
    """Convert a string or UUID to UUID, or return None."""
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise InvalidInput(f"Invalid identifier: {value}") from exc


def require_uuid(value: Any) -> uuid.UUID:
    """Convert a string or UUID to UUID, raising InvalidInput if None."""
    result = coerce_uuid(value)
    if result is None:
        raise InvalidInput("Identifier is required")
    return result


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is timezone-aware (UTC). SQLite doesn't preserve tz info."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def from_timestamp(value: int | float | None) -> datetime | None:
    """Convert a provider epoch timestamp into an aware datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


def to_minor_units(amount: Decimal) -> int:
    """Decimal currency amount to integer cents."""
    cents = (Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


def from_minor_units(amount: int | None) -> Decimal:
    """Integer cents to a two-place Decimal."""
    return (Decimal(amount or 0) / 100).quantize(Decimal("0.01"))
