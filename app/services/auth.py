"""Bearer-token verification and logout revocation.

Tokens are issued elsewhere; this service only verifies HS256 JWTs and keeps
a Redis-backed revocation list so a logged-out token stops working before it
expires.
"""
from __future__ import annotations

import hashlib
import logging
import os
from datetime import UTC, datetime

import redis
from fastapi import HTTPException
from jose import JWTError, jwt

from app.config import settings

logger = logging.getLogger(__name__)

REVOKED_KEY_PREFIX = "revoked_token:"


def _jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET")
    if not secret:
        raise HTTPException(status_code=500, detail="JWT secret not configured")
    return secret


def _jwt_algorithm() -> str:
    return os.getenv("JWT_ALGORITHM", "HS256")


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip() or None
    return None


def decode_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, _jwt_secret(), algorithms=[_jwt_algorithm()])
    except JWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc
    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")
    return payload


class TokenRevocationStore:
    """Revoked tokens keyed by SHA-256 hash, expiring with the token itself."""

    def __init__(self, client: redis.Redis | None = None) -> None:
        self._client = client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.Redis.from_url(
                settings.redis_url, decode_responses=True, socket_timeout=2
            )
        return self._client

    def revoke(self, token: str, expires_at: int | None) -> None:
        now = int(datetime.now(UTC).timestamp())
        ttl = (expires_at - now) if expires_at else 0
        if ttl <= 0:
            return
        self.client.set(REVOKED_KEY_PREFIX + hash_token(token), "1", ex=ttl)
        logger.info("Revoked access token for %ss", ttl)

    def is_revoked(self, token: str) -> bool:
        try:
            return bool(self.client.exists(REVOKED_KEY_PREFIX + hash_token(token)))
        except redis.RedisError as exc:
            # Access tokens are short-lived; an outage must not lock everyone out.
            logger.warning("Token revocation check unavailable: %s", exc)
            return False


revocation_store = TokenRevocationStore()


def authenticate(token: str) -> dict:
    payload = decode_access_token(token)
    if revocation_store.is_revoked(token):
        raise HTTPException(status_code=401, detail="Token revoked")
    return payload


def logout(token: str) -> None:
    payload = decode_access_token(token)
    try:
        revocation_store.revoke(token, payload.get("exp"))
    except redis.RedisError as exc:
        logger.error("Failed to revoke token: %s", exc)
        raise HTTPException(status_code=503, detail="Logout unavailable") from exc
