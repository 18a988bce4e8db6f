import logging
import time
import uuid

from fastapi import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.metrics import REQUEST_COUNT, REQUEST_ERRORS, REQUEST_LATENCY
from app.services.auth import decode_access_token, extract_bearer_token

logger = logging.getLogger(__name__)

# Provider callbacks and probes carry no member identity.
_ANONYMOUS_PREFIXES = (
    "/billing/webhook",
    "/api/v1/billing/webhook",
    "/health",
    "/metrics",
)


def _extract_actor_id(request: Request) -> str | None:
    if request.url.path.startswith(_ANONYMOUS_PREFIXES):
        return None
    token = extract_bearer_token(request.headers.get("authorization"))
    if not token:
        return None
    try:
        payload = decode_access_token(token)
    except HTTPException:
        return None
    return str(payload["sub"])


def _request_path(request: Request) -> str:
    route = request.scope.get("route")
    if route and hasattr(route, "path"):
        return route.path
    return request.url.path


def _observe(request: Request, status_code: int, started: float) -> dict:
    """Record request metrics and return the structured log context."""
    duration = time.monotonic() - started
    path = _request_path(request)
    labels = (request.method, path, str(status_code))
    REQUEST_COUNT.labels(*labels).inc()
    REQUEST_LATENCY.labels(*labels).observe(duration)
    if status_code >= 500:
        REQUEST_ERRORS.labels(*labels).inc()
    return {
        "request_id": request.state.request_id,
        "actor_id": getattr(request.state, "actor_id", None),
        "path": path,
        "method": request.method,
        "status": status_code,
        "duration_ms": round(duration * 1000.0, 2),
    }


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request.state.request_id = request.headers.get("x-request-id") or str(
            uuid.uuid4()
        )
        request.state.actor_id = _extract_actor_id(request)
        started = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_failed", extra=_observe(request, 500, started))
            raise
        logger.info(
            "request_completed", extra=_observe(request, response.status_code, started)
        )
        response.headers["x-request-id"] = request.state.request_id
        return response
