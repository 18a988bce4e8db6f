from fastapi import Depends, Header, HTTPException, Request

from app.db import SessionLocal
from app.services.auth import authenticate, extract_bearer_token


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_user(
    request: Request,
    authorization: str | None = Header(default=None),
) -> dict:
    token = extract_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    payload = authenticate(token)
    user_id = str(payload["sub"])
    request.state.actor_id = user_id
    return {"user_id": user_id, "token": token, "exp": payload.get("exp")}


def optional_user(
    request: Request,
    authorization: str | None = Header(default=None),
) -> dict | None:
    """Identify the caller when a valid token is presented, otherwise None."""
    token = extract_bearer_token(authorization)
    if not token:
        return None
    try:
        return require_user(request, authorization)
    except HTTPException:
        return None

