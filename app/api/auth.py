from fastapi import APIRouter, Depends, status

from app.api.deps import require_user
from app.services import auth as auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(auth=Depends(require_user)):
    auth_service.logout(auth["token"])
