from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.qr import ScanStatus


class QRCodeGenerated(BaseModel):
    code: str
    display_url: str
    expires_at: datetime
    image: str


class MemberView(BaseModel):
    name: str | None = None
    avatar_url: str | None = None
    tier_name: str | None = None
    benefits: list[str] = Field(default_factory=list)
    is_paid_member: bool = False


class QRVerifyResponse(BaseModel):
    status: ScanStatus
    member: MemberView | None = None
    expires_at: datetime | None = None


class ScanLocation(BaseModel):
    latitude: float
    longitude: float


class ScanRequest(BaseModel):
    store_name: str = Field(min_length=1, max_length=200)
    location: ScanLocation | None = None


class ScanRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: UUID
    store_name: str
    scanned_at: datetime
    latitude: float | None = None
    longitude: float | None = None


class ScanResponse(BaseModel):
    status: ScanStatus
    scan: ScanRead | None = None
