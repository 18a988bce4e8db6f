from app.models.user import User  # noqa: F401
from app.models.membership import (  # noqa: F401
    CURRENT_STATUSES,
    BillingInterval,
    Membership,
    MembershipStatus,
    MembershipTier,
)
from app.models.billing import (  # noqa: F401
    Payment,
    PaymentStatus,
    TransactionType,
    WebhookEvent,
    WebhookEventStatus,
)
from app.models.qr import QRCode, QRScan, ScanStatus  # noqa: F401
