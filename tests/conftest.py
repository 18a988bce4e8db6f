import os
import sys
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from types import ModuleType
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import DateTime, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

# Create a test engine BEFORE any app imports
_test_engine = create_engine(
    "sqlite+pysqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


class TestBase(DeclarativeBase):
    pass


_TestSessionLocal = sessionmaker(bind=_test_engine, autoflush=False, autocommit=False)


class TimestampMixin:
    """Audit columns for the in-memory test schema."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )


mock_db_module = ModuleType('app.db')
mock_db_module.Base = TestBase
mock_db_module.TimestampMixin = TimestampMixin
mock_db_module.SessionLocal = _TestSessionLocal
mock_db_module.get_engine = lambda: _test_engine

# Also mock app.config to prevent .env loading
mock_config_module = ModuleType('app.config')


class MockSettings:
    database_url = "sqlite+pysqlite:///:memory:"
    redis_url = "redis://localhost:6379/0"
    secret_key = "test-secret-key"
    db_pool_size = 5
    db_max_overflow = 10
    db_pool_timeout = 30
    db_pool_recycle = 1800
    brand_name = "Test Community"
    frontend_url = "https://community.test"
    stripe_secret_key = ""
    stripe_webhook_secret = ""
    stripe_price_id = "price_monthly_test"
    stripe_product_id = "prod_membership_test"
    membership_price = "20.00"
    free_membership_days = 365
    grace_period_days = 7
    max_failed_payment_attempts = 3
    qr_code_ttl_seconds = 600
    qr_cleanup_interval_seconds = 300
    cors_origins = ""


mock_config_module.settings = MockSettings()
mock_config_module.Settings = MockSettings
mock_config_module.validate_settings = lambda s: []

# Insert mocks before any app imports
sys.modules['app.config'] = mock_config_module
sys.modules['app.db'] = mock_db_module

os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ALGORITHM"] = "HS256"

from app.models.billing import Payment, WebhookEvent  # noqa: E402, F401
from app.models.membership import (  # noqa: E402
    Membership,
    MembershipStatus,
    MembershipTier,
)
from app.models.qr import QRCode, QRScan  # noqa: E402, F401
from app.models.user import User  # noqa: E402

TestBase.metadata.create_all(_test_engine)

Base = TestBase


@pytest.fixture(scope="session")
def engine():
    return _test_engine


@pytest.fixture()
def db_session(engine):
    """Create a database session for testing.

    Uses the same connection as the StaticPool engine to ensure
    all operations see the same data.
    """
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()


def _unique_email() -> str:
    return f"test-{uuid.uuid4().hex}@example.com"


@pytest.fixture()
def user(db_session):
    user = User(
        first_name="Amina",
        last_name="Yusuf",
        email=_unique_email(),
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture()
def tiers(db_session):
    from app.services.tiers import membership_tiers

    free, paid = membership_tiers.seed_default_tiers(db_session)
    return {"free": free, "paid": paid}


@pytest.fixture()
def free_tier(tiers):
    return tiers["free"]


@pytest.fixture()
def paid_tier(tiers):
    return tiers["paid"]


@pytest.fixture()
def premium_tier(db_session, tiers):
    """A second paid tier for tier changes."""
    name = "Annual Membership"
    tier = db_session.query(MembershipTier).filter(MembershipTier.name == name).first()
    if tier:
        return tier
    tier = MembershipTier(
        name=name,
        price=Decimal("200.00"),
        external_price_ref="price_annual_test",
        external_product_ref="prod_membership_test",
        benefits=["Everything in monthly", "Annual gala ticket"],
    )
    db_session.add(tier)
    db_session.commit()
    db_session.refresh(tier)
    return tier


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Capture outgoing email instead of talking to SMTP."""
    from app.services import email as email_service

    sent: list[dict] = []

    def _send(to_email, subject, body_html, body_text=None):
        sent.append({"to": to_email, "subject": subject, "text": body_text})
        return True

    monkeypatch.setattr(email_service, "send_email", _send)
    return sent


@pytest.fixture(autouse=True)
def redis_client(monkeypatch):
    from app.services import auth as auth_service

    client = MagicMock()
    client.exists.return_value = 0
    monkeypatch.setattr(auth_service.revocation_store, "_client", client)
    return client


@pytest.fixture()
def gateway():
    """Stripe gateway double with provider-shaped responses."""
    from app.services.billing_gateway import StripeGateway

    mock = MagicMock(spec=StripeGateway)
    now = int(datetime.now(UTC).timestamp())
    mock.create_customer.return_value = f"cus_{uuid.uuid4().hex[:14]}"
    mock.create_subscription.side_effect = lambda *args, **kwargs: {
        "id": f"sub_{uuid.uuid4().hex[:14]}",
        "status": "active",
        "current_period_start": now,
        "current_period_end": now + 30 * 86400,
        "latest_invoice": {"payment_intent": {"client_secret": "pi_secret_test"}},
    }
    mock.update_subscription.return_value = {
        "current_period_start": now,
        "current_period_end": now + 30 * 86400,
    }
    mock.set_subscription_cancel_at_period_end.return_value = {}
    mock.cancel_subscription.return_value = {}
    mock.refund.return_value = {"id": "re_test"}
    mock.confirm_payment_intent.return_value = {"id": "pi_test", "status": "succeeded"}
    return mock


@pytest.fixture()
def membership_service(db_session, gateway):
    from app.services.membership import MembershipService

    return MembershipService(db_session, gateway)


# ============ FastAPI Test Client Fixtures ============


@pytest.fixture()
def client(db_session):
    """Create a test client with database dependency override."""
    from app.api.deps import get_db as api_get_db
    from app.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[api_get_db] = override_get_db

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _create_access_token(user_id: str, minutes: int = 15) -> str:
    """Create a JWT access token for testing."""
    secret = os.getenv("JWT_SECRET", "test-secret")
    algorithm = os.getenv("JWT_ALGORITHM", "HS256")
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "jti": uuid.uuid4().hex,
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
        "iat": int(now.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


@pytest.fixture()
def auth_token(user):
    return _create_access_token(str(user.id))


@pytest.fixture()
def auth_headers(auth_token):
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture()
def make_paid_membership(db_session):
    """Insert a current paid membership directly."""

    def _make(user, tier, **overrides) -> Membership:
        now = datetime.now(UTC)
        values = {
            "user_id": user.id,
            "tier_id": tier.id,
            "external_customer_ref": f"cus_{uuid.uuid4().hex[:14]}",
            "external_subscription_ref": f"sub_{uuid.uuid4().hex[:14]}",
            "status": MembershipStatus.active,
            "current_period_start": now,
            "current_period_end": now + timedelta(days=30),
            "cancel_at_period_end": False,
            "failed_payment_attempts": 0,
        }
        values.update(overrides)
        membership = Membership(**values)
        db_session.add(membership)
        db_session.commit()
        db_session.refresh(membership)
        return membership

    return _make
