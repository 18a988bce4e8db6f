import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import TierNotFound
from app.models.membership import BillingInterval, MembershipTier
from app.services.common import coerce_uuid

logger = logging.getLogger(__name__)

FREE_TIER_NAME = "Free Member"
PAID_TIER_NAME = "Monthly Membership"

DEFAULT_TIERS = [
    {
        "name": FREE_TIER_NAME,
        "price": Decimal("0.00"),
        "benefits": [
            "Access to public events",
            "Community newsletter",
            "Basic support",
        ],
        "billing_interval": BillingInterval.month,
    },
    {
        "name": PAID_TIER_NAME,
        "price": None,  # MEMBERSHIP_PRICE
        "benefits": [
            "Access to all community events",
            "Monthly newsletter",
            "Member-only resources",
            "Priority support",
        ],
        "billing_interval": BillingInterval.month,
    },
]


class MembershipTiers:
    @staticmethod
    def find_by_id(db: Session, tier_id: object) -> MembershipTier:
        tier = db.get(MembershipTier, coerce_uuid(tier_id))
        if not tier:
            raise TierNotFound("Membership tier not found")
        return tier

    @staticmethod
    def find_free_tier(db: Session) -> MembershipTier:
        """The cheapest zero-priced tier."""
        tier = db.scalars(
            select(MembershipTier)
            .where(MembershipTier.price == 0)
            .order_by(MembershipTier.created_at)
            .limit(1)
        ).first()
        if not tier:
            raise TierNotFound("Free membership tier is not configured")
        return tier

    @staticmethod
    def find_all(db: Session, sort_by_price: bool = True) -> list[MembershipTier]:
        stmt = select(MembershipTier)
        if sort_by_price:
            stmt = stmt.order_by(MembershipTier.price.asc(), MembershipTier.name)
        else:
            stmt = stmt.order_by(MembershipTier.created_at)
        return list(db.scalars(stmt).all())

    @staticmethod
    def seed_default_tiers(db: Session) -> list[MembershipTier]:
        """Create the free and monthly tiers if missing; refresh provider refs.

        Safe to run on every startup.
        """
        seeded: list[MembershipTier] = []
        for default in DEFAULT_TIERS:
            tier = db.scalars(
                select(MembershipTier).where(MembershipTier.name == default["name"])
            ).first()
            price = default["price"]
            if price is None:
                price = Decimal(settings.membership_price)
            if tier is None:
                tier = MembershipTier(
                    name=default["name"],
                    price=price,
                    benefits=list(default["benefits"]),
                    billing_interval=default["billing_interval"],
                )
                db.add(tier)
                logger.info("Seeded membership tier: %s", default["name"])
            if tier.price > 0:
                # Provider ids follow the environment the app runs against
                if settings.stripe_price_id:
                    tier.external_price_ref = settings.stripe_price_id
                if settings.stripe_product_id:
                    tier.external_product_ref = settings.stripe_product_id
            seeded.append(tier)
        db.commit()
        for tier in seeded:
            db.refresh(tier)
        return seeded


membership_tiers = MembershipTiers()
