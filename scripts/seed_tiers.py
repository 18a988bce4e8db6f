"""Seed the free and monthly membership tiers."""

from dotenv import load_dotenv

from app.db import SessionLocal
from app.services.tiers import membership_tiers


def main() -> None:
    load_dotenv()
    db = SessionLocal()
    try:
        tiers = membership_tiers.seed_default_tiers(db)
        for tier in tiers:
            print(f"{tier.name}: {tier.price} ({tier.external_price_ref or 'no price ref'})")
        print("Membership tier seed complete.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
