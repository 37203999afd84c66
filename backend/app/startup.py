"""Seed helper for local development."""

import logging
from sqlalchemy.orm import Session

from src.repositories.offers.database import SessionLocal
from src.repositories.offers.models.offer_model import Offer
from src.services.offers.offer_ids import build_offer_id

logger = logging.getLogger(__name__)


def create_mock_data() -> None:
    """Populate the database with example offers when empty."""
    db: Session = SessionLocal()
    try:
        existing = db.query(Offer).count()
        if existing:
            logger.info("Offers already present (%d records). Skipping.", existing)
            return

        logger.info("Creating demo offers for the redirect guard flows.")
        sample_offers = [
            {
                "offer_id": "coupang-123",
                "product_id": "lg-gram-16",
                "product_type": "laptop",
                "platform": "coupang",
                "store_name": "쿠팡",
                "source_url": "https://www.coupang.com/vp/products/123",
                "listed_price": 1_000_000,
            },
            {
                "product_id": "dell-u2723qe",
                "product_type": "monitor",
                "platform": "coupang",
                "store_name": "쿠팡",
                "source_url": "https://www.coupang.com/vp/products/2723",
                "listed_price": 689_000,
            },
            {
                "product_id": "mac-mini-m4",
                "product_type": "desktop",
                "platform": "11st",
                "store_name": "11번가",
                "source_url": "https://www.11st.co.kr/products/4400",
                "listed_price": 890_000,
            },
        ]
        for offer in sample_offers:
            offer.setdefault(
                "offer_id",
                build_offer_id(offer["product_id"], offer["store_name"], offer["source_url"]),
            )
            db.add(Offer(**offer))
        db.commit()
        logger.info("Demo offers inserted with success.")
    except Exception as exc:  # pragma: no cover - seeding must not block startup
        logger.error("Failed to seed demo offers: %s", exc)
        db.rollback()
    finally:
        db.close()


if __name__ == "__main__":  # pragma: no cover
    create_mock_data()
