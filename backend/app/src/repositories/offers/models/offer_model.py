"""SQLAlchemy model for retailer offers guarded at click time."""

from sqlalchemy import Column, Float, Integer, String, Text, TIMESTAMP
from sqlalchemy.sql import func

from src.repositories.offers.database import Base


class Offer(Base):  # type: ignore[misc]
    """One retailer's listing of one product.

    Rows are created by the catalog ingestion; only the verification
    columns are written by this service.
    """

    __tablename__ = "offers"

    offer_id = Column(String(64), primary_key=True)
    product_id = Column(String(120), nullable=True)
    product_type = Column(String(32), nullable=True, index=True)
    platform = Column(String(32), nullable=False, default="unknown")
    store_name = Column(String(120), nullable=True)
    source_url = Column(Text, nullable=False)
    listed_price = Column(Integer, nullable=False, default=0)

    verification_status = Column(String(20), nullable=False, default="unverified")
    verified_price = Column(Integer, nullable=False, default=0)
    verified_at = Column(Float, nullable=True)
    last_error_code = Column(String(64), nullable=True)
    last_error_message = Column(Text, nullable=True)

    created_at = Column(TIMESTAMP(timezone=False), server_default=func.now())
    updated_at = Column(
        TIMESTAMP(timezone=False), nullable=True, onupdate=func.now()
    )

    __mapper_args__ = {"eager_defaults": True}
