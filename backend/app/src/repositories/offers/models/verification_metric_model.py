"""SQLAlchemy model for the append-only verification metric log."""

from sqlalchemy import Boolean, Column, Float, Integer, String

from src.repositories.offers.database import Base


class VerificationMetric(Base):  # type: ignore[misc]
    """One verification attempt: which trigger ran it and how it ended."""

    __tablename__ = "verification_metrics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    offer_id = Column(String(64), nullable=False, index=True)
    trigger = Column(String(16), nullable=False)
    outcome = Column(String(20), nullable=False)
    price_changed = Column(Boolean, nullable=False, default=False)
    blocked = Column(Boolean, nullable=False, default=False)
    degraded = Column(Boolean, nullable=False, default=False)
    error_code = Column(String(64), nullable=True)
    recorded_at = Column(Float, nullable=False, index=True)
