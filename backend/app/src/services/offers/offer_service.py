"""Service layer helpers for offers and the verification metric log."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from src.repositories.offers.crud.offers_crud import CRUDOffer
from src.repositories.offers.crud.verification_metrics_crud import (
    CRUDVerificationMetric,
)
from src.repositories.offers.database import SessionLocal
from src.repositories.offers.models.verification_metric_model import (
    VerificationMetric,
)
from src.repositories.offers.schemas.offer_schema import (
    OfferCreate,
    OfferSnapshot,
    OfferVerificationUpdate,
)


@dataclass(slots=True)
class MetricRecord:
    """Detached copy of one verification metric row."""

    offer_id: str
    trigger: str
    outcome: str
    price_changed: bool
    blocked: bool
    degraded: bool
    error_code: Optional[str]
    recorded_at: float


class OfferService:
    """Provide session-scoped operations over offers and metrics.

    Every call opens and closes its own session, so the service can be
    shared by request handlers and background jobs alike.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        offers: Optional[CRUDOffer] = None,
        metrics: Optional[CRUDVerificationMetric] = None,
    ) -> None:
        self.session_factory = session_factory
        self.offers = offers or CRUDOffer()
        self.metrics = metrics or CRUDVerificationMetric()

    def get(self, offer_id: str) -> Optional[OfferSnapshot]:
        db = self.session_factory()
        try:
            offer = self.offers.get(db, offer_id)
            return OfferSnapshot.model_validate(offer) if offer else None
        finally:
            db.close()

    def list(
        self, product_type: Optional[str] = None, limit: Optional[int] = None
    ) -> List[OfferSnapshot]:
        db = self.session_factory()
        try:
            return [
                OfferSnapshot.model_validate(offer)
                for offer in self.offers.list(db, product_type, limit)
            ]
        finally:
            db.close()

    def count(self, product_type: Optional[str] = None) -> int:
        db = self.session_factory()
        try:
            return self.offers.count(db, product_type)
        finally:
            db.close()

    def status_counts(self) -> Dict[str, int]:
        db = self.session_factory()
        try:
            return self.offers.count_by_status(db)
        finally:
            db.close()

    def create(self, offer_in: OfferCreate) -> OfferSnapshot:
        db = self.session_factory()
        try:
            return OfferSnapshot.model_validate(self.offers.create(db, offer_in))
        finally:
            db.close()

    def record_verification(
        self, offer_id: str, update: OfferVerificationUpdate
    ) -> Optional[OfferSnapshot]:
        db = self.session_factory()
        try:
            offer = self.offers.get(db, offer_id)
            if offer is None:
                return None
            offer = self.offers.update_verification(db, offer, update)
            return OfferSnapshot.model_validate(offer)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def append_metric(self, record: MetricRecord) -> None:
        db = self.session_factory()
        try:
            self.metrics.append(
                db,
                VerificationMetric(
                    offer_id=record.offer_id,
                    trigger=record.trigger,
                    outcome=record.outcome,
                    price_changed=record.price_changed,
                    blocked=record.blocked,
                    degraded=record.degraded,
                    error_code=record.error_code,
                    recorded_at=record.recorded_at,
                ),
            )
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def metrics_since(self, since_ts: float) -> List[MetricRecord]:
        db = self.session_factory()
        try:
            return [
                MetricRecord(
                    offer_id=row.offer_id,
                    trigger=row.trigger,
                    outcome=row.outcome,
                    price_changed=bool(row.price_changed),
                    blocked=bool(row.blocked),
                    degraded=bool(row.degraded),
                    error_code=row.error_code,
                    recorded_at=float(row.recorded_at),
                )
                for row in self.metrics.since(db, since_ts)
            ]
        finally:
            db.close()
