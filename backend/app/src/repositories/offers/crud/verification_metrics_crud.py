"""CRUD helpers for the verification metric log."""

from typing import List

from sqlalchemy.orm import Session

from src.repositories.offers.models.verification_metric_model import (
    VerificationMetric,
)


class CRUDVerificationMetric:
    """Append-only access to verification metrics."""

    def append(self, db: Session, metric: VerificationMetric) -> VerificationMetric:
        db.add(metric)
        db.commit()
        return metric

    def since(self, db: Session, since_ts: float) -> List[VerificationMetric]:
        return (
            db.query(VerificationMetric)
            .filter(VerificationMetric.recorded_at >= since_ts)
            .order_by(VerificationMetric.recorded_at)
            .all()
        )
