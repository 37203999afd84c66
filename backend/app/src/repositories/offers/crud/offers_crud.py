"""CRUD helpers for offers."""

from typing import List, Optional

from sqlalchemy.orm import Session

from src.repositories.offers.models.offer_model import Offer
from src.repositories.offers.schemas.offer_schema import (
    OfferCreate,
    OfferVerificationUpdate,
)


class CRUDOffer:
    """Database access for offers."""

    def get(self, db: Session, offer_id: str) -> Optional[Offer]:
        return db.query(Offer).filter(Offer.offer_id == offer_id).first()

    def list(
        self,
        db: Session,
        product_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Offer]:
        query = db.query(Offer)
        if product_type:
            query = query.filter(Offer.product_type == product_type)
        query = query.order_by(Offer.product_type, Offer.offer_id)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count(self, db: Session, product_type: Optional[str] = None) -> int:
        query = db.query(Offer)
        if product_type:
            query = query.filter(Offer.product_type == product_type)
        return query.count()

    def count_by_status(self, db: Session) -> dict[str, int]:
        counts: dict[str, int] = {}
        for (status,) in db.query(Offer.verification_status).all():
            counts[status] = counts.get(status, 0) + 1
        return counts

    def create(self, db: Session, offer_in: OfferCreate) -> Offer:
        offer = Offer(**offer_in.model_dump())
        db.add(offer)
        db.commit()
        db.refresh(offer)
        return offer

    def update_verification(
        self,
        db: Session,
        offer: Offer,
        update: OfferVerificationUpdate,
    ) -> Offer:
        data = update.model_dump(exclude_unset=True)
        for field, value in data.items():
            setattr(offer, field, value)
        db.add(offer)
        db.commit()
        db.refresh(offer)
        return offer
