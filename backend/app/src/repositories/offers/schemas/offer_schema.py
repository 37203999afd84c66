"""Pydantic schemas for offers."""

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, StringConstraints


class OfferBase(BaseModel):
    """Shared attributes for offers."""

    offer_id: Annotated[str, StringConstraints(min_length=1, max_length=64)]
    product_id: Optional[str] = None
    product_type: Optional[str] = None
    platform: str = "unknown"
    store_name: Optional[str] = None
    source_url: Annotated[str, StringConstraints(min_length=1)]
    listed_price: int = 0


class OfferCreate(OfferBase):
    """Payload used by the catalog ingestion to register an offer."""

    pass


class OfferVerificationUpdate(BaseModel):
    """Verification columns written after a live price check."""

    verification_status: str
    verified_price: Optional[int] = None
    verified_at: Optional[float] = None
    last_error_code: Optional[str] = None
    last_error_message: Optional[str] = None


class OfferSnapshot(OfferBase):
    """Read model of an offer handed to the verification engine."""

    verification_status: str = "unverified"
    verified_price: int = 0
    verified_at: Optional[float] = None
    last_error_code: Optional[str] = None
    last_error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True,
    }
