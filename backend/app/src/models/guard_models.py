"""Pydantic models and error taxonomy for the redirect and admin endpoints."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorCode(str, Enum):
    """Typed failures surfaced by the redirect guard and its components."""

    TOKEN_MISSING = "TOKEN_MISSING"
    TOKEN_INVALID = "TOKEN_INVALID"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    OFFER_NOT_FOUND = "OFFER_NOT_FOUND"
    VERIFY_FAILED = "VERIFY_FAILED"
    VERIFY_TIMEOUT = "VERIFY_TIMEOUT"
    CONFIRM_TOKEN_CREATE_FAILED = "CONFIRM_TOKEN_CREATE_FAILED"
    CONFIRM_TOKEN_INVALID = "CONFIRM_TOKEN_INVALID"
    UPSTREAM_AUTH_FAILED = "UPSTREAM_AUTH_FAILED"


class GuardErrorResponse(BaseModel):
    """Body of a 409 answer from the redirect endpoints."""

    error: str = Field(..., description="Human readable failure message.")
    code: ErrorCode = Field(..., description="Typed failure code.")
    offer_id: str = Field(..., alias="offerId")

    model_config = ConfigDict(populate_by_name=True)


class ConfirmRequiredResponse(BaseModel):
    """Body returned when the user must acknowledge a price change."""

    status: str = Field(default="confirm_required")
    offer_id: str = Field(..., alias="offerId")
    old_price: int = Field(..., alias="oldPrice", description="Price shown at listing time.")
    new_price: int = Field(..., alias="newPrice", description="Price found at the retailer.")
    confirm_token: str = Field(..., alias="confirmToken")
    confirm_url: str = Field(..., alias="confirmUrl")

    model_config = ConfigDict(populate_by_name=True)


class VerifyBatchRequest(BaseModel):
    """Admin payload to trigger a batch verification."""

    type: Optional[str] = Field(default=None, description="Product type filter.")
    limit: Optional[int] = Field(default=None, ge=1)
    force: bool = False


class BatchSummary(BaseModel):
    """Outcome counters of one batch verification run."""

    product_type: Optional[str] = Field(default=None, alias="productType")
    total_offers: int = Field(default=0, alias="totalOffers")
    attempted: int = 0
    verified: int = 0
    failed: int = 0
    skipped: int = 0

    model_config = ConfigDict(populate_by_name=True)


class VerifyBatchResponse(BaseModel):
    success: bool = True
    result: BatchSummary


class ManualVerifyRequest(BaseModel):
    force: bool = True


class VerificationResponse(BaseModel):
    """Public view of a single verification result."""

    ok: bool
    offer_id: str = Field(..., alias="offerId")
    trigger: str
    outcome: str
    price_changed: bool = Field(default=False, alias="priceChanged")
    listed_price: Optional[int] = Field(default=None, alias="listedPrice")
    current_price: Optional[int] = Field(default=None, alias="currentPrice")
    verified_at: Optional[float] = Field(default=None, alias="verifiedAt")
    redirect_url: Optional[str] = Field(default=None, alias="redirectUrl")
    degraded: bool = False
    skipped: bool = False
    code: Optional[ErrorCode] = None
    message: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class PriceTokenResponse(BaseModel):
    offer_id: str = Field(..., alias="offerId")
    listed_price: int = Field(..., alias="listedPrice")
    price_token: str = Field(..., alias="priceToken")
    expires_at: float = Field(..., alias="expiresAt")

    model_config = ConfigDict(populate_by_name=True)


class MetricsResponse(BaseModel):
    """Aggregated verification counters for a time window."""

    window_hours: int = Field(..., alias="windowHours")
    by_outcome: Dict[str, int] = Field(default_factory=dict, alias="byOutcome")
    by_trigger: Dict[str, int] = Field(default_factory=dict, alias="byTrigger")
    price_mismatch_rate: float = 0.0
    verification_success_rate: float = 0.0
    redirect_block_rate: float = 0.0
    stale_offer_rate: float = 0.0
    totals: Dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class DeeplinkRequest(BaseModel):
    urls: Optional[List[str]] = None
    sub_id: Optional[str] = Field(default=None, alias="subId")

    model_config = ConfigDict(populate_by_name=True)


class DeeplinkLink(BaseModel):
    original_url: str = Field(..., alias="originalUrl")
    affiliate_url: str = Field(..., alias="affiliateUrl")
    shorten_url: str = Field(..., alias="shortenUrl")

    model_config = ConfigDict(populate_by_name=True)


class DeeplinkResponse(BaseModel):
    links: List[DeeplinkLink] = Field(default_factory=list)
    degraded: bool = False
    warning: Optional[str] = None


class ConvertResponse(DeeplinkLink):
    """Single-URL conversion answer of ``GET /affiliate/convert``."""

    warning: Optional[str] = None
