"""Authenticated admin endpoints for offer verification."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from configs import Settings, get_settings
from src.dependencies import (
    get_coordinator,
    get_offer_service,
    get_token_service,
    get_verification_engine,
)
from src.models.guard_models import (
    ErrorCode,
    ManualVerifyRequest,
    MetricsResponse,
    PriceTokenResponse,
    VerificationResponse,
    VerifyBatchRequest,
    VerifyBatchResponse,
)
from src.services.auth import require_admin
from src.services.offers.offer_service import OfferService
from src.services.tokens.token_service import (
    PRICE_NAMESPACE,
    TokenCreateError,
    TokenService,
)
from src.services.verification.coordinator import (
    UnknownProductTypeError,
    VerificationCoordinator,
)
from src.services.verification.engine import VerificationEngine
from src.services.verification.models import Outcome, Trigger, VerifyOptions

logger = logging.getLogger("admin.controllers")

admin_router = APIRouter(
    prefix="/admin/offers",
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
)

_VERIFIED = (Outcome.VERIFIED_FRESH.value, Outcome.VERIFIED_STALE.value)


@admin_router.post("/verify-batch")
async def verify_batch(
    data: VerifyBatchRequest,
    coordinator: VerificationCoordinator = Depends(get_coordinator),
) -> VerifyBatchResponse:
    """
    Verify many offers in one call.

    Args:
        data (VerifyBatchRequest): Optional product type filter, limit and
        force flag.

    Returns:
        VerifyBatchResponse with attempted/verified/failed/skipped counters.
    """
    try:
        summary = await coordinator.verify_all(
            product_type=data.type,
            trigger=Trigger.BATCH,
            force=data.force,
            limit=data.limit,
        )
    except UnknownProductTypeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    return VerifyBatchResponse(success=True, result=summary)


@admin_router.get("/metrics")
def verification_metrics(
    hours: int = Query(default=24, ge=1, le=24 * 30),
    coordinator: VerificationCoordinator = Depends(get_coordinator),
) -> MetricsResponse:
    """Aggregate verification outcomes over the last ``hours``."""
    return coordinator.metrics(hours)


@admin_router.post("/{offer_id}/verify")
async def verify_offer(
    offer_id: str,
    data: Optional[ManualVerifyRequest] = None,
    engine: VerificationEngine = Depends(get_verification_engine),
) -> VerificationResponse:
    """Run a manual verification of a single offer."""
    options = VerifyOptions(
        trigger=Trigger.MANUAL,
        force=data.force if data is not None else True,
        strict_guard=True,
        allow_unverified_redirect=False,
    )
    result = await engine.verify(offer_id, options)
    if result.code == ErrorCode.OFFER_NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Offer not found")
    return result.to_response()


@admin_router.post("/{offer_id}/price-token")
def mint_price_token(
    offer_id: str,
    offers: OfferService = Depends(get_offer_service),
    tokens: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_settings),
) -> PriceTokenResponse:
    """Sign the price the listing will display for ``offer_id``."""
    offer = offers.get(offer_id)
    if offer is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Offer not found")

    if offer.verification_status in _VERIFIED and offer.verified_price > 0:
        display_price, verified_at = offer.verified_price, offer.verified_at
    else:
        display_price, verified_at = offer.listed_price, None

    try:
        token = tokens.create_price_token(
            offer.offer_id, display_price, verified_at, settings.PRICE_TOKEN_TTL_SEC
        )
    except TokenCreateError as exc:
        logger.error("Could not mint price token for %s: %s", offer_id, exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        )

    check = tokens.verify_token(PRICE_NAMESPACE, token, offer.offer_id)
    return PriceTokenResponse(
        offer_id=offer.offer_id,
        listed_price=display_price,
        price_token=token,
        expires_at=float(check.payload["expiresAt"]) if check.payload else 0.0,
    )
