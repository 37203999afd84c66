"""Batch verification over many offers and aggregated verification metrics."""

from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Callable, Dict, Optional, Sequence

from src.models.guard_models import BatchSummary, MetricsResponse
from src.repositories.offers.schemas.offer_schema import OfferSnapshot
from src.services.deeplink.converter import DeeplinkConverter
from src.services.offers.offer_service import OfferService

from .engine import VerificationEngine
from .models import Outcome, Trigger, VerifyOptions

logger = logging.getLogger("verification.coordinator")

_VERIFIED = (Outcome.VERIFIED_FRESH.value, Outcome.VERIFIED_STALE.value)


class UnknownProductTypeError(ValueError):
    """Raised when a batch is filtered by a product type we do not know."""


class VerificationCoordinator:
    """Drive the engine across offers and summarize what happened."""

    def __init__(
        self,
        engine: VerificationEngine,
        offers: OfferService,
        converter: Optional[DeeplinkConverter] = None,
        product_types: Sequence[str] = (),
        sub_id: Optional[str] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.engine = engine
        self.offers = offers
        self.converter = converter or engine.converter
        self.product_types = tuple(product_types)
        self.sub_id = sub_id
        self.clock = clock or engine.clock or time.time

    async def verify_all(
        self,
        product_type: Optional[str] = None,
        trigger: Trigger = Trigger.BATCH,
        force: bool = False,
        limit: Optional[int] = None,
    ) -> BatchSummary:
        """Verify up to ``limit`` offers; one offer failing never stops the batch."""
        if product_type and self.product_types and product_type not in self.product_types:
            raise UnknownProductTypeError(
                f"type must be one of: {', '.join(self.product_types)}"
            )

        summary = BatchSummary(
            product_type=product_type, total_offers=self.offers.count(product_type)
        )
        options = VerifyOptions(
            trigger=trigger, force=force, strict_guard=True, allow_unverified_redirect=False
        )

        for offer in self.offers.list(product_type, limit):
            summary.attempted += 1
            try:
                result = await self.engine.verify(offer.offer_id, options)
            except Exception:
                logger.exception("Batch verification crashed for offer %s", offer.offer_id)
                summary.failed += 1
                continue

            if not result.ok:
                summary.failed += 1
            elif result.skipped:
                summary.skipped += 1
            else:
                summary.verified += 1

        logger.info(
            "Batch verification (%s, type=%s): attempted=%d verified=%d failed=%d skipped=%d",
            trigger.value,
            product_type or "all",
            summary.attempted,
            summary.verified,
            summary.failed,
            summary.skipped,
        )
        return summary

    async def warm_deeplinks(
        self, product_type: Optional[str] = None, limit: Optional[int] = None
    ) -> Dict[str, int]:
        """Pre-convert affiliate links so clicks hit the deeplink cache."""
        urls = [
            offer.source_url
            for offer in self.offers.list(product_type, limit)
            if self.converter.is_affiliate_url(offer.source_url)
        ]
        if not urls:
            return {"converted": 0, "failed": 0}

        batch = await self.converter.convert_many(urls, self.sub_id)
        converted = sum(1 for link in batch.links if link.affiliate_url != link.original_url)
        return {"converted": converted, "failed": len(batch.links) - converted}

    def offer_state(self, offer: OfferSnapshot) -> str:
        """Current status of ``offer`` with display-window staleness applied."""
        if offer.verification_status in _VERIFIED and offer.verified_at is not None:
            return self.engine.freshness(offer.verified_at).value
        return offer.verification_status

    def metrics(self, window_hours: int = 24) -> MetricsResponse:
        """Counts by outcome and trigger over the last ``window_hours``."""
        window_hours = max(1, int(window_hours))
        records = self.offers.metrics_since(self.clock() - window_hours * 3600)

        by_outcome = Counter(record.outcome for record in records)
        by_trigger = Counter(record.trigger for record in records)

        clicks = [r for r in records if r.trigger == Trigger.CLICK.value]
        successes = [r for r in records if r.outcome in _VERIFIED]
        click_mismatch = sum(1 for r in clicks if r.outcome in _VERIFIED and r.price_changed)
        click_blocked = sum(1 for r in clicks if r.blocked)

        states = Counter(self.offer_state(offer) for offer in self.offers.list())
        total_offers = sum(states.values())

        return MetricsResponse(
            window_hours=window_hours,
            by_outcome=dict(by_outcome),
            by_trigger=dict(by_trigger),
            price_mismatch_rate=click_mismatch / len(clicks) if clicks else 0.0,
            verification_success_rate=len(successes) / len(records) if records else 0.0,
            redirect_block_rate=click_blocked / len(clicks) if clicks else 0.0,
            stale_offer_rate=(
                states[Outcome.VERIFIED_STALE.value] / total_offers if total_offers else 0.0
            ),
            totals={
                "verificationAttempts": len(records),
                "verificationSuccess": len(successes),
                "clickAttempts": len(clicks),
                "clickMismatch": click_mismatch,
                "clickBlocked": click_blocked,
                "totalOffers": total_offers,
                "freshOffers": states[Outcome.VERIFIED_FRESH.value],
                "staleOffers": states[Outcome.VERIFIED_STALE.value],
                "failedOffers": states[Outcome.FAILED.value],
                "unverifiedOffers": states[Outcome.UNVERIFIED.value],
            },
        )
