"""Policy-driven re-check of an offer's live price against its listed price.

Concurrent ``verify`` calls for the same offer share one live fetch through
:class:`SingleFlight`; each caller then applies its own policy (strict
guard, degraded redirect) to the shared observation.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from src.models.guard_models import ErrorCode
from src.repositories.offers.schemas.offer_schema import (
    OfferSnapshot,
    OfferVerificationUpdate,
)
from src.services.cache.ttl_cache import TTLCache
from src.services.deeplink.converter import DeeplinkConverter
from src.services.offers.offer_service import MetricRecord, OfferService
from src.services.price_lookup.models import PriceLookupError, PriceQuote
from src.services.single_flight import SingleFlight

from .models import (
    Outcome,
    PriceObservation,
    VerificationResult,
    VerifyOptions,
)

logger = logging.getLogger("verification.engine")

_REUSABLE_STATUSES = (Outcome.VERIFIED_FRESH.value, Outcome.VERIFIED_STALE.value)


class PriceLookup(Protocol):
    """Collaborator returning the live price of an offer."""

    async def fetch_current_price(self, offer: OfferSnapshot) -> PriceQuote: ...


class VerificationEngine:
    """Resolve the current truth for an offer and apply the redirect policy."""

    def __init__(
        self,
        offers: OfferService,
        price_lookup: PriceLookup,
        converter: DeeplinkConverter,
        listing_price_ttl_sec: float = 21600,
        display_price_fresh_minutes: float = 60,
        fetch_timeout_sec: float = 6.5,
        sub_id: Optional[str] = None,
        clock: Optional[Callable[[], float]] = None,
        cache: Optional[TTLCache[PriceObservation]] = None,
        single_flight: Optional[SingleFlight[PriceObservation]] = None,
    ) -> None:
        self.offers = offers
        self.price_lookup = price_lookup
        self.converter = converter
        self.listing_price_ttl_sec = listing_price_ttl_sec
        self.display_price_fresh_sec = display_price_fresh_minutes * 60
        self.fetch_timeout_sec = fetch_timeout_sec
        self.sub_id = sub_id
        self.clock = clock or time.time
        self.cache: TTLCache[PriceObservation] = cache or TTLCache(
            default_ttl=listing_price_ttl_sec, max_entries=5000, clock=self.clock
        )
        self.single_flight: SingleFlight[PriceObservation] = (
            single_flight or SingleFlight()
        )

    async def verify(
        self, offer_id: str, options: Optional[VerifyOptions] = None
    ) -> VerificationResult:
        """Verify ``offer_id`` under ``options`` and record the attempt."""
        options = options or VerifyOptions()
        offer = await asyncio.to_thread(self.offers.get, offer_id)
        if offer is None:
            return VerificationResult(
                ok=False,
                offer_id=offer_id,
                trigger=options.trigger,
                outcome=Outcome.FAILED,
                code=ErrorCode.OFFER_NOT_FOUND,
                message="Offer not found.",
            )

        listed_price = (
            options.listed_price if options.listed_price is not None else offer.listed_price
        )

        reused = None if options.force else self._reusable_observation(offer)
        if reused is not None:
            observation, skipped = reused, True
        else:
            observation = await self._resolve_live(offer, options.resolve_deadline_sec)
            skipped = False

        result = await self._apply_policy(offer, observation, listed_price, options)
        result.skipped = skipped
        await asyncio.to_thread(self._record_metric, result)
        return result

    def freshness(self, fetched_at: float) -> Outcome:
        """``verified_fresh`` inside the display window, else ``verified_stale``."""
        age = self.clock() - fetched_at
        return Outcome.VERIFIED_FRESH if age <= self.display_price_fresh_sec else Outcome.VERIFIED_STALE

    def _reusable_observation(self, offer: OfferSnapshot) -> Optional[PriceObservation]:
        cached = self.cache.get(offer.offer_id)
        if cached is not None and cached.ok:
            return cached

        if (
            offer.verification_status in _REUSABLE_STATUSES
            and offer.verified_at is not None
            and offer.verified_price > 0
            and self.clock() - offer.verified_at <= self.listing_price_ttl_sec
        ):
            return PriceObservation(
                ok=True, price=offer.verified_price, fetched_at=offer.verified_at
            )
        return None

    async def _resolve_live(
        self, offer: OfferSnapshot, deadline_sec: Optional[float]
    ) -> PriceObservation:
        """Join the shared live fetch, waiting at most ``deadline_sec``.

        Giving up only detaches this caller; the shared fetch keeps running
        and still persists its result.
        """
        fetch = self.single_flight.do(offer.offer_id, lambda: self._live_fetch(offer))
        if deadline_sec is None:
            return await fetch
        try:
            return await asyncio.wait_for(fetch, timeout=deadline_sec)
        except asyncio.TimeoutError:
            logger.warning(
                "Price of %s not resolved within %.1fs", offer.offer_id, deadline_sec
            )
            return PriceObservation(
                ok=False,
                code=ErrorCode.VERIFY_TIMEOUT,
                detail_code="VERIFY_TIMEOUT",
                message="Price verification timed out.",
            )

    async def _live_fetch(self, offer: OfferSnapshot) -> PriceObservation:
        """Fetch, persist and cache the live price; shared by all waiters."""
        try:
            quote = await asyncio.wait_for(
                self.price_lookup.fetch_current_price(offer),
                timeout=self.fetch_timeout_sec,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Live price fetch for %s timed out after %.1fs",
                offer.offer_id,
                self.fetch_timeout_sec,
            )
            observation = PriceObservation(
                ok=False,
                code=ErrorCode.VERIFY_TIMEOUT,
                detail_code="VERIFY_TIMEOUT",
                message="Price verification timed out.",
            )
        except PriceLookupError as exc:
            observation = PriceObservation(
                ok=False,
                code=ErrorCode.VERIFY_FAILED,
                detail_code=exc.code,
                message=exc.message,
            )
        except Exception:
            logger.exception("Price lookup for %s failed unexpectedly", offer.offer_id)
            observation = PriceObservation(
                ok=False,
                code=ErrorCode.VERIFY_FAILED,
                detail_code="LOOKUP_ERROR",
                message="Price lookup failed.",
            )
        else:
            if quote.price > 0:
                observation = PriceObservation(
                    ok=True, price=int(quote.price), fetched_at=quote.fetched_at
                )
            else:
                observation = PriceObservation(
                    ok=False,
                    code=ErrorCode.VERIFY_FAILED,
                    detail_code="PRICE_MISSING",
                    message="Price lookup returned no price.",
                )

        if observation.ok:
            self.cache.set(offer.offer_id, observation, self.listing_price_ttl_sec)
        await asyncio.to_thread(self._persist, offer, observation)
        return observation

    async def _apply_policy(
        self,
        offer: OfferSnapshot,
        observation: PriceObservation,
        listed_price: int,
        options: VerifyOptions,
    ) -> VerificationResult:
        base = dict(
            offer_id=offer.offer_id,
            trigger=options.trigger,
            listed_price=listed_price,
        )

        if not observation.ok:
            return await self._degrade_or_fail(offer, observation, listed_price, options)

        current = observation.price
        outcome = self.freshness(observation.fetched_at)
        price_changed = listed_price > 0 and current != listed_price

        if not price_changed:
            return VerificationResult(
                ok=True,
                outcome=outcome,
                current_price=current,
                verified_at=observation.fetched_at,
                redirect_url=await self._redirect_url(offer),
                **base,
            )

        if options.strict_guard:
            return VerificationResult(
                ok=True,
                outcome=outcome,
                price_changed=True,
                current_price=current,
                verified_at=observation.fetched_at,
                message="Price changed since listing; confirmation required.",
                **base,
            )

        if options.allow_unverified_redirect:
            return VerificationResult(
                ok=True,
                outcome=outcome,
                price_changed=True,
                current_price=current,
                verified_at=observation.fetched_at,
                redirect_url=await self._redirect_url(offer),
                **base,
            )

        return VerificationResult(
            ok=False,
            outcome=Outcome.FAILED,
            price_changed=True,
            current_price=current,
            verified_at=observation.fetched_at,
            code=ErrorCode.VERIFY_FAILED,
            message="Price changed since listing.",
            **base,
        )

    async def _degrade_or_fail(
        self,
        offer: OfferSnapshot,
        observation: PriceObservation,
        listed_price: int,
        options: VerifyOptions,
    ) -> VerificationResult:
        code = observation.code or ErrorCode.VERIFY_FAILED
        prior_price = offer.verified_price

        if options.allow_unverified_redirect and prior_price > 0:
            logger.info(
                "Degraded redirect for %s at last verified price %d (%s)",
                offer.offer_id,
                prior_price,
                code.value,
            )
            return VerificationResult(
                ok=True,
                offer_id=offer.offer_id,
                trigger=options.trigger,
                outcome=Outcome.FAILED,
                price_changed=listed_price > 0 and prior_price != listed_price,
                listed_price=listed_price,
                current_price=prior_price,
                verified_at=offer.verified_at,
                redirect_url=await self._redirect_url(offer),
                degraded=True,
                code=code,
                message=observation.message,
            )

        return VerificationResult(
            ok=False,
            offer_id=offer.offer_id,
            trigger=options.trigger,
            outcome=Outcome.FAILED,
            listed_price=listed_price,
            code=code,
            message=observation.message,
        )

    async def _redirect_url(self, offer: OfferSnapshot) -> str:
        link = await self.converter.convert_one(offer.source_url, self.sub_id)
        return link.affiliate_url or offer.source_url

    def _persist(self, offer: OfferSnapshot, observation: PriceObservation) -> None:
        if observation.ok:
            update = OfferVerificationUpdate(
                verification_status=Outcome.VERIFIED_FRESH.value,
                verified_price=observation.price,
                verified_at=observation.fetched_at,
                last_error_code=None,
                last_error_message=None,
            )
        else:
            update = OfferVerificationUpdate(
                verification_status=Outcome.FAILED.value,
                last_error_code=observation.detail_code or (
                    observation.code.value if observation.code else None
                ),
                last_error_message=observation.message,
            )
        try:
            self.offers.record_verification(offer.offer_id, update)
        except SQLAlchemyError:
            logger.exception("Failed to persist verification of %s", offer.offer_id)

    def _record_metric(self, result: VerificationResult) -> None:
        record = MetricRecord(
            offer_id=result.offer_id,
            trigger=result.trigger.value,
            outcome=result.outcome.value,
            price_changed=result.price_changed,
            blocked=result.blocked,
            degraded=result.degraded,
            error_code=result.code.value if result.code else None,
            recorded_at=self.clock(),
        )
        try:
            self.offers.append_metric(record)
        except SQLAlchemyError:
            logger.exception("Failed to record verification metric for %s", result.offer_id)

