"""Base classes for live price lookups."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from src.repositories.offers.schemas.offer_schema import OfferSnapshot

from .models import PriceLookupError, PriceQuote

logger = logging.getLogger("price_lookup.base")


class BasePriceLookup(ABC):
    """Common behaviour for blocking price lookups.

    ``_fetch_impl`` runs in a worker thread; any failure reaches the caller
    as :class:`PriceLookupError` so the verification engine only has one
    failure type to handle.
    """

    name: str = "base"

    async def fetch_current_price(self, offer: OfferSnapshot) -> PriceQuote:
        """Public lookup entry point with error handling."""
        try:
            return await asyncio.to_thread(self._fetch_impl, offer)
        except PriceLookupError as exc:
            logger.warning(
                "Price lookup %s failed for %s: %s", self.name, offer.offer_id, exc.message
            )
            raise
        except Exception as exc:  # pragma: no cover - defensive path
            logger.exception("Unexpected error looking up %s", offer.offer_id)
            raise PriceLookupError("LOOKUP_ERROR", str(exc)) from exc

    @abstractmethod
    def _fetch_impl(self, offer: OfferSnapshot) -> PriceQuote:
        """Return the current price of ``offer`` or raise PriceLookupError."""
        raise NotImplementedError
