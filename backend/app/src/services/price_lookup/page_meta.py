"""Generic price lookup reading structured price hints from the offer page."""

from __future__ import annotations

import logging
import re
import time
from typing import Callable, List, Optional

import requests
from bs4 import BeautifulSoup

from src.repositories.offers.schemas.offer_schema import OfferSnapshot

from .base import BasePriceLookup
from .models import PriceLookupError, PriceQuote
from .utils import DEFAULT_HEADERS, pick_closest_price, to_price

logger = logging.getLogger("price_lookup.page_meta")

_SCRIPT_PATTERNS = [
    re.compile(r"[\"']salePrice[\"']\s*[:=]\s*[\"']?([\d,]{4,})", re.IGNORECASE),
    re.compile(r"[\"']discountedSalePrice[\"']\s*[:=]\s*[\"']?([\d,]{4,})", re.IGNORECASE),
    re.compile(r"[\"']lowPrice[\"']\s*[:=]\s*[\"']?([\d,]{4,})", re.IGNORECASE),
    re.compile(r"[\"']price[\"']\s*[:=]\s*[\"']?([\d,]{4,})", re.IGNORECASE),
]
_WON_PATTERN = re.compile(r"([\d,]{4,})\s*원")
_MAX_MATCHES_PER_PATTERN = 80


def extract_price_candidates(html: str) -> List[int]:
    """Collect every plausible price found in ``html``, sorted ascending."""
    soup = BeautifulSoup(html, "html.parser")
    candidates: set[int] = set()

    for tag in soup.select('meta[property="product:price:amount"], meta[itemprop="price"]'):
        candidates.add(to_price(tag.get("content")))
    for tag in soup.select('[itemprop="price"]'):
        candidates.add(to_price(tag.get("content") or tag.get_text()))

    for pattern in _SCRIPT_PATTERNS:
        for count, match in enumerate(pattern.finditer(html)):
            if count >= _MAX_MATCHES_PER_PATTERN:
                break
            candidates.add(to_price(match.group(1)))

    for count, match in enumerate(_WON_PATTERN.finditer(soup.get_text(" "))):
        if count >= _MAX_MATCHES_PER_PATTERN:
            break
        candidates.add(to_price(match.group(1)))

    return sorted(c for c in candidates if c > 0)


class PageMetaPriceLookup(BasePriceLookup):
    """Fetch the offer page and pick the price closest to the listed one."""

    name = "page_meta"

    def __init__(
        self,
        timeout: float = 6.5,
        session: Optional[requests.Session] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()
        self.clock = clock or time.time

    def _fetch_impl(self, offer: OfferSnapshot) -> PriceQuote:
        url = (offer.source_url or "").strip()
        if not re.match(r"^https?://", url, re.IGNORECASE):
            raise PriceLookupError("INVALID_SOURCE_URL", "Offer has no valid source URL.")

        try:
            response = self.session.get(
                url, headers=DEFAULT_HEADERS, timeout=self.timeout, allow_redirects=True
            )
        except requests.exceptions.Timeout as timeout_err:
            raise PriceLookupError("PAGE_TIMEOUT", str(timeout_err)) from timeout_err
        except requests.exceptions.RequestException as req_err:
            raise PriceLookupError("PAGE_FETCH_ERROR", str(req_err)) from req_err

        if response.status_code != 200:
            raise PriceLookupError(
                f"PAGE_HTTP_{response.status_code}",
                f"Price page request failed ({response.status_code}).",
            )

        candidates = extract_price_candidates(response.text)
        price = pick_closest_price(candidates, offer.listed_price)
        if price <= 0:
            raise PriceLookupError("PAGE_PRICE_NOT_FOUND", "No price found on the offer page.")

        logger.debug(
            "Offer %s priced at %d from %d candidate(s)", offer.offer_id, price, len(candidates)
        )
        return PriceQuote(price=price, fetched_at=self.clock(), source=self.name)
