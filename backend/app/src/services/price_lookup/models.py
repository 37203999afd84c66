"""Domain models for live price lookups."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class PriceQuote:
    """Current price of an offer as seen at the retailer."""

    price: int
    fetched_at: float
    source: Optional[str] = None


class PriceLookupError(RuntimeError):
    """Raised when the current price of an offer cannot be determined."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
