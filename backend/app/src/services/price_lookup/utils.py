"""Utilities shared by price lookups."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Union


DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
}


def to_price(value: Union[str, int, float, None]) -> int:
    """Best effort conversion of ``"1,590,000원"`` style strings to ``int``."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return max(0, round(value))

    digits = re.sub(r"[^\d]", "", value)
    return int(digits) if digits else 0


def pick_closest_price(candidates: Iterable[int], listed_price: Optional[int]) -> int:
    """Choose the candidate nearest ``listed_price`` within a sane ratio.

    Candidates outside 0.4x-2.5x of the listed price are ignored; without a
    listed price (or a plausible candidate) the lowest candidate wins.
    """
    ordered: List[int] = sorted({c for c in candidates if c > 0})
    if not ordered:
        return 0
    if not listed_price or listed_price <= 0:
        return ordered[0]

    plausible = [c for c in ordered if 0.4 <= c / listed_price <= 2.5]
    if not plausible:
        return ordered[0]
    return min(plausible, key=lambda c: abs(c - listed_price))
