"""Stable offer identifiers derived from product, store and source URL."""

from __future__ import annotations

import hashlib
import re
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlparse

TRACKING_PARAMS = frozenset(
    {
        "lptag",
        "traceid",
        "requestid",
        "subid",
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
    }
)


def canonicalize_url(value: Optional[str]) -> str:
    """Drop scheme, ``www.``, trailing slashes and tracking parameters."""
    raw = (value or "").strip()
    if not raw:
        return ""

    try:
        parsed = urlparse(raw)
    except ValueError:
        parsed = None

    if parsed is None or not parsed.scheme or not parsed.hostname:
        stripped = re.sub(r"^https?://", "", raw, flags=re.IGNORECASE)
        return stripped.rstrip("/").lower()

    host = re.sub(r"^www\.", "", parsed.hostname.lower())
    path = parsed.path.rstrip("/").lower()
    params = sorted(
        (key, val)
        for key, val in parse_qsl(parsed.query, keep_blank_values=True)
        if key.lower() not in TRACKING_PARAMS
    )
    query = urlencode(params)
    return f"{host}{path}?{query}" if query else f"{host}{path}"


def build_offer_id(
    product_id: Optional[str], store_name: Optional[str], source_url: Optional[str]
) -> str:
    """Return ``offer_<18 hex chars>`` for a product/store/URL triple."""
    seed = f"{product_id or ''}|{store_name or ''}|{canonicalize_url(source_url)}"
    digest = hashlib.sha1(seed.encode("utf-8")).hexdigest()[:18]
    return f"offer_{digest}"
