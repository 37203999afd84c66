"""Affiliate link conversion endpoints.

Failures never surface as errors here: the caller always gets a usable
link, falling back to the original URL.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from configs import Settings, get_settings
from src.dependencies import get_deeplink_converter
from src.models.guard_models import (
    ConvertResponse,
    DeeplinkLink,
    DeeplinkRequest,
    DeeplinkResponse,
)
from src.services.deeplink.converter import MAX_URLS_PER_CALL, DeeplinkConverter

affiliate_router = APIRouter(prefix="/affiliate", tags=["Affiliate"])


def _clean_urls(urls: Optional[List[str]]) -> List[str]:
    return [url.strip() for url in urls or [] if isinstance(url, str) and url.strip()]


@affiliate_router.post("/deeplink")
async def create_deeplinks(
    data: DeeplinkRequest,
    converter: DeeplinkConverter = Depends(get_deeplink_converter),
    settings: Settings = Depends(get_settings),
) -> DeeplinkResponse:
    """Convert up to 50 URLs into affiliate links."""
    urls = _clean_urls(data.urls)
    if not urls:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="urls must be a non-empty list"
        )

    batch = await converter.convert(
        urls[:MAX_URLS_PER_CALL], data.sub_id or settings.DEEPLINK_SUB_ID
    )
    return DeeplinkResponse(
        links=[
            DeeplinkLink(
                original_url=link.original_url,
                affiliate_url=link.affiliate_url,
                shorten_url=link.shorten_url,
            )
            for link in batch.links
        ],
        degraded=batch.degraded,
        warning=batch.warning,
    )


@affiliate_router.get("/convert")
async def convert_url(
    url: str = Query(default="", description="Retailer URL to convert."),
    sub_id: Optional[str] = Query(default=None, alias="subId"),
    converter: DeeplinkConverter = Depends(get_deeplink_converter),
    settings: Settings = Depends(get_settings),
) -> ConvertResponse:
    """Convert a single URL."""
    url = url.strip()
    if not url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="url is required")

    batch = await converter.convert([url], sub_id or settings.DEEPLINK_SUB_ID)
    link = batch.links[0]
    return ConvertResponse(
        original_url=link.original_url,
        affiliate_url=link.affiliate_url,
        shorten_url=link.shorten_url,
        warning=batch.warning,
    )
