"""Affiliate deeplink conversion guarded by a circuit breaker and a cache.

Affiliate revenue is a bonus, never a purchase blocker: every failure path
of :class:`DeeplinkConverter` degrades to the original URL instead of
raising.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence
from urllib.parse import urlparse

from src.services.cache.ttl_cache import TTLCache, make_cache_key
from src.services.deeplink.circuit_breaker import CircuitBreaker
from src.services.deeplink.coupang_client import (
    CoupangDeeplinkClient,
    DeeplinkAuthError,
    DeeplinkNotConfiguredError,
    DeeplinkUpstreamError,
)

logger = logging.getLogger("deeplink.converter")

MAX_URLS_PER_CALL = 50
DEFAULT_CACHE_TTL = 24 * 60 * 60


@dataclass(slots=True)
class DeeplinkResult:
    """Affiliate mapping of one URL."""

    original_url: str
    affiliate_url: str
    shorten_url: str

    @classmethod
    def passthrough(cls, url: str) -> "DeeplinkResult":
        return cls(original_url=url, affiliate_url=url, shorten_url=url)


@dataclass(slots=True)
class ConversionBatch:
    """Links for one ``convert`` call and how they were obtained."""

    links: List[DeeplinkResult] = field(default_factory=list)
    degraded: bool = False
    cached: bool = False
    warning: Optional[str] = None


def _host_matches(url: str, hosts: Iterable[str]) -> bool:
    try:
        hostname = (urlparse(url.strip()).hostname or "").lower()
    except ValueError:
        return False
    return any(hostname == host or hostname.endswith(f".{host}") for host in hosts)


class DeeplinkConverter:
    """Convert retailer URLs into affiliate links."""

    def __init__(
        self,
        client: CoupangDeeplinkClient,
        breaker: Optional[CircuitBreaker] = None,
        cache: Optional[TTLCache[List[DeeplinkResult]]] = None,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        affiliate_hosts: Sequence[str] = ("coupang.com",),
        timeout: float = 5.0,
    ) -> None:
        self.client = client
        self.breaker = breaker or CircuitBreaker()
        self.cache: TTLCache[List[DeeplinkResult]] = cache or TTLCache(
            default_ttl=cache_ttl
        )
        self.cache_ttl = cache_ttl
        self.affiliate_hosts = tuple(host.lower() for host in affiliate_hosts)
        self.timeout = timeout

    def is_affiliate_url(self, url: str) -> bool:
        return _host_matches(url, self.affiliate_hosts)

    async def convert(
        self, urls: Sequence[str], sub_id: Optional[str] = None
    ) -> ConversionBatch:
        """Convert up to :data:`MAX_URLS_PER_CALL` URLs in one upstream call."""
        if len(urls) > MAX_URLS_PER_CALL:
            raise ValueError(
                f"convert() accepts at most {MAX_URLS_PER_CALL} URLs, got {len(urls)}; "
                "use convert_many() for larger batches"
            )
        urls = list(urls)
        if not urls:
            return ConversionBatch()

        convertible = [url for url in urls if self.is_affiliate_url(url)]
        if not convertible:
            return ConversionBatch(links=[DeeplinkResult.passthrough(u) for u in urls])

        if self.breaker.is_open():
            return self._fallback(urls, "Deeplink paused after an upstream auth failure")

        cache_key = make_cache_key("deeplink", urls, sub_id)
        cached = self.cache.get(cache_key)
        if cached is not None:
            by_url = {link.original_url: link for link in cached}
            links = [by_url.get(url) or DeeplinkResult.passthrough(url) for url in urls]
            return ConversionBatch(links=links, cached=True)

        grant = self.breaker.acquire()
        if not grant.allowed:
            logger.warning("Deeplink call skipped (%s)", grant.reason)
            return self._fallback(urls, f"Deeplink call skipped ({grant.reason})")

        try:
            items = await asyncio.wait_for(
                asyncio.to_thread(self.client.create_deeplinks, convertible, sub_id),
                timeout=self.timeout,
            )
        except DeeplinkAuthError:
            self.breaker.trip("401")
            return self._fallback(urls, "Deeplink paused after an upstream auth failure")
        except DeeplinkNotConfiguredError as exc:
            return self._fallback(urls, str(exc))
        except DeeplinkUpstreamError as exc:
            logger.warning("Deeplink API error: %s", exc)
            return self._fallback(urls, str(exc))
        except asyncio.TimeoutError:
            logger.warning("Deeplink API timed out after %.1fs", self.timeout)
            return self._fallback(urls, "Deeplink API timed out")
        except Exception:
            logger.exception("Unexpected error converting %d deeplink(s)", len(urls))
            return self._fallback(urls, "Deeplink conversion failed")

        converted = {}
        for index, original in enumerate(convertible):
            item = items[index] if index < len(items) and isinstance(items[index], dict) else {}
            landing = item.get("landingUrl") or original
            converted[original] = DeeplinkResult(
                original_url=original,
                affiliate_url=landing,
                shorten_url=item.get("shortenUrl") or landing,
            )

        links = [converted.get(url) or DeeplinkResult.passthrough(url) for url in urls]
        self.cache.set(cache_key, links, self.cache_ttl)
        return ConversionBatch(links=list(links))

    async def convert_one(self, url: str, sub_id: Optional[str] = None) -> DeeplinkResult:
        batch = await self.convert([url], sub_id)
        return batch.links[0]

    async def convert_many(
        self, urls: Sequence[str], sub_id: Optional[str] = None
    ) -> ConversionBatch:
        """Convert any number of URLs, chunked by :data:`MAX_URLS_PER_CALL`."""
        merged = ConversionBatch()
        for start in range(0, len(urls), MAX_URLS_PER_CALL):
            chunk = await self.convert(urls[start : start + MAX_URLS_PER_CALL], sub_id)
            merged.links.extend(chunk.links)
            merged.degraded = merged.degraded or chunk.degraded
            merged.warning = merged.warning or chunk.warning
        return merged

    @staticmethod
    def _fallback(urls: Sequence[str], warning: str) -> ConversionBatch:
        return ConversionBatch(
            links=[DeeplinkResult.passthrough(url) for url in urls],
            degraded=True,
            warning=warning,
        )
