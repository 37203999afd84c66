"""Test deeplink conversion with breaker, budget and cache."""

import asyncio
import time
from unittest.mock import MagicMock

import pytest

from src.services.deeplink.circuit_breaker import CircuitBreaker, LocalBreakerState
from src.services.deeplink.converter import MAX_URLS_PER_CALL, DeeplinkConverter
from src.services.deeplink.coupang_client import (
    DeeplinkAuthError,
    DeeplinkNotConfiguredError,
    DeeplinkUpstreamError,
)
from src.services.cache.ttl_cache import TTLCache
from tests.conftest import FakeClock

COUPANG_URL = "https://www.coupang.com/vp/products/123"


def _landing(urls, sub_id=None):
    return [
        {
            "landingUrl": f"https://link.coupang.com/re/{index}",
            "shortenUrl": f"https://link.coupang.com/a/{index}",
        }
        for index, _ in enumerate(urls)
    ]


class TestDeeplinkConverter:
    """Test cases for DeeplinkConverter."""

    def setup_method(self) -> None:
        self.clock = FakeClock()
        self.client = MagicMock()
        self.client.create_deeplinks.side_effect = _landing
        self.state = LocalBreakerState(max_requests_per_min=42)
        self.breaker = CircuitBreaker(cooldown_sec=900, state=self.state, clock=self.clock)
        self.converter = DeeplinkConverter(
            client=self.client,
            breaker=self.breaker,
            cache=TTLCache(default_ttl=86400, clock=self.clock),
            timeout=1.0,
        )

    def test_links_are_mapped_by_index(self) -> None:
        urls = [COUPANG_URL, "https://www.coupang.com/vp/products/456"]

        batch = asyncio.run(self.converter.convert(urls, "lapprice"))

        assert not batch.degraded
        assert [link.original_url for link in batch.links] == urls
        assert batch.links[1].affiliate_url == "https://link.coupang.com/re/1"
        assert batch.links[1].shorten_url == "https://link.coupang.com/a/1"
        self.client.create_deeplinks.assert_called_once_with(urls, "lapprice")

    def test_missing_items_fall_back_to_the_original_url(self) -> None:
        self.client.create_deeplinks.side_effect = None
        self.client.create_deeplinks.return_value = [{"landingUrl": "https://link.coupang.com/re/0"}]
        urls = [COUPANG_URL, "https://www.coupang.com/vp/products/456"]

        batch = asyncio.run(self.converter.convert(urls))

        assert batch.links[0].shorten_url == "https://link.coupang.com/re/0"
        assert batch.links[1].affiliate_url == urls[1]

    def test_results_are_cached_per_url_set_and_sub_id(self) -> None:
        urls = [COUPANG_URL, "https://www.coupang.com/vp/products/456"]

        asyncio.run(self.converter.convert(urls, "sub"))
        cached = asyncio.run(self.converter.convert(list(reversed(urls)), "sub"))
        asyncio.run(self.converter.convert(urls, "other-sub"))

        assert cached.cached
        assert self.client.create_deeplinks.call_count == 2

    def test_cache_hit_follows_the_request_order(self) -> None:
        urls = [COUPANG_URL, "https://www.coupang.com/vp/products/456"]

        first = asyncio.run(self.converter.convert(urls, "sub"))
        cached = asyncio.run(self.converter.convert(list(reversed(urls)), "sub"))

        assert [link.original_url for link in cached.links] == list(reversed(urls))
        assert cached.links[0].affiliate_url == first.links[1].affiliate_url
        assert cached.links[1].affiliate_url == first.links[0].affiliate_url

    def test_cache_expires_after_its_ttl(self) -> None:
        asyncio.run(self.converter.convert_one(COUPANG_URL))
        self.clock.advance(86401)
        asyncio.run(self.converter.convert_one(COUPANG_URL))

        assert self.client.create_deeplinks.call_count == 2

    def test_non_affiliate_urls_pass_through_without_network(self) -> None:
        link = asyncio.run(self.converter.convert_one("https://www.11st.co.kr/products/1"))

        assert link.affiliate_url == "https://www.11st.co.kr/products/1"
        self.client.create_deeplinks.assert_not_called()

    def test_auth_failure_pauses_calls_for_the_cooldown(self) -> None:
        self.client.create_deeplinks.side_effect = DeeplinkAuthError("401", status=401)

        first = asyncio.run(self.converter.convert_one(COUPANG_URL))
        assert first.affiliate_url == COUPANG_URL
        assert self.breaker.is_open()

        self.client.create_deeplinks.reset_mock()
        for index in range(100):
            self.clock.advance(8.99)
            batch = asyncio.run(
                self.converter.convert([f"https://www.coupang.com/vp/products/{index}"])
            )
            assert batch.degraded
            assert batch.links[0].affiliate_url == batch.links[0].original_url
        self.client.create_deeplinks.assert_not_called()

        self.clock.advance(2)
        self.client.create_deeplinks.side_effect = _landing
        link = asyncio.run(self.converter.convert_one(COUPANG_URL))
        assert link.affiliate_url == "https://link.coupang.com/re/0"

    def test_other_upstream_errors_do_not_trip(self) -> None:
        self.client.create_deeplinks.side_effect = DeeplinkUpstreamError("500", status=500)

        batch = asyncio.run(self.converter.convert([COUPANG_URL]))

        assert batch.degraded
        assert batch.links[0].affiliate_url == COUPANG_URL
        assert not self.breaker.is_open()

    def test_missing_keys_pass_through_without_tripping(self) -> None:
        self.client.create_deeplinks.side_effect = DeeplinkNotConfiguredError("no keys")

        batch = asyncio.run(self.converter.convert([COUPANG_URL]))

        assert batch.links[0].affiliate_url == COUPANG_URL
        assert not self.breaker.is_open()

    def test_over_budget_calls_get_original_urls(self) -> None:
        self.state.max_requests_per_min = 2

        for index in range(2):
            asyncio.run(self.converter.convert([f"{COUPANG_URL}?n={index}"]))
        over = asyncio.run(self.converter.convert([f"{COUPANG_URL}?n=9"]))

        assert over.degraded
        assert "rate_limited" in over.warning
        assert over.links[0].affiliate_url == f"{COUPANG_URL}?n=9"
        assert self.client.create_deeplinks.call_count == 2
        assert not self.breaker.is_open()

    def test_slow_upstream_falls_back_after_timeout(self) -> None:
        def slow(urls, sub_id=None):
            time.sleep(0.3)
            return _landing(urls)

        self.client.create_deeplinks.side_effect = slow
        self.converter.timeout = 0.05

        batch = asyncio.run(self.converter.convert([COUPANG_URL]))

        assert batch.degraded
        assert batch.links[0].affiliate_url == COUPANG_URL

    def test_more_than_fifty_urls_is_a_programming_error(self) -> None:
        urls = [f"{COUPANG_URL}?n={i}" for i in range(MAX_URLS_PER_CALL + 1)]

        with pytest.raises(ValueError):
            asyncio.run(self.converter.convert(urls))

    def test_convert_many_chunks_by_fifty(self) -> None:
        urls = [f"{COUPANG_URL}?n={i}" for i in range(120)]

        batch = asyncio.run(self.converter.convert_many(urls))

        assert len(batch.links) == 120
        assert [len(c.args[0]) for c in self.client.create_deeplinks.call_args_list] == [
            50,
            50,
            20,
        ]

    def test_empty_input(self) -> None:
        batch = asyncio.run(self.converter.convert([]))

        assert batch.links == []
        self.client.create_deeplinks.assert_not_called()


def test_affiliate_hosts_match_subdomains_only() -> None:
    converter = DeeplinkConverter(client=MagicMock(), affiliate_hosts=["coupang.com"])

    assert converter.is_affiliate_url("https://www.coupang.com/vp/products/1")
    assert converter.is_affiliate_url("https://coupang.com/vp/products/1")
    assert not converter.is_affiliate_url("https://notcoupang.com/vp/products/1")
    assert not converter.is_affiliate_url("not a url")
