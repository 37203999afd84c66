"""Shared fixtures: fake clock, in-memory database and offer builders."""

import asyncio
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.repositories.offers import models  # noqa: F401
from src.repositories.offers.database import Base
from src.repositories.offers.schemas.offer_schema import OfferCreate
from src.services.deeplink.converter import DeeplinkConverter
from src.services.deeplink.coupang_client import CoupangDeeplinkClient
from src.services.offers.offer_service import OfferService
from src.services.price_lookup.models import PriceLookupError, PriceQuote

START_TS = 1_750_000_000.0


class FakeClock:
    """Manually advanced unix clock."""

    def __init__(self, now: float = START_TS) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePriceLookup:
    """Price lookup returning a configurable price and counting calls."""

    def __init__(
        self,
        price: int,
        clock: FakeClock,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ) -> None:
        self.price = price
        self.clock = clock
        self.delay = delay
        self.error = error
        self.calls = 0

    async def fetch_current_price(self, offer) -> PriceQuote:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return PriceQuote(price=self.price, fetched_at=self.clock(), source="fake")


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def session_factory(tmp_path):
    # File backed so engine calls made from worker threads get their own connection.
    engine = create_engine(
        f"sqlite:///{tmp_path / 'offers.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def offer_service(session_factory) -> OfferService:
    return OfferService(session_factory)


@pytest.fixture()
def add_offer(offer_service):
    """Create an offer with sensible defaults."""

    def _add(
        offer_id: str = "coupang-123",
        listed_price: int = 1_000_000,
        product_type: str = "laptop",
        source_url: Optional[str] = None,
    ):
        return offer_service.create(
            OfferCreate(
                offer_id=offer_id,
                product_id=f"product-{offer_id}",
                product_type=product_type,
                platform="coupang",
                store_name="쿠팡",
                source_url=source_url or f"https://www.coupang.com/vp/products/{offer_id}",
                listed_price=listed_price,
            )
        )

    return _add


@pytest.fixture()
def passthrough_converter() -> DeeplinkConverter:
    """Converter without partner keys: every URL comes back unchanged."""
    return DeeplinkConverter(client=CoupangDeeplinkClient(None, None))


@pytest.fixture()
def lookup_error() -> PriceLookupError:
    return PriceLookupError("PAGE_HTTP_503", "Price page request failed (503).")
