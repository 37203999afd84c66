"""Test the redirect endpoints over HTTP."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app import create_app
from src.dependencies import get_redirect_guard
from src.services.redirect_guard import RedirectGuard
from src.services.tokens.token_service import TokenService
from src.services.verification.engine import VerificationEngine
from tests.conftest import FakePriceLookup

OFFER_URL = "https://www.coupang.com/vp/products/coupang-123"


@pytest.fixture()
def lookup(clock) -> FakePriceLookup:
    return FakePriceLookup(1_000_000, clock)


@pytest.fixture()
def tokens(clock) -> TokenService:
    return TokenService("price-secret", clock=clock)


@pytest.fixture()
def client(offer_service, passthrough_converter, clock, lookup, tokens, add_offer):
    add_offer("coupang-123", 1_000_000)
    engine = VerificationEngine(
        offers=offer_service,
        price_lookup=lookup,
        converter=passthrough_converter,
        clock=clock,
    )
    guard = RedirectGuard(engine=engine, tokens=tokens)

    application = create_app()
    application.dependency_overrides[get_redirect_guard] = lambda: guard
    return TestClient(application)


def _price_token(tokens: TokenService) -> str:
    return tokens.create_price_token("coupang-123", 1_000_000, None, 1800)


def test_click_redirects_with_no_store(client, tokens) -> None:
    response = client.get(
        "/offer/coupang-123",
        params={"priceToken": _price_token(tokens)},
        follow_redirects=False,
    )

    assert response.status_code == 302
    assert response.headers["location"] == OFFER_URL
    assert response.headers["cache-control"] == "no-store"


def test_changed_price_returns_confirm_payload(client, tokens, lookup) -> None:
    lookup.price = 950_000

    response = client.get(
        "/offer/coupang-123",
        params={"priceToken": _price_token(tokens)},
        follow_redirects=False,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "confirm_required"
    assert body["offerId"] == "coupang-123"
    assert body["oldPrice"] == 1_000_000
    assert body["newPrice"] == 950_000
    assert body["confirmToken"]
    assert body["confirmUrl"].endswith("/offer/coupang-123/confirm")


def test_changed_price_renders_confirm_page_for_browsers(client, tokens, lookup) -> None:
    lookup.price = 950_000

    response = client.get(
        "/offer/coupang-123",
        params={"priceToken": _price_token(tokens)},
        headers={"Accept": "text/html,application/xhtml+xml"},
        follow_redirects=False,
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert 'name="confirmToken"' in response.text
    assert "950,000원" in response.text


@pytest.mark.parametrize("transport", ["json", "form", "query"])
def test_confirm_accepts_token_from_any_transport(client, tokens, lookup, transport) -> None:
    lookup.price = 950_000
    confirm_token = client.get(
        "/offer/coupang-123", params={"priceToken": _price_token(tokens)}
    ).json()["confirmToken"]

    kwargs = {
        "json": {"json": {"confirmToken": confirm_token}},
        "form": {"data": {"confirmToken": confirm_token}},
        "query": {"params": {"confirmToken": confirm_token}},
    }[transport]
    response = client.post("/offer/coupang-123/confirm", follow_redirects=False, **kwargs)

    assert response.status_code == 302
    assert response.headers["location"] == OFFER_URL
    assert response.headers["cache-control"] == "no-store"


def test_confirm_chains_when_price_moves_again(client, tokens, lookup) -> None:
    lookup.price = 950_000
    first = client.get("/offer/coupang-123", params={"priceToken": _price_token(tokens)}).json()
    lookup.price = 900_000

    response = client.post(
        "/offer/coupang-123/confirm",
        json={"confirmToken": first["confirmToken"]},
        follow_redirects=False,
    )

    assert response.status_code == 200
    assert response.json()["oldPrice"] == 950_000
    assert response.json()["newPrice"] == 900_000


def test_missing_token_is_a_typed_conflict(client) -> None:
    response = client.get("/offer/coupang-123", follow_redirects=False)

    assert response.status_code == 409
    assert response.headers["cache-control"] == "no-store"
    body = response.json()
    assert body["code"] == "TOKEN_MISSING"
    assert body["offerId"] == "coupang-123"
    assert body["error"]


def test_errors_render_html_for_browsers(client, tokens) -> None:
    response = client.get(
        "/offer/coupang-999",
        params={"priceToken": _price_token(tokens)},
        headers={"Accept": "text/html"},
        follow_redirects=False,
    )

    assert response.status_code == 409
    assert response.headers["content-type"].startswith("text/html")
    assert "TOKEN_INVALID" in response.text


def test_confirm_with_unreadable_json_is_a_conflict(client) -> None:
    response = client.post(
        "/offer/coupang-123/confirm",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
        follow_redirects=False,
    )

    assert response.status_code == 409
    assert response.json()["code"] == "TOKEN_MISSING"


def test_unexpected_lookup_failure_is_a_typed_conflict(client, tokens, lookup) -> None:
    lookup.error = ConnectionError("reset by peer")

    response = client.get(
        "/offer/coupang-123",
        params={"priceToken": _price_token(tokens)},
        follow_redirects=False,
    )

    assert response.status_code == 409
    assert response.headers["cache-control"] == "no-store"
    assert response.json()["code"] == "VERIFY_FAILED"


def test_database_failure_is_a_typed_conflict(client, tokens, offer_service, monkeypatch) -> None:
    def broken_get(offer_id):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(offer_service, "get", broken_get)

    response = client.get(
        "/offer/coupang-123",
        params={"priceToken": _price_token(tokens)},
        follow_redirects=False,
    )

    assert response.status_code == 409
    assert response.json()["code"] == "VERIFY_FAILED"
