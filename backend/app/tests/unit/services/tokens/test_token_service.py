"""Test signed price and confirm tokens."""

import pytest

from src.models.guard_models import ErrorCode
from src.services.tokens.token_service import (
    CONFIRM_NAMESPACE,
    PRICE_NAMESPACE,
    TokenCreateError,
    TokenService,
)
from tests.conftest import FakeClock


class TestTokenService:
    """Test cases for TokenService."""

    def setup_method(self) -> None:
        self.clock = FakeClock()
        self.tokens = TokenService("price-secret", "confirm-secret", clock=self.clock)

    def test_valid_token_returns_exactly_the_signed_payload(self) -> None:
        token = self.tokens.create_price_token("coupang-123", 1_000_000, 1_749_999_000.0, 1800)

        check = self.tokens.verify_token(PRICE_NAMESPACE, token, "coupang-123")

        assert check.ok
        assert check.code is None
        assert check.payload == {
            "offerId": "coupang-123",
            "listedPrice": 1_000_000,
            "verifiedAt": 1_749_999_000.0,
            "expiresAt": self.clock() + 1800,
        }

    def test_token_for_another_offer_is_invalid(self) -> None:
        token = self.tokens.create_price_token("coupang-123", 1_000_000, None, 1800)

        check = self.tokens.verify_token(PRICE_NAMESPACE, token, "coupang-456")

        assert not check.ok
        assert check.code == ErrorCode.TOKEN_INVALID

    def test_missing_token(self) -> None:
        for value in (None, ""):
            check = self.tokens.verify_token(PRICE_NAMESPACE, value, "coupang-123")
            assert check.code == ErrorCode.TOKEN_MISSING

    def test_expiry_is_exclusive_of_the_deadline(self) -> None:
        token = self.tokens.create_price_token("coupang-123", 1_000_000, None, 60)

        self.clock.advance(60)
        assert self.tokens.verify_token(PRICE_NAMESPACE, token, "coupang-123").ok

        self.clock.advance(0.001)
        check = self.tokens.verify_token(PRICE_NAMESPACE, token, "coupang-123")
        assert check.code == ErrorCode.TOKEN_EXPIRED

    def test_tampered_payload_or_signature_is_invalid(self) -> None:
        token = self.tokens.create_price_token("coupang-123", 1_000_000, None, 1800)
        body, signature = token.split(".")
        forged = self.tokens.create_price_token("coupang-123", 1, None, 1800).split(".")[0]

        for candidate in (
            f"{forged}.{signature}",
            f"{body}.{signature[:-2]}xx",
            body,
            "not-a-token",
            f"{body}.",
            "ë.ü",
        ):
            check = self.tokens.verify_token(PRICE_NAMESPACE, candidate, "coupang-123")
            assert check.code == ErrorCode.TOKEN_INVALID, candidate

    def test_namespaces_are_not_interchangeable(self) -> None:
        tokens = TokenService("one-secret-for-both", clock=self.clock)
        price_token = tokens.create_price_token("coupang-123", 1_000_000, None, 1800)
        confirm_token = tokens.create_confirm_token("coupang-123", 1_000_000, 950_000, 300)

        assert not tokens.verify_token(CONFIRM_NAMESPACE, price_token, "coupang-123").ok
        assert not tokens.verify_token(PRICE_NAMESPACE, confirm_token, "coupang-123").ok
        assert tokens.verify_token(CONFIRM_NAMESPACE, confirm_token, "coupang-123").ok

    def test_confirm_payload_parses_into_typed_values(self) -> None:
        token = self.tokens.create_confirm_token("coupang-123", 1_000_000, 950_000, 300)
        check = self.tokens.verify_token(CONFIRM_NAMESPACE, token, "coupang-123")

        payload = self.tokens.parse_confirm_payload(check.payload)

        assert payload.offer_id == "coupang-123"
        assert payload.old_price == 1_000_000
        assert payload.new_price == 950_000
        assert payload.expires_at == self.clock() + 300

    def test_create_without_secret_fails(self) -> None:
        tokens = TokenService("", clock=self.clock)

        with pytest.raises(TokenCreateError):
            tokens.create_price_token("coupang-123", 1_000_000, None, 1800)

    def test_create_without_offer_id_fails(self) -> None:
        with pytest.raises(TokenCreateError):
            self.tokens.create_token(PRICE_NAMESPACE, {"listedPrice": 1}, 60)

    def test_verify_with_empty_secret_rejects_everything(self) -> None:
        token = self.tokens.create_price_token("coupang-123", 1_000_000, None, 1800)

        check = TokenService("", clock=self.clock).verify_token(
            PRICE_NAMESPACE, token, "coupang-123"
        )

        assert check.code == ErrorCode.TOKEN_INVALID
