"""Test the Coupang Partners deeplink client."""

import hashlib
import hmac
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from src.services.deeplink.coupang_client import (
    DEEPLINK_PATH,
    CoupangDeeplinkClient,
    DeeplinkAuthError,
    DeeplinkNotConfiguredError,
    DeeplinkUpstreamError,
    build_coupang_authorization,
    coupang_signed_date,
    with_sub_id,
)


def test_signed_date_format() -> None:
    now = datetime(2025, 3, 7, 9, 5, 1, tzinfo=timezone.utc)

    assert coupang_signed_date(now) == "250307T090501Z"


def test_authorization_header_signs_date_method_and_path() -> None:
    now = datetime(2025, 3, 7, 9, 5, 1, tzinfo=timezone.utc)
    expected_signature = hmac.new(
        b"secret", f"250307T090501ZPOST{DEEPLINK_PATH}".encode(), hashlib.sha256
    ).hexdigest()

    header = build_coupang_authorization("access", "secret", "post", DEEPLINK_PATH, now=now)

    assert header == (
        "CEA algorithm=HmacSHA256, access-key=access, "
        f"signed-date=250307T090501Z, signature={expected_signature}"
    )


@pytest.mark.parametrize(
    "url, sub_id, expected",
    [
        ("https://www.coupang.com/vp/products/1", "lap", "https://www.coupang.com/vp/products/1?subId=lap"),
        ("https://www.coupang.com/vp/products/1?a=1", "lap", "https://www.coupang.com/vp/products/1?a=1&subId=lap"),
        ("https://www.coupang.com/vp/products/1?subId=x", "lap", "https://www.coupang.com/vp/products/1?subId=x"),
        ("https://www.coupang.com/vp/products/1", None, "https://www.coupang.com/vp/products/1"),
    ],
)
def test_with_sub_id(url: str, sub_id, expected: str) -> None:
    assert with_sub_id(url, sub_id) == expected


class TestCoupangDeeplinkClient:
    """Test cases for CoupangDeeplinkClient."""

    def setup_method(self) -> None:
        self.session = MagicMock()
        self.client = CoupangDeeplinkClient(
            "access", "secret", base_url="https://api.example.com/", session=self.session
        )

    def _response(self, status_code: int, payload=None, text: str = "") -> MagicMock:
        response = MagicMock()
        response.status_code = status_code
        response.ok = 200 <= status_code < 300
        response.text = text
        response.json.return_value = payload
        return response

    def test_returns_data_items(self) -> None:
        items = [{"landingUrl": "https://link.coupang.com/re/1"}]
        self.session.post.return_value = self._response(200, {"rCode": "0", "data": items})

        result = self.client.create_deeplinks(["https://www.coupang.com/vp/products/1"], "lap")

        assert result == items
        args, kwargs = self.session.post.call_args
        assert args[0] == f"https://api.example.com{DEEPLINK_PATH}"
        assert kwargs["json"] == {"coupangUrls": ["https://www.coupang.com/vp/products/1?subId=lap"]}
        assert kwargs["headers"]["Authorization"].startswith("CEA algorithm=HmacSHA256")
        assert kwargs["timeout"] == 5.0

    def test_401_raises_auth_error(self) -> None:
        self.session.post.return_value = self._response(401, text="unauthorized")

        with pytest.raises(DeeplinkAuthError):
            self.client.create_deeplinks(["https://www.coupang.com/vp/products/1"])

    def test_other_status_raises_upstream_error(self) -> None:
        self.session.post.return_value = self._response(500, text="boom")

        with pytest.raises(DeeplinkUpstreamError) as exc_info:
            self.client.create_deeplinks(["https://www.coupang.com/vp/products/1"])

        assert exc_info.value.status == 500
        assert not isinstance(exc_info.value, DeeplinkAuthError)

    def test_transport_errors_are_wrapped(self) -> None:
        self.session.post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(DeeplinkUpstreamError):
            self.client.create_deeplinks(["https://www.coupang.com/vp/products/1"])

    def test_missing_keys(self) -> None:
        client = CoupangDeeplinkClient(None, " ", session=self.session)

        assert not client.configured
        with pytest.raises(DeeplinkNotConfiguredError):
            client.create_deeplinks(["https://www.coupang.com/vp/products/1"])
        self.session.post.assert_not_called()
