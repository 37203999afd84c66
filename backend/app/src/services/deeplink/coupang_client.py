"""HTTP client for the Coupang Partners deeplink API."""

from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import requests

DEEPLINK_PATH = "/v2/providers/affiliate_open_api/apis/openapi/v1/deeplink"


class DeeplinkError(RuntimeError):
    """Base class for deeplink upstream failures."""


class DeeplinkNotConfiguredError(DeeplinkError):
    """Raised when the partner API keys are missing."""


class DeeplinkUpstreamError(DeeplinkError):
    """Raised on transport errors or non-2xx answers from the partner API."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class DeeplinkAuthError(DeeplinkUpstreamError):
    """Raised when the partner API rejects our credentials (HTTP 401)."""


def coupang_signed_date(now: Optional[datetime] = None) -> str:
    """Return the ``YYMMDDTHHMMSSZ`` timestamp the partner API signs."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%y%m%dT%H%M%SZ")


def build_coupang_authorization(
    access_key: str,
    secret_key: str,
    method: str,
    api_path: str,
    query: str = "",
    now: Optional[datetime] = None,
) -> str:
    """Build the HMAC ``Authorization`` header for a partner API call."""
    signed_date = coupang_signed_date(now)
    message = f"{signed_date}{method.upper()}{api_path}{query.lstrip('?')}"
    signature = hmac.new(
        secret_key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return (
        f"CEA algorithm=HmacSHA256, access-key={access_key}, "
        f"signed-date={signed_date}, signature={signature}"
    )


def with_sub_id(url: str, sub_id: Optional[str]) -> str:
    """Append ``subId`` to ``url`` unless it already carries one."""
    if not sub_id or "subId=" in url:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}subId={quote(sub_id, safe='')}"


class CoupangDeeplinkClient:
    """Thin wrapper around the partner deeplink endpoint."""

    def __init__(
        self,
        access_key: Optional[str],
        secret_key: Optional[str],
        base_url: str = "https://api-gateway.coupang.com",
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.access_key = (access_key or "").strip()
        self.secret_key = (secret_key or "").strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logging.getLogger("deeplink.client")

    @property
    def configured(self) -> bool:
        return bool(self.access_key and self.secret_key)

    def create_deeplinks(
        self, urls: Sequence[str], sub_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Convert ``urls`` and return the raw ``data`` items, one per URL."""
        if not self.configured:
            raise DeeplinkNotConfiguredError("Coupang partner API keys are not set.")

        authorization = build_coupang_authorization(
            self.access_key, self.secret_key, "POST", DEEPLINK_PATH
        )
        payload = {"coupangUrls": [with_sub_id(url, sub_id) for url in urls]}
        headers = {
            "Authorization": authorization,
            "Content-Type": "application/json;charset=UTF-8",
        }

        try:
            response = self.session.post(
                f"{self.base_url}{DEEPLINK_PATH}",
                headers=headers,
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as timeout_err:
            raise DeeplinkUpstreamError(f"Timeout error: {timeout_err}") from timeout_err
        except requests.exceptions.RequestException as req_err:
            raise DeeplinkUpstreamError(f"Request error: {req_err}") from req_err

        if response.status_code == 401:
            raise DeeplinkAuthError("Deeplink API returned 401", status=401)
        if not response.ok:
            body = (response.text or "")[:120]
            raise DeeplinkUpstreamError(
                f"Deeplink API error: {response.status_code}"
                + (f" - {body}" if body else ""),
                status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise DeeplinkUpstreamError("Deeplink API returned invalid JSON") from exc

        items = data.get("data") if isinstance(data, dict) else None
        return items if isinstance(items, list) else []
