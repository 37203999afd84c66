"""Signed, time-boxed tokens carrying price state between requests.

A token is ``base64url(json_payload) + "." + base64url(hmac_sha256)``. The
HMAC input is prefixed with the namespace, so a ``price`` token is never
accepted by the ``confirm`` verifier and vice versa. All state lives in the
token; nothing is stored server side.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from src.models.guard_models import ErrorCode

logger = logging.getLogger("tokens.service")

PRICE_NAMESPACE = "price"
CONFIRM_NAMESPACE = "confirm"
NAMESPACES = (PRICE_NAMESPACE, CONFIRM_NAMESPACE)


class TokenCreateError(RuntimeError):
    """Raised when a token cannot be minted (bad payload, no secret)."""


@dataclass(slots=True)
class TokenCheck:
    """Result of verifying a token."""

    ok: bool
    payload: Optional[Dict[str, Any]] = None
    code: Optional[ErrorCode] = None


@dataclass(slots=True)
class PriceTokenPayload:
    offer_id: str
    listed_price: int
    verified_at: Optional[float]
    expires_at: float


@dataclass(slots=True)
class ConfirmTokenPayload:
    offer_id: str
    old_price: int
    new_price: int
    expires_at: float


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


class TokenService:
    """Create and verify ``price`` and ``confirm`` tokens."""

    def __init__(
        self,
        price_secret: str,
        confirm_secret: Optional[str] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._keys = {
            PRICE_NAMESPACE: price_secret.encode("utf-8"),
            CONFIRM_NAMESPACE: (confirm_secret or price_secret).encode("utf-8"),
        }
        self._clock = clock or time.time

    def create_token(
        self, namespace: str, payload: Mapping[str, Any], ttl: float
    ) -> str:
        """Sign ``payload`` for ``namespace``; ``expiresAt`` is added here."""
        key = self._key_for(namespace)
        if not key:
            raise TokenCreateError("Token secret is not configured.")
        if not payload.get("offerId"):
            raise TokenCreateError("Token payload requires an offerId.")

        body = dict(payload)
        body["expiresAt"] = self._clock() + ttl
        try:
            encoded = json.dumps(body, separators=(",", ":"), sort_keys=True)
        except (TypeError, ValueError) as exc:
            raise TokenCreateError(f"Token payload is not serializable: {exc}") from exc

        body_b64 = _b64encode(encoded.encode("utf-8"))
        return f"{body_b64}.{self._sign(namespace, key, body_b64)}"

    def verify_token(
        self, namespace: str, token: Optional[str], expected_offer_id: str
    ) -> TokenCheck:
        """Check signature, offer binding and expiry of ``token``."""
        if not token:
            return TokenCheck(ok=False, code=ErrorCode.TOKEN_MISSING)

        key = self._key_for(namespace)
        if not key:
            logger.error("Token secret for namespace '%s' is not configured", namespace)
            return TokenCheck(ok=False, code=ErrorCode.TOKEN_INVALID)

        body_b64, sep, signature = token.partition(".")
        if not sep or not body_b64 or not signature:
            return TokenCheck(ok=False, code=ErrorCode.TOKEN_INVALID)

        expected = self._sign(namespace, key, body_b64)
        if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
            return TokenCheck(ok=False, code=ErrorCode.TOKEN_INVALID)

        try:
            payload = json.loads(_b64decode(body_b64).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError):
            return TokenCheck(ok=False, code=ErrorCode.TOKEN_INVALID)

        if not isinstance(payload, dict):
            return TokenCheck(ok=False, code=ErrorCode.TOKEN_INVALID)
        if str(payload.get("offerId")) != str(expected_offer_id):
            return TokenCheck(ok=False, code=ErrorCode.TOKEN_INVALID)

        expires_at = payload.get("expiresAt")
        if not isinstance(expires_at, (int, float)) or isinstance(expires_at, bool):
            return TokenCheck(ok=False, code=ErrorCode.TOKEN_INVALID)
        if self._clock() > expires_at:
            return TokenCheck(ok=False, code=ErrorCode.TOKEN_EXPIRED)

        return TokenCheck(ok=True, payload=payload)

    # Typed helpers used by the redirect guard and the listing renderer.

    def create_price_token(
        self,
        offer_id: str,
        listed_price: int,
        verified_at: Optional[float],
        ttl: float,
    ) -> str:
        return self.create_token(
            PRICE_NAMESPACE,
            {"offerId": offer_id, "listedPrice": int(listed_price), "verifiedAt": verified_at},
            ttl,
        )

    def create_confirm_token(
        self, offer_id: str, old_price: int, new_price: int, ttl: float
    ) -> str:
        return self.create_token(
            CONFIRM_NAMESPACE,
            {"offerId": offer_id, "oldPrice": int(old_price), "newPrice": int(new_price)},
            ttl,
        )

    @staticmethod
    def parse_price_payload(payload: Mapping[str, Any]) -> PriceTokenPayload:
        verified_at = payload.get("verifiedAt")
        return PriceTokenPayload(
            offer_id=str(payload["offerId"]),
            listed_price=int(payload.get("listedPrice") or 0),
            verified_at=float(verified_at) if verified_at is not None else None,
            expires_at=float(payload["expiresAt"]),
        )

    @staticmethod
    def parse_confirm_payload(payload: Mapping[str, Any]) -> ConfirmTokenPayload:
        return ConfirmTokenPayload(
            offer_id=str(payload["offerId"]),
            old_price=int(payload.get("oldPrice") or 0),
            new_price=int(payload.get("newPrice") or 0),
            expires_at=float(payload["expiresAt"]),
        )

    def _key_for(self, namespace: str) -> bytes:
        if namespace not in self._keys:
            raise ValueError(f"Unknown token namespace: {namespace}")
        return self._keys[namespace]

    @staticmethod
    def _sign(namespace: str, key: bytes, body_b64: str) -> str:
        message = f"{namespace}.{body_b64}".encode("utf-8")
        return _b64encode(hmac.new(key, message, hashlib.sha256).digest())
