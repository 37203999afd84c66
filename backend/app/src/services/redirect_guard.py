"""Click → (redirect | confirm | fail) protocol for affiliate redirects.

The listing page hands the user a signed price token. On click the guard
re-verifies the offer; a changed price under the strict policy produces a
signed confirm token instead of a redirect, and the confirm step repeats the
check without ever degrading.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.models.guard_models import ErrorCode
from src.services.tokens.token_service import (
    CONFIRM_NAMESPACE,
    PRICE_NAMESPACE,
    TokenCreateError,
    TokenService,
)
from src.services.verification.engine import VerificationEngine
from src.services.verification.models import (
    Trigger,
    VerificationResult,
    VerifyOptions,
)

logger = logging.getLogger("redirect.guard")

DEFAULT_FAILURE_MESSAGE = "Current price verification failed, please try again shortly."

ERROR_MESSAGES = {
    ErrorCode.TOKEN_MISSING: "This link is missing its price token. Please return to the listing.",
    ErrorCode.TOKEN_INVALID: "This link is not valid for this offer. Please return to the listing.",
    ErrorCode.TOKEN_EXPIRED: "This link has expired. Please reload the listing and try again.",
    ErrorCode.OFFER_NOT_FOUND: "This offer is no longer available.",
    ErrorCode.CONFIRM_TOKEN_INVALID: "This confirmation is not valid for this offer.",
    ErrorCode.CONFIRM_TOKEN_CREATE_FAILED: DEFAULT_FAILURE_MESSAGE,
    ErrorCode.VERIFY_FAILED: DEFAULT_FAILURE_MESSAGE,
    ErrorCode.VERIFY_TIMEOUT: DEFAULT_FAILURE_MESSAGE,
}


class DecisionKind(str, Enum):
    REDIRECT = "redirect"
    CONFIRM = "confirm"
    ERROR = "error"


@dataclass(slots=True)
class GuardDecision:
    """What the HTTP layer should answer for one click or confirm."""

    kind: DecisionKind
    offer_id: str
    redirect_url: Optional[str] = None
    confirm_token: Optional[str] = None
    old_price: Optional[int] = None
    new_price: Optional[int] = None
    code: Optional[ErrorCode] = None
    message: Optional[str] = None

    @classmethod
    def error(
        cls, offer_id: str, code: ErrorCode, message: Optional[str] = None
    ) -> "GuardDecision":
        return cls(
            kind=DecisionKind.ERROR,
            offer_id=offer_id,
            code=code,
            message=message or ERROR_MESSAGES.get(code, DEFAULT_FAILURE_MESSAGE),
        )


class RedirectGuard:
    """Compose token checks, verification and deeplinks into one decision."""

    def __init__(
        self,
        engine: VerificationEngine,
        tokens: TokenService,
        strict_guard: bool = True,
        degraded_allowed: bool = False,
        confirm_token_ttl: float = 300,
        verify_deadline_sec: Optional[float] = None,
    ) -> None:
        self.engine = engine
        self.tokens = tokens
        self.strict_guard = strict_guard
        self.degraded_allowed = degraded_allowed
        self.confirm_token_ttl = confirm_token_ttl
        self.verify_deadline_sec = (
            verify_deadline_sec
            if verify_deadline_sec is not None
            else engine.fetch_timeout_sec + 1.0
        )

    async def handle_click(
        self, offer_id: str, price_token: Optional[str]
    ) -> GuardDecision:
        """Entry point of ``GET /offer/{offer_id}``."""
        check = self.tokens.verify_token(PRICE_NAMESPACE, price_token, offer_id)
        if not check.ok or check.payload is None:
            logger.info("Rejected click on %s: %s", offer_id, check.code)
            return GuardDecision.error(offer_id, check.code or ErrorCode.TOKEN_INVALID)

        try:
            payload = self.tokens.parse_price_payload(check.payload)
        except (KeyError, TypeError, ValueError):
            return GuardDecision.error(offer_id, ErrorCode.TOKEN_INVALID)

        options = VerifyOptions(
            trigger=Trigger.CLICK,
            force=True,
            strict_guard=self.strict_guard,
            allow_unverified_redirect=(not self.strict_guard) or self.degraded_allowed,
            listed_price=payload.listed_price,
            listed_verified_at=payload.verified_at,
            resolve_deadline_sec=self.verify_deadline_sec,
        )
        return await self._verify_and_decide(offer_id, options)

    async def handle_confirm(
        self, offer_id: str, confirm_token: Optional[str]
    ) -> GuardDecision:
        """Entry point of ``POST /offer/{offer_id}/confirm``.

        No degrading here: the user already saw one price change, so a
        second unverifiable attempt fails loudly. A price that moved again
        yields a fresh confirm token (chained confirmation).
        """
        check = self.tokens.verify_token(CONFIRM_NAMESPACE, confirm_token, offer_id)
        if not check.ok or check.payload is None:
            code = check.code or ErrorCode.TOKEN_INVALID
            if code == ErrorCode.TOKEN_INVALID:
                code = ErrorCode.CONFIRM_TOKEN_INVALID
            logger.info("Rejected confirm on %s: %s", offer_id, code.value)
            return GuardDecision.error(offer_id, code)

        try:
            payload = self.tokens.parse_confirm_payload(check.payload)
        except (KeyError, TypeError, ValueError):
            return GuardDecision.error(offer_id, ErrorCode.CONFIRM_TOKEN_INVALID)

        options = VerifyOptions(
            trigger=Trigger.CONFIRM,
            force=True,
            strict_guard=True,
            allow_unverified_redirect=False,
            listed_price=payload.new_price,
            resolve_deadline_sec=self.verify_deadline_sec,
        )
        return await self._verify_and_decide(offer_id, options)

    async def _verify_and_decide(
        self, offer_id: str, options: VerifyOptions
    ) -> GuardDecision:
        try:
            result = await self.engine.verify(offer_id, options)
        except Exception:
            logger.exception("Verification of %s failed unexpectedly", offer_id)
            return GuardDecision.error(offer_id, ErrorCode.VERIFY_FAILED)

        return self._decide(result, options)

    def _decide(self, result: VerificationResult, options: VerifyOptions) -> GuardDecision:
        if result.redirect_url:
            if result.degraded or result.price_changed:
                logger.info(
                    "Redirecting %s (%s) with degraded=%s price_changed=%s",
                    result.offer_id,
                    options.trigger.value,
                    result.degraded,
                    result.price_changed,
                )
            return GuardDecision(
                kind=DecisionKind.REDIRECT,
                offer_id=result.offer_id,
                redirect_url=result.redirect_url,
            )

        old_price = result.listed_price or 0
        new_price = result.current_price or 0
        if options.strict_guard and result.ok and result.price_changed:
            if old_price > 0 and new_price > 0:
                return self._confirm_decision(result.offer_id, old_price, new_price)

        return GuardDecision.error(
            result.offer_id, result.code or ErrorCode.VERIFY_FAILED
        )

    def _confirm_decision(
        self, offer_id: str, old_price: int, new_price: int
    ) -> GuardDecision:
        try:
            token = self.tokens.create_confirm_token(
                offer_id, old_price, new_price, self.confirm_token_ttl
            )
        except TokenCreateError:
            logger.exception("Could not mint confirm token for %s", offer_id)
            return GuardDecision.error(offer_id, ErrorCode.CONFIRM_TOKEN_CREATE_FAILED)

        logger.info(
            "Price of %s moved %d -> %d; confirmation required", offer_id, old_price, new_price
        )
        return GuardDecision(
            kind=DecisionKind.CONFIRM,
            offer_id=offer_id,
            confirm_token=token,
            old_price=old_price,
            new_price=new_price,
        )
