"""Domain models for offer price verification."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.models.guard_models import ErrorCode, VerificationResponse


class Trigger(str, Enum):
    """What asked for a verification."""

    MANUAL = "manual"
    BATCH = "batch"
    CLICK = "click"
    CONFIRM = "confirm"


class Outcome(str, Enum):
    """Verification state of an offer."""

    UNVERIFIED = "unverified"
    VERIFIED_FRESH = "verified_fresh"
    VERIFIED_STALE = "verified_stale"
    FAILED = "failed"


@dataclass(slots=True)
class VerifyOptions:
    """Policy knobs for one ``verify`` call.

    ``listed_price`` is the price the user saw; when omitted the offer's
    stored listed price is used.

    ``resolve_deadline_sec`` bounds how long this caller waits for the
    price; the deeplink conversion that follows is not counted.
    """

    trigger: Trigger = Trigger.MANUAL
    force: bool = False
    strict_guard: bool = True
    allow_unverified_redirect: bool = False
    listed_price: Optional[int] = None
    listed_verified_at: Optional[float] = None
    resolve_deadline_sec: Optional[float] = None


@dataclass(slots=True)
class PriceObservation:
    """Outcome of resolving an offer's current price (live or reused)."""

    ok: bool
    price: int = 0
    fetched_at: float = 0.0
    code: Optional[ErrorCode] = None
    detail_code: Optional[str] = None
    message: Optional[str] = None


@dataclass(slots=True)
class VerificationResult:
    """What the engine concluded for one offer and one caller."""

    ok: bool
    offer_id: str
    trigger: Trigger
    outcome: Outcome
    price_changed: bool = False
    listed_price: Optional[int] = None
    current_price: Optional[int] = None
    verified_at: Optional[float] = None
    redirect_url: Optional[str] = None
    degraded: bool = False
    skipped: bool = False
    code: Optional[ErrorCode] = None
    message: Optional[str] = None

    @property
    def blocked(self) -> bool:
        """A user-facing verification that ended without a redirect."""
        return self.trigger in (Trigger.CLICK, Trigger.CONFIRM) and not self.redirect_url

    def to_response(self) -> VerificationResponse:
        return VerificationResponse(
            ok=self.ok,
            offer_id=self.offer_id,
            trigger=self.trigger.value,
            outcome=self.outcome.value,
            price_changed=self.price_changed,
            listed_price=self.listed_price,
            current_price=self.current_price,
            verified_at=self.verified_at,
            redirect_url=self.redirect_url,
            degraded=self.degraded,
            skipped=self.skipped,
            code=self.code,
            message=self.message,
        )
