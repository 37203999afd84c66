"""Circuit breaker and request budget guarding the deeplink partner API."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

logger = logging.getLogger("deeplink.breaker")

WINDOW_SEC = 60.0
AUTH_LOG_INTERVAL_SEC = 60.0


@dataclass(slots=True)
class TokenGrant:
    """Answer of the request budget for one upstream call."""

    allowed: bool
    reason: str = "ok"
    retry_at: float = 0.0


class BreakerStateStore(Protocol):
    """Where the breaker keeps ``open_until`` and the request budget."""

    def get_open_until(self, now: float) -> float: ...

    def extend_open_until(self, until: float, now: float) -> float: ...

    def take_token(self, now: float) -> TokenGrant: ...


class LocalBreakerState:
    """Process-local breaker state.

    ``extend_open_until`` is an atomic max() under a lock so that two trips
    racing never shorten an already longer cooldown.
    """

    def __init__(self, max_requests_per_min: int = 42) -> None:
        self.max_requests_per_min = max(1, max_requests_per_min)
        self.open_until = 0.0
        self.window_start_at = 0.0
        self.window_count = 0
        self._lock = threading.Lock()

    def get_open_until(self, now: float) -> float:
        return self.open_until

    def extend_open_until(self, until: float, now: float) -> float:
        with self._lock:
            self.open_until = max(self.open_until, until)
            return self.open_until

    def take_token(self, now: float) -> TokenGrant:
        with self._lock:
            if now < self.open_until:
                return TokenGrant(False, "cooldown", self.open_until)

            if now - self.window_start_at >= WINDOW_SEC:
                self.window_start_at = now
                self.window_count = 0

            if self.window_count >= self.max_requests_per_min:
                return TokenGrant(False, "rate_limited", self.window_start_at + WINDOW_SEC)

            self.window_count += 1
            return TokenGrant(True)


class CircuitBreaker:
    """Cooldown-on-auth-failure breaker owned by one deeplink converter.

    Holds ``open_until`` (through its state store) and ``last_logged_at``.
    Only an upstream authentication failure trips it; the trip is logged at
    most once per minute regardless of request volume.
    """

    def __init__(
        self,
        cooldown_sec: float = 900.0,
        state: Optional[BreakerStateStore] = None,
        clock: Optional[Callable[[], float]] = None,
        log_interval_sec: float = AUTH_LOG_INTERVAL_SEC,
    ) -> None:
        self.cooldown_sec = cooldown_sec
        self.state: BreakerStateStore = state or LocalBreakerState()
        self.clock = clock or time.time
        self.log_interval_sec = log_interval_sec
        self.last_logged_at = 0.0
        self._log_lock = threading.Lock()

    @property
    def open_until(self) -> float:
        return self.state.get_open_until(self.clock())

    def is_open(self) -> bool:
        now = self.clock()
        return now < self.state.get_open_until(now)

    def trip(self, reason: str = "auth") -> float:
        """Open the breaker for ``cooldown_sec`` and return the new deadline."""
        now = self.clock()
        until = self.state.extend_open_until(now + self.cooldown_sec, now)
        with self._log_lock:
            should_log = now - self.last_logged_at >= self.log_interval_sec
            if should_log:
                self.last_logged_at = now
        if should_log:
            logger.error(
                "Deeplink upstream rejected credentials (%s); pausing calls for %.0fs",
                reason,
                self.cooldown_sec,
            )
        return until

    def acquire(self) -> TokenGrant:
        """Ask the request budget for permission to call upstream."""
        return self.state.take_token(self.clock())
