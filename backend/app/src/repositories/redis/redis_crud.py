"""Module for keeping the deeplink breaker state in a shared Redis database."""

import logging
from typing import Optional, Union

import redis

from src.logger_config import RateLimitedLog
from src.services.deeplink.circuit_breaker import (
    WINDOW_SEC,
    LocalBreakerState,
    TokenGrant,
)

logger = logging.getLogger("deeplink.redis")

_EXTEND_COOLDOWN_LUA = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
local incoming = tonumber(ARGV[1])
if incoming > current then
  redis.call('SET', KEYS[1], incoming, 'PXAT', incoming)
  return incoming
end
return current
"""

_TAKE_TOKEN_LUA = """
local now = tonumber(ARGV[1])
local windowMs = tonumber(ARGV[2])
local maxPerMin = tonumber(ARGV[3])

local cooldownUntil = tonumber(redis.call('GET', KEYS[2]) or '0')
if cooldownUntil > now then
  return {0, 'cooldown', cooldownUntil}
end

local count = tonumber(redis.call('INCR', KEYS[1]) or '0')
if count == 1 then
  redis.call('PEXPIRE', KEYS[1], windowMs)
end

local ttl = tonumber(redis.call('PTTL', KEYS[1]) or '0')
if count > maxPerMin then
  return {0, 'rate_limited', now + math.max(ttl, 1)}
end

return {1, 'ok', 0}
"""


def str_to_bool(value: str) -> bool:
    """Convert REDIS_SSL env variable to boolean."""
    return value.lower() in ("true", "1", "yes")


class RedisBreakerState:
    """Breaker ``open_until`` and request budget shared across processes.

    Timestamps are stored in milliseconds under ``<prefix>:deeplink:*``.
    Whenever Redis is unreachable the process falls back to a local state so
    conversions keep degrading gracefully instead of failing.
    """

    def __init__(
        self,
        host: str,
        port: int,
        password: Optional[str],
        ssl: Union[str, bool],
        prefix: str = "priceguard",
        max_requests_per_min: int = 42,
        handler: Optional["redis.Redis"] = None,
    ) -> None:
        """
        Initialize a connection to the Redis database.

        Args:
            host (str): The hostname or IP address of the Redis server.
            port (int): The port number of the Redis server (default is 6379).
            prefix (str): Namespace for the keys written by this store.
            handler: Pre-built client, mostly for tests.
        """
        ssl = str_to_bool(ssl) if isinstance(ssl, str) else ssl
        self.handler = handler or redis.Redis(
            host=host,
            port=port,
            password=password,
            ssl=ssl,
            db=0,
            ssl_cert_reqs=None,
        )
        self.max_requests_per_min = max(1, max_requests_per_min)
        self.bucket_key = f"{prefix}:deeplink:bucket"
        self.cooldown_key = f"{prefix}:deeplink:cooldown_until"
        self.local = LocalBreakerState(max_requests_per_min)
        self._error_log = RateLimitedLog(60.0)

    def get_open_until(self, now: float) -> float:
        try:
            raw = self.handler.get(self.cooldown_key)
        except redis.RedisError as exc:
            self._log_error("get cooldown", exc, now)
            return self.local.get_open_until(now)
        try:
            return float(raw or 0) / 1000.0
        except (TypeError, ValueError):
            return 0.0

    def extend_open_until(self, until: float, now: float) -> float:
        try:
            stored = self.handler.eval(
                _EXTEND_COOLDOWN_LUA, 1, self.cooldown_key, str(int(until * 1000))
            )
            return float(stored or 0) / 1000.0
        except redis.RedisError as exc:
            self._log_error("extend cooldown", exc, now)
            return self.local.extend_open_until(until, now)

    def take_token(self, now: float) -> TokenGrant:
        try:
            result = self.handler.eval(
                _TAKE_TOKEN_LUA,
                2,
                self.bucket_key,
                self.cooldown_key,
                str(int(now * 1000)),
                str(int(WINDOW_SEC * 1000)),
                str(self.max_requests_per_min),
            )
        except redis.RedisError as exc:
            self._log_error("take token", exc, now)
            return self.local.take_token(now)

        allowed = int(result[0]) == 1
        reason = result[1].decode("utf-8") if isinstance(result[1], bytes) else str(result[1])
        retry_at = float(result[2] or 0) / 1000.0
        return TokenGrant(allowed=allowed, reason=reason, retry_at=retry_at)

    def _log_error(self, operation: str, exc: Exception, now: float) -> None:
        if self._error_log.should_log(now):
            logger.error(
                "Redis %s failed, falling back to local breaker state: %s",
                operation,
                exc,
            )
