"""Process-wide service singletons used as FastAPI dependencies.

Caches, the deeplink breaker and the single-flight registry must be shared
by every request in the process, so each factory is memoized.
"""

from functools import lru_cache

from configs import get_settings
from src.logger_config import get_logger
from src.repositories.redis.redis_crud import RedisBreakerState
from src.services.deeplink.circuit_breaker import CircuitBreaker, LocalBreakerState
from src.services.deeplink.converter import DeeplinkConverter
from src.services.deeplink.coupang_client import CoupangDeeplinkClient
from src.services.offers.offer_service import OfferService
from src.services.price_lookup.page_meta import PageMetaPriceLookup
from src.services.redirect_guard import RedirectGuard
from src.services.tokens.token_service import TokenService
from src.services.verification.coordinator import VerificationCoordinator
from src.services.verification.engine import VerificationEngine

logger = get_logger("dependencies")


@lru_cache
def get_token_service() -> TokenService:
    settings = get_settings()
    if not settings.PRICE_TOKEN_SECRET:
        logger.warning("PRICE_TOKEN_SECRET is empty; every token will be rejected")
    return TokenService(settings.PRICE_TOKEN_SECRET, settings.CONFIRM_TOKEN_SECRET)


@lru_cache
def get_offer_service() -> OfferService:
    return OfferService()


@lru_cache
def get_deeplink_converter() -> DeeplinkConverter:
    settings = get_settings()
    if settings.DEEPLINK_REDIS_ENABLED:
        logger.info(
            "Deeplink breaker state shared through Redis at %s:%s",
            settings.REDIS_HOST,
            settings.REDIS_PORT,
        )
        state = RedisBreakerState(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            password=settings.REDIS_PASSWORD,
            ssl=settings.REDIS_SSL,
            prefix=settings.REDIS_PREFIX,
            max_requests_per_min=settings.DEEPLINK_MAX_REQUESTS_PER_MIN,
        )
    else:
        state = LocalBreakerState(settings.DEEPLINK_MAX_REQUESTS_PER_MIN)

    client = CoupangDeeplinkClient(
        access_key=settings.COUPANG_ACCESS_KEY,
        secret_key=settings.COUPANG_SECRET_KEY,
        base_url=settings.COUPANG_API_BASE_URL,
        timeout=settings.DEEPLINK_TIMEOUT_SEC,
    )
    if not client.configured:
        logger.warning("Coupang keys missing; affiliate URLs pass through unchanged")

    return DeeplinkConverter(
        client=client,
        breaker=CircuitBreaker(cooldown_sec=settings.deeplink_cooldown_sec, state=state),
        cache_ttl=settings.DEEPLINK_CACHE_TTL,
        affiliate_hosts=settings.AFFILIATE_HOSTS,
        timeout=settings.DEEPLINK_TIMEOUT_SEC,
    )


@lru_cache
def get_verification_engine() -> VerificationEngine:
    settings = get_settings()
    return VerificationEngine(
        offers=get_offer_service(),
        price_lookup=PageMetaPriceLookup(timeout=settings.click_verify_timeout_sec),
        converter=get_deeplink_converter(),
        listing_price_ttl_sec=settings.LISTING_PRICE_TTL_SEC,
        display_price_fresh_minutes=settings.DISPLAY_PRICE_FRESH_MINUTES,
        fetch_timeout_sec=settings.click_verify_timeout_sec,
        sub_id=settings.DEEPLINK_SUB_ID,
    )


@lru_cache
def get_coordinator() -> VerificationCoordinator:
    settings = get_settings()
    return VerificationCoordinator(
        engine=get_verification_engine(),
        offers=get_offer_service(),
        product_types=settings.PRODUCT_TYPES,
        sub_id=settings.DEEPLINK_SUB_ID,
    )


@lru_cache
def get_redirect_guard() -> RedirectGuard:
    settings = get_settings()
    return RedirectGuard(
        engine=get_verification_engine(),
        tokens=get_token_service(),
        strict_guard=settings.STRICT_PRICE_GUARD,
        degraded_allowed=settings.DEGRADED_REDIRECT_ALLOWED,
        confirm_token_ttl=settings.CONFIRM_TOKEN_TTL_SEC,
    )
