import json
from typing import Any, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from redis import Redis
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from cardauth.core.config import get_settings
from cardauth.core.responses import error_response
from cardauth.core.security import PROVIDER_HEADER, client_ip

settings = get_settings()

# Singleton Redis client
redis_client = None

PENDING = "pending"


def get_redis_client() -> Redis:
    global redis_client
    if redis_client is None:
        redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
    return redis_client


# Processors share egress IPs, so key on provider as well
def get_rate_limit_key(request: Request) -> str:
    provider = request.headers.get(PROVIDER_HEADER) or settings.default_provider
    return f"provider:{provider.lower()}:ip:{client_ip(request)}"


limiter = Limiter(
    key_func=get_rate_limit_key,
    storage_uri=settings.rate_limit_storage_uri,
    default_limits=[settings.rate_limit_webhook],
    enabled=True,
)


async def custom_rate_limit_handler(request: Request, exc: RateLimitExceeded):
    retry_after = 60
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            **error_response(
                "Too many requests. Please try again later.",
                status.HTTP_429_TOO_MANY_REQUESTS,
                {"retry_after": retry_after, "limit": str(exc.detail)},
            ),
            "status_code": status.HTTP_429_TOO_MANY_REQUESTS,
        },
        headers={"Retry-After": str(retry_after)},
    )


# Idempotency cache for processor retries
def get_cache_key(provider: str, reference: str) -> str:
    """Cache key for one processor-generated request reference."""
    return f"authz:{provider}:{reference}"


def claim_reference(key: str, ttl: int) -> bool:
    """Reserve a reference for the first attempt. False if it was seen before."""
    redis = get_redis_client()
    return bool(redis.set(key, PENDING, nx=True, ex=ttl))


def get_from_cache(key: str) -> Optional[Any]:
    """Return the cached response, ``PENDING`` while in flight, or None."""
    redis = get_redis_client()
    cached = redis.get(key)
    if cached is None or cached == PENDING:
        return cached
    return json.loads(cached)


def set_to_cache(key: str, value: Any, ttl: int) -> None:
    """Store data in Redis cache with specified TTL."""
    redis = get_redis_client()
    redis.setex(key, ttl, json.dumps(value))


def invalidate_cache(key: str) -> None:
    redis = get_redis_client()
    redis.delete(key)
