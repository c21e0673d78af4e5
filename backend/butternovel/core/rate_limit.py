"""
Rate limiting using a Redis sliding window, shared by every app instance.

Each (limit type, client) pair is a sorted set of request ids scored by timestamp. A check trims
entries older than the window, records the request, and counts; over the limit the entry is removed
again and the request is denied. If Redis is unavailable the limiter fails open (allow, log warning).

Usage (FastAPI dependency injection):
    @router.post("/notifications/archive-all")
    def archive(..., _rate_limit=Depends(rate_limit_dependency("api"))):
        ...

View tracking never answers 429: it asks for the result with raise_on_limit=False and degrades
to "not counted" instead.
"""
import logging
import math
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

import redis
from fastapi import HTTPException, Request, status

from butternovel.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    window_seconds: int
    limit: int


# Named limits per operation type (reads are never limited)
RATE_LIMIT_CONFIGS: dict[str, RateLimitConfig] = {
    "views": RateLimitConfig(window_seconds=60, limit=60),
    "api": RateLimitConfig(window_seconds=60, limit=30),
}


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    limit: int
    retry_after: int  # seconds until the oldest counted request leaves the window, 0 when allowed


class RateLimiter:
    """Redis-backed sliding window. The connection is created lazily on first check."""

    def __init__(self, redis_url: str, clock: Callable[[], float] = time.time) -> None:
        self.redis_url = redis_url
        self._clock = clock
        self._redis: Optional[redis.Redis] = None

    def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        return self._redis

    def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        now = self._clock()
        redis_key = f"ratelimit:{key}"
        member = f"{now}:{uuid.uuid4().hex}"
        try:
            r = self._get_redis()
            pipe = r.pipeline(transaction=True)
            pipe.zremrangebyscore(redis_key, "-inf", now - config.window_seconds)
            pipe.zadd(redis_key, {member: now})
            pipe.zcard(redis_key)
            pipe.zrange(redis_key, 0, 0, withscores=True)
            pipe.expire(redis_key, config.window_seconds + 10)
            _, _, count, oldest, _ = pipe.execute()

            if count > config.limit:
                r.zrem(redis_key, member)
                oldest_at = oldest[0][1] if oldest else now
                retry_after = max(1, math.ceil(oldest_at + config.window_seconds - now))
                return RateLimitResult(allowed=False, remaining=0, limit=config.limit, retry_after=retry_after)

            return RateLimitResult(
                allowed=True,
                remaining=max(0, config.limit - count),
                limit=config.limit,
                retry_after=0,
            )
        except redis.RedisError as e:
            logger.warning("Redis unavailable for rate limiting, allowing request (%s): %s", key, e)
            return RateLimitResult(allowed=True, remaining=config.limit, limit=config.limit, retry_after=0)


_rate_limiter_instance: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    global _rate_limiter_instance
    if _rate_limiter_instance is None:
        _rate_limiter_instance = RateLimiter(settings.redis_url)
    return _rate_limiter_instance


def client_ip(request: Request) -> str | None:
    """First x-forwarded-for address, else x-real-ip, else the socket peer."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    return request.client.host if request.client else None


def client_identifier(request: Request, user_id: str | None = None) -> str:
    """user:<id> when signed in, else ip:<client address>, else 'anonymous'."""
    if user_id:
        return f"user:{user_id}"
    ip = client_ip(request)
    return f"ip:{ip}" if ip else "anonymous"


def rate_limit_dependency(limit_type: str = "api", raise_on_limit: bool = True):
    """
    Build a dependency that checks `limit_type` for the caller.
    Over the limit it raises 429 with Retry-After, or with raise_on_limit=False returns the denied result.
    """
    config = RATE_LIMIT_CONFIGS[limit_type]

    def _check(request: Request) -> RateLimitResult:
        if not settings.rate_limit_enabled:
            return RateLimitResult(allowed=True, remaining=config.limit, limit=config.limit, retry_after=0)
        identifier = client_identifier(request, (request.headers.get("x-user-id") or "").strip() or None)
        result = get_rate_limiter().check(f"{limit_type}:{identifier}", config)
        if not result.allowed:
            logger.info("Rate limit %s exceeded for %s", limit_type, identifier)
            if raise_on_limit:
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail="Too many requests, please slow down",
                    headers={"Retry-After": str(result.retry_after)},
                )
        return result

    return _check
