"""
Storefront — Sliding window rate limiter middleware (Redis-backed)

Limits POST /auth/login to RATE_LIMIT_MAX_ATTEMPTS per
RATE_LIMIT_WINDOW_SECONDS per submitted e-mail. Uses a sorted set per key
(ZREMRANGEBYSCORE/ZCARD/ZADD) for a true sliding window.
"""
import json
import logging
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.core.config import get_settings
from storefront.core.redis_client import get_redis
from storefront.core.responses import error_response

settings = get_settings()
logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "ratelimit:login:"
LIMITED_PATHS = {"/auth/login", "/auth/login/"}


def tracking_key(body: bytes, client_host: str | None) -> str:
    """E-mail from the JSON body, lower-cased; client IP when absent or unparsable."""
    try:
        data = json.loads(body)
        email = data.get("email") if isinstance(data, dict) else None
    except ValueError:
        email = None
    if isinstance(email, str) and email.strip():
        return email.strip().lower()
    return client_host or "unknown"


class SlidingWindowRateLimiter(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        if (
            not settings.RATE_LIMIT_ENABLED
            or request.method != "POST"
            or request.url.path not in LIMITED_PATHS
        ):
            return await call_next(request)

        # body is cached on the request and replayed to the route
        body = await request.body()
        key = RATE_LIMIT_PREFIX + tracking_key(body, request.client.host if request.client else None)

        redis = get_redis()
        now = time.time()
        window_start = now - settings.RATE_LIMIT_WINDOW_SECONDS

        pipe = redis.pipeline()
        pipe.zremrangebyscore(key, "-inf", window_start)
        pipe.zcard(key)
        pipe.zadd(key, {f"{now}:{uuid.uuid4().hex}": now})
        pipe.expire(key, settings.RATE_LIMIT_WINDOW_SECONDS + 1)
        results = await pipe.execute()

        attempts = results[1]  # count before this attempt
        if attempts >= settings.RATE_LIMIT_MAX_ATTEMPTS:
            logger.warning("Login rate limit hit for %s", key)
            return error_response(
                f"Too many login attempts. Maximum {settings.RATE_LIMIT_MAX_ATTEMPTS} "
                f"attempts per {settings.RATE_LIMIT_WINDOW_SECONDS} seconds.",
                status_code=429,
                errors={"retryAfterSeconds": settings.RATE_LIMIT_WINDOW_SECONDS},
                headers={"Retry-After": str(settings.RATE_LIMIT_WINDOW_SECONDS)},
            )

        return await call_next(request)
