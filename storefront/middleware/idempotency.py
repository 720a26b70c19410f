"""
Storefront — Idempotency-Key middleware for checkout

  - Cache hit  → replay the stored response, no business logic runs
  - Cache miss → run checkout, store the response for IDEMPOTENCY_KEY_TTL_SECONDS

Keys are namespaced by the caller's credentials so two users cannot
replay each other's orders.
"""
import hashlib
import json
import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.core.config import get_settings
from storefront.core.redis_client import get_redis

settings = get_settings()
logger = logging.getLogger(__name__)

IDEMPOTENCY_PREFIX = "idempotent:"
IDEMPOTENCY_METHODS = {"POST"}
IDEMPOTENCY_PATHS = {"/orders", "/orders/"}


def cache_key(request: Request, idem_key: str) -> str:
    credential = (
        request.headers.get("Authorization")
        or request.cookies.get(settings.ACCESS_COOKIE_NAME)
        or ""
    )
    owner = hashlib.sha256(credential.encode()).hexdigest()[:16]
    return f"{IDEMPOTENCY_PREFIX}{owner}:{idem_key}"


class IdempotencyMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        if (
            not settings.IDEMPOTENCY_ENABLED
            or request.method not in IDEMPOTENCY_METHODS
            or request.url.path not in IDEMPOTENCY_PATHS
        ):
            return await call_next(request)

        idem_key = request.headers.get("Idempotency-Key")
        if not idem_key:
            return await call_next(request)

        redis = get_redis()
        key = cache_key(request, idem_key)

        cached = await redis.get(key)
        if cached:
            data = json.loads(cached)
            logger.info("Replaying idempotent response for key %s", idem_key)
            return JSONResponse(
                content=data["body"],
                status_code=data["status_code"],
                headers={"X-Idempotency-Replay": "true"},
            )

        response = await call_next(request)

        body_bytes = b""
        async for chunk in response.body_iterator:
            body_bytes += chunk

        # only successful checkouts are pinned to the key
        if 200 <= response.status_code < 300:
            try:
                body = json.loads(body_bytes)
            except ValueError:
                body = None
            if body is not None:
                await redis.setex(
                    key,
                    settings.IDEMPOTENCY_KEY_TTL_SECONDS,
                    json.dumps({"body": body, "status_code": response.status_code}),
                )

        return Response(
            content=body_bytes,
            status_code=response.status_code,
            media_type=response.media_type,
            headers=dict(response.headers),
        )
