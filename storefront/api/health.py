"""
Storefront — Health endpoint
"""
import asyncio
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from storefront.core.config import get_settings
from storefront.core.redis_client import get_redis
from storefront.db.database import engine
from storefront.schemas.common import HealthResponse

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


async def _ping_db() -> None:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


@router.get("/health")
async def health_check():
    deps: dict[str, str] = {}
    healthy = True

    try:
        await asyncio.wait_for(_ping_db(), timeout=settings.HEALTH_CHECK_TIMEOUT)
        deps["database"] = "ok"
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        deps["database"] = f"error: {str(e)[:100]}"
        healthy = False

    try:
        redis = get_redis()
        await asyncio.wait_for(redis.ping(), timeout=settings.HEALTH_CHECK_TIMEOUT)
        deps["redis"] = "ok"
    except Exception as e:
        logger.warning("Redis health check failed: %s", e)
        deps["redis"] = f"error: {str(e)[:100]}"
        healthy = False

    body = HealthResponse(
        status="healthy" if healthy else "degraded",
        service=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        dependencies=deps,
    )
    return JSONResponse(content=body.model_dump(), status_code=200 if healthy else 503)
