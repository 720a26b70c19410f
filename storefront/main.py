"""
Storefront — FastAPI application entrypoint
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException as StarletteHTTPException

import storefront.models  # noqa: F401  (register tables on Base.metadata)
from storefront.api import auth, cart, catalog, health, orders, users, wishlist
from storefront.core.config import get_settings
from storefront.core.errors import StorefrontError
from storefront.core.logging_setup import setup_logging
from storefront.core.redis_client import close_redis
from storefront.core.responses import error_response, success_response
from storefront.db.database import Base, engine
from storefront.middleware.idempotency import IdempotencyMiddleware
from storefront.middleware.rate_limiter import SlidingWindowRateLimiter

settings = get_settings()
setup_logging(settings)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("%s %s started (%s)", settings.SERVICE_NAME, settings.SERVICE_VERSION, settings.ENVIRONMENT)
    yield
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="Storefront API",
    description="E-commerce backend: accounts, catalog, cart, wishlist, checkout and orders.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
)

# Order matters: the last middleware added runs first
app.add_middleware(IdempotencyMiddleware)
app.add_middleware(SlidingWindowRateLimiter)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.METRICS_ENABLED:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")


# ─── Error envelope ────────────────────────────────────────────────────────────

def _field_errors(exc: RequestValidationError) -> dict[str, str]:
    errors: dict[str, str] = {}
    for err in exc.errors():
        # drop the leading "body"/"query" segment
        loc = [str(part) for part in err.get("loc", ())[1:]]
        errors[".".join(loc) or "request"] = err.get("msg", "Invalid value")
    return errors


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return error_response(exc.message, exc.status_code, exc.errors or None, headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return error_response("Invalid request data", 400, _field_errors(exc))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(str(exc.detail), exc.status_code, headers=getattr(exc, "headers", None))


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("Integrity violation on %s %s: %s", request.method, request.url.path, exc.orig)
    return error_response("Resource conflicts with existing data", 409)


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError):
    logger.warning("Concurrent update gave up on %s %s", request.method, request.url.path)
    return error_response("The resource was modified concurrently, please retry", 409)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response("Internal server error", 500)


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(users.profile_router)
app.include_router(catalog.products)
app.include_router(catalog.categories)
app.include_router(cart.router)
app.include_router(wishlist.router)
app.include_router(orders.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return success_response({"service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION})
