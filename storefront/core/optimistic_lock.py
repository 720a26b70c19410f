"""
Storefront — Optimistic locking retry decorator

Product rows carry a version_id column (SQLAlchemy version_id_col). When a
concurrent transaction changes the same product between our read and our
flush, SQLAlchemy raises StaleDataError. The decorated unit of work is then
re-run from scratch with exponential backoff + jitter.
"""
import asyncio
import random
import functools
import logging

from sqlalchemy.orm.exc import StaleDataError

from storefront.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


def backoff_delay(attempt: int) -> float:
    """Exponential backoff: base * 2^attempt, capped, plus jitter (seconds)."""
    base_delay = settings.OPT_LOCK_BASE_DELAY_MS / 1000.0
    max_delay = settings.OPT_LOCK_MAX_DELAY_MS / 1000.0
    jitter = random.uniform(0, settings.OPT_LOCK_JITTER_MS / 1000.0)
    return min(base_delay * (2 ** attempt), max_delay) + jitter


def with_optimistic_retry(max_retries: int | None = None):
    """
    Re-run an async unit of work when a versioned row changed under it.
    The wrapped function must roll back its session before letting
    StaleDataError escape.

    Usage:
        @with_optimistic_retry()
        async def place_order(db, ...):
            ...
    """
    _max = max_retries or settings.OPT_LOCK_MAX_RETRIES

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(1, _max + 1):
                try:
                    return await func(*args, **kwargs)
                except StaleDataError:
                    if attempt == _max:
                        logger.error(
                            "%s still conflicting after %d attempts, giving up",
                            func.__name__, _max,
                        )
                        raise
                    delay = backoff_delay(attempt)
                    logger.warning(
                        "StaleDataError in %s on attempt %d/%d, retrying in %.3fs",
                        func.__name__, attempt, _max, delay,
                    )
                    await asyncio.sleep(delay)
        return wrapper
    return decorator
