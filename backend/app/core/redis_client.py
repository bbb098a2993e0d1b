"""
Redis client initialization and run-lock helpers.

Redis holds short-lived coordination keys, such as the lock that keeps
two activity-to-notification runs from interleaving their dedup checks.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as redis
from redis.asyncio.lock import Lock
from redis.exceptions import LockNotOwnedError, RedisError

from backend.app.core.config import settings

logger = logging.getLogger(__name__)

# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """
    Get Redis client instance.

    Used as a FastAPI dependency so tests can override it.
    """
    return redis_client


async def ping_redis(client) -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return bool(await client.ping())
    except RedisError:
        return False


class LockNotAcquired(Exception):
    """Another holder owns the lock."""


@asynccontextmanager
async def run_lock(client, name: str, ttl_seconds: int) -> AsyncIterator[Optional[Lock]]:
    """
    Hold ``lock:{name}`` for the duration of the block.

    Yields the held lock so long runs can call ``refresh_lock``. Raises
    LockNotAcquired when someone else holds it. If Redis is unreachable
    the block still runs (fail-open) and yields None.
    """
    lock = client.lock(f"lock:{name}", timeout=ttl_seconds, blocking=False)
    try:
        acquired = await lock.acquire()
    except RedisError as exc:
        logger.warning("Redis unavailable, running %s without lock: %s", name, exc)
        acquired = None
        lock = None

    if acquired is False:
        raise LockNotAcquired(name)

    try:
        yield lock
    finally:
        if lock is not None:
            try:
                # Token-checked: a lock that expired and was re-taken stays put
                await lock.release()
            except LockNotOwnedError:
                logger.warning("Lock %s expired before release", lock.name)
            except RedisError as exc:
                logger.warning("Could not release lock %s: %s", lock.name, exc)


async def refresh_lock(lock: Optional[Lock]) -> None:
    """
    Reset the lock's TTL to its full timeout.

    Raises LockNotAcquired if the lock expired and someone else took it.
    """
    if lock is None:
        return
    try:
        await lock.reacquire()
    except LockNotOwnedError:
        raise LockNotAcquired(lock.name) from None
    except RedisError as exc:
        logger.warning("Could not refresh lock %s: %s", lock.name, exc)
