"""
Expired notification sweeper.

Background loop started from the application lifespan. Reads already hide
expired notifications; this only reclaims their rows.
"""

import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError

from backend.app.services.notification_store import NotificationStore

logger = logging.getLogger(__name__)


async def purge_expired_notifications(session_factory) -> int:
    """Delete every expired notification in one transaction."""
    async with session_factory() as db:
        purged = await NotificationStore.purge_expired(db)
        await db.commit()

    if purged:
        logger.info("Purged %d expired notifications", purged)
    return purged


async def run_ttl_sweeper(session_factory, interval_seconds: float) -> None:
    """Purge expired notifications every ``interval_seconds`` until cancelled."""
    logger.info("TTL sweeper started (interval=%ss)", interval_seconds)
    while True:
        try:
            await purge_expired_notifications(session_factory)
        except SQLAlchemyError:
            logger.exception("TTL sweep failed")
        await asyncio.sleep(interval_seconds)
