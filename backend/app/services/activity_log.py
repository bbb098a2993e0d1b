"""
Activity logging service.

Writes Activity rows for notification operations performed by a known
user. Runs as an event-bus subscriber with its own session, after the
operation that triggered it has committed.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.events import EventBus, NotificationEvent
from backend.app.models.activity import Activity

logger = logging.getLogger(__name__)


async def log_activity(
    db: AsyncSession,
    type: str,
    description: str,
    user_id: Optional[int] = None,
    meta: Optional[Dict[str, Any]] = None
) -> Activity:
    """
    Record one activity.

    Args:
        db: Database session
        type: Activity type, e.g. "notification_created"
        description: Human-readable sentence naming the actor
        user_id: ID of the user who performed the action
        meta: Additional context as JSON; ``meta["category"]`` is read back
            by the notification generator

    Returns:
        Created Activity instance
    """
    activity = Activity(
        type=type,
        description=description,
        user_id=user_id,
        meta=meta
    )

    db.add(activity)
    await db.commit()
    await db.refresh(activity)

    return activity


async def list_activities_since(db: AsyncSession, since: datetime) -> List[Activity]:
    """Activities created at or after ``since``, oldest first."""
    result = await db.execute(
        select(Activity)
        .where(Activity.created_at >= since)
        .order_by(Activity.created_at, Activity.id)
    )
    return list(result.scalars().all())


class ActivityLogger:
    """
    Event-bus subscriber persisting one Activity per event.

    Events without an actor are ignored. Database failures are logged and
    never reach the request that published the event.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def __call__(self, event: NotificationEvent) -> None:
        if event.actor is None:
            logger.debug("Skipping activity for %s: no actor", event.type)
            return

        try:
            async with self._session_factory() as db:
                await log_activity(
                    db,
                    type=event.type,
                    description=event.description,
                    user_id=event.actor.id,
                    meta=event.meta
                )
        except SQLAlchemyError:
            logger.exception("Failed to log %s activity for user %s", event.type, event.actor.id)


def register_activity_logging(bus: EventBus, session_factory) -> ActivityLogger:
    activity_logger = ActivityLogger(session_factory)
    bus.subscribe(activity_logger)
    return activity_logger
