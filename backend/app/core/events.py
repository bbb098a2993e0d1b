"""
In-process domain event bus.

Notification operations publish a ``NotificationEvent`` after their own
commit; subscribers (the activity logger) run as detached tasks so their
failures never reach the request that triggered them.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller, used only for audit attribution."""
    id: int
    name: str


@dataclass
class NotificationEvent:
    """Something happened to one or more notifications."""
    type: str
    description: str
    actor: Optional[Actor] = None
    meta: Dict[str, Any] = field(default_factory=dict)


Subscriber = Callable[[NotificationEvent], Awaitable[None]]


class EventBus:
    """Fan out events to subscribers without blocking the publisher."""

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def clear(self) -> None:
        self._subscribers.clear()

    def publish(self, event: NotificationEvent) -> None:
        """Schedule every subscriber for ``event`` on the running loop."""
        if not self._subscribers:
            return
        loop = asyncio.get_running_loop()
        for subscriber in self._subscribers:
            task = loop.create_task(self._deliver(subscriber, event))
            # The loop only keeps weak references to tasks
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for all in-flight deliveries (tests, shutdown)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @staticmethod
    async def _deliver(subscriber: Subscriber, event: NotificationEvent) -> None:
        try:
            await subscriber(event)
        except Exception:
            logger.exception("Event subscriber %r failed for %s", subscriber, event.type)


event_bus = EventBus()
