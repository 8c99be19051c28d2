"""
Domain Events
=============
Typed domain events and an asyncio event bus that runs handlers on a
fixed pool of worker tasks.

Usage:
    bus = EventBus(workers=4)
    bus.subscribe(NotificationCreatedEvent, handler)
    await bus.start()

    await bus.publish(NotificationCreatedEvent(notification_id=..., user_id=...))

    await bus.stop()
"""

import asyncio
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Type

import structlog

logger = structlog.get_logger(__name__)

EventHandler = Callable[[Any], Awaitable[None]]


@dataclass(frozen=True)
class DomainEvent:
    """
    Base class for domain events.

    Events are immutable and dispatched by their exact type.
    """
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": type(self).__name__,
            "occurred_at": self.occurred_at.isoformat(),
        }


@dataclass(frozen=True)
class NotificationCreatedEvent(DomainEvent):
    """Raised after a notification has been stored."""
    notification_id: str = ""
    user_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(notification_id=self.notification_id, user_id=self.user_id)
        return data


class EventBus:
    """
    In-process event bus backed by an asyncio.Queue.

    ``publish`` enqueues and returns immediately; worker tasks dispatch each
    event to the handlers registered for its type. Delivery is
    at-least-once from the caller's point of view, so handlers must be
    idempotent. A failing handler is logged and does not affect the others.
    """

    def __init__(self, workers: int = 4, maxsize: int = 0):
        if workers < 1:
            raise ValueError("EventBus needs at least one worker")
        self.workers = workers
        self._queue: "asyncio.Queue[DomainEvent]" = asyncio.Queue(maxsize=maxsize)
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = defaultdict(list)
        self._tasks: List[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)
        logger.debug(
            "Handler subscribed",
            event_type=event_type.__name__,
            handler=getattr(handler, "__name__", type(handler).__name__),
        )

    def unsubscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    async def publish(self, event: DomainEvent) -> None:
        """Enqueue an event for dispatch."""
        self._queue.put_nowait(event)
        logger.debug("Event published", **event.to_dict())

    async def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"event-bus-worker-{i}")
            for i in range(self.workers)
        ]
        logger.info("Event bus started", workers=self.workers)

    async def join(self) -> None:
        """Wait until every queued event has been dispatched."""
        await self._queue.join()

    async def stop(self, drain: bool = True) -> None:
        if drain and self._tasks:
            await self.join()
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Event bus stopped")

    async def _worker(self, index: int) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.dispatch(event)
            finally:
                self._queue.task_done()

    async def dispatch(self, event: DomainEvent) -> None:
        """Run every handler registered for the event's exact type."""
        event_type = type(event)
        handlers = list(self._handlers.get(event_type, []))
        if not handlers:
            logger.debug("No handlers for event", event_type=event_type.__name__)
            return

        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    event_type=event_type.__name__,
                    event_id=event.event_id,
                    handler=getattr(handler, "__name__", type(handler).__name__),
                    error=str(e),
                    exc_info=True,
                )

