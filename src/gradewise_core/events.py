"""Live-update broker for course dashboards.

Pipeline components emit named events scoped to a course; connected clients
(e.g. an SSE stream) subscribe to the course and receive them. Delivery is
fire-and-forget: a slow or vanished subscriber never blocks or fails the
emitter.

Example usage:
    broker = LiveUpdateBroker()
    subscription = broker.subscribe(course_id=3)
    await broker.emit(3, "feedback:added", {"submission_id": 17})
    event = await subscription.queue.get()
    broker.unsubscribe(subscription)
"""

import asyncio
import json
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import structlog

logger = structlog.get_logger()

FEEDBACK_ADDED = "feedback:added"
SUBMISSION_ANALYZED = "submission:analyzed"
SUBMISSION_STATUS = "submission:status"


@dataclass
class LiveEvent:
    """A named event delivered to the subscribers of one course."""

    course_id: int
    name: str
    payload: dict[str, Any]
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.event_id,
            "event": self.name,
            "course_id": self.course_id,
            "timestamp": self.timestamp.isoformat(),
            "data": self.payload,
        }

    def to_sse(self) -> str:
        return f"id: {self.event_id}\nevent: {self.name}\ndata: {json.dumps(self.to_dict(), default=str)}\n\n"


@dataclass(eq=False)
class Subscription:
    """One subscriber's queue for a course."""

    course_id: int
    queue: asyncio.Queue
    subscription_id: str = field(default_factory=lambda: str(uuid4()))


class LiveUpdateBroker:
    """In-process fan-out of course events to subscriber queues."""

    def __init__(self, max_queue_size: int = 100) -> None:
        self.max_queue_size = max_queue_size
        self._subscriptions: dict[int, list[Subscription]] = defaultdict(list)
        self.dropped = 0

    def subscribe(self, course_id: int) -> Subscription:
        subscription = Subscription(
            course_id=course_id,
            queue=asyncio.Queue(maxsize=self.max_queue_size),
        )
        self._subscriptions[course_id].append(subscription)
        logger.debug(
            "Live update subscriber added",
            course_id=course_id,
            subscribers=len(self._subscriptions[course_id]),
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscriptions.get(subscription.course_id, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            self._subscriptions.pop(subscription.course_id, None)

    def subscriber_count(self, course_id: int | None = None) -> int:
        if course_id is not None:
            return len(self._subscriptions.get(course_id, []))
        return sum(len(subs) for subs in self._subscriptions.values())

    async def emit(self, course_id: int, name: str, payload: dict[str, Any]) -> int:
        """Deliver an event to every subscriber of the course.

        Returns the number of subscribers that received it. Subscribers whose
        queue is full miss the event.
        """
        event = LiveEvent(course_id=course_id, name=name, payload=payload)
        delivered = 0
        for subscription in list(self._subscriptions.get(course_id, [])):
            try:
                subscription.queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                self.dropped += 1
                logger.warning(
                    "Live update dropped for slow subscriber",
                    course_id=course_id,
                    event_name=name,
                    subscription_id=subscription.subscription_id,
                )

        logger.debug(
            "Live update emitted",
            course_id=course_id,
            event_name=name,
            delivered=delivered,
        )
        return delivered
