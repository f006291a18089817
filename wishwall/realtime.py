"""
In-process change feed.

Write paths publish a ChangeEvent after their transaction commits:

  { table, type: INSERT | UPDATE | DELETE, record, old_record }

Consumers call subscribe(table, handler, filter) and get back a Subscription;
unsubscribe() is the teardown token. Each subscription owns a queue and a
consumer task, so a slow handler never blocks the publishing request.

A filter is an equality map ({"is_public": True}). An event matches when its
new OR old row satisfies it, so a wish flipped to private still reaches
public-feed subscribers.

Optionally every event is mirrored to Kafka (see clients/kafka_producer.py).
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from wishwall.telemetry import REALTIME_EVENTS_TOTAL, REALTIME_SUBSCRIBERS

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class ChangeEvent:
    table: str
    type: ChangeType
    record: Optional[dict[str, Any]] = None
    old_record: Optional[dict[str, Any]] = None

    def matches(self, filter: Optional[dict[str, Any]]) -> bool:
        if not filter:
            return True
        for row in (self.record, self.old_record):
            if row is not None and all(row.get(k) == v for k, v in filter.items()):
                return True
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "type": self.type.value,
            "record": self.record,
            "old_record": self.old_record,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChangeEvent":
        return cls(
            table=data["table"],
            type=ChangeType(data["type"]),
            record=data.get("record"),
            old_record=data.get("old_record"),
        )


Handler = Callable[[ChangeEvent], Awaitable[None]]


@dataclass(eq=False)
class Subscription:
    feed: "ChangeFeed"
    table: str
    handler: Handler
    filter: Optional[dict[str, Any]] = None
    _queue: asyncio.Queue = field(default_factory=asyncio.Queue, repr=False)
    _task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self._task = asyncio.create_task(self._consume())

    def deliver(self, event: ChangeEvent) -> None:
        self._queue.put_nowait(event)

    def unsubscribe(self) -> None:
        self.feed._remove(self)
        if self._task is not None:
            self._task.cancel()

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.handler(event)
            except Exception as exc:
                logger.error(
                    "Change handler failed for %s %s: %s", event.type.value, event.table, exc
                )


class ChangeFeed:
    def __init__(self, mirror: Optional[Handler] = None) -> None:
        self._subscriptions: list[Subscription] = []
        self.mirror = mirror

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        table: str,
        handler: Handler,
        filter: Optional[dict[str, Any]] = None,
    ) -> Subscription:
        subscription = Subscription(self, table, handler, filter)
        subscription.start()
        self._subscriptions.append(subscription)
        REALTIME_SUBSCRIBERS.inc()
        logger.debug("Subscribed to %s (filter=%s)", table, filter)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            REALTIME_SUBSCRIBERS.dec()

    async def publish(self, event: ChangeEvent) -> None:
        REALTIME_EVENTS_TOTAL.labels(type=event.type.value).inc()
        for subscription in list(self._subscriptions):
            if subscription.table == event.table and event.matches(subscription.filter):
                subscription.deliver(event)

        if self.mirror is not None:
            # Rows are already committed; a mirror outage must not fail the request
            try:
                await self.mirror(event)
            except Exception as exc:
                logger.warning("Change-feed mirror failed: %s", exc)

    def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.unsubscribe()


def format_sse(event: ChangeEvent) -> str:
    """Render an event as one Server-Sent Events frame."""
    return f"event: {event.type.value}\ndata: {json.dumps(event.to_dict())}\n\n"


change_feed = ChangeFeed()


def get_change_feed() -> ChangeFeed:
    """FastAPI dependency for the process-wide change feed."""
    return change_feed
