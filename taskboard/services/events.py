"""In-process publish/subscribe for task mutations.

The bus is not durable and not shared across processes. Events are handed to
every matching sink synchronously at publish time and then forgotten, so a
client that connects after a mutation never sees it.
"""

import asyncio
import enum
import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, UTC
from itertools import count
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

from fastapi import Request

from taskboard import config
from taskboard.schemas.task import TaskOut

logger = logging.getLogger(__name__)


class EventKind(str, enum.Enum):
    CREATED = "taskCreated"
    UPDATED = "taskUpdated"
    DELETED = "taskDeleted"
    HEARTBEAT = "heartbeat"


@dataclass(frozen=True)
class MutationEvent:
    kind: EventKind
    owner_id: int
    task: Optional[TaskOut] = None

    def data(self) -> str:
        if self.task is None:
            return json.dumps({"timestamp": datetime.now(UTC).isoformat()})
        return self.task.model_dump_json()

    def to_sse(self) -> str:
        return f"event: {self.kind.value}\ndata: {self.data()}\n\n"


class EventSink(Protocol):
    """Transport-agnostic receiver for one live connection."""

    def push(self, event: MutationEvent) -> None: ...

    def close(self) -> None: ...


@dataclass(eq=False)
class Subscription:
    """Handle returned by subscribe(); pass it back to unsubscribe()."""

    id: int
    owner_id: int
    sink: EventSink = field(repr=False)


class EventBus:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: dict[int, Subscription] = {}
        self._ids = count(1)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(self, owner_id: int, sink: EventSink) -> Subscription:
        with self._lock:
            subscription = Subscription(next(self._ids), owner_id, sink)
            self._subscriptions[subscription.id] = subscription
        logger.debug("Subscriber %s registered for owner %s", subscription.id, owner_id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            removed = self._subscriptions.pop(subscription.id, None)
        if removed is not None:
            logger.debug("Subscriber %s removed", subscription.id)
            subscription.sink.close()

    def publish(self, kind: EventKind, task: TaskOut) -> int:
        """Deliver to every subscriber of the task's owner. Never raises.

        Returns the number of sinks the event was handed to.
        """
        event = MutationEvent(kind=kind, owner_id=task.user_id, task=task)
        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.owner_id == event.owner_id]

        delivered = 0
        for subscription in targets:
            try:
                subscription.sink.push(event)
                delivered += 1
            except Exception:
                logger.warning(
                    "Dropping subscriber %s after failed delivery", subscription.id, exc_info=True
                )
                self.unsubscribe(subscription)
        return delivered


class QueueSink:
    """Sink feeding an asyncio queue owned by the streaming connection.

    Must be created inside the event loop that will consume it. ``push`` may
    be called from any thread.
    """

    def __init__(self, maxsize: Optional[int] = None):
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue(
            maxsize=config.SSE_QUEUE_SIZE if maxsize is None else maxsize
        )
        self.closed = False

    def _offer(self, item: Optional[MutationEvent]) -> None:
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            logger.warning("Subscriber queue full, event dropped")

    def push(self, event: MutationEvent) -> None:
        if self.closed:
            return
        self._loop.call_soon_threadsafe(self._offer, event)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._loop.call_soon_threadsafe(self._offer, None)
        except RuntimeError:
            # loop already gone, nobody is waiting
            pass

    async def get(self, timeout: float) -> Optional[MutationEvent]:
        """Next event, or None on timeout or once the sink is closed."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None


async def event_stream(
    bus: EventBus,
    owner_id: int,
    is_disconnected: Callable[[], Awaitable[bool]],
    heartbeat_seconds: Optional[float] = None,
) -> AsyncIterator[str]:
    """Yield SSE frames for one owner until the client goes away.

    A heartbeat is sent on connect and whenever the stream has been idle for
    ``heartbeat_seconds``. The subscription is always released on exit.
    """
    if heartbeat_seconds is None:
        heartbeat_seconds = config.SSE_HEARTBEAT_SECONDS
    sink = QueueSink()
    subscription = bus.subscribe(owner_id, sink)
    heartbeat = MutationEvent(kind=EventKind.HEARTBEAT, owner_id=owner_id)
    try:
        yield heartbeat.to_sse()
        while not sink.closed:
            if await is_disconnected():
                break
            event = await sink.get(heartbeat_seconds)
            if event is None:
                if sink.closed:
                    break
                yield heartbeat.to_sse()
                continue
            yield event.to_sse()
    finally:
        bus.unsubscribe(subscription)


def get_event_bus(request: Request) -> EventBus:
    """FastAPI dependency returning the bus owned by the running app."""
    return request.app.state.event_bus
