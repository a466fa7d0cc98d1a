import asyncio
import json

from taskboard.models.task import TaskStatus
from taskboard.schemas.task import TaskOut
from taskboard.services.events import EventBus, EventKind, MutationEvent, event_stream

from conftest import RecordingSink


def _task(owner_id, task_id=1, title="Write tests"):
    return TaskOut(id=task_id, title=title, status=TaskStatus.TODO, user_id=owner_id)


class BrokenSink(RecordingSink):
    def push(self, event):
        raise RuntimeError("socket gone")


async def _never_disconnected():
    return False


def test_subscriber_only_sees_its_owner():
    bus = EventBus()
    mine, theirs = RecordingSink(), RecordingSink()
    bus.subscribe(1, mine)
    bus.subscribe(2, theirs)

    bus.publish(EventKind.CREATED, _task(owner_id=1))

    assert [e.kind for e in mine.events] == [EventKind.CREATED]
    assert mine.events[0].task.user_id == 1
    assert theirs.events == []


def test_publish_without_subscribers_is_a_no_op():
    assert EventBus().publish(EventKind.DELETED, _task(owner_id=3)) == 0


def test_delivery_follows_publish_order():
    bus = EventBus()
    sink = RecordingSink()
    bus.subscribe(1, sink)
    for kind in (EventKind.CREATED, EventKind.UPDATED, EventKind.DELETED):
        bus.publish(kind, _task(owner_id=1))
    assert [e.kind for e in sink.events] == [EventKind.CREATED, EventKind.UPDATED, EventKind.DELETED]


def test_unsubscribed_sink_receives_nothing_more():
    bus = EventBus()
    sink = RecordingSink()
    handle = bus.subscribe(1, sink)
    bus.publish(EventKind.CREATED, _task(owner_id=1))
    bus.unsubscribe(handle)
    bus.publish(EventKind.UPDATED, _task(owner_id=1))

    assert len(sink.events) == 1
    assert sink.closed
    assert bus.subscriber_count == 0


def test_repeated_connect_disconnect_does_not_grow_registry():
    bus = EventBus()
    for _ in range(200):
        handle = bus.subscribe(1, RecordingSink())
        bus.unsubscribe(handle)
        # double unsubscribe is harmless
        bus.unsubscribe(handle)
    assert bus.subscriber_count == 0


def test_failing_sink_is_dropped_without_affecting_publisher():
    bus = EventBus()
    good = RecordingSink()
    bus.subscribe(1, BrokenSink())
    bus.subscribe(1, good)

    delivered = bus.publish(EventKind.CREATED, _task(owner_id=1))

    assert delivered == 1
    assert len(good.events) == 1
    assert bus.subscriber_count == 1


def test_sse_frame_format():
    event = MutationEvent(kind=EventKind.CREATED, owner_id=1, task=_task(owner_id=1, task_id=5))
    frame = event.to_sse()
    assert frame.startswith("event: taskCreated\ndata: ")
    assert frame.endswith("\n\n")
    payload = json.loads(frame.split("data: ", 1)[1])
    assert payload["id"] == 5
    assert payload["title"] == "Write tests"
    assert payload["status"] == "TODO"


def test_stream_sends_heartbeat_then_events_and_releases_subscription():
    bus = EventBus()

    async def scenario():
        stream = event_stream(bus, 1, _never_disconnected, heartbeat_seconds=5)
        first = await anext(stream)
        assert first.startswith("event: heartbeat\n")
        assert bus.subscriber_count == 1

        bus.publish(EventKind.CREATED, _task(owner_id=2, task_id=9))
        bus.publish(EventKind.CREATED, _task(owner_id=1, task_id=10))
        second = await anext(stream)

        await stream.aclose()
        return second

    frame = asyncio.run(scenario())

    assert frame.startswith("event: taskCreated\n")
    assert json.loads(frame.split("data: ", 1)[1])["id"] == 10
    assert bus.subscriber_count == 0


def test_idle_stream_emits_periodic_heartbeats():
    bus = EventBus()

    async def scenario():
        stream = event_stream(bus, 1, _never_disconnected, heartbeat_seconds=0.01)
        frames = [await anext(stream) for _ in range(3)]
        await stream.aclose()
        return frames

    frames = asyncio.run(scenario())
    assert all(f.startswith("event: heartbeat\n") for f in frames)
    assert bus.subscriber_count == 0


def test_stream_ends_when_client_disconnects():
    bus = EventBus()

    async def disconnected():
        return True

    async def scenario():
        return [frame async for frame in event_stream(bus, 1, disconnected, heartbeat_seconds=5)]

    frames = asyncio.run(scenario())
    assert len(frames) == 1
    assert bus.subscriber_count == 0


def test_concurrent_subscribe_publish_unsubscribe():
    import concurrent.futures

    bus = EventBus()

    def connect_cycle(owner_id):
        sink = RecordingSink()
        handle = bus.subscribe(owner_id, sink)
        bus.publish(EventKind.UPDATED, _task(owner_id=owner_id))
        bus.unsubscribe(handle)
        return sink

    with concurrent.futures.ThreadPoolExecutor(max_workers=8) as executor:
        sinks = list(executor.map(connect_cycle, [i % 4 for i in range(100)]))

    assert bus.subscriber_count == 0
    # each sink saw at least its own publish
    assert all(len(s.events) >= 1 for s in sinks)
