"""
Tests for subscriber fan-out
"""

import asyncio
import json

from api.base import Subscriber
from api.websocket_server import DataBroadcaster, QueuedSubscriber


class RecordingSubscriber(Subscriber):
    def __init__(self, open_=True, fail=False):
        self.messages = []
        self._open = open_
        self._fail = fail

    @property
    def is_open(self) -> bool:
        return self._open

    def offer(self, message: str) -> bool:
        if self._fail:
            raise RuntimeError("socket gone")
        self.messages.append(json.loads(message))
        return True


def test_publish_reaches_every_subscriber():
    broadcaster = DataBroadcaster()
    first, second = RecordingSubscriber(), RecordingSubscriber()
    broadcaster.register(first)
    broadcaster.register(second)

    envelope = {"target": "workerPublishCoin", "data": {"BTC": 50000}, "timestamp": "t"}
    assert broadcaster.publish(envelope) == 2

    assert first.messages == [envelope]
    assert second.messages == [envelope]


def test_unregistered_subscriber_stops_receiving():
    broadcaster = DataBroadcaster()
    leaving, staying = RecordingSubscriber(), RecordingSubscriber()
    broadcaster.register(leaving)
    broadcaster.register(staying)

    broadcaster.unregister(leaving)
    broadcaster.unregister(leaving)
    broadcaster.publish({"target": "workerPublish", "data": 1})

    assert leaving.messages == []
    assert len(staying.messages) == 1
    assert broadcaster.client_count == 1


def test_failing_or_closed_subscriber_does_not_block_others():
    broadcaster = DataBroadcaster()
    broken = RecordingSubscriber(fail=True)
    closed = RecordingSubscriber(open_=False)
    healthy = RecordingSubscriber()
    for subscriber in (broken, closed, healthy):
        broadcaster.register(subscriber)

    assert broadcaster.publish({"target": "workerPublish", "data": 1}) == 1
    assert closed.messages == []
    assert len(healthy.messages) == 1


def test_publish_with_no_subscribers():
    broadcaster = DataBroadcaster()
    assert broadcaster.publish({"target": "workerPublish", "data": 1}) == 0
    assert broadcaster.get_status() == {"client_count": 0, "published": 1}


def test_unregister_during_publish_is_safe():
    broadcaster = DataBroadcaster()

    class Unregistering(RecordingSubscriber):
        def offer(self, message):
            broadcaster.unregister(self)
            return super().offer(message)

    subscribers = [Unregistering() for _ in range(3)]
    for subscriber in subscribers:
        broadcaster.register(subscriber)

    assert broadcaster.publish({"target": "workerPublish", "data": 1}) == 3
    assert broadcaster.client_count == 0


def test_queued_subscriber_drops_when_full():
    async def scenario():
        sent = []

        async def send(message):
            sent.append(message)

        subscriber = QueuedSubscriber(send, name="slow", max_queue=2)
        assert subscriber.offer("a")
        assert subscriber.offer("b")
        assert not subscriber.offer("c")
        assert subscriber.dropped == 1

        writer = asyncio.create_task(subscriber.run())
        await asyncio.sleep(0.01)
        subscriber.close()
        writer.cancel()
        try:
            await writer
        except asyncio.CancelledError:
            pass
        return sent

    assert asyncio.run(scenario()) == ["a", "b"]


def test_queued_subscriber_closes_on_send_failure():
    async def scenario():
        async def send(message):
            raise ConnectionResetError("peer went away")

        subscriber = QueuedSubscriber(send, name="gone")
        subscriber.offer("a")
        await asyncio.wait_for(subscriber.run(), timeout=1)
        return subscriber

    subscriber = asyncio.run(scenario())
    assert not subscriber.is_open
    assert not subscriber.offer("b")


def test_slow_subscriber_does_not_delay_fast_one():
    async def scenario():
        fast_received = []
        blocker = asyncio.Event()

        async def slow_send(message):
            await blocker.wait()

        async def fast_send(message):
            fast_received.append(json.loads(message))

        broadcaster = DataBroadcaster()
        slow = QueuedSubscriber(slow_send, name="slow", max_queue=1)
        fast = QueuedSubscriber(fast_send, name="fast")
        broadcaster.register(slow)
        broadcaster.register(fast)
        tasks = [asyncio.create_task(s.run()) for s in (slow, fast)]

        for i in range(5):
            broadcaster.publish({"target": "workerPublish", "data": i})
        await asyncio.sleep(0.01)

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        return fast_received, slow.dropped

    fast_received, dropped = asyncio.run(scenario())
    assert [m["data"] for m in fast_received] == [0, 1, 2, 3, 4]
    assert dropped >= 3
