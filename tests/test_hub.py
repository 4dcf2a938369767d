"""Tests for messaging/hub.py"""

import asyncio

import pytest

from messaging.hub import BroadcastHub, Subscriber


class RecordingSubscriber(Subscriber):
    def __init__(self):
        self.events = []

    async def send_event(self, event, payload):
        self.events.append((event, payload))


class BrokenSubscriber(Subscriber):
    def __init__(self):
        self.attempts = 0

    async def send_event(self, event, payload):
        self.attempts += 1
        raise ConnectionResetError("socket gone")


class StalledSubscriber(Subscriber):
    async def send_event(self, event, payload):
        await asyncio.sleep(10)


class TestBroadcastHub:
    """Fan-out delivery."""

    @pytest.mark.asyncio
    async def test_publish_reaches_all_subscribers(self):
        hub = BroadcastHub()
        subs = [RecordingSubscriber() for _ in range(3)]
        for sub in subs:
            hub.subscribe(sub)

        assert hub.publish("ready", {"connected": True}) == 3
        await hub.drain()

        for sub in subs:
            assert sub.events == [("ready", {"connected": True})]

    @pytest.mark.asyncio
    async def test_failing_subscriber_is_isolated(self):
        """One permanently failing subscriber does not affect the others."""
        hub = BroadcastHub()
        good1, broken, good2 = RecordingSubscriber(), BrokenSubscriber(), RecordingSubscriber()
        for sub in (good1, broken, good2):
            hub.subscribe(sub)

        hub.publish("message_received", {"body": "hi"})
        hub.publish("message_received", {"body": "again"})
        await hub.drain()

        assert broken.attempts == 2
        assert [p["body"] for _, p in good1.events] == ["hi", "again"]
        assert [p["body"] for _, p in good2.events] == ["hi", "again"]

    @pytest.mark.asyncio
    async def test_slow_subscriber_does_not_block(self):
        hub = BroadcastHub(send_timeout=0.05)
        stalled, good = StalledSubscriber(), RecordingSubscriber()
        hub.subscribe(stalled)
        hub.subscribe(good)

        hub.publish("qr", {"qr": "code"})
        await asyncio.sleep(0.01)
        assert good.events == [("qr", {"qr": "code"})]

        await asyncio.wait_for(hub.drain(), timeout=2)

    @pytest.mark.asyncio
    async def test_no_replay_for_late_subscribers(self):
        hub = BroadcastHub()
        early = RecordingSubscriber()
        hub.subscribe(early)
        hub.publish("qr", {"qr": "code"})
        await hub.drain()

        late = RecordingSubscriber()
        hub.subscribe(late)
        await hub.drain()

        assert late.events == []
        assert len(early.events) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_is_idempotent(self):
        hub = BroadcastHub()
        sub = RecordingSubscriber()
        hub.subscribe(sub)

        hub.unsubscribe(sub)
        hub.unsubscribe(sub)
        assert hub.subscriber_count == 0

        assert hub.publish("ready", {}) == 0
        await hub.drain()
        assert sub.events == []

    def test_subscriber_is_abstract(self):
        with pytest.raises(TypeError):
            Subscriber()
