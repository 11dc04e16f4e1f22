"""Tests for the event channel."""

import asyncio

import pytest
from pydantic import BaseModel

from swarmlib.core.events import EventChannel


class Payload(BaseModel):
    name: str


class TestEventChannel:
    """Publish/subscribe behavior."""

    @pytest.mark.asyncio
    async def test_pattern_subscription(self):
        channel = EventChannel()
        commands = channel.subscribe("command:*")
        everything = channel.subscribe()

        channel.publish("command:stdout", {"data": "hi"})
        channel.publish("agent:log", {"message": "x"})

        event = await asyncio.wait_for(commands.get(), 1)
        assert event.topic == "command:stdout"
        assert commands.queue.empty()
        assert everything.queue.qsize() == 2

    def test_models_are_serialized(self):
        channel = EventChannel()
        subscription = channel.subscribe()
        event = channel.publish("agent:created", Payload(name="a"))
        assert event.payload == {"name": "a"}
        assert subscription.queue.get_nowait().payload == {"name": "a"}

    def test_full_subscriber_drops_events(self):
        channel = EventChannel()
        subscription = channel.subscribe(maxsize=1)
        channel.publish("a")
        channel.publish("b")
        assert subscription.dropped == 1

    def test_listener_errors_do_not_reach_publisher(self):
        channel = EventChannel()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        channel.add_listener("x", broken)
        channel.add_listener("x", seen.append)
        channel.publish("x", 1)
        assert [e.payload for e in seen] == [1]

    def test_close_unsubscribes(self):
        channel = EventChannel()
        subscription = channel.subscribe()
        assert channel.subscriber_count == 1
        subscription.close()
        assert channel.subscriber_count == 0
