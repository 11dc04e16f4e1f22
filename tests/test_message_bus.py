"""Tests for agent messaging and shared memory."""

import asyncio
from datetime import datetime, timedelta

import pytest

from swarmlib.agent.messaging.bus import MessageBus
from swarmlib.agent.messaging.models import BROADCAST, MessageType
from swarmlib.core.settings import MessagingSettings
from swarmlib.core.store import MemoryPersistence


class TestMessages:
    """Direct and broadcast delivery."""

    @pytest.mark.asyncio
    async def test_per_recipient_order(self, bus):
        for i in range(5):
            await bus.send_message("a", "b", f"m{i}")
        assert [m.content for m in bus.get_messages("b")] == [f"m{i}" for i in range(5)]
        assert bus.get_messages("a") == []

    @pytest.mark.asyncio
    async def test_concurrent_sends_keep_call_order(self, bus):
        await asyncio.gather(*(bus.send_message("a", "b", str(i)) for i in range(20)))
        assert [m.content for m in bus.get_messages("b")] == [str(i) for i in range(20)]

    @pytest.mark.asyncio
    async def test_broadcast_reaches_everyone_but_sender(self, bus):
        message = await bus.send_message("a", BROADCAST, "hello all", MessageType.NOTIFICATION)
        assert message.is_broadcast
        assert [m.id for m in bus.get_messages("b")] == [message.id]
        assert [m.id for m in bus.get_messages("c")] == [message.id]
        assert bus.get_messages("a") == []

    @pytest.mark.asyncio
    async def test_broadcast_read_state_is_per_recipient(self, bus):
        """One recipient reading a broadcast leaves it unread for the others."""
        message = await bus.send_message("a", BROADCAST, "deploy freeze")

        assert await bus.mark_many_as_read([message.id], agent_id="b") == 1
        assert await bus.mark_as_read(message.id, agent_id="b") is True
        assert bus.get_messages("b") == []
        assert [m.id for m in bus.get_messages("c")] == [message.id]
        assert bus.get_message(message.id).read_by == ["b"]

        await bus.mark_as_read(message.id)
        assert bus.get_messages("c") == []

    @pytest.mark.asyncio
    async def test_read_flags(self, bus):
        first = await bus.send_message("a", "b", "one")
        second = await bus.send_message("a", "b", "two")

        assert await bus.mark_as_read(first.id) is True
        assert await bus.mark_as_read(first.id) is True
        assert await bus.mark_as_read("msg_missing") is False
        assert [m.id for m in bus.get_messages("b")] == [second.id]
        assert len(bus.get_messages("b", include_read=True)) == 2
        assert await bus.mark_many_as_read([first.id, second.id]) == 1

    @pytest.mark.asyncio
    async def test_delivery_listener_runs_before_send_returns(self, bus):
        seen = []
        bus.add_delivery_listener(seen.append)
        message = await bus.send_message("a", "b", "ping", "request", {"requires_response": True})
        assert seen == [message]
        assert message.metadata.requires_response is True

    @pytest.mark.asyncio
    async def test_conversation_and_clear(self, bus):
        await bus.send_message("a", "b", "1")
        await bus.send_message("b", "a", "2")
        await bus.send_message("a", "c", "3")
        assert [m.content for m in bus.get_conversation("b", "a")] == ["1", "2"]
        assert set(bus.get_active_agents()) == {"a", "b", "c"}

        assert await bus.clear_messages("c") == 1
        assert bus.get_messages("c", include_read=True) == []

    @pytest.mark.asyncio
    async def test_queues_rebuilt_on_load(self):
        persistence = MemoryPersistence()
        bus = MessageBus(persistence=persistence)
        await bus.send_message("a", "b", "kept")

        reloaded = MessageBus(persistence=persistence)
        await reloaded.load()
        assert [m.content for m in reloaded.get_messages("b")] == ["kept"]


class TestSharedMemory:
    """Access-controlled shared state."""

    @pytest.mark.asyncio
    async def test_default_permissions(self, bus):
        assert await bus.set_shared_data("plan", {"step": 1}, "a") is True
        assert await bus.get_shared_data("plan", "b") == {"step": 1}
        assert await bus.set_shared_data("plan", {"step": 2}, "b") is False
        assert await bus.get_shared_data("plan", "a") == {"step": 1}

    @pytest.mark.asyncio
    async def test_read_list_is_enforced(self, bus):
        await bus.set_shared_data("secret", 42, "a", permissions={"read": ["a"], "write": ["a"]})
        assert await bus.get_shared_data("secret", "b") is None
        assert await bus.list_shared_keys("b") == []
        assert await bus.list_shared_keys("a") == ["secret"]

    @pytest.mark.asyncio
    async def test_writer_keeps_owner_and_acl(self, bus):
        await bus.set_shared_data("doc", "v1", "a", permissions={"read": ["*"], "write": ["a", "b"]})
        assert await bus.set_shared_data("doc", "v2", "b", permissions={"read": ["b"], "write": ["b"]}) is True

        entry = bus.memory.get("doc")
        assert entry.value == "v2"
        assert entry.agent_id == "a"
        assert entry.permissions.write == ["a", "b"]

    @pytest.mark.asyncio
    async def test_expiry(self, bus):
        await bus.set_shared_data("temp", 1, "a", ttl=60)
        entry = bus.memory.get("temp")
        entry.expires_at = datetime.now() - timedelta(seconds=1)

        assert await bus.get_shared_data("temp", "a") is None
        assert "temp" not in bus.memory
        # An expired key is free to be claimed by anyone
        assert await bus.set_shared_data("temp", 2, "b") is True

    @pytest.mark.asyncio
    async def test_short_ttl_expires_in_real_time(self, bus):
        await bus.set_shared_data("flash", "soon gone", "a", ttl=0.1)
        assert await bus.list_shared_keys("b") == ["flash"]

        await asyncio.sleep(0.15)

        assert await bus.get_shared_data("flash", "a") is None
        assert await bus.list_shared_keys("a") == []
        assert "flash" not in bus.memory

    @pytest.mark.asyncio
    async def test_delete_needs_write_access(self, bus):
        await bus.set_shared_data("k", 1, "a")
        assert await bus.delete_shared_data("k", "b") is False
        assert await bus.delete_shared_data("k", "a") is True
        assert await bus.delete_shared_data("k", "a") is False


class TestCleanup:
    """Retention sweep."""

    @pytest.mark.asyncio
    async def test_cleanup_removes_old_messages_and_expired_entries(self):
        bus = MessageBus(MessagingSettings(message_retention=60))
        old = await bus.send_message("a", "b", "old")
        old.timestamp = datetime.now() - timedelta(seconds=120)
        await bus.send_message("a", "b", "new")
        await bus.set_shared_data("gone", 1, "a", ttl=1)
        bus.memory.get("gone").expires_at = datetime.now() - timedelta(seconds=1)

        assert await bus.cleanup() == {"memory": 1, "messages": 1}
        assert [m.content for m in bus.get_messages("b")] == ["new"]

    @pytest.mark.asyncio
    async def test_periodic_cleanup_stops(self, bus):
        bus.start_cleanup(interval=0.01)
        await asyncio.sleep(0.05)
        await bus.stop_cleanup()
        assert bus._cleanup_task is None
