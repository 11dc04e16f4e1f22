"""
Message bus between agents.

Point-to-point and broadcast messages plus an access-controlled, optionally
expiring shared memory. Messages keep send order inside each recipient's
queue; no order is promised across senders or between direct and broadcast
messages.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from ...core.events import EventChannel
from ...core.settings import MessagingSettings
from ...core.store import PersistenceBackend, RecordStore
from .models import (
    AgentMessage,
    MemoryPermissions,
    MessageMetadata,
    MessageType,
    SharedMemoryEntry
)

logger = logging.getLogger(__name__)

DeliveryListener = Callable[[AgentMessage], Any]


class MessageBus:
    """Messaging and shared memory for agents.

    This class provides:
    1. Per-recipient FIFO queues and broadcast delivery
    2. Shared memory with read/write lists and lazy expiry
    3. A periodic cleanup sweep for expired entries and old messages

    Sending never fails on permissions. Shared-memory writes by agents
    outside the write list return False instead of raising.

    Events published: ``message:sent``, ``message:read``,
    ``memory:updated``, ``memory:deleted``.
    """

    def __init__(
        self,
        settings: Optional[MessagingSettings] = None,
        events: Optional[EventChannel] = None,
        persistence: Optional[PersistenceBackend] = None
    ):
        self.settings = settings or MessagingSettings()
        self.events = events or EventChannel()
        self.messages: RecordStore[AgentMessage] = RecordStore(
            "messages", AgentMessage, key=lambda m: m.id, persistence=persistence
        )
        self.memory: RecordStore[SharedMemoryEntry] = RecordStore(
            "shared_memory", SharedMemoryEntry, key=lambda e: e.key, persistence=persistence
        )
        self._queues: Dict[str, List[str]] = {}
        self._delivery_listeners: List[DeliveryListener] = []
        self._cleanup_task: Optional[asyncio.Task] = None

    async def load(self) -> None:
        """Load messages and shared memory, rebuilding recipient queues."""
        await self.messages.load()
        await self.memory.load()
        self._queues.clear()
        for message in self.messages.list():
            self._enqueue(message)
        logger.info(f"Message bus loaded {len(self.messages)} message(s), {len(self.memory)} shared key(s)")

    def add_delivery_listener(self, listener: DeliveryListener) -> None:
        """Call ``listener`` synchronously with every message right after it is queued."""
        self._delivery_listeners.append(listener)

    def remove_delivery_listener(self, listener: DeliveryListener) -> None:
        if listener in self._delivery_listeners:
            self._delivery_listeners.remove(listener)

    # Messages

    async def send_message(
        self,
        from_agent_id: str,
        to_agent_id: str,
        content: str,
        type: Union[MessageType, str] = MessageType.NOTIFICATION,
        metadata: Optional[Union[MessageMetadata, Dict[str, Any]]] = None
    ) -> AgentMessage:
        """Send a message to one agent or to ``"broadcast"``.

        Returns:
            The stored message
        """
        if isinstance(metadata, dict):
            metadata = MessageMetadata.model_validate(metadata)
        message = AgentMessage(
            from_agent_id=from_agent_id,
            to_agent_id=to_agent_id,
            content=content,
            type=MessageType(type),
            metadata=metadata or MessageMetadata()
        )

        # Queue before the first await so per-recipient order follows call order
        self.messages.put_nowait(message)
        self._enqueue(message)
        logger.debug(f"Message {message.id} {from_agent_id} -> {to_agent_id} ({message.type.value})")

        for listener in list(self._delivery_listeners):
            try:
                listener(message)
            except Exception as e:
                logger.error(f"Delivery listener failed for message {message.id}: {e}", exc_info=True)

        self.events.publish("message:sent", message)
        await self.messages.save()
        return message

    def get_messages(self, agent_id: str, include_read: bool = False) -> List[AgentMessage]:
        """Direct messages for ``agent_id`` followed by broadcasts from others."""
        direct = [self.messages.get(mid) for mid in self._queues.get(agent_id, [])]
        broadcasts = self.messages.list(lambda m: m.is_broadcast and m.from_agent_id != agent_id)
        result = [m for m in direct if m is not None] + broadcasts
        if include_read:
            return result
        return [m for m in result if not m.is_read_by(agent_id)]

    def get_message(self, message_id: str) -> Optional[AgentMessage]:
        return self.messages.get(message_id)

    async def mark_as_read(self, message_id: str, agent_id: Optional[str] = None) -> bool:
        """Mark a message read; False for unknown ids, idempotent otherwise.

        With ``agent_id`` a broadcast is marked read for that recipient only;
        without it the broadcast is read for everyone.
        """
        message = self.messages.get(message_id)
        if message is None:
            return False
        if message.mark_read(agent_id):
            self.events.publish("message:read", {"message_id": message.id, "agent_id": agent_id})
            await self.messages.save()
        return True

    async def mark_many_as_read(self, message_ids: List[str], agent_id: Optional[str] = None) -> int:
        """Mark several messages read with a single save."""
        changed = 0
        for message_id in message_ids:
            message = self.messages.get(message_id)
            if message is not None and message.mark_read(agent_id):
                changed += 1
                self.events.publish("message:read", {"message_id": message.id, "agent_id": agent_id})
        if changed:
            await self.messages.save()
        return changed

    def get_conversation(self, agent_a: str, agent_b: str) -> List[AgentMessage]:
        """Direct messages between two agents, oldest first."""
        conversation = self.messages.list(
            lambda m: (m.from_agent_id == agent_a and m.to_agent_id == agent_b)
            or (m.from_agent_id == agent_b and m.to_agent_id == agent_a)
        )
        return sorted(conversation, key=lambda m: m.timestamp)

    def get_active_agents(self) -> List[str]:
        """Agents that have sent or received a direct message."""
        agents: Dict[str, None] = {}
        for message in self.messages.list():
            agents[message.from_agent_id] = None
            if not message.is_broadcast:
                agents[message.to_agent_id] = None
        return list(agents)

    async def clear_messages(self, agent_id: str) -> int:
        """Remove every message sent by or addressed to ``agent_id``."""
        doomed = self.messages.list(lambda m: m.from_agent_id == agent_id or m.to_agent_id == agent_id)
        for message in doomed:
            self._remove_message(message)
        self._queues.pop(agent_id, None)
        if doomed:
            await self.messages.save()
        logger.info(f"Cleared {len(doomed)} message(s) of agent {agent_id}")
        return len(doomed)

    # Shared memory

    async def set_shared_data(
        self,
        key: str,
        value: Any,
        agent_id: str,
        permissions: Optional[Union[MemoryPermissions, Dict[str, Any]]] = None,
        ttl: Optional[float] = None
    ) -> bool:
        """Create or update a shared entry.

        Args:
            key: Entry key
            value: JSON-friendly value
            agent_id: Writing agent
            permissions: Access lists; defaults to everyone-reads, creator-writes
            ttl: Seconds until the entry expires

        Returns:
            False if the key exists and ``agent_id`` may not write it
        """
        if isinstance(permissions, dict):
            permissions = MemoryPermissions.model_validate(permissions)

        existing = self.memory.get(key)
        if existing is not None and existing.is_expired():
            self.memory.delete_nowait(key)
            existing = None

        if existing is not None and not existing.permissions.can_write(agent_id):
            logger.info(f"Agent {agent_id} denied write to shared key '{key}'")
            return False

        now = datetime.now()
        if existing is None:
            owner = agent_id
            acl = permissions or MemoryPermissions.default_for(agent_id)
        else:
            owner = existing.agent_id
            acl = permissions if (permissions is not None and agent_id == owner) else existing.permissions

        entry = SharedMemoryEntry(
            key=key,
            value=value,
            agent_id=owner,
            timestamp=now,
            expires_at=now + timedelta(seconds=ttl) if ttl else None,
            permissions=acl
        )
        self.memory.put_nowait(entry)
        self.events.publish("memory:updated", {"key": key, "agent_id": agent_id})
        await self.memory.save()
        return True

    async def get_shared_data(self, key: str, agent_id: str) -> Optional[Any]:
        """Read a shared value; None when missing, expired or not readable."""
        entry = self.memory.get(key)
        if entry is None:
            return None
        if entry.is_expired():
            self.memory.delete_nowait(key)
            await self.memory.save()
            return None
        if not entry.permissions.can_read(agent_id):
            return None
        return entry.value

    async def list_shared_keys(self, agent_id: str) -> List[str]:
        """Keys readable by ``agent_id``; expired entries are evicted first."""
        if self._evict_expired():
            await self.memory.save()
        return [e.key for e in self.memory.list(lambda e: e.permissions.can_read(agent_id))]

    async def delete_shared_data(self, key: str, agent_id: str) -> bool:
        entry = self.memory.get(key)
        if entry is None or not entry.permissions.can_write(agent_id):
            return False
        self.memory.delete_nowait(key)
        self.events.publish("memory:deleted", {"key": key, "agent_id": agent_id})
        await self.memory.save()
        return True

    # Cleanup

    async def cleanup(self) -> Dict[str, int]:
        """Delete expired memory and messages older than the retention window.

        Returns:
            Counts of removed entries and messages
        """
        expired = self._evict_expired()

        cutoff = datetime.now() - timedelta(seconds=self.settings.message_retention)
        old = self.messages.list(lambda m: m.timestamp < cutoff)
        for message in old:
            self._remove_message(message)

        await self.memory.save()
        await self.messages.save()
        if expired or old:
            logger.info(f"Cleanup removed {expired} shared key(s) and {len(old)} message(s)")
        return {"memory": expired, "messages": len(old)}

    def start_cleanup(self, interval: Optional[float] = None) -> None:
        """Run ``cleanup`` every ``interval`` seconds until ``stop_cleanup``."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.ensure_future(self._cleanup_loop(interval or self.settings.cleanup_interval))

    async def stop_cleanup(self) -> None:
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _cleanup_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.cleanup()
            except Exception as e:
                logger.error(f"Message bus cleanup failed: {e}", exc_info=True)

    # Internals

    def _enqueue(self, message: AgentMessage) -> None:
        if message.is_broadcast:
            return
        self._queues.setdefault(message.to_agent_id, []).append(message.id)

    def _remove_message(self, message: AgentMessage) -> None:
        self.messages.delete_nowait(message.id)
        if not message.is_broadcast:
            queue = self._queues.get(message.to_agent_id)
            if queue and message.id in queue:
                queue.remove(message.id)

    def _evict_expired(self) -> int:
        now = datetime.now()
        expired = [e.key for e in self.memory.list(lambda e: e.is_expired(now))]
        for key in expired:
            self.memory.delete_nowait(key)
        return len(expired)
