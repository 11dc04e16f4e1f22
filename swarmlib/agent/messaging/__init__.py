"""Inter-agent messaging and shared memory."""

from .models import (
    BROADCAST,
    AgentMessage,
    MemoryPermissions,
    MessageMetadata,
    MessagePriority,
    MessageType,
    SharedMemoryEntry
)
from .bus import MessageBus

__all__ = [
    "BROADCAST",
    "AgentMessage",
    "MemoryPermissions",
    "MessageBus",
    "MessageMetadata",
    "MessagePriority",
    "MessageType",
    "SharedMemoryEntry"
]
