"""Message and shared-memory records exchanged between agents."""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

BROADCAST = "broadcast"
EVERYONE = "*"


class MessageType(str, Enum):
    REQUEST = "request"
    RESPONSE = "response"
    NOTIFICATION = "notification"
    DATA = "data"


class MessagePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class MessageMetadata(BaseModel):
    """Routing hints attached to a message."""
    request_id: Optional[str] = None
    priority: MessagePriority = MessagePriority.MEDIUM
    requires_response: bool = False
    task_id: Optional[str] = None


class AgentMessage(BaseModel):
    """A message between agents; only the read state changes after sending.

    A broadcast is stored once, so each recipient's read state is kept in
    ``read_by``. ``read`` set on a broadcast marks it read for everyone.
    """
    id: str = Field(default_factory=lambda: f"msg_{uuid4().hex}")
    from_agent_id: str
    to_agent_id: str = Field(..., description="Recipient agent id or 'broadcast'")
    content: str
    type: MessageType = MessageType.NOTIFICATION
    timestamp: datetime = Field(default_factory=datetime.now)
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)
    read: bool = False
    read_by: List[str] = Field(default_factory=list)

    @property
    def is_broadcast(self) -> bool:
        return self.to_agent_id == BROADCAST

    def is_read_by(self, agent_id: str) -> bool:
        if self.is_broadcast:
            return self.read or agent_id in self.read_by
        return self.read

    def mark_read(self, agent_id: Optional[str] = None) -> bool:
        """Mark read for ``agent_id``; False if it already was."""
        if self.is_broadcast and agent_id is not None:
            if self.is_read_by(agent_id):
                return False
            self.read_by.append(agent_id)
            return True
        if self.read:
            return False
        self.read = True
        return True


class MemoryPermissions(BaseModel):
    """Access-control lists of agent ids; ``*`` matches every agent."""
    read: List[str] = Field(default_factory=lambda: [EVERYONE])
    write: List[str] = Field(default_factory=list)

    @classmethod
    def default_for(cls, agent_id: str) -> 'MemoryPermissions':
        """Everyone reads, only the creator writes."""
        return cls(read=[EVERYONE], write=[agent_id])

    def can_read(self, agent_id: str) -> bool:
        return EVERYONE in self.read or agent_id in self.read

    def can_write(self, agent_id: str) -> bool:
        return EVERYONE in self.write or agent_id in self.write


class SharedMemoryEntry(BaseModel):
    """A key-unique value owned by the agent that created it."""
    key: str
    value: Any = None
    agent_id: str = Field(..., description="Owner (creator) of the entry")
    timestamp: datetime = Field(default_factory=datetime.now)
    expires_at: Optional[datetime] = None
    permissions: MemoryPermissions

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and (now or datetime.now()) > self.expires_at
