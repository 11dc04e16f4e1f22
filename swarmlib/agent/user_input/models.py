"""Models for human-facing prompts."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field


class PromptType(str, Enum):
    QUESTION = "question"
    CONFIRMATION = "confirmation"
    CHOICE = "choice"
    APPROVAL = "approval"


class PromptStatus(str, Enum):
    """Prompt status; everything but pending is final."""
    PENDING = "pending"
    ANSWERED = "answered"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


class UserPrompt(BaseModel):
    """A prompt shown to the human on behalf of an agent."""
    id: str = Field(default_factory=lambda: f"prompt_{uuid4().hex}")
    agent_id: str
    agent_name: str = ""
    type: PromptType
    title: str = Field(..., description="Short heading shown above the message")
    message: str = Field(..., description="The message to show to the user")
    options: Optional[List[str]] = Field(None, description="Choices offered for choice prompts")
    default_value: Optional[Union[str, bool]] = None
    timestamp: datetime = Field(default_factory=datetime.now)
    status: PromptStatus = PromptStatus.PENDING
    response: Any = None
    context: Dict[str, Any] = Field(default_factory=dict, description="What the agent wants to do")
