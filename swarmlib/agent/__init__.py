"""Agent layer: orchestrator, models, messaging, shell commands and user prompts."""

from .models import (
    Agent,
    AgentCapabilities,
    AgentConfig,
    AgentStats,
    AgentStatus,
    AgentTask,
    TaskStatus
)
from .messaging import AgentMessage, MessageBus, MessageMetadata, MessagePriority, MessageType
from .shell_command import CommandExecutor, CommandResult, CommandStatus
from .user_input import ApprovalGate, PromptStatus, PromptType, UserPrompt
from .orchestrator import AgentOrchestrator

__all__ = [
    "Agent",
    "AgentCapabilities",
    "AgentConfig",
    "AgentStats",
    "AgentStatus",
    "AgentTask",
    "TaskStatus",
    "AgentMessage",
    "MessageBus",
    "MessageMetadata",
    "MessagePriority",
    "MessageType",
    "CommandExecutor",
    "CommandResult",
    "CommandStatus",
    "ApprovalGate",
    "PromptStatus",
    "PromptType",
    "UserPrompt",
    "AgentOrchestrator",
]
