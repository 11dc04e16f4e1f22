"""Swarmlib.

This package runs several autonomous LLM agents side by side, with clean
error handling and validation at every seam.

Key features:
1. One decision loop per agent over a pluggable completion gateway
2. Messaging and access-controlled shared memory between agents
3. Sandboxed shell commands with timeout, kill and history
4. A human approval gate for risky actions
"""

from .core.errors import (
    BaseError,
    NotFoundError,
    AgentNotFoundError,
    ProviderNotFoundError,
    PermissionDeniedError,
    OperationTimeoutError,
    OperationCancelledError,
    ProviderError,
    ParseError,
    StateError,
    ConfigurationError,
    ExecutionError
)
from .core.settings import SwarmSettings, load_settings
from .core.events import EventChannel, Event
from .core.store import MemoryPersistence, JsonFilePersistence, PersistenceBackend

from .providers import CompletionGateway, LLMProviderConfig, ChatMessage, CompletionOptions, CompletionResponse
from .providers.constants import BackendKind
from .providers.decorators import completion_backend

from .agent import (
    Agent,
    AgentTask,
    AgentStatus,
    TaskStatus,
    AgentOrchestrator,
    MessageBus,
    CommandExecutor,
    ApprovalGate
)

from .runtime import SwarmRuntime


__version__ = "0.1.0"

__all__ = [
    "BaseError",
    "NotFoundError",
    "AgentNotFoundError",
    "ProviderNotFoundError",
    "PermissionDeniedError",
    "OperationTimeoutError",
    "OperationCancelledError",
    "ProviderError",
    "ParseError",
    "StateError",
    "ConfigurationError",
    "ExecutionError",
    "SwarmSettings",
    "load_settings",
    "EventChannel",
    "Event",
    "MemoryPersistence",
    "JsonFilePersistence",
    "PersistenceBackend",
    "CompletionGateway",
    "LLMProviderConfig",
    "ChatMessage",
    "CompletionOptions",
    "CompletionResponse",
    "BackendKind",
    "completion_backend",
    "Agent",
    "AgentTask",
    "AgentStatus",
    "TaskStatus",
    "AgentOrchestrator",
    "MessageBus",
    "CommandExecutor",
    "ApprovalGate",
    "SwarmRuntime",
]
