"""Completion providers.

This package provides the backend lifecycle base class, one backend per wire
dialect, the kind registry and the ``CompletionGateway`` that fronts them.
"""

from .base import Provider, ProviderSettings
from .constants import BackendKind, DEFAULT_API_URLS
from .registry import BackendRegistry, backend_registry
from .decorators import completion_backend
from .llm import (
    ChatMessage,
    CompletionOptions,
    CompletionResponse,
    LLMProviderConfig,
    TokenUsage,
    CompletionBackend,
    CompletionBackendSettings,
    OpenAIBackend,
    AnthropicBackend,
    CustomBackend
)
from .gateway import CompletionGateway

__all__ = [
    "Provider",
    "ProviderSettings",
    "BackendKind",
    "DEFAULT_API_URLS",
    "BackendRegistry",
    "backend_registry",
    "completion_backend",
    "ChatMessage",
    "CompletionOptions",
    "CompletionResponse",
    "LLMProviderConfig",
    "TokenUsage",
    "CompletionBackend",
    "CompletionBackendSettings",
    "OpenAIBackend",
    "AnthropicBackend",
    "CustomBackend",
    "CompletionGateway"
]
