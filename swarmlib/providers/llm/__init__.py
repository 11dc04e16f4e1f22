"""Completion backends.

Importing this package registers every built-in backend with the backend
registry.
"""

from .models import (
    ChatMessage,
    CompletionOptions,
    CompletionResponse,
    LLMProviderConfig,
    TokenUsage
)
from .base import CompletionBackend, CompletionBackendSettings
from .openai_backend import OpenAIBackend, OpenAIBackendSettings
from .anthropic_backend import AnthropicBackend, AnthropicBackendSettings
from .custom_backend import CustomBackend, CustomBackendSettings

__all__ = [
    "ChatMessage",
    "CompletionOptions",
    "CompletionResponse",
    "LLMProviderConfig",
    "TokenUsage",
    "CompletionBackend",
    "CompletionBackendSettings",
    "OpenAIBackend",
    "OpenAIBackendSettings",
    "AnthropicBackend",
    "AnthropicBackendSettings",
    "CustomBackend",
    "CustomBackendSettings"
]
