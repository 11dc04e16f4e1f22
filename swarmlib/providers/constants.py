"""Constants for the completion backends.

Using a string enum keeps backend kinds type-checked while they stay plain
strings in persisted provider records.
"""

from enum import Enum


class BackendKind(str, Enum):
    """Wire dialects a provider record can select."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    DEEPSEEK = "deepseek"
    LOCAL = "local"
    CUSTOM = "custom"


DEFAULT_API_URLS = {
    BackendKind.OPENAI: "https://api.openai.com/v1",
    BackendKind.ANTHROPIC: "https://api.anthropic.com/v1",
    BackendKind.DEEPSEEK: "https://api.deepseek.com/v1",
    BackendKind.LOCAL: "http://localhost:8080/v1",
}

ANTHROPIC_API_VERSION = "2023-06-01"
