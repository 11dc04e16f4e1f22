"""Utility helpers for swarmlib."""

from .formatting import (
    extract_json,
    format_json,
    format_capabilities,
    format_messages,
    format_agents
)

__all__ = [
    "extract_json",
    "format_json",
    "format_capabilities",
    "format_messages",
    "format_agents"
]
