"""Formatting helpers for prompts and model output.

This module provides JSON extraction from free-form completion text and the
small renderers used to embed agent state into prompt templates.
"""

import json
import re
from typing import Any, Dict, Iterable, List, Optional


def extract_json(text: str) -> Optional[Any]:
    """Extract the first JSON object or array from a completion.

    Handles fenced code blocks and prose around the payload.

    Args:
        text: Text that may contain JSON

    Returns:
        The decoded value, or None if no valid JSON was found
    """
    if not text:
        return None

    # Fenced blocks first
    for block in re.findall(r"```(?:json)?\s*(.*?)```", text, re.DOTALL):
        try:
            return json.loads(block.strip())
        except json.JSONDecodeError:
            continue

    # Outermost braces or brackets
    json_match = re.search(r'(\{.*\}|\[.*\])', text, re.DOTALL)
    if json_match:
        try:
            return json.loads(json_match.group(0))
        except json.JSONDecodeError:
            pass

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def format_json(data: Any, indent: int = 2) -> str:
    """Format data as JSON for embedding in prompts."""
    try:
        return json.dumps(data, indent=indent, default=str)
    except (TypeError, ValueError):
        return str(data)


def format_capabilities(capabilities: Dict[str, bool]) -> str:
    """Format capability flags as a bullet list of enabled capabilities."""
    enabled = [name.replace("_", " ") for name, on in capabilities.items() if on]
    if not enabled:
        return "- none"
    return "\n".join(f"- {name}" for name in enabled)


def format_messages(messages: Iterable[Any]) -> str:
    """Format agent messages for the decision prompt.

    Args:
        messages: Objects with ``from_agent_id``, ``type`` and ``content``

    Returns:
        One line per message, or a placeholder when there are none
    """
    lines: List[str] = []
    for message in messages:
        kind = getattr(message.type, "value", message.type)
        lines.append(f"- [{kind}] from {message.from_agent_id}: {message.content}")
    return "\n".join(lines) if lines else "No unread messages."


def format_agents(agents: Iterable[Any]) -> str:
    """Format the agents available for delegation."""
    lines = [f"- {agent.id}: {agent.name}" + (f" ({agent.description})" if agent.description else "")
             for agent in agents]
    return "\n".join(lines) if lines else "No other agents are running."
