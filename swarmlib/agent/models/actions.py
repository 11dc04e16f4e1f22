"""
Structured actions proposed by an agent's backend.

A decision arrives as loosely-typed JSON ``{action, description, steps,
data}``. It is validated here, at the parse boundary, into one variant of a
closed tagged union. Anything unknown or malformed becomes ``IdleAction``.
"""

import json
import logging
import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, ValidationError

from ...core.errors import ParseError
from ...core.services import AutomationCommand
from ...utils.formatting import extract_json

logger = logging.getLogger(__name__)


class ActionBase(BaseModel):
    """Fields shared by every action variant."""
    description: str = ""
    steps: List[str] = Field(default_factory=list)


class SendMessageAction(ActionBase):
    """Send a message to another agent or to every agent."""
    action: Literal["send_message"] = "send_message"
    to: str = Field(validation_alias=AliasChoices("to", "to_agent_id", "toAgentId", "recipient"))
    content: str = Field(validation_alias=AliasChoices("content", "message", "text"))
    message_type: Literal["request", "response", "notification", "data"] = Field(
        default="notification",
        validation_alias=AliasChoices("message_type", "type", "messageType")
    )
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    requires_response: bool = Field(
        default=False,
        validation_alias=AliasChoices("requires_response", "requiresResponse")
    )


class DelegateTaskAction(ActionBase):
    """Hand a task to another running agent."""
    action: Literal["delegate_task"] = "delegate_task"
    to: str = Field(validation_alias=AliasChoices("to", "to_agent_id", "toAgentId", "agent_id", "agentId"))
    task: str = Field(validation_alias=AliasChoices("task", "task_description", "taskDescription"))


class ExecuteCommandAction(ActionBase):
    """Run a shell command through the command executor."""
    action: Literal["execute_command"] = "execute_command"
    command: str
    working_dir: Optional[str] = Field(default=None, validation_alias=AliasChoices("working_dir", "workingDir", "cwd"))
    timeout: Optional[float] = Field(default=None, gt=0)


class AutomationAction(ActionBase):
    """Run one or more desktop automation commands."""
    action: Literal["automation"] = "automation"
    commands: List[AutomationCommand] = Field(min_length=1)


class AskUserAction(ActionBase):
    """Ask the human a question, optionally with fixed choices."""
    action: Literal["ask_user"] = "ask_user"
    question: str = Field(validation_alias=AliasChoices("question", "message", "prompt"))
    options: Optional[List[str]] = None


class PerformTaskAction(ActionBase):
    """Work on something substantial: becomes a task of the agent itself."""
    action: Literal["perform_task"] = "perform_task"


class IdleAction(ActionBase):
    """Do nothing this iteration."""
    action: Literal["idle"] = "idle"


AgentAction = Annotated[
    Union[
        SendMessageAction,
        DelegateTaskAction,
        ExecuteCommandAction,
        AutomationAction,
        AskUserAction,
        PerformTaskAction,
        IdleAction,
    ],
    Field(discriminator="action")
]

_action_adapter = TypeAdapter(AgentAction)

# Spellings backends use for each variant
ACTION_ALIASES = {
    "send_message": "send_message",
    "message": "send_message",
    "notify": "send_message",
    "delegate_task": "delegate_task",
    "delegate": "delegate_task",
    "execute_command": "execute_command",
    "run_command": "execute_command",
    "command": "execute_command",
    "shell": "execute_command",
    "automation": "automation",
    "automate": "automation",
    "ask_user": "ask_user",
    "ask": "ask_user",
    "question": "ask_user",
    "perform_task": "perform_task",
    "task": "perform_task",
    "idle": "idle",
    "wait": "idle",
    "none": "idle",
}

# Variants that cause side effects outside the agent
SIDE_EFFECT_ACTIONS = ("send_message", "delegate_task", "execute_command", "automation", "ask_user")

AUTOMATION_MARKER = re.compile(r"AUTOMATION:\s*(\{[^}]+\})")


def normalize_action_name(name: Any) -> str:
    """Lower-case ``name`` and fold separators to underscores."""
    if not isinstance(name, str):
        return ""
    return re.sub(r"[\s\-]+", "_", name.strip().lower())


def _automation_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """Accept either ``{commands: [...]}`` or a single ``{type, params}``."""
    if "commands" in data:
        return data
    if "type" in data:
        command = {"type": data["type"], "params": data.get("params", {})}
        rest = {k: v for k, v in data.items() if k not in ("type", "params")}
        return {**rest, "commands": [command]}
    return data


def parse_action(payload: Any) -> AgentAction:
    """Validate one raw decision into a typed action.

    Args:
        payload: Decoded JSON, usually ``{action, description, steps, data}``

    Returns:
        The matching variant; an unknown action name with a description
        becomes ``PerformTaskAction``

    Raises:
        ParseError: If the payload cannot be turned into any variant
    """
    if not isinstance(payload, dict):
        raise ParseError("Decision is not a JSON object", payload=str(payload))

    raw_name = payload.get("action")
    name = normalize_action_name(raw_name)
    if not name:
        raise ParseError("Decision has no action", payload=json.dumps(payload, default=str))

    data = payload.get("data")
    if not isinstance(data, dict):
        data = {}
    # Flat payloads carry the variant fields next to ``action``
    fields = {k: v for k, v in payload.items() if k not in ("action", "data")}
    fields.update(data)

    description = payload.get("description")
    steps = payload.get("steps")
    fields["description"] = description if isinstance(description, str) else ""
    fields["steps"] = [str(s) for s in steps] if isinstance(steps, list) else []

    variant = ACTION_ALIASES.get(name)
    if variant is None:
        if fields["description"].strip():
            variant = "perform_task"
        else:
            raise ParseError(f"Unknown action '{raw_name}'", payload=json.dumps(payload, default=str))

    if variant == "automation":
        fields = _automation_payload(fields)
    fields["action"] = variant

    try:
        return _action_adapter.validate_python(fields)
    except ValidationError as e:
        raise ParseError(
            f"Invalid '{variant}' action: {e.error_count()} validation error(s)",
            payload=json.dumps(payload, default=str),
            cause=e
        )


def parse_decision(content: str) -> AgentAction:
    """Parse a decision completion; anything unusable degrades to idle."""
    payload = extract_json(content)
    if payload is None:
        logger.warning("Decision response contained no JSON, treating as idle")
        return IdleAction(description="unparseable decision")
    try:
        return parse_action(payload)
    except ParseError as e:
        logger.warning(f"Could not parse decision, treating as idle: {e.message}")
        return IdleAction(description=e.message)


def parse_response_actions(content: str) -> Tuple[Optional[Any], List[AgentAction]]:
    """Find structured actions in a task-execution response.

    The response may hold one action object, an object with an ``actions``
    list, or a list of action objects. Malformed entries are logged and
    skipped; idle and perform-task entries are not dispatchable here.

    Returns:
        The decoded JSON payload (or None for free text) and the actions
    """
    payload = extract_json(content)
    if payload is None:
        return None, []

    if isinstance(payload, list):
        candidates = payload
    elif isinstance(payload, dict) and isinstance(payload.get("actions"), list):
        candidates = payload["actions"]
    elif isinstance(payload, dict) and "action" in payload:
        candidates = [payload]
    else:
        candidates = []

    actions: List[AgentAction] = []
    for candidate in candidates:
        try:
            action = parse_action(candidate)
        except ParseError as e:
            logger.warning(f"Skipping malformed action in response: {e.message}")
            continue
        if action.action in SIDE_EFFECT_ACTIONS:
            actions.append(action)
    return payload, actions


def scan_automation_markers(content: str) -> Tuple[List[AutomationCommand], List[str]]:
    """Extract legacy ``AUTOMATION: {...}`` markers from free text.

    Each match is parsed on its own; a malformed match is reported and
    skipped.

    Returns:
        The parsed commands and one error string per skipped match
    """
    commands: List[AutomationCommand] = []
    errors: List[str] = []
    for match in AUTOMATION_MARKER.finditer(content or ""):
        raw = match.group(1)
        try:
            data = json.loads(raw)
            if isinstance(data, dict) and "params" not in data:
                # Flat markers carry their parameters next to ``type``
                data = {"type": data.get("type"), "params": {k: v for k, v in data.items() if k != "type"}}
            commands.append(AutomationCommand.model_validate(data))
        except (json.JSONDecodeError, ValidationError) as e:
            error = ParseError("Malformed automation command", payload=raw, cause=e)
            logger.warning(f"{error.message}: {raw[:100]}")
            errors.append(error.message)
    return commands, errors
