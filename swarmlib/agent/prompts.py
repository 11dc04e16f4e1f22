"""
Prompt templates for the agent loop.

Templates use ``{{variable}}`` placeholders so that literal JSON braces in
the instructions need no escaping.
"""

from typing import Any, Dict


def format_template(template: str, variables: Dict[str, Any]) -> str:
    """Replace ``{{variable}}`` placeholders with their values.

    Unknown placeholders are left as they are.
    """
    result = template
    for key, value in variables.items():
        result = result.replace(f"{{{{{key}}}}}", str(value))
    return result


class DecisionPrompt:
    """Asks an agent's backend what to do next when it has no pending task."""

    template = """
You are {{agent_name}}, an autonomous agent. Based on your objectives and current context, decide what to do next.

## Your capabilities
{{capabilities}}

## Your statistics
{{stats}}

## System resources
{{resources}}

## Unread messages
{{messages}}

## Agents available for delegation
{{agents}}

## Actions
- "idle": nothing useful to do right now
- "perform_task": work on something yourself; put what you will do in "description"
- "send_message": data {"to": "<agent id or broadcast>", "content": "...", "type": "request|notification|data", "priority": "low|medium|high|urgent", "requires_response": false}
- "delegate_task": data {"to": "<agent id>", "task": "<what the other agent should do>"}
- "execute_command": data {"command": "<shell command>", "working_dir": null, "timeout": null}
- "automation": data {"commands": [{"type": "mouse_move|mouse_click|keyboard_type|keyboard_press|screenshot", "params": {}}]}
- "ask_user": data {"question": "...", "options": null}

Only use actions your capabilities allow.

Respond with a single JSON object and nothing else:
{"action": "<action>", "description": "<what you'll do>", "steps": ["step1", "step2"], "data": {}}
"""


class TaskExecutionPrompt:
    """Asks an agent's backend to carry out one task."""

    template = """
Execute this task: {{task_description}}

Provide detailed steps and results.

If you need side effects, include them as JSON: {"actions": [{"action": "<action>", "data": {}}]} using the actions send_message, delegate_task, execute_command, automation or ask_user. Only use actions your capabilities allow:
{{capabilities}}
{{automation_hint}}
"""

    automation_hint = (
        "Desktop automation steps may also be written on their own line as "
        'AUTOMATION: {"type": "mouse_click", "x": 100, "y": 200} (flat, no nested objects)'
    )
