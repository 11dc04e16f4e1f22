"""Agent, task and action models."""

from .agent import (
    Agent,
    AgentCapabilities,
    AgentConfig,
    AgentStats,
    AgentStatus,
    AgentTask,
    TaskLog,
    TaskStatus
)
from .actions import (
    AgentAction,
    AskUserAction,
    AutomationAction,
    DelegateTaskAction,
    ExecuteCommandAction,
    IdleAction,
    PerformTaskAction,
    SendMessageAction,
    parse_action,
    parse_decision,
    parse_response_actions,
    scan_automation_markers
)

__all__ = [
    "Agent",
    "AgentCapabilities",
    "AgentConfig",
    "AgentStats",
    "AgentStatus",
    "AgentTask",
    "TaskLog",
    "TaskStatus",
    "AgentAction",
    "AskUserAction",
    "AutomationAction",
    "DelegateTaskAction",
    "ExecuteCommandAction",
    "IdleAction",
    "PerformTaskAction",
    "SendMessageAction",
    "parse_action",
    "parse_decision",
    "parse_response_actions",
    "scan_automation_markers"
]
