"""
Agent and task models.

This module contains the records owned by the agent orchestrator: agents
with their capabilities, tunables and running statistics, and the tasks
each agent works through.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from ...core.errors import ErrorContext, StateError


class AgentStatus(str, Enum):
    """Lifecycle status of an agent."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    ERROR = "error"


class TaskStatus(str, Enum):
    """Status of an agent task; completed and failed are terminal."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_TASK_STATUSES = (TaskStatus.COMPLETED, TaskStatus.FAILED)


class AgentCapabilities(BaseModel):
    """
    Capability flags gating what an agent may do.

    Attributes:
        computer_control: Desktop automation (mouse, keyboard, screen)
        file_system: File system access
        network: Network access
        agent_communication: Messaging and delegation
        command_execution: Shell command execution
    """
    computer_control: bool = False
    file_system: bool = False
    network: bool = False
    agent_communication: bool = True
    command_execution: bool = False


class AgentConfig(BaseModel):
    """Tunables of one agent."""
    max_tokens: int = Field(default=2000, gt=0, description="Max tokens per completion call")
    temperature: float = Field(default=0.7, description="Sampling temperature")
    max_iterations: int = Field(
        default=10,
        gt=0,
        description="Maximum side-effecting actions dispatched from one response"
    )
    autonomy_level: Literal["low", "medium", "high"] = Field(
        default="medium",
        description="How much the agent may do without human approval"
    )

    @field_validator("temperature")
    def validate_temperature(cls, v: float) -> float:
        """Validate temperature."""
        if v < 0 or v > 2:
            raise ValueError("Temperature must be between 0 and 2")
        return v


class AgentStats(BaseModel):
    """Running statistics, updated by the agent's own loop."""
    total_runs: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    last_run: Optional[datetime] = None
    average_run_time: float = 0.0
    messages_sent: int = 0
    messages_received: int = 0
    commands_executed: int = 0
    errors: int = 0

    def record_run(self, elapsed: float) -> None:
        """Fold one iteration's elapsed seconds into the running average."""
        self.total_runs += 1
        n = self.total_runs
        self.average_run_time = (self.average_run_time * (n - 1) + elapsed) / n
        self.last_run = datetime.now()


class Agent(BaseModel):
    """An independently scheduled agent bound to one provider and model."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    description: str = ""
    provider_id: str
    model: str
    system_prompt: str = ""
    capabilities: AgentCapabilities = Field(default_factory=AgentCapabilities)
    status: AgentStatus = AgentStatus.IDLE
    config: AgentConfig = Field(default_factory=AgentConfig)
    stats: AgentStats = Field(default_factory=AgentStats)
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def touch(self) -> None:
        self.updated_at = datetime.now()


class TaskLog(BaseModel):
    """One timestamped line of a task's execution log."""
    timestamp: datetime = Field(default_factory=datetime.now)
    level: Literal["debug", "info", "warning", "error"] = "info"
    message: str


class AgentTask(BaseModel):
    """A unit of work owned by exactly one agent.

    Terminal states (completed, failed) are final: ``start``, ``complete``
    and ``fail`` raise ``StateError`` on a terminal task.
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    agent_id: str
    description: str
    status: TaskStatus = TaskStatus.PENDING
    sequence: int = 0
    created_at: datetime = Field(default_factory=datetime.now)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    result: Optional[Any] = None
    error: Optional[str] = None
    delegated_from: Optional[str] = None
    delegated_to: Optional[str] = None
    request_message_id: Optional[str] = None
    logs: List[TaskLog] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TASK_STATUSES

    def log(self, message: str, level: str = "info") -> None:
        self.logs.append(TaskLog(level=level, message=message))

    def start(self) -> None:
        self._require_status(TaskStatus.PENDING, "start")
        self.status = TaskStatus.RUNNING
        self.start_time = datetime.now()
        self.log("Task started")

    def complete(self, result: Any = None) -> None:
        self._require_live("complete")
        self.status = TaskStatus.COMPLETED
        self.result = result
        self.end_time = datetime.now()
        self.log("Task completed")

    def fail(self, error: str) -> None:
        self._require_live("fail")
        self.status = TaskStatus.FAILED
        self.error = error
        self.end_time = datetime.now()
        self.log(f"Task failed: {error}", level="error")

    def _require_live(self, operation: str) -> None:
        if self.is_terminal:
            raise StateError(
                message=f"Cannot {operation} task {self.id}: already {self.status.value}",
                state_name=self.status.value,
                context=ErrorContext.create(task_id=self.id)
            )

    def _require_status(self, status: TaskStatus, operation: str) -> None:
        if self.status != status:
            raise StateError(
                message=f"Cannot {operation} task {self.id} in status {self.status.value}",
                state_name=self.status.value,
                context=ErrorContext.create(task_id=self.id)
            )


def summarize_result(result: Any, limit: int = 500) -> str:
    """Short text form of a task result for response messages."""
    if result is None:
        return ""
    if isinstance(result, dict):
        text = result.get("description") or result.get("content") or str(result)
    else:
        text = str(result)
    return text if len(text) <= limit else text[:limit] + "..."

