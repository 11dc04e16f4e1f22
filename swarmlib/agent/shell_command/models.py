"""Models for shell command execution."""

import asyncio
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ...core.settings import CommandPermissions


class CommandStatus(str, Enum):
    """Status of a command execution."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    KILLED = "killed"


class CommandResult(BaseModel):
    """Frozen outcome of one command execution."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Execution id")
    command: str = Field(..., description="The command that was executed")
    status: CommandStatus = Field(..., description="Terminal status")
    stdout: str = Field("", description="Standard output from the command")
    stderr: str = Field("", description="Standard error from the command, plus spawn errors")
    exit_code: Optional[int] = Field(None, description="Exit code; None when the process never ran")
    start_time: datetime
    end_time: datetime
    duration: float = Field(..., description="Execution time in seconds")
    working_dir: str = Field(..., description="Directory where the command was executed")
    agent_id: Optional[str] = None
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.status == CommandStatus.COMPLETED and self.exit_code == 0


class CommandExecution(BaseModel):
    """Live state of a running command."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    command: str
    status: CommandStatus = CommandStatus.RUNNING
    agent_id: Optional[str] = None
    working_dir: str
    started_at: datetime = Field(default_factory=datetime.now)
    process: Optional[asyncio.subprocess.Process] = Field(default=None, exclude=True)
    kill_requested: bool = Field(default=False, exclude=True)


class ValidationResult(BaseModel):
    """Outcome of checking a command against a permission policy."""
    valid: bool
    reason: Optional[str] = None


__all__ = [
    "CommandExecution",
    "CommandPermissions",
    "CommandResult",
    "CommandStatus",
    "ValidationResult"
]
