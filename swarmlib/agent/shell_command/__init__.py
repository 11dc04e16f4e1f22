"""Shell command execution for agents."""

from .models import CommandExecution, CommandPermissions, CommandResult, CommandStatus, ValidationResult
from .executor import CommandExecutor, parse_primary_command

__all__ = [
    "CommandExecution",
    "CommandExecutor",
    "CommandPermissions",
    "CommandResult",
    "CommandStatus",
    "ValidationResult",
    "parse_primary_command"
]
