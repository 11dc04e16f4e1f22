"""
Settings models for swarmlib components.

Every component takes its own settings section; ``SwarmSettings`` groups
them into one tree that can be loaded from a YAML file.
"""

import logging
import os
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


DEFAULT_BLOCKED_PATTERNS = [
    "rm -rf /",
    "rm -fr /",
    "mkfs",
    "dd if=",
    "dd of=/dev/",
    "> /dev/sd",
    ":(){:|:&};:",
    ":(){ :|:& };:",
    "sudo rm",
    "sudo dd",
    "format c:",
]


class CommandPermissions(BaseModel):
    """Policy applied to every shell command before it is spawned.

    Attributes:
        allowed_commands: Leading tokens that may run, or ["*"] for any
        blocked_commands: Substrings that reject a command outright
        allow_network: Whether network tools may be used
        allow_file_system: Whether file system tools may be used
        allow_package_managers: Whether package managers may be invoked
        max_execution_time: Default timeout in seconds
        working_dir: Default working directory (home directory if unset)
    """
    allowed_commands: List[str] = Field(default_factory=lambda: ["*"])
    blocked_commands: List[str] = Field(default_factory=lambda: list(DEFAULT_BLOCKED_PATTERNS))
    allow_network: bool = True
    allow_file_system: bool = True
    allow_package_managers: bool = True
    max_execution_time: float = Field(default=300.0, gt=0)
    working_dir: Optional[str] = None

    def merge(self, overrides: Optional[Dict] = None) -> 'CommandPermissions':
        """Return a copy with the given (partial) overrides applied."""
        if not overrides:
            return self.model_copy(deep=True)
        if isinstance(overrides, CommandPermissions):
            overrides = overrides.model_dump(exclude_unset=True)
        merged = self.model_dump()
        merged.update({k: v for k, v in overrides.items() if v is not None})
        return CommandPermissions(**merged)


class OrchestratorSettings(BaseModel):
    """Settings for the agent orchestrator loop."""
    loop_interval: float = Field(default=5.0, gt=0, description="Delay between two iterations of one agent")
    decision_temperature: Optional[float] = Field(
        default=None,
        description="Temperature override for decision calls (agent temperature when unset)"
    )
    decision_max_tokens: Optional[int] = Field(
        default=None,
        description="Max tokens override for decision calls (agent max_tokens when unset)"
    )
    spawn_priorities: List[str] = Field(
        default_factory=lambda: ["high", "urgent"],
        description="Request priorities that turn an incoming message into a task"
    )


class CommandSettings(BaseModel):
    """Settings for the command executor."""
    permissions: CommandPermissions = Field(default_factory=CommandPermissions)
    kill_grace_period: float = Field(default=5.0, ge=0, description="Seconds between terminate and kill")
    history_limit: int = Field(default=1000, gt=0)
    read_chunk_size: int = Field(default=4096, gt=0)


class MessagingSettings(BaseModel):
    """Settings for the message bus."""
    message_retention: float = Field(default=7 * 24 * 60 * 60, gt=0, description="Seconds a message is kept")
    cleanup_interval: float = Field(default=3600.0, gt=0)


class ApprovalSettings(BaseModel):
    """Settings for the approval gate."""
    prompt_timeout: float = Field(default=300.0, gt=0, description="Seconds before a prompt times out")


class GatewaySettings(BaseModel):
    """Settings for the completion gateway."""
    request_timeout: float = Field(default=120.0, gt=0)
    default_max_tokens: int = Field(default=2000, gt=0)
    default_temperature: float = 0.7
    test_max_tokens: int = Field(default=10, gt=0)

    @field_validator("default_temperature")
    def validate_temperature(cls, v: float) -> float:
        """Validate temperature."""
        if v < 0 or v > 2:
            raise ValueError("Temperature must be between 0 and 2")
        return v


class PersistenceSettings(BaseModel):
    """Where registries are loaded from and saved to."""
    backend: Literal["memory", "json"] = "memory"
    directory: str = Field(default_factory=lambda: os.path.join(os.path.expanduser("~"), ".swarmlib"))


class ApiSettings(BaseModel):
    """Settings for the RPC server."""
    host: str = "localhost"
    port: int = 8765
    auth_token: Optional[str] = None


class ModelPricing(BaseModel):
    """Price per 1K tokens for one model."""
    prompt: float = 0.0
    completion: float = 0.0


class SwarmSettings(BaseModel):
    """Complete settings tree for a swarmlib runtime."""
    log_level: str = "INFO"
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    commands: CommandSettings = Field(default_factory=CommandSettings)
    messaging: MessagingSettings = Field(default_factory=MessagingSettings)
    approvals: ApprovalSettings = Field(default_factory=ApprovalSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    persistence: PersistenceSettings = Field(default_factory=PersistenceSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    pricing: Dict[str, ModelPricing] = Field(default_factory=dict)


def load_settings(filepath: Optional[str] = None) -> SwarmSettings:
    """Loads settings from a YAML file.

    Reads the specified YAML file, parses its content, and validates it
    against the SwarmSettings model. Without a path the defaults are used.

    Args:
        filepath: The path to the YAML configuration file.

    Returns:
        A validated SwarmSettings instance.

    Raises:
        ConfigurationError: If the file is missing, cannot be parsed as YAML,
                            or does not conform to the SwarmSettings model.
    """
    if not filepath:
        return SwarmSettings()

    logger.info(f"Loading settings from: {filepath}")

    if not os.path.exists(filepath):
        raise ConfigurationError(f"Configuration file not found at: {filepath}", config_key=filepath)

    try:
        with open(filepath, 'r') as f:
            config_dict = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML file '{filepath}': {e}", exc_info=True)
        raise ConfigurationError(
            message=f"Error parsing YAML configuration file: {filepath}",
            config_key=filepath,
            cause=e
        )

    if not isinstance(config_dict, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {filepath}", config_key=filepath)

    try:
        settings = SwarmSettings(**config_dict)
    except ValidationError as e:
        logger.error(f"Error validating configuration from '{filepath}': {e}")
        raise ConfigurationError(
            message=f"Invalid configuration in {filepath}: {e.error_count()} error(s)",
            config_key=filepath,
            cause=e
        )

    logger.info(f"Loaded settings from {filepath}")
    return settings
