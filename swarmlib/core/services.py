"""
Interfaces to the external collaborators the orchestrator consumes.

Resource sampling, pricing tables and desktop automation live outside the
core. The orchestrator only needs the small contracts defined here; the
defaults keep a runtime usable when no real service is wired in.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .settings import ModelPricing

logger = logging.getLogger(__name__)


AutomationType = Literal[
    "mouse_move",
    "mouse_click",
    "keyboard_type",
    "keyboard_press",
    "screenshot",
    "get_mouse_pos",
    "get_screen_size",
]


class AutomationCommand(BaseModel):
    """One desktop automation step (mouse, keyboard, screen)."""
    type: AutomationType
    params: Dict[str, Any] = Field(default_factory=dict)


class ResourceMonitor(ABC):
    """Source of system resource snapshots embedded in decision prompts."""

    @abstractmethod
    async def get_resource_usage(self) -> Dict[str, Any]:
        """Return a JSON-friendly snapshot (cpu, memory, gpu, ...)."""


class NullResourceMonitor(ResourceMonitor):
    """Resource monitor used when no sampler is configured."""

    async def get_resource_usage(self) -> Dict[str, Any]:
        return {}


class UsageRecord(BaseModel):
    """One tracked completion call."""
    agent_id: str
    provider_id: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0
    timestamp: datetime = Field(default_factory=datetime.now)


class CostTracker(ABC):
    """Turns token usage into cost and records it."""

    @abstractmethod
    def calculate_cost(self, provider_id: str, model: str, usage: Any) -> float:
        """Return the cost of ``usage`` (a TokenUsage) for ``model``."""

    @abstractmethod
    def track_usage(self, agent_id: str, provider_id: str, model: str, usage: Any, cost: float) -> None:
        """Record a completed call."""


class StaticPricingCostTracker(CostTracker):
    """Cost tracker over a read-only per-model price table (per 1K tokens)."""

    def __init__(self, pricing: Optional[Dict[str, ModelPricing]] = None, max_records: int = 10000):
        self._pricing = dict(pricing or {})
        self._max_records = max_records
        self.records: List[UsageRecord] = []

    def calculate_cost(self, provider_id: str, model: str, usage: Any) -> float:
        price = self._pricing.get(model)
        if price is None:
            return 0.0
        return (usage.prompt_tokens / 1000.0) * price.prompt + (usage.completion_tokens / 1000.0) * price.completion

    def track_usage(self, agent_id: str, provider_id: str, model: str, usage: Any, cost: float) -> None:
        self.records.append(UsageRecord(
            agent_id=agent_id,
            provider_id=provider_id,
            model=model,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            cost=cost
        ))
        if len(self.records) > self._max_records:
            del self.records[:len(self.records) - self._max_records]

    def get_cost_by_agent(self) -> Dict[str, float]:
        totals: Dict[str, float] = {}
        for record in self.records:
            totals[record.agent_id] = totals.get(record.agent_id, 0.0) + record.cost
        return totals


class AutomationDriver(ABC):
    """Executes desktop automation commands on behalf of an agent."""

    @abstractmethod
    async def execute(self, command: AutomationCommand) -> Any:
        """Run ``command`` and return its result."""


class LoggingAutomationDriver(AutomationDriver):
    """Automation driver that only records what it was asked to do."""

    def __init__(self):
        self.executed: List[AutomationCommand] = []

    async def execute(self, command: AutomationCommand) -> Any:
        logger.info(f"Automation command (not executed, no driver configured): {command.type} {command.params}")
        self.executed.append(command)
        return {"success": False, "reason": "no automation driver configured"}
