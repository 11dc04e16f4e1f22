"""
Runtime wiring.

Builds every component from one ``SwarmSettings`` tree, sharing a single
event channel and persistence backend between them.
"""

import logging
from typing import Optional

from .agent.messaging.bus import MessageBus
from .agent.orchestrator import AgentOrchestrator
from .agent.shell_command.executor import CommandExecutor
from .agent.user_input.gate import ApprovalGate
from .core.events import EventChannel
from .core.services import AutomationDriver, CostTracker, ResourceMonitor, StaticPricingCostTracker
from .core.settings import PersistenceSettings, SwarmSettings
from .core.store import JsonFilePersistence, MemoryPersistence, PersistenceBackend
from .providers.gateway import CompletionGateway

logger = logging.getLogger(__name__)


def create_persistence(settings: PersistenceSettings) -> PersistenceBackend:
    """Create the persistence backend named in settings."""
    if settings.backend == "json":
        return JsonFilePersistence(settings.directory)
    return MemoryPersistence()


class SwarmRuntime:
    """All swarmlib components wired together.

    Usage::

        async with SwarmRuntime(load_settings("swarm.yaml")) as runtime:
            provider_id = await runtime.gateway.register({...})
            agent = await runtime.orchestrator.create_agent({...})
            await runtime.orchestrator.start_agent(agent.id)
    """

    def __init__(
        self,
        settings: Optional[SwarmSettings] = None,
        persistence: Optional[PersistenceBackend] = None,
        resource_monitor: Optional[ResourceMonitor] = None,
        cost_tracker: Optional[CostTracker] = None,
        automation: Optional[AutomationDriver] = None
    ):
        self.settings = settings or SwarmSettings()
        self.events = EventChannel()
        self.persistence = persistence or create_persistence(self.settings.persistence)

        self.gateway = CompletionGateway(self.settings.gateway, self.persistence)
        self.executor = CommandExecutor(self.settings.commands, self.events, self.persistence)
        self.bus = MessageBus(self.settings.messaging, self.events, self.persistence)
        self.gate = ApprovalGate(self.settings.approvals, self.events)
        self.orchestrator = AgentOrchestrator(
            self.gateway,
            self.executor,
            self.bus,
            self.gate,
            settings=self.settings.orchestrator,
            events=self.events,
            persistence=self.persistence,
            resource_monitor=resource_monitor,
            cost_tracker=cost_tracker or StaticPricingCostTracker(self.settings.pricing),
            automation=automation
        )
        self._started = False

    async def start(self) -> None:
        """Load every registry and start background maintenance."""
        if self._started:
            return
        await self.gateway.load()
        await self.executor.load()
        await self.bus.load()
        await self.orchestrator.load()
        self.bus.start_cleanup()
        self._started = True
        logger.info("Swarm runtime started")

    async def shutdown(self) -> None:
        """Stop agents, kill commands and close backend sessions."""
        if not self._started:
            return
        await self.orchestrator.shutdown()
        await self.executor.shutdown()
        await self.bus.stop_cleanup()
        await self.gateway.shutdown()
        self._started = False
        logger.info("Swarm runtime stopped")

    async def __aenter__(self) -> "SwarmRuntime":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()
