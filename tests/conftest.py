"""Shared fixtures for swarmlib tests."""

import asyncio
from typing import List

import pytest

from swarmlib.agent.messaging.bus import MessageBus
from swarmlib.agent.orchestrator import AgentOrchestrator
from swarmlib.agent.shell_command.executor import CommandExecutor
from swarmlib.agent.user_input.gate import ApprovalGate
from swarmlib.core.events import EventChannel
from swarmlib.core.services import LoggingAutomationDriver, StaticPricingCostTracker
from swarmlib.core.settings import (
    ApprovalSettings,
    CommandSettings,
    OrchestratorSettings
)
from swarmlib.core.store import MemoryPersistence
from swarmlib.providers.gateway import CompletionGateway
from swarmlib.providers.llm import (
    ChatMessage,
    CompletionBackend,
    CompletionBackendSettings,
    CompletionOptions,
    CompletionResponse,
    TokenUsage
)

IDLE = '{"action": "idle", "description": "nothing to do"}'


class ScriptedBackend(CompletionBackend[CompletionBackendSettings]):
    """Backend that replays queued responses; exceptions in the queue are raised."""

    def __init__(self, responses=None):
        super().__init__(name="scripted")
        self.responses = list(responses or [])
        self.calls: List[dict] = []
        self.delay = 0.0

    async def complete(self, model: str, messages: List[ChatMessage], options: CompletionOptions) -> CompletionResponse:
        self.calls.append({"model": model, "messages": messages, "options": options})
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.responses.pop(0) if self.responses else IDLE
        if isinstance(item, Exception):
            raise item
        return CompletionResponse(
            content=item,
            usage=TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
            model=model
        )


@pytest.fixture
def events():
    return EventChannel()


@pytest.fixture
def persistence():
    return MemoryPersistence()


@pytest.fixture
def backend():
    return ScriptedBackend()


@pytest.fixture
async def gateway(persistence, backend):
    gateway = CompletionGateway(persistence=persistence)
    yield gateway
    await gateway.shutdown()


@pytest.fixture
async def provider_id(gateway, backend):
    return await gateway.register({"kind": "local", "name": "scripted", "models": ["test-model"]}, backend=backend)


@pytest.fixture
async def executor(events, persistence):
    executor = CommandExecutor(CommandSettings(kill_grace_period=0.2), events, persistence)
    yield executor
    await executor.shutdown()


@pytest.fixture
def bus(events, persistence):
    return MessageBus(events=events, persistence=persistence)


@pytest.fixture
def gate(events):
    return ApprovalGate(ApprovalSettings(prompt_timeout=5.0), events)


@pytest.fixture
def automation():
    return LoggingAutomationDriver()


@pytest.fixture
async def orchestrator(gateway, executor, bus, gate, events, persistence, automation):
    orchestrator = AgentOrchestrator(
        gateway,
        executor,
        bus,
        gate,
        settings=OrchestratorSettings(loop_interval=0.01),
        events=events,
        persistence=persistence,
        cost_tracker=StaticPricingCostTracker(),
        automation=automation
    )
    yield orchestrator
    await orchestrator.shutdown()
