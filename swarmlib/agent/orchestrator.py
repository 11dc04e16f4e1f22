"""
Agent orchestrator.

Owns the agent and task registries and runs one decision loop per running
agent. Each iteration either works on the agent's oldest pending task or
asks the agent's backend for a decision, dispatches the resulting actions
to the command executor, the message bus and the approval gate, and folds
the outcome back into agent and task state.
"""

import asyncio
import itertools
import logging
import time
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from ..core.errors import (
    AgentNotFoundError,
    BaseError,
    ErrorContext,
    OperationCancelledError,
    OperationTimeoutError,
    PermissionDeniedError,
    StateError
)
from ..core.events import EventChannel
from ..core.services import (
    AutomationCommand,
    AutomationDriver,
    CostTracker,
    LoggingAutomationDriver,
    NullResourceMonitor,
    ResourceMonitor,
    StaticPricingCostTracker
)
from ..core.settings import OrchestratorSettings
from ..core.store import PersistenceBackend, RecordStore
from ..providers.gateway import CompletionGateway
from ..providers.llm.models import ChatMessage, CompletionOptions, CompletionResponse
from ..utils.formatting import format_agents, format_capabilities, format_json, format_messages
from .messaging.bus import MessageBus
from .messaging.models import BROADCAST, AgentMessage, MessageMetadata, MessageType
from .models.actions import (
    AgentAction,
    AskUserAction,
    AutomationAction,
    DelegateTaskAction,
    ExecuteCommandAction,
    IdleAction,
    PerformTaskAction,
    SendMessageAction,
    parse_decision,
    parse_response_actions,
    scan_automation_markers
)
from .models.agent import Agent, AgentStatus, AgentTask, TaskStatus, summarize_result
from .prompts import DecisionPrompt, TaskExecutionPrompt, format_template
from .shell_command.executor import CommandExecutor
from .user_input.gate import ApprovalGate

logger = logging.getLogger(__name__)

# Capability each action variant needs
REQUIRED_CAPABILITY = {
    "send_message": "agent_communication",
    "delegate_task": "agent_communication",
    "execute_command": "command_execution",
    "automation": "computer_control",
}

# Actions that need human approval at each autonomy level
APPROVAL_POLICY = {
    "low": ("execute_command", "delegate_task", "automation"),
    "medium": ("execute_command",),
    "high": (),
}

# Fields callers may not change through update_agent
IMMUTABLE_AGENT_FIELDS = ("id", "status", "stats", "created_at", "updated_at")


class AgentOrchestrator:
    """Registry and scheduler of agents.

    This class provides:
    1. Agent lifecycle: create, start, stop, update, delete
    2. One cancellable ``asyncio.Task`` per running agent
    3. Decision and task-execution steps over the completion gateway
    4. Dispatch of typed actions to the executor, bus and approval gate

    Errors inside an iteration are logged and recorded on the agent; the
    loop keeps running until the agent is stopped.

    Events published: ``agent:created``, ``agent:updated``, ``agent:deleted``,
    ``agent:status-change``, ``agent:log``, ``agent:decision``,
    ``agent:action``, ``task:created``, ``task:updated``.
    """

    def __init__(
        self,
        gateway: CompletionGateway,
        executor: CommandExecutor,
        bus: MessageBus,
        gate: ApprovalGate,
        settings: Optional[OrchestratorSettings] = None,
        events: Optional[EventChannel] = None,
        persistence: Optional[PersistenceBackend] = None,
        resource_monitor: Optional[ResourceMonitor] = None,
        cost_tracker: Optional[CostTracker] = None,
        automation: Optional[AutomationDriver] = None
    ):
        self.gateway = gateway
        self.executor = executor
        self.bus = bus
        self.gate = gate
        self.settings = settings or OrchestratorSettings()
        self.events = events or EventChannel()
        self.resource_monitor = resource_monitor or NullResourceMonitor()
        self.cost_tracker = cost_tracker or StaticPricingCostTracker()
        self.automation = automation or LoggingAutomationDriver()

        self.agents: RecordStore[Agent] = RecordStore("agents", Agent, key=lambda a: a.id, persistence=persistence)
        self.tasks: RecordStore[AgentTask] = RecordStore("tasks", AgentTask, key=lambda t: t.id, persistence=persistence)

        self._loops: Dict[str, asyncio.Task] = {}
        self._sequence = itertools.count(1)
        self._background: Set[asyncio.Task] = set()

        self.bus.add_delivery_listener(self._on_message_delivered)

    async def load(self) -> None:
        """Load agents and tasks; nothing is running after a restart."""
        await self.agents.load()
        await self.tasks.load()

        for agent in self.agents.list(lambda a: a.status == AgentStatus.RUNNING):
            agent.status = AgentStatus.IDLE
        for task in self.tasks.list(lambda t: t.status == TaskStatus.RUNNING):
            task.fail("Interrupted by restart")

        last = max((t.sequence for t in self.tasks.list()), default=0)
        self._sequence = itertools.count(last + 1)

        await self.agents.save()
        await self.tasks.save()
        logger.info(f"Loaded {len(self.agents)} agent(s) and {len(self.tasks)} task(s)")

    # Agent lifecycle

    async def create_agent(self, data: Union[Agent, Dict[str, Any]]) -> Agent:
        """Register a new agent in the idle state.

        Raises:
            ProviderNotFoundError: If the agent's provider is not registered
        """
        if isinstance(data, Agent):
            data = data.model_dump()
        data = {k: v for k, v in data.items() if k not in ("status", "stats")}
        agent = Agent.model_validate(data)
        self.gateway.get_provider(agent.provider_id)

        if agent.id in self.agents:
            raise StateError(
                message=f"Agent '{agent.id}' already exists",
                context=ErrorContext.create(agent_id=agent.id)
            )

        await self.agents.put(agent)
        logger.info(f"Created agent '{agent.name}' ({agent.id})")
        self.events.publish("agent:created", agent)
        return agent

    def get_agent(self, agent_id: str) -> Agent:
        agent = self.agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def list_agents(self) -> List[Agent]:
        return self.agents.list()

    async def update_agent(self, agent_id: str, updates: Dict[str, Any]) -> Agent:
        """Apply partial updates; id, status, stats and timestamps are kept.

        Nested ``capabilities`` and ``config`` dicts are merged field by field.
        """
        async with self.agents.lock(agent_id):
            agent = self.get_agent(agent_id)
            merged = agent.model_dump()
            for key, value in updates.items():
                if key in IMMUTABLE_AGENT_FIELDS:
                    continue
                if key in ("capabilities", "config") and isinstance(value, dict):
                    merged[key] = {**merged[key], **value}
                else:
                    merged[key] = value
            validated = Agent.model_validate(merged)
            if validated.provider_id != agent.provider_id:
                self.gateway.get_provider(validated.provider_id)

            # Mutate in place so a running loop keeps working on the same record
            for field in Agent.model_fields:
                if field not in IMMUTABLE_AGENT_FIELDS:
                    setattr(agent, field, getattr(validated, field))
            agent.touch()
            await self.agents.save()

        logger.info(f"Updated agent {agent_id}")
        self.events.publish("agent:updated", agent)
        return agent

    async def start_agent(self, agent_id: str) -> bool:
        """Start an agent's loop; False if it is already running."""
        agent = self.get_agent(agent_id)
        if agent.status == AgentStatus.RUNNING:
            return False

        agent.status = AgentStatus.RUNNING
        agent.touch()
        await self.agents.save()
        self._publish_status(agent)
        self._log(agent, "info", "Agent started")

        self._loops[agent_id] = asyncio.ensure_future(self._run_loop(agent_id))
        return True

    async def stop_agent(self, agent_id: str) -> bool:
        """Stop an agent; when this returns no further iteration will run.

        Returns:
            False if the agent was not running
        """
        agent = self.get_agent(agent_id)
        loop_task = self._loops.pop(agent_id, None)
        if agent.status != AgentStatus.RUNNING and loop_task is None:
            return False

        agent.status = AgentStatus.IDLE
        agent.touch()

        if loop_task is not None and not loop_task.done() and loop_task is not asyncio.current_task():
            loop_task.cancel()
            try:
                await loop_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Loop of agent {agent_id} ended with an error: {e}", exc_info=True)

        await self.agents.save()
        self._publish_status(agent)
        self._log(agent, "info", "Agent stopped")
        return True

    async def stop_all_agents(self) -> int:
        stopped = 0
        for agent in self.agents.list(lambda a: a.status == AgentStatus.RUNNING):
            if await self.stop_agent(agent.id):
                stopped += 1
        return stopped

    async def delete_agent(self, agent_id: str) -> bool:
        """Delete an agent and its tasks, stopping it first if needed."""
        agent = self.get_agent(agent_id)
        if agent.status == AgentStatus.RUNNING or agent_id in self._loops:
            await self.stop_agent(agent_id)

        for task in self.tasks.list(lambda t: t.agent_id == agent_id):
            self.tasks.delete_nowait(task.id)
        await self.tasks.save()
        await self.agents.delete(agent_id)

        logger.info(f"Deleted agent '{agent.name}' ({agent_id})")
        self.events.publish("agent:deleted", {"agent_id": agent_id})
        return True

    async def shutdown(self) -> None:
        await self.stop_all_agents()
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # Messaging and tasks

    async def send_message(
        self,
        from_agent_id: str,
        to_agent_id: str,
        content: str,
        type: Union[MessageType, str] = MessageType.NOTIFICATION,
        metadata: Optional[Union[MessageMetadata, Dict[str, Any]]] = None
    ) -> AgentMessage:
        """Send a message between agents and count it in the agents' stats.

        A broadcast counts as received by every agent except its sender.
        """
        sender = self.get_agent(from_agent_id)
        if to_agent_id == BROADCAST:
            recipients = self.agents.list(lambda a: a.id != from_agent_id)
        else:
            recipients = [self.get_agent(to_agent_id)]

        message = await self.bus.send_message(from_agent_id, to_agent_id, content, type, metadata)

        sender.stats.messages_sent += 1
        for recipient in recipients:
            recipient.stats.messages_received += 1
        await self.agents.save()
        return message

    def get_messages(self, agent_id: str, include_read: bool = False) -> List[AgentMessage]:
        self.get_agent(agent_id)
        return self.bus.get_messages(agent_id, include_read)

    def get_tasks(self, agent_id: Optional[str] = None, status: Optional[Union[TaskStatus, str]] = None) -> List[AgentTask]:
        """Tasks in creation order, optionally filtered."""
        status = TaskStatus(status) if status is not None else None
        tasks = self.tasks.list(
            lambda t: (agent_id is None or t.agent_id == agent_id) and (status is None or t.status == status)
        )
        return sorted(tasks, key=lambda t: t.sequence)

    async def create_task(
        self,
        agent_id: str,
        description: str,
        delegated_from: Optional[str] = None,
        request_message_id: Optional[str] = None
    ) -> AgentTask:
        """Queue a pending task for ``agent_id``."""
        self.get_agent(agent_id)
        task = self._new_task(agent_id, description, delegated_from, request_message_id)
        await self.tasks.save()
        return task

    async def delegate_task(self, from_agent_id: str, to_agent_id: str, description: str) -> AgentTask:
        """Create a task on ``to_agent_id`` and send it the matching request.

        Yields exactly one task owned by the target and one ``request``
        message with ``requires_response`` set.
        """
        self.get_agent(from_agent_id)
        self.get_agent(to_agent_id)
        if from_agent_id == to_agent_id:
            raise StateError(
                message="An agent cannot delegate to itself",
                context=ErrorContext.create(agent_id=from_agent_id)
            )

        task = self._new_task(to_agent_id, description, delegated_from=from_agent_id)
        message = await self.send_message(
            from_agent_id,
            to_agent_id,
            f"Task delegated: {description}",
            MessageType.REQUEST,
            MessageMetadata(requires_response=True, task_id=task.id)
        )
        task.request_message_id = message.id
        await self.tasks.save()

        logger.info(f"Agent {from_agent_id} delegated task {task.id} to {to_agent_id}")
        return task

    def _new_task(
        self,
        agent_id: str,
        description: str,
        delegated_from: Optional[str] = None,
        request_message_id: Optional[str] = None
    ) -> AgentTask:
        task = AgentTask(
            agent_id=agent_id,
            description=description,
            sequence=next(self._sequence),
            delegated_from=delegated_from,
            request_message_id=request_message_id
        )
        self.tasks.put_nowait(task)
        self.events.publish("task:created", task)
        return task

    def _on_message_delivered(self, message: AgentMessage) -> None:
        """Turn an urgent request to a running agent into a pending task."""
        if message.is_broadcast or message.type != MessageType.REQUEST:
            return
        metadata = message.metadata
        if not metadata.requires_response or metadata.task_id is not None:
            return
        if metadata.priority.value not in self.settings.spawn_priorities:
            return
        recipient = self.agents.get(message.to_agent_id)
        if recipient is None or recipient.status != AgentStatus.RUNNING:
            return

        task = self._new_task(
            recipient.id,
            f"Respond to request from {message.from_agent_id}: {message.content}",
            delegated_from=message.from_agent_id,
            request_message_id=message.id
        )
        logger.info(f"Request {message.id} became task {task.id} of agent {recipient.id}")
        self._spawn(self.tasks.save())

    # Loop

    async def _run_loop(self, agent_id: str) -> None:
        """Run iterations until the agent leaves the running state."""
        try:
            while True:
                agent = self.agents.get(agent_id)
                if agent is None or agent.status != AgentStatus.RUNNING:
                    break
                await self._run_iteration(agent)

                agent = self.agents.get(agent_id)
                if agent is None or agent.status != AgentStatus.RUNNING:
                    break
                await asyncio.sleep(self.settings.loop_interval)
        finally:
            if self._loops.get(agent_id) is asyncio.current_task():
                del self._loops[agent_id]

    async def _run_iteration(self, agent: Agent) -> None:
        started = time.monotonic()
        current: Optional[AgentTask] = None
        try:
            current = self._next_pending_task(agent.id)
            if current is None:
                action = await self._decide(agent)
                if isinstance(action, PerformTaskAction):
                    current = self._new_task(agent.id, action.description or "Perform task")
                    for step in action.steps:
                        current.log(f"Planned step: {step}", level="debug")
                elif not isinstance(action, IdleAction):
                    await self._dispatch_actions(agent, [action], None)

            if current is not None:
                await self._execute_task(agent, current)
        except asyncio.CancelledError:
            if current is not None and not current.is_terminal:
                current.fail("Agent stopped")
                self.events.publish("task:updated", current)
                await self.tasks.save()
                # stop_agent awaits this task, so the reply lands before it returns
                await self._reply_to_requester(agent, current)
            else:
                await self.tasks.save()
            raise
        except Exception as e:
            self._record_error(agent, e)

        agent.stats.record_run(time.monotonic() - started)
        agent.touch()
        await self.agents.save()
        await self.tasks.save()

    def _next_pending_task(self, agent_id: str) -> Optional[AgentTask]:
        pending = self.tasks.list(lambda t: t.agent_id == agent_id and t.status == TaskStatus.PENDING)
        return min(pending, key=lambda t: t.sequence) if pending else None

    async def _decide(self, agent: Agent) -> AgentAction:
        """Ask the backend for the next action; failures degrade to idle."""
        try:
            resources = await self.resource_monitor.get_resource_usage()
        except Exception as e:
            logger.warning(f"Resource snapshot failed: {e}")
            resources = {}

        unread: List[AgentMessage] = []
        others: List[Agent] = []
        if agent.capabilities.agent_communication:
            unread = self.bus.get_messages(agent.id)
            others = self.agents.list(lambda a: a.id != agent.id and a.status == AgentStatus.RUNNING)

        prompt = format_template(DecisionPrompt.template, {
            "agent_name": agent.name,
            "capabilities": format_capabilities(agent.capabilities.model_dump()),
            "stats": format_json(agent.stats.model_dump(mode="json")),
            "resources": format_json(resources),
            "messages": format_messages(unread),
            "agents": format_agents(others),
        })
        options = CompletionOptions(
            temperature=self._pick(self.settings.decision_temperature, agent.config.temperature),
            max_tokens=self._pick(self.settings.decision_max_tokens, agent.config.max_tokens)
        )

        try:
            response = await self._complete(agent, prompt, options)
        except BaseError as e:
            self._record_error(agent, e)
            return IdleAction(description=f"decision failed: {e.message}")

        if unread:
            await self.bus.mark_many_as_read([m.id for m in unread], agent_id=agent.id)

        action = parse_decision(response.content)
        self.events.publish("agent:decision", {"agent_id": agent.id, "action": action.model_dump(mode="json")})
        self._log(agent, "debug", f"Decision: {action.action} {action.description}".strip())
        return action

    async def _execute_task(self, agent: Agent, task: AgentTask) -> None:
        task.start()
        self.events.publish("task:updated", task)
        await self.tasks.save()
        self._log(agent, "info", f"Starting task: {task.description}")

        try:
            prompt = format_template(TaskExecutionPrompt.template, {
                "task_description": task.description,
                "capabilities": format_capabilities(agent.capabilities.model_dump()),
                "automation_hint": TaskExecutionPrompt.automation_hint if agent.capabilities.computer_control else "",
            })
            response = await self._complete(
                agent,
                prompt,
                CompletionOptions(temperature=agent.config.temperature, max_tokens=agent.config.max_tokens)
            )

            payload, actions = parse_response_actions(response.content)
            outcomes = await self._dispatch_actions(agent, actions, task)

            if agent.capabilities.computer_control and "AUTOMATION:" in response.content:
                commands, errors = scan_automation_markers(response.content)
                for error in errors:
                    task.log(f"Skipped automation marker: {error}", level="warning")
                if commands:
                    inline = AutomationAction(commands=commands, description="inline automation markers")
                    outcomes.append(await self._dispatch(agent, inline, task))

            task.complete(self._task_result(response.content, payload, outcomes))
            self._log(agent, "info", f"Task completed: {task.description}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e.message if isinstance(e, BaseError) else str(e)
            logger.error(f"Task {task.id} of agent {agent.id} failed: {error}", exc_info=not isinstance(e, BaseError))
            task.fail(error)
            self._log(agent, "error", f"Task failed: {task.description} - {error}")

        self.events.publish("task:updated", task)
        await self.tasks.save()
        await self._reply_to_requester(agent, task)

    @staticmethod
    def _task_result(content: str, payload: Any, outcomes: List[Dict[str, Any]]) -> Any:
        if isinstance(payload, dict):
            result = dict(payload)
            if outcomes:
                result["action_results"] = outcomes
            return result
        if outcomes:
            return {"content": content, "action_results": outcomes}
        return content

    async def _reply_to_requester(self, agent: Agent, task: AgentTask) -> None:
        """Send a response message back when a delegated or requested task ends."""
        requester = task.delegated_from
        if requester is None and task.request_message_id:
            request = self.bus.get_message(task.request_message_id)
            requester = request.from_agent_id if request else None
        if requester is None:
            return

        if task.status == TaskStatus.COMPLETED:
            content = f"Task completed: {task.description}\n\n{summarize_result(task.result)}".rstrip()
        else:
            content = f"Task failed: {task.description}\n\n{task.error}"
        try:
            await self.send_message(
                agent.id,
                requester,
                content,
                MessageType.RESPONSE,
                MessageMetadata(request_id=task.request_message_id, task_id=task.id)
            )
        except AgentNotFoundError:
            logger.warning(f"Requester {requester} of task {task.id} no longer exists, response dropped")

    async def _complete(self, agent: Agent, prompt: str, options: CompletionOptions) -> CompletionResponse:
        """Run one completion for ``agent`` and account tokens and cost."""
        messages = []
        if agent.system_prompt:
            messages.append(ChatMessage(role="system", content=agent.system_prompt))
        messages.append(ChatMessage(role="user", content=prompt))

        response = await self.gateway.complete(agent.provider_id, agent.model, messages, options)

        cost = self.cost_tracker.calculate_cost(agent.provider_id, agent.model, response.usage)
        self.cost_tracker.track_usage(agent.id, agent.provider_id, agent.model, response.usage, cost)
        agent.stats.total_tokens += response.usage.total_tokens
        agent.stats.total_cost += cost
        return response

    # Action dispatch

    async def _dispatch_actions(
        self,
        agent: Agent,
        actions: List[AgentAction],
        task: Optional[AgentTask]
    ) -> List[Dict[str, Any]]:
        """Dispatch actions in order, at most ``max_iterations`` of them."""
        limit = agent.config.max_iterations
        if len(actions) > limit:
            self._log(agent, "warning", f"Response proposed {len(actions)} actions, dispatching the first {limit}")
        outcomes = []
        for action in actions[:limit]:
            outcome = await self._dispatch(agent, action, task)
            outcomes.append(outcome)
            if task is not None:
                status = "ok" if outcome.get("success") else outcome.get("error", "failed")
                task.log(f"{action.action}: {status}", level="info" if outcome.get("success") else "warning")
            self.events.publish("agent:action", {"agent_id": agent.id, **outcome})
        return outcomes

    async def _dispatch(self, agent: Agent, action: AgentAction, task: Optional[AgentTask]) -> Dict[str, Any]:
        outcome: Dict[str, Any] = {"action": action.action}

        capability = REQUIRED_CAPABILITY.get(action.action)
        if capability and not getattr(agent.capabilities, capability):
            self._log(agent, "warning", f"Action {action.action} needs capability '{capability}', skipped")
            return {**outcome, "success": False, "error": f"capability '{capability}' is disabled"}

        if action.action in APPROVAL_POLICY[agent.config.autonomy_level]:
            approved, reason = await self._request_approval(agent, action)
            if not approved:
                self._log(agent, "warning", f"Action {action.action} not approved: {reason}")
                return {**outcome, "success": False, "error": f"not approved: {reason}"}

        try:
            if isinstance(action, SendMessageAction):
                message = await self.send_message(
                    agent.id,
                    action.to,
                    action.content,
                    action.message_type,
                    MessageMetadata(priority=action.priority, requires_response=action.requires_response)
                )
                return {**outcome, "success": True, "message_id": message.id}

            if isinstance(action, DelegateTaskAction):
                delegated = await self.delegate_task(agent.id, action.to, action.task)
                if task is not None:
                    task.delegated_to = action.to
                return {**outcome, "success": True, "task_id": delegated.id}

            if isinstance(action, ExecuteCommandAction):
                result = await self.executor.execute_command(
                    action.command,
                    agent_id=agent.id,
                    working_dir=action.working_dir,
                    timeout=action.timeout,
                    permissions=self._command_permissions(agent)
                )
                agent.stats.commands_executed += 1
                return {**outcome, "success": result.success, "result": result.model_dump(mode="json")}

            if isinstance(action, AutomationAction):
                results = [await self._run_automation(agent, command, task) for command in action.commands]
                return {**outcome, "success": all(r["success"] for r in results), "results": results}

            if isinstance(action, AskUserAction):
                if action.options:
                    answer = await self.gate.ask_choice(agent.id, agent.name, action.question, action.options)
                else:
                    answer = await self.gate.ask_question(agent.id, agent.name, action.question)
                return {**outcome, "success": True, "answer": answer}
        except (OperationTimeoutError, OperationCancelledError, PermissionDeniedError) as e:
            self._log(agent, "warning", f"Action {action.action} failed: {e.message}")
            return {**outcome, "success": False, "error": e.message}
        except BaseError as e:
            self._log(agent, "error", f"Action {action.action} failed: {e.message}")
            return {**outcome, "success": False, "error": e.message}

        return {**outcome, "success": False, "error": "action is not dispatchable"}

    async def _request_approval(self, agent: Agent, action: AgentAction) -> Tuple[bool, str]:
        try:
            approved = await self.gate.ask_approval(
                agent.id,
                agent.name,
                self._describe(action),
                details=action.description or None,
                context={"action": action.model_dump(mode="json")}
            )
        except OperationTimeoutError:
            return False, "approval timed out"
        except OperationCancelledError:
            return False, "approval cancelled"
        return approved, "" if approved else "denied"

    async def _run_automation(self, agent: Agent, command: AutomationCommand, task: Optional[AgentTask]) -> Dict[str, Any]:
        try:
            result = await self.automation.execute(command)
        except Exception as e:
            logger.error(f"Automation command {command.type} failed for agent {agent.id}: {e}")
            return {"action": "automation", "type": command.type, "success": False, "error": str(e)}
        if task is not None:
            task.log(f"Automation {command.type} executed")
        return {"action": "automation", "type": command.type, "success": True, "result": result}

    def _command_permissions(self, agent: Agent) -> Dict[str, bool]:
        """Narrow the executor policy to what the agent's capabilities allow."""
        policy = self.executor.get_permissions()
        return {
            "allow_network": policy.allow_network and agent.capabilities.network,
            "allow_file_system": policy.allow_file_system and agent.capabilities.file_system,
        }

    @staticmethod
    def _describe(action: AgentAction) -> str:
        if isinstance(action, ExecuteCommandAction):
            return f"Execute command: {action.command}"
        if isinstance(action, DelegateTaskAction):
            return f"Delegate task to {action.to}: {action.task}"
        if isinstance(action, AutomationAction):
            return "Run automation: " + ", ".join(c.type for c in action.commands)
        return f"Perform action: {action.action}"

    # Helpers

    @staticmethod
    def _pick(override: Optional[Any], default: Any) -> Any:
        return default if override is None else override

    def _record_error(self, agent: Agent, error: Exception) -> None:
        message = error.message if isinstance(error, BaseError) else str(error)
        agent.stats.errors += 1
        agent.last_error = message
        logger.error(f"Agent {agent.id} iteration error: {message}", exc_info=not isinstance(error, BaseError))
        self.events.publish("agent:status-change", {
            "agent_id": agent.id,
            "status": AgentStatus.ERROR.value,
            "error": message
        })
        self.events.publish("agent:log", {"agent_id": agent.id, "level": "error", "message": message})

    def _publish_status(self, agent: Agent) -> None:
        self.events.publish("agent:status-change", {"agent_id": agent.id, "status": agent.status.value})

    def _log(self, agent: Agent, level: str, message: str) -> None:
        getattr(logger, level)(f"[{agent.name}] {message}")
        self.events.publish("agent:log", {"agent_id": agent.id, "level": level, "message": message})

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
