"""
Human approval gate.

Agents ask questions, confirmations, choices and approvals here. Prompts
queue FIFO and exactly one is active (shown) at a time. Each caller waits
on its own future, so a pending prompt suspends only the asking agent.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ...core.errors import ErrorContext, OperationCancelledError, OperationTimeoutError
from ...core.events import EventChannel
from ...core.settings import ApprovalSettings
from .models import PromptStatus, PromptType, UserPrompt

logger = logging.getLogger(__name__)

TRUTHY_RESPONSES = ("yes", "true", "approve")


def is_truthy(response: Any) -> bool:
    """Coerce a confirmation or approval answer to a boolean."""
    if response is True:
        return True
    if isinstance(response, str):
        return response.strip().lower() in TRUTHY_RESPONSES
    return False


class ApprovalGate:
    """Queue of human-facing prompts with a single active prompt.

    This class provides:
    1. ``ask_*`` coroutines that wait for an answer without blocking the loop
    2. FIFO promotion: answering, cancelling or timing out the active prompt
       shows the next one
    3. Per-prompt timeout counted from creation, whatever the queue position

    Events published: ``prompt:created``, ``prompt:active``,
    ``prompt:answered``, ``prompt:cancelled``, ``prompt:timeout``.
    """

    def __init__(self, settings: Optional[ApprovalSettings] = None, events: Optional[EventChannel] = None):
        self.settings = settings or ApprovalSettings()
        self.events = events or EventChannel()
        self.prompt_timeout = self.settings.prompt_timeout
        self._prompts: Dict[str, UserPrompt] = {}
        self._queue: List[str] = []
        self._current: Optional[str] = None
        self._futures: Dict[str, asyncio.Future] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    # Asking

    async def ask_question(
        self,
        agent_id: str,
        agent_name: str,
        question: str,
        context: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> str:
        """Ask a free-text question and return the answer."""
        prompt = UserPrompt(
            agent_id=agent_id,
            agent_name=agent_name,
            type=PromptType.QUESTION,
            title=f"Question from {agent_name}",
            message=question,
            context=context or {}
        )
        response = await self._ask(prompt, timeout)
        return "" if response is None else str(response)

    async def ask_confirmation(
        self,
        agent_id: str,
        agent_name: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> bool:
        prompt = UserPrompt(
            agent_id=agent_id,
            agent_name=agent_name,
            type=PromptType.CONFIRMATION,
            title=f"Confirmation from {agent_name}",
            message=message,
            context=context or {}
        )
        return is_truthy(await self._ask(prompt, timeout))

    async def ask_choice(
        self,
        agent_id: str,
        agent_name: str,
        question: str,
        options: List[str],
        context: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> str:
        """Offer ``options`` and return the chosen one."""
        if not options:
            raise ValueError("ask_choice needs at least one option")
        prompt = UserPrompt(
            agent_id=agent_id,
            agent_name=agent_name,
            type=PromptType.CHOICE,
            title=f"Choice from {agent_name}",
            message=question,
            options=list(options),
            context=context or {}
        )
        return await self._ask(prompt, timeout)

    async def ask_approval(
        self,
        agent_id: str,
        agent_name: str,
        action: str,
        details: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> bool:
        """Ask the human to approve ``action``; True only for an approving answer."""
        message = f"{action}\n\nDetails: {details}" if details else action
        prompt = UserPrompt(
            agent_id=agent_id,
            agent_name=agent_name,
            type=PromptType.APPROVAL,
            title=f"Approval Request from {agent_name}",
            message=message,
            context=context or {}
        )
        return is_truthy(await self._ask(prompt, timeout))

    async def _ask(self, prompt: UserPrompt, timeout: Optional[float]) -> Any:
        """Queue ``prompt`` and wait until it is answered, cancelled or timed out.

        Raises:
            OperationTimeoutError: If nobody answered in time
            OperationCancelledError: If the prompt was cancelled
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        timeout = timeout or self.prompt_timeout

        self._prompts[prompt.id] = prompt
        self._futures[prompt.id] = future
        self._queue.append(prompt.id)
        self._timers[prompt.id] = loop.call_later(timeout, self._expire, prompt.id, timeout)
        logger.info(f"Prompt {prompt.id} ({prompt.type.value}) queued for agent {prompt.agent_id}")
        self.events.publish("prompt:created", prompt)

        if self._current is None:
            self._advance()

        try:
            return await future
        except asyncio.CancelledError:
            # The waiting agent was stopped; withdraw its prompt
            if prompt.status == PromptStatus.PENDING:
                self._finish(prompt, PromptStatus.CANCELLED)
                self.events.publish("prompt:cancelled", prompt)
            raise
        finally:
            self._futures.pop(prompt.id, None)
            timer = self._timers.pop(prompt.id, None)
            if timer is not None:
                timer.cancel()

    # Answering

    def respond_to_prompt(self, prompt_id: str, response: Any) -> bool:
        """Answer a pending prompt.

        Choice answers must be one of the options or an index into them.

        Returns:
            False if the prompt is unknown, no longer pending, or the answer is invalid
        """
        prompt = self._prompts.get(prompt_id)
        if prompt is None or prompt.status != PromptStatus.PENDING:
            return False

        if prompt.type == PromptType.CHOICE:
            response = self._resolve_choice(prompt, response)
            if response is None:
                logger.warning(f"Rejected answer for choice prompt {prompt_id}: not one of the options")
                return False

        prompt.response = response
        self._finish(prompt, PromptStatus.ANSWERED)
        future = self._futures.get(prompt_id)
        if future is not None and not future.done():
            future.set_result(response)
        logger.info(f"Prompt {prompt_id} answered")
        self.events.publish("prompt:answered", prompt)
        return True

    def cancel_prompt(self, prompt_id: str) -> bool:
        prompt = self._prompts.get(prompt_id)
        if prompt is None or prompt.status != PromptStatus.PENDING:
            return False

        self._finish(prompt, PromptStatus.CANCELLED)
        future = self._futures.get(prompt_id)
        if future is not None and not future.done():
            future.set_exception(OperationCancelledError(
                "Prompt cancelled by user",
                context=ErrorContext.create(prompt_id=prompt_id)
            ))
        logger.info(f"Prompt {prompt_id} cancelled")
        self.events.publish("prompt:cancelled", prompt)
        return True

    # Queries

    def get_pending_prompts(self) -> List[UserPrompt]:
        return [p for p in self._prompts.values() if p.status == PromptStatus.PENDING]

    def get_current_prompt(self) -> Optional[UserPrompt]:
        return self._prompts.get(self._current) if self._current else None

    def get_prompt(self, prompt_id: str) -> Optional[UserPrompt]:
        return self._prompts.get(prompt_id)

    def get_prompt_history(self, agent_id: Optional[str] = None) -> List[UserPrompt]:
        """All prompts, newest first, optionally for one agent."""
        prompts = [p for p in self._prompts.values() if agent_id is None or p.agent_id == agent_id]
        return sorted(prompts, key=lambda p: p.timestamp, reverse=True)

    def clear_history(self) -> int:
        """Forget every finished prompt; pending prompts stay."""
        finished = [pid for pid, p in self._prompts.items() if p.status != PromptStatus.PENDING]
        for pid in finished:
            del self._prompts[pid]
        return len(finished)

    def set_prompt_timeout(self, timeout: float) -> None:
        """Set the default timeout, in seconds, for prompts created from now on."""
        if timeout <= 0:
            raise ValueError("Prompt timeout must be positive")
        self.prompt_timeout = timeout

    # Internals

    def _expire(self, prompt_id: str, timeout: float) -> None:
        prompt = self._prompts.get(prompt_id)
        if prompt is None or prompt.status != PromptStatus.PENDING:
            return
        self._finish(prompt, PromptStatus.TIMEOUT)
        future = self._futures.get(prompt_id)
        if future is not None and not future.done():
            future.set_exception(OperationTimeoutError(
                f"Prompt timed out after {timeout}s",
                timeout=timeout,
                context=ErrorContext.create(prompt_id=prompt_id)
            ))
        logger.info(f"Prompt {prompt_id} timed out")
        self.events.publish("prompt:timeout", prompt)

    def _finish(self, prompt: UserPrompt, status: PromptStatus) -> None:
        """Move a pending prompt to a final status and promote the next one."""
        prompt.status = status
        if prompt.id in self._queue:
            self._queue.remove(prompt.id)
        if self._current == prompt.id:
            self._advance()

    def _advance(self) -> None:
        while self._queue:
            prompt_id = self._queue.pop(0)
            prompt = self._prompts.get(prompt_id)
            if prompt is not None and prompt.status == PromptStatus.PENDING:
                self._current = prompt_id
                self.events.publish("prompt:active", prompt)
                return
        self._current = None

    @staticmethod
    def _resolve_choice(prompt: UserPrompt, response: Any) -> Optional[str]:
        options = prompt.options or []
        if isinstance(response, str) and response in options:
            return response
        if isinstance(response, bool):
            return None
        index = response
        if isinstance(response, str) and response.strip().isdigit():
            index = int(response.strip())
        if isinstance(index, int) and 0 <= index < len(options):
            return options[index]
        return None
