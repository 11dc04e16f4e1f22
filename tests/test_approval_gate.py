"""Tests for the human approval gate."""

import asyncio

import pytest

from swarmlib.agent.user_input.gate import ApprovalGate, is_truthy
from swarmlib.agent.user_input.models import PromptStatus, PromptType
from swarmlib.core.errors import OperationCancelledError, OperationTimeoutError


async def wait_for_prompts(gate, count):
    for _ in range(100):
        if len(gate.get_pending_prompts()) >= count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"expected {count} pending prompt(s)")


class TestTruthiness:

    @pytest.mark.parametrize("value,expected", [
        (True, True), ("yes", True), ("TRUE", True), (" approve ", True),
        (False, False), ("no", False), ("", False), (None, False), (1, False),
    ])
    def test_is_truthy(self, value, expected):
        assert is_truthy(value) is expected


class TestPrompts:
    """Queueing, answering, cancelling and timing out prompts."""

    @pytest.mark.asyncio
    async def test_single_active_prompt_fifo(self, gate):
        first = asyncio.ensure_future(gate.ask_question("a1", "Alice", "First?"))
        second = asyncio.ensure_future(gate.ask_confirmation("a2", "Bob", "Second?"))
        await wait_for_prompts(gate, 2)

        current = gate.get_current_prompt()
        assert current.message == "First?"
        assert current.title == "Question from Alice"

        assert gate.respond_to_prompt(current.id, "forty-two") is True
        assert await first == "forty-two"

        current = gate.get_current_prompt()
        assert current.type == PromptType.CONFIRMATION
        gate.respond_to_prompt(current.id, "yes")
        assert await second is True
        assert gate.get_current_prompt() is None

    @pytest.mark.asyncio
    async def test_answering_twice_fails(self, gate):
        task = asyncio.ensure_future(gate.ask_question("a1", "Alice", "Q?"))
        await wait_for_prompts(gate, 1)
        prompt_id = gate.get_current_prompt().id
        assert gate.respond_to_prompt(prompt_id, "one")
        assert gate.respond_to_prompt(prompt_id, "two") is False
        assert await task == "one"
        assert gate.respond_to_prompt("prompt_unknown", "x") is False

    @pytest.mark.asyncio
    async def test_approval(self, gate):
        task = asyncio.ensure_future(
            gate.ask_approval("a1", "Alice", "Execute command: ls", details="list files")
        )
        await wait_for_prompts(gate, 1)
        prompt = gate.get_current_prompt()
        assert prompt.type == PromptType.APPROVAL
        assert prompt.title == "Approval Request from Alice"
        assert "list files" in prompt.message
        gate.respond_to_prompt(prompt.id, "no")
        assert await task is False

    @pytest.mark.asyncio
    async def test_choice_validation(self, gate):
        task = asyncio.ensure_future(gate.ask_choice("a1", "Alice", "Pick", ["red", "blue"]))
        await wait_for_prompts(gate, 1)
        prompt_id = gate.get_current_prompt().id

        assert gate.respond_to_prompt(prompt_id, "green") is False
        assert gate.get_prompt(prompt_id).status == PromptStatus.PENDING
        assert gate.respond_to_prompt(prompt_id, "1") is True
        assert await task == "blue"

    @pytest.mark.asyncio
    async def test_choice_needs_options(self, gate):
        with pytest.raises(ValueError):
            await gate.ask_choice("a1", "Alice", "Pick", [])

    @pytest.mark.asyncio
    async def test_cancel_promotes_next(self, gate):
        first = asyncio.ensure_future(gate.ask_question("a1", "Alice", "First?"))
        second = asyncio.ensure_future(gate.ask_question("a2", "Bob", "Second?"))
        await wait_for_prompts(gate, 2)

        assert gate.cancel_prompt(gate.get_current_prompt().id) is True
        with pytest.raises(OperationCancelledError):
            await first
        assert gate.get_current_prompt().message == "Second?"
        gate.respond_to_prompt(gate.get_current_prompt().id, "ok")
        assert await second == "ok"

    @pytest.mark.asyncio
    async def test_timeout_counts_from_creation(self, gate):
        blocker = asyncio.ensure_future(gate.ask_question("a1", "Alice", "Blocking", timeout=5))
        queued = asyncio.ensure_future(gate.ask_question("a2", "Bob", "Queued", timeout=0.05))
        with pytest.raises(OperationTimeoutError):
            await queued

        history = gate.get_prompt_history(agent_id="a2")
        assert history[0].status == PromptStatus.TIMEOUT
        assert gate.get_current_prompt().message == "Blocking"
        gate.cancel_prompt(gate.get_current_prompt().id)
        with pytest.raises(OperationCancelledError):
            await blocker

    @pytest.mark.asyncio
    async def test_cancelled_waiter_withdraws_prompt(self, gate):
        task = asyncio.ensure_future(gate.ask_question("a1", "Alice", "Q?"))
        await wait_for_prompts(gate, 1)
        prompt_id = gate.get_current_prompt().id
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert gate.get_prompt(prompt_id).status == PromptStatus.CANCELLED
        assert gate.get_current_prompt() is None

    @pytest.mark.asyncio
    async def test_history_and_clear(self, gate):
        task = asyncio.ensure_future(gate.ask_question("a1", "Alice", "Done?"))
        await wait_for_prompts(gate, 1)
        gate.respond_to_prompt(gate.get_current_prompt().id, "yes")
        await task
        pending = asyncio.ensure_future(gate.ask_question("a1", "Alice", "Still open?"))
        await wait_for_prompts(gate, 1)

        assert [p.message for p in gate.get_prompt_history()] == ["Still open?", "Done?"]
        assert gate.clear_history() == 1
        assert [p.message for p in gate.get_prompt_history()] == ["Still open?"]

        gate.cancel_prompt(gate.get_current_prompt().id)
        with pytest.raises(OperationCancelledError):
            await pending

    def test_prompt_timeout_must_be_positive(self):
        gate = ApprovalGate()
        gate.set_prompt_timeout(10)
        assert gate.prompt_timeout == 10
        with pytest.raises(ValueError):
            gate.set_prompt_timeout(0)
