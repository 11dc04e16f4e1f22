"""Tests for the shell command executor."""

import asyncio
import sys

import pytest

from swarmlib.agent.shell_command.executor import CommandExecutor, parse_primary_command
from swarmlib.agent.shell_command.models import CommandStatus
from swarmlib.core.errors import ExecutionError, NotFoundError, PermissionDeniedError
from swarmlib.core.settings import CommandPermissions, CommandSettings
from swarmlib.core.store import MemoryPersistence

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX only")


class TestParsePrimaryCommand:
    """Finding the program a command line runs."""

    @pytest.mark.parametrize("command,expected", [
        ("ls -la", "ls"),
        ("FOO=1 BAR=2 python script.py", "python"),
        ("sudo -n apt-get install x", "apt-get"),
        ("/usr/bin/env curl http://x", "curl"),
        ("echo 'unbalanced", "echo"),
        ("   ", None),
    ])
    def test_parse(self, command, expected):
        assert parse_primary_command(command) == expected


class TestValidation:
    """Fail-closed policy checks."""

    def test_blocked_pattern_ignores_case_and_spacing(self, executor):
        result = executor.validate_command("RM   -RF /")
        assert result.valid is False
        assert "blocked" in result.reason

    def test_allow_list(self, executor):
        policy = CommandPermissions(allowed_commands=["echo"])
        assert executor.validate_command("echo hi", policy).valid
        assert not executor.validate_command("ls", policy).valid

    def test_package_managers(self, executor):
        policy = CommandPermissions(allow_package_managers=False)
        assert not executor.validate_command("pip install requests", policy).valid

    def test_network_and_file_system(self, executor):
        policy = CommandPermissions(allow_network=False, allow_file_system=False)
        assert not executor.validate_command("curl http://example.com", policy).valid
        assert not executor.validate_command("rm notes.txt", policy).valid
        assert executor.validate_command("echo ok", policy).valid

    def test_is_command_safe(self, executor):
        assert executor.is_command_safe("echo hello")
        assert not executor.is_command_safe("mkfs.ext4 /dev/sda1")
        assert not executor.is_command_safe("")


class TestExecution:
    """Running, timing out and killing commands."""

    @pytest.mark.asyncio
    async def test_rejected_command_never_spawns(self, executor):
        with pytest.raises(PermissionDeniedError):
            await executor.execute_command("sudo rm -rf /tmp/x", agent_id="a1")
        assert executor.get_history() == []

    @pytest.mark.asyncio
    async def test_success_streams_output(self, executor, events, tmp_path):
        subscription = events.subscribe("command:*")
        result = await executor.execute_command("echo hello; echo oops 1>&2", agent_id="a1", working_dir=str(tmp_path))

        assert result.status == CommandStatus.COMPLETED
        assert result.success
        assert result.stdout.strip() == "hello"
        assert result.stderr.strip() == "oops"
        assert result.working_dir == str(tmp_path)

        topics = []
        while not subscription.queue.empty():
            topics.append(subscription.queue.get_nowait().topic)
        assert topics[0] == "command:started"
        assert "command:stdout" in topics
        assert topics[-1] == "command:completed"

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, executor):
        result = await executor.execute_command("exit 3")
        assert result.status == CommandStatus.FAILED
        assert result.exit_code == 3
        with pytest.raises(ExecutionError):
            await executor.run("exit 3")

    @pytest.mark.asyncio
    async def test_spawn_failure_returns_failed_result(self, executor, tmp_path):
        result = await executor.execute_command("echo hi", working_dir=str(tmp_path / "missing"))
        assert result.status == CommandStatus.FAILED
        assert result.exit_code is None
        assert result.stderr

    @pytest.mark.asyncio
    async def test_timeout_escalates_to_kill(self, executor):
        result = await executor.execute_command("trap '' TERM; sleep 10", timeout=0.2)
        assert result.status == CommandStatus.KILLED
        assert result.timed_out
        assert result.stderr.endswith("Command timed out")
        assert result.duration < 5

    @pytest.mark.asyncio
    async def test_kill_running_command(self, executor):
        task = asyncio.ensure_future(executor.execute_command("sleep 10", agent_id="a1"))
        for _ in range(100):
            if executor.get_running_commands():
                break
            await asyncio.sleep(0.01)
        running = executor.get_running_commands()
        assert len(running) == 1
        assert executor.kill_command(running[0].id) is True

        result = await asyncio.wait_for(task, 5)
        assert result.status == CommandStatus.KILLED
        assert executor.kill_command(running[0].id) is False
        with pytest.raises(NotFoundError):
            executor.get_execution(running[0].id)

    @pytest.mark.asyncio
    async def test_interactive_input(self, executor):
        result = await executor.execute_interactive("cat", "typed input")
        assert result.stdout == "typed input"

    @pytest.mark.asyncio
    async def test_per_call_permissions(self, executor):
        with pytest.raises(PermissionDeniedError):
            await executor.execute_command("echo hi", permissions={"allowed_commands": ["ls"]})


class TestHistory:
    """Bounded, persisted history."""

    @pytest.mark.asyncio
    async def test_history_is_capped_and_filtered(self):
        persistence = MemoryPersistence()
        executor = CommandExecutor(CommandSettings(history_limit=2), persistence=persistence)
        await executor.execute_command("echo 1", agent_id="a")
        await executor.execute_command("echo 2", agent_id="b")
        await executor.execute_command("echo 3", agent_id="a")

        assert [r.stdout.strip() for r in executor.get_history()] == ["2", "3"]
        assert [r.stdout.strip() for r in executor.get_history(agent_id="a")] == ["3"]
        assert executor.get_history(limit=1)[0].stdout.strip() == "3"

        reloaded = CommandExecutor(persistence=persistence)
        assert await reloaded.load() == 2

        await executor.clear_history("a")
        assert [r.agent_id for r in executor.get_history()] == ["b"]

    def test_update_permissions(self, executor):
        updated = executor.update_permissions({"allow_network": False})
        assert updated.allow_network is False
        assert not executor.is_command_safe("wget http://x")
