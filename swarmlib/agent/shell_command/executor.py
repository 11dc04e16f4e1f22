"""
Shell command executor.

Runs shell commands on behalf of agents under a permission policy. Every
command is validated before anything is spawned; accepted commands run in
their own process group so that a timeout or an explicit kill reaches the
whole tree: terminate first, then a forced kill after a grace period.
"""

import asyncio
import codecs
import logging
import os
import shlex
import signal
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Union

from ...core.errors import ErrorContext, ExecutionError, NotFoundError, PermissionDeniedError
from ...core.events import EventChannel
from ...core.settings import CommandPermissions, CommandSettings
from ...core.store import PersistenceBackend, RecordStore
from .models import CommandExecution, CommandResult, CommandStatus, ValidationResult

logger = logging.getLogger(__name__)

PACKAGE_MANAGERS = ("npm", "pip", "apt", "apt-get", "yum", "brew", "cargo", "gem")

NETWORK_COMMANDS = ("curl", "wget", "ssh", "scp", "sftp", "rsync", "nc", "netcat", "telnet", "ftp", "ping")

FILE_SYSTEM_COMMANDS = ("rm", "mv", "cp", "mkdir", "rmdir", "touch", "chmod", "chown", "ln", "tee", "truncate")

# Prefixes skipped when looking for the command that actually runs
_WRAPPERS = ("sudo", "env", "nohup", "time", "nice")

PermissionsInput = Optional[Union[CommandPermissions, Dict[str, Any]]]


def parse_primary_command(command_string: str) -> Optional[str]:
    """Attempt to parse the primary command from a shell command string.

    Environment assignments (``VAR=val cmd``) and common wrappers
    (``sudo cmd``) are skipped. Paths are reduced to their basename.
    """
    try:
        parts = shlex.split(command_string)
    except ValueError:
        # Unbalanced quotes and similar; fall back to a plain split
        parts = command_string.strip().split()
    for part in parts:
        if '=' in part and not part.startswith('='):
            continue
        name = os.path.basename(part)
        if name in _WRAPPERS or part.startswith('-'):
            continue
        return name
    return None


class CommandExecutor:
    """Validates and runs shell commands with timeout, kill and history.

    This class provides:
    1. Fail-closed validation (blocked patterns, allow-list, package managers)
    2. Concurrent executions tracked by id, output streamed as events
    3. Terminate, grace period, then forced kill on timeout or ``kill_command``
    4. A bounded, persisted history of terminal results

    Events published: ``command:started``, ``command:stdout``,
    ``command:stderr``, ``command:completed``, ``command:error``,
    ``command:killed``.
    """

    def __init__(
        self,
        settings: Optional[CommandSettings] = None,
        events: Optional[EventChannel] = None,
        persistence: Optional[PersistenceBackend] = None
    ):
        self.settings = settings or CommandSettings()
        self.events = events or EventChannel()
        self.permissions = self.settings.permissions.model_copy(deep=True)
        self.history: RecordStore[CommandResult] = RecordStore(
            "command_history",
            CommandResult,
            key=lambda r: r.id,
            persistence=persistence,
            max_records=self.settings.history_limit
        )
        self._executions: Dict[str, CommandExecution] = {}
        self._kill_tasks: Set[asyncio.Task] = set()

    async def load(self) -> int:
        return await self.history.load()

    # Validation

    def validate_command(self, command: str, permissions: Optional[CommandPermissions] = None) -> ValidationResult:
        """Check ``command`` against a policy without running anything."""
        permissions = permissions or self.permissions

        if not command or not command.strip():
            return ValidationResult(valid=False, reason="Command is empty")

        normalized = " ".join(command.split()).lower()
        for blocked in permissions.blocked_commands:
            pattern = " ".join(blocked.split()).lower()
            if pattern and pattern in normalized:
                return ValidationResult(valid=False, reason=f"Command contains blocked pattern: {blocked}")

        primary = parse_primary_command(command)
        if primary is None:
            return ValidationResult(valid=False, reason="Could not determine the command to run")

        if "*" not in permissions.allowed_commands and primary not in permissions.allowed_commands:
            return ValidationResult(valid=False, reason=f"Command '{primary}' is not in allowed list")

        if not permissions.allow_package_managers and primary in PACKAGE_MANAGERS:
            return ValidationResult(valid=False, reason="Package manager commands are not allowed")

        if not permissions.allow_network and primary in NETWORK_COMMANDS:
            return ValidationResult(valid=False, reason=f"Network command '{primary}' is not allowed")

        if not permissions.allow_file_system and primary in FILE_SYSTEM_COMMANDS:
            return ValidationResult(valid=False, reason=f"File system command '{primary}' is not allowed")

        return ValidationResult(valid=True)

    def is_command_safe(self, command: str) -> bool:
        """Pure predicate over the default policy."""
        return self.validate_command(command).valid

    # Execution

    async def execute_command(
        self,
        command: str,
        agent_id: Optional[str] = None,
        working_dir: Optional[str] = None,
        timeout: Optional[float] = None,
        permissions: PermissionsInput = None,
        env: Optional[Dict[str, str]] = None,
        stdin_data: Optional[str] = None
    ) -> CommandResult:
        """Validate and run a command, returning its terminal result.

        Args:
            command: Shell command line
            agent_id: Agent on whose behalf the command runs
            working_dir: Working directory (policy default, then home)
            timeout: Seconds before the command is terminated
            permissions: Partial policy overrides for this call
            env: Extra environment variables
            stdin_data: Text written to the command's standard input

        Returns:
            The terminal result, also appended to the history

        Raises:
            PermissionDeniedError: If validation rejects the command
        """
        policy = self.permissions.merge(permissions)
        validation = self.validate_command(command, policy)
        if not validation.valid:
            logger.warning(f"Rejected command for agent {agent_id}: {validation.reason}")
            raise PermissionDeniedError(
                message=f"Command rejected: {validation.reason}",
                reason=validation.reason,
                context=ErrorContext.create(command=command, agent_id=agent_id)
            )

        working_dir = working_dir or policy.working_dir or os.path.expanduser("~")
        timeout = timeout or policy.max_execution_time
        execution = CommandExecution(
            id=f"cmd_{uuid.uuid4().hex[:16]}",
            command=command,
            agent_id=agent_id,
            working_dir=working_dir
        )
        self._executions[execution.id] = execution
        self.events.publish("command:started", {
            "id": execution.id,
            "command": command,
            "agent_id": agent_id
        })
        logger.info(f"Executing command {execution.id} for agent {agent_id}: {command}")

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.PIPE if stdin_data is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=working_dir,
                env={**os.environ, **(env or {})},
                start_new_session=True
            )
        except (OSError, ValueError) as e:
            logger.error(f"Failed to spawn command {execution.id}: {e}")
            execution.status = CommandStatus.FAILED
            result = self._finish(execution, "", str(e), exit_code=None)
            self.events.publish("command:error", {"id": execution.id, "error": str(e)})
            await self._record(result)
            return result

        execution.process = process
        stdout_parts: List[str] = []
        stderr_parts: List[str] = []
        readers = [
            asyncio.ensure_future(self._read_stream(execution.id, process.stdout, stdout_parts, "command:stdout")),
            asyncio.ensure_future(self._read_stream(execution.id, process.stderr, stderr_parts, "command:stderr")),
        ]

        timed_out = False
        try:
            if stdin_data is not None:
                await self._write_stdin(process, stdin_data)
            try:
                await asyncio.wait_for(process.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                timed_out = True
                logger.warning(f"Command {execution.id} timed out after {timeout}s, terminating")
                await self._terminate(execution)
            await self._drain_readers(readers)
        except asyncio.CancelledError:
            # Caller went away; the process must not outlive it
            execution.kill_requested = True
            self._spawn_kill(execution)
            for reader in readers:
                reader.cancel()
            execution.status = CommandStatus.KILLED
            result = self._finish(execution, "".join(stdout_parts), "".join(stderr_parts), process.returncode)
            self.history.put_nowait(result)
            raise

        stderr_text = "".join(stderr_parts)
        if timed_out:
            stderr_text += "\nCommand timed out"

        if timed_out or execution.kill_requested:
            execution.status = CommandStatus.KILLED
        elif process.returncode == 0:
            execution.status = CommandStatus.COMPLETED
        else:
            execution.status = CommandStatus.FAILED

        result = self._finish(
            execution,
            "".join(stdout_parts),
            stderr_text,
            exit_code=process.returncode,
            timed_out=timed_out
        )
        logger.info(
            f"Command {execution.id} finished: status={result.status.value} "
            f"exit_code={result.exit_code} in {result.duration:.2f}s"
        )
        self.events.publish("command:completed", result)
        await self._record(result)
        return result

    async def execute_interactive(
        self,
        command: str,
        input: str,
        agent_id: Optional[str] = None,
        working_dir: Optional[str] = None,
        permissions: PermissionsInput = None
    ) -> CommandResult:
        """Run a command with ``input`` written to its standard input."""
        return await self.execute_command(
            command,
            agent_id=agent_id,
            working_dir=working_dir,
            permissions=permissions,
            stdin_data=input
        )

    async def run(self, command: str, agent_id: Optional[str] = None) -> str:
        """Run a command and return its stdout.

        Raises:
            PermissionDeniedError: If the command is rejected
            ExecutionError: If the command does not exit with status 0
        """
        result = await self.execute_command(command, agent_id=agent_id)
        if result.exit_code != 0:
            raise ExecutionError(
                message=result.stderr.strip() or "Command failed",
                context=ErrorContext.create(command=command, exit_code=result.exit_code, id=result.id)
            )
        return result.stdout

    # Kill

    def kill_command(self, execution_id: str) -> bool:
        """Terminate a running command, escalating to a forced kill.

        Returns:
            False if the execution is unknown or already finished
        """
        execution = self._executions.get(execution_id)
        if execution is None or execution.process is None or execution.process.returncode is not None:
            return False
        if execution.kill_requested:
            return True

        execution.kill_requested = True
        execution.status = CommandStatus.KILLED
        logger.info(f"Killing command {execution_id}")
        self.events.publish("command:killed", {"id": execution_id})
        self._spawn_kill(execution)
        return True

    def kill_all(self) -> int:
        """Kill every running command; returns how many were signalled."""
        return sum(1 for execution_id in list(self._executions) if self.kill_command(execution_id))

    async def shutdown(self) -> None:
        """Kill every running command and wait for the kills to finish."""
        self.kill_all()
        if self._kill_tasks:
            await asyncio.gather(*list(self._kill_tasks), return_exceptions=True)

    # Queries

    def get_execution(self, execution_id: str) -> CommandExecution:
        execution = self._executions.get(execution_id)
        if execution is None:
            raise NotFoundError(
                f"Command execution '{execution_id}' not found",
                resource_id=execution_id,
                resource_type="command"
            )
        return execution

    def get_running_commands(self) -> List[CommandExecution]:
        return list(self._executions.values())

    def get_history(self, agent_id: Optional[str] = None, limit: int = 100) -> List[CommandResult]:
        """Most recent results, oldest first, optionally for one agent."""
        results = self.history.list(lambda r: agent_id is None or r.agent_id == agent_id)
        return results[-limit:] if limit > 0 else []

    async def clear_history(self, agent_id: Optional[str] = None) -> None:
        if agent_id is None:
            self.history.clear_nowait()
        else:
            for result in self.history.list(lambda r: r.agent_id == agent_id):
                self.history.delete_nowait(result.id)
        await self.history.save()

    def get_permissions(self) -> CommandPermissions:
        return self.permissions.model_copy(deep=True)

    def update_permissions(self, updates: Union[CommandPermissions, Dict[str, Any]]) -> CommandPermissions:
        self.permissions = self.permissions.merge(updates)
        logger.info("Updated default command permissions")
        return self.get_permissions()

    # Internals

    async def _read_stream(self, execution_id: str, stream, parts: List[str], topic: str) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(self.settings.read_chunk_size)
            if not chunk:
                break
            text = decoder.decode(chunk)
            if text:
                parts.append(text)
                self.events.publish(topic, {"id": execution_id, "data": text})
        tail = decoder.decode(b"", final=True)
        if tail:
            parts.append(tail)

    async def _drain_readers(self, readers: List[asyncio.Future]) -> None:
        """Wait for output readers; descendants that escaped the group may hold pipes open."""
        done, pending = await asyncio.wait(readers, timeout=self.settings.kill_grace_period or None)
        for reader in pending:
            reader.cancel()
        for reader in done:
            if reader.exception() is not None:
                logger.warning(f"Output reader failed: {reader.exception()}")

    async def _write_stdin(self, process, data: str) -> None:
        try:
            process.stdin.write(data.encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"Process closed stdin early: {e}")
        finally:
            process.stdin.close()

    def _spawn_kill(self, execution: CommandExecution) -> None:
        task = asyncio.ensure_future(self._terminate(execution))
        self._kill_tasks.add(task)
        task.add_done_callback(self._kill_tasks.discard)

    async def _terminate(self, execution: CommandExecution) -> None:
        """Send SIGTERM to the process group, then SIGKILL after the grace period."""
        process = execution.process
        if process is None or process.returncode is not None:
            return

        self._signal_group(process, signal.SIGTERM)
        try:
            await asyncio.wait_for(process.wait(), timeout=self.settings.kill_grace_period)
            return
        except asyncio.TimeoutError:
            logger.warning(
                f"Command {execution.id} ignored SIGTERM for {self.settings.kill_grace_period}s, sending SIGKILL"
            )
        self._signal_group(process, signal.SIGKILL)
        await process.wait()

    @staticmethod
    def _signal_group(process, sig: int) -> None:
        try:
            # start_new_session makes the child its own process group leader
            os.killpg(process.pid, sig)
        except ProcessLookupError:
            pass
        except PermissionError:
            try:
                process.send_signal(sig)
            except ProcessLookupError:
                pass

    def _finish(
        self,
        execution: CommandExecution,
        stdout: str,
        stderr: str,
        exit_code: Optional[int],
        timed_out: bool = False
    ) -> CommandResult:
        self._executions.pop(execution.id, None)
        end_time = datetime.now()
        return CommandResult(
            id=execution.id,
            command=execution.command,
            status=execution.status,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            start_time=execution.started_at,
            end_time=end_time,
            duration=(end_time - execution.started_at).total_seconds(),
            working_dir=execution.working_dir,
            agent_id=execution.agent_id,
            timed_out=timed_out
        )

    async def _record(self, result: CommandResult) -> None:
        self.history.put_nowait(result)
        try:
            await self.history.save()
        except Exception as e:
            # The result is returned even when the history cannot be saved
            logger.error(f"Failed to persist command history: {e}")
