"""
Command execution engine.

This module runs shell commands as subprocesses. It includes:
- Policy gating before anything is spawned
- Async execution with a per-command timeout (the caller suspends, it
  does not block the event loop)
- A blocking probe variant for short availability checks
- Per-stream output limiting, checked BEFORE decode
- Timeout, spawn failure and exit codes folded into ExecutionResult values
"""

import asyncio
import os
import signal
import subprocess
import time
from typing import Optional

from cbx_terminal.executor.types import (
    FAILURE_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    TRUNCATION_MARKER,
    ExecutionOptions,
    ExecutionResult,
)
from cbx_terminal.executor.validator import CommandPolicy
from cbx_terminal.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_MS = 30000
DEFAULT_MAX_OUTPUT_BYTES = 10000


def truncate_output(data: bytes, max_bytes: int) -> tuple[str, bool]:
    """
    Decode a captured stream, cutting it to max_bytes first.

    Returns:
        Tuple of (text, truncated). The text never exceeds
        max_bytes + len(TRUNCATION_MARKER) characters.
    """
    if len(data) <= max_bytes:
        return data.decode("utf-8", errors="replace"), False

    # A multi-byte character split by the cut is dropped
    text = data[:max_bytes].decode("utf-8", errors="ignore")
    return text + TRUNCATION_MARKER, True


def _normalize_exit_code(returncode: Optional[int]) -> int:
    """Map a subprocess return code to a shell-style exit code."""
    if returncode is None:
        return FAILURE_EXIT_CODE
    if returncode < 0:
        # Killed by signal N
        return 128 - returncode
    return returncode


def _kill_process_group(pid: int) -> None:
    """Kill the shell and everything it started."""
    try:
        os.killpg(pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class CommandRunner:
    """
    Executes shell commands with policy gating and resource limits.

    This class is the single entry point for running one command. It:
    1. Classifies the command (unless the caller opts out)
    2. Spawns it through the shell with cwd and merged environment
    3. Enforces the timeout and the per-stream byte budget
    4. Returns an ExecutionResult for every outcome
    """

    def __init__(
        self,
        policy: CommandPolicy,
        project_root: Optional[str] = None,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ):
        """
        Initialize the command runner.

        Args:
            policy: CommandPolicy instance for safety checks
            project_root: Default working directory
            default_timeout_ms: Default timeout in milliseconds
            max_output_bytes: Default byte budget per output stream
        """
        self.policy = policy
        self.project_root = project_root or os.getcwd()
        self.default_timeout_ms = default_timeout_ms
        self.max_output_bytes = max_output_bytes

    def _check(self, command: str, options: ExecutionOptions) -> Optional[ExecutionResult]:
        """Return a blocked result if the policy refuses the command."""
        if options.skip_safety_check:
            return None

        decision = self.policy.classify(command)
        if decision.allowed:
            return None

        logger.warning(f"Potentially unsafe command blocked: {command} ({decision.reason})")
        return ExecutionResult.blocked_result(command, decision.reason or "blocked")

    def _resolve(self, options: ExecutionOptions) -> tuple[str, dict[str, str], float, int]:
        """Resolve cwd, environment, timeout (seconds) and byte budget."""
        cwd = options.cwd or self.project_root
        env = {**os.environ, **options.env}
        timeout_ms = options.timeout_ms if options.timeout_ms is not None else self.default_timeout_ms
        max_bytes = (
            options.max_output_bytes
            if options.max_output_bytes is not None
            else self.max_output_bytes
        )
        return cwd, env, timeout_ms / 1000, max_bytes

    def _completed(
        self,
        command: str,
        returncode: Optional[int],
        stdout_bytes: bytes,
        stderr_bytes: bytes,
        max_bytes: int,
        start: float,
    ) -> ExecutionResult:
        stdout, stdout_truncated = truncate_output(stdout_bytes or b"", max_bytes)
        stderr, stderr_truncated = truncate_output(stderr_bytes or b"", max_bytes)
        exit_code = _normalize_exit_code(returncode)

        logger.debug(f"Command completed with exit code {exit_code}: {command}")
        return ExecutionResult(
            command=command,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            duration_ms=_elapsed_ms(start),
            truncated=stdout_truncated or stderr_truncated,
        )

    def _timed_out(self, command: str, timeout: float, start: float) -> ExecutionResult:
        timeout_ms = int(timeout * 1000)
        logger.warning(f"Command timed out after {timeout_ms}ms: {command}")
        return ExecutionResult(
            command=command,
            stdout="",
            stderr=f"Command timed out after {timeout_ms}ms",
            exit_code=TIMEOUT_EXIT_CODE,
            duration_ms=_elapsed_ms(start),
            error=True,
        )

    def _spawn_failed(self, command: str, exc: OSError, start: float) -> ExecutionResult:
        logger.warning(f"Failed to start command {command!r}: {exc}")
        return ExecutionResult(
            command=command,
            stdout="",
            stderr=f"Failed to start command: {exc}",
            exit_code=FAILURE_EXIT_CODE,
            duration_ms=_elapsed_ms(start),
            error=True,
        )

    async def run(
        self,
        command: str,
        options: Optional[ExecutionOptions] = None,
    ) -> ExecutionResult:
        """
        Execute a command, awaiting its completion.

        Args:
            command: The command string to execute
            options: Optional per-call overrides

        Returns:
            ExecutionResult; blocked, timed out and failed-to-spawn commands
            are reported in the result, never raised
        """
        options = options or ExecutionOptions()
        start = time.monotonic()

        blocked = self._check(command, options)
        if blocked is not None:
            return blocked

        cwd, env, timeout, max_bytes = self._resolve(options)
        logger.debug(f"Executing command: {command} (cwd={cwd}, timeout={timeout}s)")

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=env,
                start_new_session=True,
            )
        except OSError as e:
            return self._spawn_failed(command, e, start)

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            _kill_process_group(process.pid)
            await process.wait()
            return self._timed_out(command, timeout, start)
        except asyncio.CancelledError:
            _kill_process_group(process.pid)
            raise

        return self._completed(
            command, process.returncode, stdout_bytes, stderr_bytes, max_bytes, start
        )

    def run_probe(
        self,
        command: str,
        options: Optional[ExecutionOptions] = None,
    ) -> ExecutionResult:
        """
        Execute a short command with a blocking wait.

        Same gating, limits and result shape as run(), for availability
        checks such as "which <name>" issued outside an event loop.
        """
        options = options or ExecutionOptions()
        start = time.monotonic()

        blocked = self._check(command, options)
        if blocked is not None:
            return blocked

        cwd, env, timeout, max_bytes = self._resolve(options)
        logger.debug(f"Probing command: {command} (cwd={cwd}, timeout={timeout}s)")

        try:
            process = subprocess.Popen(
                command,
                shell=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
                env=env,
                start_new_session=True,
            )
        except OSError as e:
            return self._spawn_failed(command, e, start)

        try:
            stdout_bytes, stderr_bytes = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_process_group(process.pid)
            process.communicate()
            return self._timed_out(command, timeout, start)

        return self._completed(
            command, process.returncode, stdout_bytes, stderr_bytes, max_bytes, start
        )


def create_runner(
    policy: CommandPolicy,
    command_config: Optional[dict] = None,
) -> CommandRunner:
    """
    Factory function to create a CommandRunner.

    Args:
        policy: The shared CommandPolicy
        command_config: Optional command configuration with project_root,
            default_timeout_ms and max_output_bytes

    Returns:
        Configured CommandRunner instance
    """
    command_config = command_config or {}
    return CommandRunner(
        policy=policy,
        project_root=command_config.get("project_root"),
        default_timeout_ms=command_config.get("default_timeout_ms", DEFAULT_TIMEOUT_MS),
        max_output_bytes=command_config.get("max_output_bytes", DEFAULT_MAX_OUTPUT_BYTES),
    )
