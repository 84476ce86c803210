"""
Ordered execution of command batches.

Commands in a batch share a working directory and may depend on each
other's side effects (build before test), so they always run one at a time,
in order.
"""

from typing import Awaitable, Callable, Optional, Sequence

from cbx_terminal.executor.runner import CommandRunner
from cbx_terminal.executor.types import ExecutionOptions, ExecutionResult
from cbx_terminal.utils.logging import get_logger

logger = get_logger(__name__)

# Runs one command of a batch; CommandRunner.run by default
CommandStep = Callable[[str, ExecutionOptions], Awaitable[ExecutionResult]]


class BatchRunner:
    """Runs an ordered list of commands through a CommandRunner."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    async def run_sequence(
        self,
        commands: Sequence[str],
        options: Optional[ExecutionOptions] = None,
        step: Optional[CommandStep] = None,
    ) -> list[ExecutionResult]:
        """
        Execute commands strictly in order.

        With continue_on_error False (the default) the batch stops after the
        first nonzero exit and the partial list is returned. A list shorter
        than the input means the remaining commands were not attempted.

        Args:
            commands: Commands to run, already split by the caller
            options: Options applied to every command in the batch
            step: Replaces runner.run for each command (used to expand
                meta-commands inside a batch)

        Returns:
            One ExecutionResult per attempted command, in input order
        """
        options = options or ExecutionOptions()
        step = step or self.runner.run
        results: list[ExecutionResult] = []

        for command in commands:
            result = await step(command, options)
            results.append(result)

            if result.exit_code != 0 and not options.continue_on_error:
                skipped = len(commands) - len(results)
                if skipped:
                    logger.info(
                        f"Stopping batch after '{command}' exited with {result.exit_code}; "
                        f"{skipped} command(s) not attempted"
                    )
                break

        return results
