"""
Terminal service setup.

Builds the policy, runner, batch runner, meta-command dispatcher and
formatter once from a TerminalConfig and bundles them into a single
service object that the application passes to every call site.
"""

import shlex
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from cbx_terminal.config import TerminalConfig
from cbx_terminal.executor import (
    BatchRunner,
    ExecutionOptions,
    ExecutionResult,
    PolicyDecision,
    create_policy,
    create_runner,
)
from cbx_terminal.formatter import ResultFormatter
from cbx_terminal.meta import MetaCommandDispatcher, MetaContext, MetaReport
from cbx_terminal.textgen import TextGenerator, create_text_generator
from cbx_terminal.utils.logging import get_logger

logger = get_logger(__name__)

SYSTEM_INFO_COMMANDS = [
    "python3 --version",
    "pip --version",
    "git --version",
    "pwd",
]

AVAILABILITY_TIMEOUT_MS = 5000


@dataclass(frozen=True)
class SystemInfo:
    """Tool versions and working directory; None where a probe failed."""

    python_version: Optional[str]
    pip_version: Optional[str]
    git_version: Optional[str]
    working_directory: Optional[str]


class TerminalService:
    """
    Command execution and safety-gating service.

    Construct one per application and inject it; the only state shared
    between callers is the read-only policy rule set.
    """

    def __init__(
        self,
        config: TerminalConfig,
        text_generator: Optional[TextGenerator] = None,
    ):
        """
        Args:
            config: Validated configuration
            text_generator: Backend for ai-explain (None disables it)

        Raises:
            PolicyConfigError: If a configured deny pattern is invalid
        """
        self.config = config

        self.policy = create_policy(config.security.model_dump())
        self.runner = create_runner(self.policy, config.command.model_dump())
        self.batch = BatchRunner(self.runner)
        self.dispatcher = MetaCommandDispatcher(
            self.batch,
            text_generator=text_generator,
            explain_max_tokens=config.meta.explain_max_tokens,
        )
        self.formatter = ResultFormatter()

        rules = self.policy.rules
        logger.debug(
            f"Terminal service ready: {len(rules.deny_patterns)} deny patterns, "
            f"{len(rules.allow_prefixes)} allow-prefixes, root={self.runner.project_root}"
        )

    def classify(self, command: str) -> PolicyDecision:
        return self.policy.classify(command)

    async def execute_command(
        self,
        command: str,
        options: Optional[ExecutionOptions] = None,
    ) -> ExecutionResult:
        """Run one command with safety checks."""
        return await self.runner.run(command, options)

    async def execute_commands(
        self,
        commands: Sequence[str],
        options: Optional[ExecutionOptions] = None,
    ) -> list[ExecutionResult]:
        """
        Run commands in sequence.

        Without explicit options the configured continue_on_error default
        applies.
        """
        if options is None:
            options = ExecutionOptions(continue_on_error=self.config.command.continue_on_error)
        return await self.batch.run_sequence(commands, options)

    def execute_command_sync(
        self,
        command: str,
        options: Optional[ExecutionOptions] = None,
    ) -> ExecutionResult:
        """Run one short command with a blocking wait."""
        return self.runner.run_probe(command, options)

    def default_meta_context(self) -> MetaContext:
        return MetaContext(
            search_path=self.config.meta.search_path,
            project_root=self.config.command.project_root,
        )

    async def execute_meta_command(
        self,
        command: str,
        context: Optional[MetaContext] = None,
    ) -> Union[MetaReport, ExecutionResult]:
        """Expand and run a meta-command, or run an ordinary command unchanged."""
        return await self.dispatcher.dispatch(command, context or self.default_meta_context())

    async def execute_for_display(
        self,
        commands: Sequence[str],
        options: Optional[ExecutionOptions] = None,
        context: Optional[MetaContext] = None,
    ) -> list[ExecutionResult]:
        """
        Run a batch in which meta-commands may appear.

        Meta-command reports are converted to results so the whole list can
        go through the formatter. Stop-on-error applies as in
        execute_commands().
        """
        if options is None:
            options = ExecutionOptions(continue_on_error=self.config.command.continue_on_error)
        context = context or MetaContext(
            search_path=self.config.meta.search_path,
            project_root=options.cwd or self.config.command.project_root,
            env=dict(options.env),
            timeout_ms=options.timeout_ms,
        )

        async def step(command: str, step_options: ExecutionOptions) -> ExecutionResult:
            if not self.dispatcher.is_meta_command(command):
                return await self.runner.run(command, step_options)
            outcome = await self.dispatcher.dispatch(command, context)
            return outcome if isinstance(outcome, ExecutionResult) else outcome.to_result()

        return await self.batch.run_sequence(commands, options, step=step)

    async def get_system_info(self) -> SystemInfo:
        """Versions of common tools and the working directory."""
        results = await self.batch.run_sequence(
            SYSTEM_INFO_COMMANDS,
            ExecutionOptions(continue_on_error=True),
        )

        def value(index: int) -> Optional[str]:
            if index >= len(results) or results[index].exit_code != 0:
                return None
            return results[index].stdout.strip() or None

        return SystemInfo(
            python_version=value(0),
            pip_version=value(1),
            git_version=value(2),
            working_directory=value(3),
        )

    def is_command_available(self, name: str) -> bool:
        """Check whether a binary is on PATH (trusted probe, policy bypassed)."""
        result = self.runner.run_probe(
            f"which {shlex.quote(name)}",
            ExecutionOptions(skip_safety_check=True, timeout_ms=AVAILABILITY_TIMEOUT_MS),
        )
        return result.exit_code == 0

    def format_results(self, results: Sequence[ExecutionResult]) -> str:
        return self.formatter.format(results)


def create_service(
    config: TerminalConfig,
    text_generator: Optional[TextGenerator] = None,
) -> TerminalService:
    """
    Create the terminal service.

    Args:
        config: Service configuration
        text_generator: Explicit generator; when None one is built from
            config.textgen (which may also yield None)

    Returns:
        Configured TerminalService
    """
    if text_generator is None:
        text_generator = create_text_generator(config.textgen.model_dump())
    return TerminalService(config, text_generator=text_generator)
