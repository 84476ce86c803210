"""
Meta-command dispatch.

Recognizes the closed set of MetaCommandKind names, expands each into its
fixed primitive sub-batch, runs the sub-batch with continue-on-error so a
single failing probe does not abort the analysis, and synthesizes a report.
Anything else falls through to ordinary policy-gated execution.
"""

import shlex
from typing import Optional, Union

from cbx_terminal.executor.batch import BatchRunner
from cbx_terminal.executor.parser import split_meta_command
from cbx_terminal.executor.types import ExecutionOptions, ExecutionResult
from cbx_terminal.meta.types import (
    AnalysisReport,
    ExplanationReport,
    MetaCommandKind,
    MetaContext,
    MetaReport,
    SearchMatch,
    SearchReport,
    strip_truncation_marker,
)
from cbx_terminal.textgen import TextGenerationError, TextGenerator
from cbx_terminal.utils.logging import get_logger

logger = get_logger(__name__)

MISSING_ARGUMENT_EXIT_CODE = 2

EXPLAIN_SYSTEM_PROMPT = (
    "You are a code explanation expert. "
    "Explain the following code clearly and concisely."
)


def expand(kind: MetaCommandKind, argument: str, context: MetaContext) -> list[str]:
    """
    Expand a meta-command into its primitive commands.

    The argument and search path are shell-quoted before substitution.

    Raises:
        ValueError: For PRIMITIVE, which has no expansion
    """
    quoted = shlex.quote(argument)

    if kind is MetaCommandKind.SEARCH:
        path = shlex.quote(context.search_path or ".")
        return [
            f"grep -r {quoted} {path}",
            f"find {path} -name {shlex.quote(f'*{argument}*')}",
            f"git log --grep={quoted} --oneline -10",
        ]
    elif kind is MetaCommandKind.ANALYZE:
        return [
            f"wc -l {quoted}",
            f"file {quoted}",
            f"head -20 {quoted}",
        ]
    elif kind is MetaCommandKind.EXPLAIN:
        return [f"cat {quoted}"]

    raise ValueError(f"{kind!r} has no meta-command expansion")


class MetaCommandDispatcher:
    """Dispatches meta-commands and synthesizes their reports."""

    def __init__(
        self,
        batch: BatchRunner,
        text_generator: Optional[TextGenerator] = None,
        explain_max_tokens: int = 500,
    ):
        """
        Args:
            batch: BatchRunner used for every sub-batch
            text_generator: Backend for ai-explain (None disables it)
            explain_max_tokens: Token budget for explanations
        """
        self.batch = batch
        self.text_generator = text_generator
        self.explain_max_tokens = explain_max_tokens

    @staticmethod
    def is_meta_command(command: str) -> bool:
        name, _ = split_meta_command(command)
        return MetaCommandKind.from_name(name) is not MetaCommandKind.PRIMITIVE

    def _options(self, context: MetaContext) -> ExecutionOptions:
        return ExecutionOptions(
            cwd=context.project_root,
            env=dict(context.env),
            timeout_ms=context.timeout_ms,
            continue_on_error=True,
        )

    async def dispatch(
        self,
        command: str,
        context: Optional[MetaContext] = None,
    ) -> Union[MetaReport, ExecutionResult]:
        """
        Run a command, expanding it first if it names a meta-command.

        Args:
            command: "<name> <argument>" or any ordinary command
            context: Search path / project root for the expansion

        Returns:
            A report for meta-commands, otherwise the ExecutionResult of the
            unchanged command
        """
        context = context or MetaContext()
        name, argument = split_meta_command(command)
        kind = MetaCommandKind.from_name(name)

        if kind is MetaCommandKind.PRIMITIVE:
            return await self.batch.runner.run(
                command,
                ExecutionOptions(
                    cwd=context.project_root,
                    env=dict(context.env),
                    timeout_ms=context.timeout_ms,
                ),
            )

        if not argument:
            logger.warning(f"Meta-command '{name}' called without an argument")
            return ExecutionResult(
                command=command,
                stdout="",
                stderr=f"{name} requires an argument",
                exit_code=MISSING_ARGUMENT_EXIT_CODE,
                duration_ms=0,
            )

        logger.debug(f"Dispatching meta-command {kind.value} with argument {argument!r}")
        if kind is MetaCommandKind.SEARCH:
            return await self.search(argument, context)
        elif kind is MetaCommandKind.ANALYZE:
            return await self.analyze(argument, context)
        else:
            return await self.explain(argument, context)

    async def search(self, query: str, context: MetaContext) -> SearchReport:
        """Content, file-name and commit-message search for a query."""
        commands = expand(MetaCommandKind.SEARCH, query, context)
        results = await self.batch.run_sequence(commands, self._options(context))

        return SearchReport(
            command=f"{MetaCommandKind.SEARCH.value} {query}",
            results=[SearchMatch.from_result(r) for r in results],
            duration_ms=sum(r.duration_ms for r in results),
        )

    async def analyze(self, target: str, context: MetaContext) -> AnalysisReport:
        """Line count, file type and head of a file."""
        commands = expand(MetaCommandKind.ANALYZE, target, context)
        results = await self.batch.run_sequence(commands, self._options(context))

        def stdout_at(index: int, strip: bool = True) -> Optional[str]:
            if index >= len(results) or results[index].exit_code != 0:
                return None
            value = results[index].stdout.strip() if strip else results[index].stdout
            return value or None

        stderr = "\n".join(r.stderr.strip() for r in results if r.exit_code != 0 and r.stderr.strip())
        return AnalysisReport(
            command=f"{MetaCommandKind.ANALYZE.value} {target}",
            line_count=stdout_at(0),
            file_type=stdout_at(1),
            preview=stdout_at(2, strip=False),
            stderr=stderr,
            duration_ms=sum(r.duration_ms for r in results),
            truncated=any(r.truncated for r in results),
        )

    @staticmethod
    def _explain_prompt(read: ExecutionResult) -> str:
        if not read.truncated:
            return f"Explain this code:\n\n```\n{read.stdout}\n```"
        content = strip_truncation_marker(read.stdout)
        return (
            "Explain this code. Only the beginning of the file is shown.\n\n"
            f"```\n{content}\n```"
        )

    async def explain(self, target: str, context: MetaContext) -> ExplanationReport:
        """
        Read a file and ask the text generator to explain it.

        The generator is only called when the read exits 0.
        """
        report_command = f"{MetaCommandKind.EXPLAIN.value} {target}"
        (read_command,) = expand(MetaCommandKind.EXPLAIN, target, context)
        read = await self.batch.runner.run(read_command, self._options(context))

        if read.exit_code != 0:
            return ExplanationReport(
                command=report_command,
                error="Could not read file",
                stderr=read.stderr,
                duration_ms=read.duration_ms,
                truncated=read.truncated,
            )

        if self.text_generator is None:
            return ExplanationReport(
                command=report_command,
                error="No text generator configured",
                duration_ms=read.duration_ms,
                truncated=read.truncated,
            )

        try:
            explanation = await self.text_generator.generate(
                prompt=self._explain_prompt(read),
                system_prompt=EXPLAIN_SYSTEM_PROMPT,
                max_tokens=self.explain_max_tokens,
            )
        except TextGenerationError as e:
            logger.warning(f"Explanation failed for {target}: {e}")
            return ExplanationReport(
                command=report_command,
                error="Text generation failed",
                stderr=str(e),
                duration_ms=read.duration_ms,
                truncated=read.truncated,
            )

        return ExplanationReport(
            command=report_command,
            explanation=explanation,
            duration_ms=read.duration_ms,
            truncated=read.truncated,
        )
