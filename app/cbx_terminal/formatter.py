"""
Rendering of execution results as bounded Markdown text.

The same text is shown to users and embedded into prompts. It is bounded
because every stream it prints was already truncated by the runner.
"""

from typing import Iterable

from cbx_terminal.executor.types import ExecutionResult

SUCCESS_MARK = "✓"
FAILURE_MARK = "✗"


def _fenced(text: str) -> str:
    return "```\n" + text.rstrip("\n") + "\n```"


class ResultFormatter:
    """Formats ordered result lists."""

    def format_result(self, result: ExecutionResult, index: int = 1) -> str:
        """Render a single result; index is 1-based."""
        status = SUCCESS_MARK if result.exit_code == 0 and not result.blocked else FAILURE_MARK
        lines = [f"### {status} Command {index}: `{result.command}` ({result.duration_ms}ms)"]

        if result.blocked:
            lines.append("**Status:** Blocked for safety")
            lines.append(f"**Reason:** {result.block_reason or result.stderr}")
            return "\n".join(lines) + "\n"

        lines.append(f"**Exit Code:** {result.exit_code}")

        if result.stdout:
            lines.append("**Output:**")
            lines.append(_fenced(result.stdout))

        if result.stderr and result.exit_code != 0:
            lines.append("**Error:**")
            lines.append(_fenced(result.stderr))

        if result.truncated:
            lines.append("*Note: Output was truncated*")

        return "\n".join(lines) + "\n"

    def format(self, results: Iterable[ExecutionResult]) -> str:
        """Render results in order, separated by blank lines."""
        return "\n".join(
            self.format_result(result, index)
            for index, result in enumerate(results, start=1)
        )
