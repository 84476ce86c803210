"""
Prompt embedding for terminal results.

Two presentation modes, chosen by the caller:
- results of commands that already ran are appended to the system message
  as a "Terminal Context" section
- commands that have not run are listed in the user message as
  "Available Terminal Commands"

Messages are {"role": ..., "content": ...} dicts; the input list and its
dicts are never modified.
"""

from typing import Iterable, Optional, Sequence

from cbx_terminal.executor.types import ExecutionResult
from cbx_terminal.formatter import ResultFormatter

TERMINAL_CONTEXT_HEADER = (
    "## Terminal Context\n\n"
    "The following terminal commands were executed to provide real-time context:"
)

AVAILABLE_COMMANDS_HEADER = (
    "## Available Terminal Commands\n\n"
    "Consider the output of these terminal commands when formulating your response:"
)


def _append_to_role(messages: Sequence[dict], role: str, section: str) -> list[dict]:
    """Copy messages, appending section to the first message with the given role."""
    enhanced: list[dict] = []
    done = False
    for message in messages:
        if not done and message.get("role") == role:
            message = {**message, "content": f"{message.get('content', '')}\n\n{section}"}
            done = True
        enhanced.append(message)
    return enhanced


def with_terminal_context(
    messages: Sequence[dict],
    results: Iterable[ExecutionResult],
    formatter: Optional[ResultFormatter] = None,
) -> list[dict]:
    """Append formatted results to the system message (if there is one)."""
    formatter = formatter or ResultFormatter()
    section = f"{TERMINAL_CONTEXT_HEADER}\n\n{formatter.format(results)}"
    return _append_to_role(messages, "system", section)


def with_available_commands(messages: Sequence[dict], commands: Iterable[str]) -> list[dict]:
    """Append a bullet list of commands to the user message (if there is one)."""
    command_list = "\n".join(f"- {command}" for command in commands)
    section = f"{AVAILABLE_COMMANDS_HEADER}\n{command_list}"
    return _append_to_role(messages, "user", section)


__all__ = [
    "with_terminal_context",
    "with_available_commands",
]
