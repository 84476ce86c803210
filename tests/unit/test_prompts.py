# tests/unit/test_prompts.py
"""
Unit tests for embedding terminal results into prompt messages.
"""

from cbx_terminal.executor import ExecutionResult
from cbx_terminal.prompts import with_available_commands, with_terminal_context


MESSAGES = [
    {"role": "system", "content": "You are a research assistant."},
    {"role": "user", "content": "What changed recently?"},
]


class TestTerminalContext:
    """Tests for the system-message presentation."""

    def test_appends_to_system_message(self):
        results = [
            ExecutionResult(command="git log -1", stdout="abc123 fix\n", stderr="", exit_code=0, duration_ms=5)
        ]

        enhanced = with_terminal_context(MESSAGES, results)

        system = enhanced[0]["content"]
        assert system.startswith("You are a research assistant.\n\n## Terminal Context")
        assert "`git log -1`" in system
        assert "abc123 fix" in system
        assert enhanced[1] == MESSAGES[1]

    def test_input_not_mutated(self):
        original = [dict(m) for m in MESSAGES]

        with_terminal_context(MESSAGES, [])

        assert MESSAGES == original

    def test_without_system_message(self):
        user_only = [MESSAGES[1]]

        assert with_terminal_context(user_only, []) == user_only


class TestAvailableCommands:
    """Tests for the user-message presentation."""

    def test_appends_bullet_list_to_user_message(self):
        enhanced = with_available_commands(MESSAGES, ["git status", "ls"])

        user = enhanced[1]["content"]
        assert "## Available Terminal Commands" in user
        assert user.endswith("- git status\n- ls")
        assert enhanced[0] == MESSAGES[0]
