"""
Security classification for shell commands.

This module implements two-layer pattern validation:
1. Deny patterns, scanned against the raw text; any match blocks
2. Allow-prefixes, matched against the leading token or the text start

Deny always wins, even for allow-listed commands. This is pattern
filtering, not a sandbox: pipes, chaining, quoting and substitution are not
reasoned about beyond what the patterns themselves catch.
"""

from typing import Any

from cbx_terminal.executor.parser import is_composite_command, leading_token
from cbx_terminal.executor.types import PolicyDecision, PolicyRuleSet
from cbx_terminal.utils.logging import get_logger

logger = get_logger(__name__)

NOT_ALLOWED_REASON = "not in allow-list"
EMPTY_COMMAND_REASON = "empty command"


class CommandPolicy:
    """
    Classifies raw command strings as allowed or blocked.

    The policy holds an immutable PolicyRuleSet and no other state, so a
    single instance can be shared by every caller.
    """

    def __init__(self, rules: PolicyRuleSet):
        """
        Initialize policy with a compiled rule set.

        Args:
            rules: Deny patterns and allow-prefixes
        """
        self.rules = rules

    def classify(self, command: str) -> PolicyDecision:
        """
        Classify a command against the rule set.

        Args:
            command: The raw command string

        Returns:
            PolicyDecision indicating if the command may run
        """
        if not command or not command.strip():
            return PolicyDecision.block(EMPTY_COMMAND_REASON, rule="empty")

        # Layer 1: deny patterns on the raw text
        for deny in self.rules.deny_patterns:
            if deny.regex.search(command):
                return PolicyDecision.block(deny.message, rule=deny.pattern)

        # Layer 2: allow-prefixes
        if self._is_allow_listed(command):
            if is_composite_command(command):
                logger.debug(f"Allowed composite command (composition not analyzed): {command}")
            return PolicyDecision.allow()

        return PolicyDecision.block(NOT_ALLOWED_REASON, rule="allow_prefixes")

    def _is_allow_listed(self, command: str) -> bool:
        """
        Check the leading token, then raw prefixes.

        Prefix matching is plain string matching: "lsblk" starts with "ls"
        and is therefore allowed.
        """
        text = command.strip()
        if leading_token(text) in self.rules.allow_prefixes:
            return True
        return any(text.startswith(prefix) for prefix in self.rules.allow_prefixes)


def create_policy(security_config: dict[str, Any]) -> CommandPolicy:
    """
    Factory function to create a CommandPolicy.

    Args:
        security_config: Security configuration dictionary containing
            "deny_patterns" (list of rule dicts) and "allow_prefixes"

    Returns:
        Configured CommandPolicy instance

    Raises:
        PolicyConfigError: If a deny pattern is invalid
    """
    rules = PolicyRuleSet.from_rules(
        security_config.get("deny_patterns", []),
        security_config.get("allow_prefixes", []),
    )
    return CommandPolicy(rules)
