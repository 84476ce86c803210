"""
Command execution engine with safety gating.

This module handles:
- Command classification against the deny/allow policy
- Async subprocess execution and the blocking probe variant
- Ordered batch execution with stop/continue-on-error
"""

from cbx_terminal.executor.types import (
    ExecutionOptions,
    ExecutionResult,
    PolicyDecision,
    PolicyRuleSet,
    DenyPattern,
    ExecutorError,
    PolicyConfigError,
    TIMEOUT_EXIT_CODE,
    TRUNCATION_MARKER,
)
from cbx_terminal.executor.parser import (
    tokenize,
    leading_token,
    split_meta_command,
    is_composite_command,
)
from cbx_terminal.executor.validator import (
    CommandPolicy,
    create_policy,
)
from cbx_terminal.executor.runner import (
    CommandRunner,
    create_runner,
    truncate_output,
)
from cbx_terminal.executor.batch import BatchRunner

__all__ = [
    # Types
    "ExecutionOptions",
    "ExecutionResult",
    "PolicyDecision",
    "PolicyRuleSet",
    "DenyPattern",
    "TIMEOUT_EXIT_CODE",
    "TRUNCATION_MARKER",
    # Exceptions
    "ExecutorError",
    "PolicyConfigError",
    # Parser
    "tokenize",
    "leading_token",
    "split_meta_command",
    "is_composite_command",
    # Policy
    "CommandPolicy",
    "create_policy",
    # Runner
    "CommandRunner",
    "create_runner",
    "truncate_output",
    "BatchRunner",
]
