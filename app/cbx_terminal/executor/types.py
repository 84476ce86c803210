"""
Type definitions for command execution.

This module defines the data structures shared by the policy, runner,
batch runner and formatter.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Optional


# Exit code reported for a command killed after exceeding its timeout
TIMEOUT_EXIT_CODE = 124

# Exit code reported for blocked commands and spawn failures
FAILURE_EXIT_CODE = 1

TRUNCATION_MARKER = "\n... (output truncated)"

BLOCKED_MESSAGE = "Command blocked for safety reasons"


@dataclass(frozen=True)
class ExecutionOptions:
    """
    Per-call (or per-batch) execution options.

    Attributes:
        cwd: Working directory (None uses the service project root)
        env: Environment overrides merged over the current environment
        timeout_ms: Timeout in milliseconds (None uses the configured default)
        max_output_bytes: Byte budget per stream (None uses the configured default)
        skip_safety_check: Bypass the policy entirely (trusted internal probes only)
        continue_on_error: Keep running a batch after a nonzero exit
    """

    cwd: Optional[str] = None
    env: dict[str, str] = field(default_factory=dict)
    timeout_ms: Optional[int] = None
    max_output_bytes: Optional[int] = None
    skip_safety_check: bool = False
    continue_on_error: bool = False

    def merge(self, **changes) -> "ExecutionOptions":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


@dataclass(frozen=True)
class ExecutionResult:
    """
    Result of a command execution.

    Attributes:
        command: The command text as requested
        stdout: Standard output (may be truncated)
        stderr: Standard error output (may be truncated)
        exit_code: 0 only when the command ran and reported success
        duration_ms: Wall-clock time from spawn to completion/termination
        blocked: The policy refused the command; no process was spawned
        truncated: At least one raw stream exceeded the byte budget
        error: Timeout or spawn failure (not set for an ordinary nonzero exit)
        block_reason: Why the policy refused the command
    """

    command: str
    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int
    blocked: bool = False
    truncated: bool = False
    error: bool = False
    block_reason: Optional[str] = None

    @property
    def success(self) -> bool:
        """Check if command executed successfully."""
        return self.exit_code == 0 and not self.blocked and not self.error

    @classmethod
    def blocked_result(cls, command: str, reason: str, duration_ms: int = 0) -> "ExecutionResult":
        """Create the result for a command refused by the policy."""
        return cls(
            command=command,
            stdout="",
            stderr=f"{BLOCKED_MESSAGE}: {reason}",
            exit_code=FAILURE_EXIT_CODE,
            duration_ms=duration_ms,
            blocked=True,
            block_reason=reason,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "command": self.command,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exitCode": self.exit_code,
            "durationMs": self.duration_ms,
            "blocked": self.blocked,
            "truncated": self.truncated,
            "error": self.error,
        }


@dataclass(frozen=True)
class PolicyDecision:
    """
    Result of classifying a command.

    Attributes:
        allowed: Whether the command may run
        reason: Why the command was blocked (if not allowed)
        rule: The deny pattern or rule name that blocked the command
    """

    allowed: bool
    reason: Optional[str] = None
    rule: Optional[str] = None

    @classmethod
    def allow(cls) -> "PolicyDecision":
        """Create an allowing decision."""
        return cls(allowed=True)

    @classmethod
    def block(cls, reason: str, rule: Optional[str] = None) -> "PolicyDecision":
        """Create a blocking decision."""
        return cls(allowed=False, reason=reason, rule=rule)


@dataclass(frozen=True)
class DenyPattern:
    """A compiled deny rule."""

    regex: re.Pattern
    message: str

    @property
    def pattern(self) -> str:
        return self.regex.pattern


@dataclass(frozen=True)
class PolicyRuleSet:
    """
    Ordered deny patterns and allow-prefixes.

    Built once at service construction and never mutated afterwards, so it
    is safe to share between concurrent callers.
    """

    deny_patterns: tuple[DenyPattern, ...]
    allow_prefixes: frozenset[str]

    @classmethod
    def from_rules(
        cls,
        deny_rules: list[dict],
        allow_prefixes: list[str],
    ) -> "PolicyRuleSet":
        """
        Compile a rule set from plain configuration data.

        Args:
            deny_rules: Dicts with "pattern", optional "message" and
                optional "case_sensitive" (default False)
            allow_prefixes: Command names or prefixes that may run

        Raises:
            PolicyConfigError: If a deny pattern is not a valid regex
        """
        compiled: list[DenyPattern] = []
        for rule in deny_rules:
            pattern = rule.get("pattern", "")
            if not pattern:
                raise PolicyConfigError("Deny rule without a pattern")
            flags = 0 if rule.get("case_sensitive", False) else re.IGNORECASE
            try:
                regex = re.compile(pattern, flags)
            except re.error as e:
                raise PolicyConfigError(f"Invalid deny pattern '{pattern}': {e}") from e
            message = rule.get("message") or f"matches deny pattern '{pattern}'"
            compiled.append(DenyPattern(regex=regex, message=message))

        prefixes = frozenset(p.strip() for p in allow_prefixes if p and p.strip())
        return cls(deny_patterns=tuple(compiled), allow_prefixes=prefixes)


class ExecutorError(Exception):
    """Base exception for executor errors."""

    pass


class PolicyConfigError(ExecutorError):
    """Raised when the policy rule set cannot be built from configuration."""

    pass
