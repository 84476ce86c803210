"""
Meta-command kinds, context and synthesized reports.

A meta-command is a synthetic "<name> <argument>" command that expands
into a fixed batch of primitive commands. Its report condenses the batch
into the few facts a caller needs instead of every raw stream.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from cbx_terminal.executor.types import FAILURE_EXIT_CODE, TRUNCATION_MARKER, ExecutionResult

PREVIEW_LINES = 5


class MetaCommandKind(str, Enum):
    """Closed set of recognized meta-command names."""

    SEARCH = "ai-search"
    ANALYZE = "ai-analyze"
    EXPLAIN = "ai-explain"
    PRIMITIVE = ""  # Not a meta-command; run as an ordinary command

    @classmethod
    def from_name(cls, name: str) -> "MetaCommandKind":
        """Look up a kind by command name, defaulting to PRIMITIVE."""
        for kind in cls:
            if kind is not cls.PRIMITIVE and kind.value == name:
                return kind
        return cls.PRIMITIVE

    @classmethod
    def names(cls) -> list[str]:
        return [kind.value for kind in cls if kind is not cls.PRIMITIVE]


@dataclass(frozen=True)
class MetaContext:
    """
    Context a meta-command expands against.

    Attributes:
        search_path: Path searched by ai-search
        project_root: Working directory for the sub-batch (None: runner default)
        env: Environment overrides for the sub-batch
        timeout_ms: Per-command timeout override for the sub-batch
    """

    search_path: str = "."
    project_root: Optional[str] = None
    env: dict[str, str] = field(default_factory=dict)
    timeout_ms: Optional[int] = None


def count_matches(output: str) -> int:
    """Number of non-blank lines in a command's output."""
    return len([line for line in output.split("\n") if line.strip()])


def preview_lines(output: str, limit: int = PREVIEW_LINES) -> str:
    """First `limit` lines of output."""
    return "\n".join(output.split("\n")[:limit])


def strip_truncation_marker(output: str) -> str:
    if output.endswith(TRUNCATION_MARKER):
        return output[: -len(TRUNCATION_MARKER)]
    return output


@dataclass(frozen=True)
class SearchMatch:
    """
    Summary of one search probe.

    When truncated is set, matches counts only the captured part of the
    output and is a lower bound.
    """

    command: str
    matches: int
    preview: str
    exit_code: int = 0
    blocked: bool = False
    error: bool = False
    truncated: bool = False
    stderr: str = ""

    @classmethod
    def from_result(cls, result: ExecutionResult) -> "SearchMatch":
        stdout = strip_truncation_marker(result.stdout) if result.truncated else result.stdout
        return cls(
            command=result.command,
            matches=count_matches(stdout),
            preview=preview_lines(stdout),
            exit_code=result.exit_code,
            blocked=result.blocked,
            error=result.error,
            truncated=result.truncated,
            stderr=result.stderr,
        )

    @property
    def ran(self) -> bool:
        """The probe was spawned and completed (a nonzero grep exit still counts)."""
        return not self.blocked and not self.error

    def summary(self) -> str:
        if self.blocked:
            return f"{self.command}: blocked"
        if self.error:
            return f"{self.command}: failed (exit {self.exit_code})"
        count = f">={self.matches}" if self.truncated else str(self.matches)
        return f"{self.command}: {count} match(es)"


@dataclass(frozen=True)
class SearchReport:
    """
    Synthesized result of ai-search.

    The report succeeds if at least one probe ran. When none did, its
    result carries exit code 1 and the probes' stderr, and is marked
    blocked if every probe was refused by the policy.
    """

    command: str
    results: list[SearchMatch]
    duration_ms: int = 0

    @property
    def total_matches(self) -> int:
        return sum(match.matches for match in self.results)

    @property
    def truncated(self) -> bool:
        return any(match.truncated for match in self.results)

    @property
    def success(self) -> bool:
        return any(match.ran for match in self.results)

    def to_result(self) -> ExecutionResult:
        lines: list[str] = []
        for match in self.results:
            lines.append(match.summary())
            if match.ran:
                for preview_line in match.preview.splitlines():
                    lines.append(f"  {preview_line}")

        if self.success:
            return ExecutionResult(
                command=self.command,
                stdout="\n".join(lines),
                stderr="",
                exit_code=0,
                duration_ms=self.duration_ms,
                truncated=self.truncated,
            )

        blocked = bool(self.results) and all(match.blocked for match in self.results)
        stderr = "\n".join(match.stderr.strip() for match in self.results if match.stderr.strip())
        return ExecutionResult(
            command=self.command,
            stdout="\n".join(lines),
            stderr=stderr or "no search probe ran",
            exit_code=FAILURE_EXIT_CODE,
            duration_ms=self.duration_ms,
            blocked=blocked,
            truncated=self.truncated,
            error=not blocked,
            block_reason=stderr if blocked else None,
        )


@dataclass(frozen=True)
class AnalysisReport:
    """Synthesized result of ai-analyze."""

    command: str
    line_count: Optional[str]
    file_type: Optional[str]
    preview: Optional[str]
    stderr: str = ""
    duration_ms: int = 0
    truncated: bool = False

    @property
    def success(self) -> bool:
        # `file` exits 0 even for unreadable paths, so wc decides
        return self.line_count is not None

    def to_result(self) -> ExecutionResult:
        lines = [
            f"Line count: {self.line_count or 'unknown'}",
            f"File type: {self.file_type or 'unknown'}",
        ]
        if self.preview:
            lines.append("Preview:")
            lines.append(self.preview.rstrip("\n"))
        return ExecutionResult(
            command=self.command,
            stdout="\n".join(lines),
            stderr=self.stderr,
            exit_code=0 if self.success else FAILURE_EXIT_CODE,
            duration_ms=self.duration_ms,
            truncated=self.truncated,
        )


@dataclass(frozen=True)
class ExplanationReport:
    """
    Synthesized result of ai-explain.

    truncated means the file was cut to the output budget before it was
    handed to the generator, so the explanation covers only its start.
    """

    command: str
    explanation: Optional[str] = None
    error: Optional[str] = None
    stderr: str = ""
    duration_ms: int = 0
    truncated: bool = False

    @property
    def success(self) -> bool:
        return self.error is None

    def to_result(self) -> ExecutionResult:
        if self.success:
            return ExecutionResult(
                command=self.command,
                stdout=self.explanation or "",
                stderr="",
                exit_code=0,
                duration_ms=self.duration_ms,
                truncated=self.truncated,
            )
        stderr = self.error or ""
        if self.stderr:
            stderr = f"{stderr}: {self.stderr.strip()}"
        return ExecutionResult(
            command=self.command,
            stdout="",
            stderr=stderr,
            exit_code=FAILURE_EXIT_CODE,
            duration_ms=self.duration_ms,
            truncated=self.truncated,
        )


MetaReport = Union[SearchReport, AnalysisReport, ExplanationReport]
