"""
Functional tests for meta-command dispatch.

Expansion order and synthesis are checked against a recording batch
runner; end-to-end behavior runs real subprocesses in a temporary project.
"""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from cbx_terminal.executor import (
    TRUNCATION_MARKER,
    BatchRunner,
    CommandPolicy,
    CommandRunner,
    ExecutionOptions,
    ExecutionResult,
)
from cbx_terminal.meta import (
    AnalysisReport,
    ExplanationReport,
    MetaCommandDispatcher,
    MetaCommandKind,
    MetaContext,
    SearchMatch,
    SearchReport,
    expand,
)
from cbx_terminal.textgen import TextGenerationError, TextGenerator


def make_result(command: str, stdout: str = "", exit_code: int = 0, stderr: str = "") -> ExecutionResult:
    return ExecutionResult(
        command=command,
        stdout=stdout,
        stderr=stderr,
        exit_code=exit_code,
        duration_ms=1,
    )


class RecordingBatch:
    """BatchRunner stand-in that records sub-batches and returns canned output."""

    def __init__(self, outputs: dict[int, str] | None = None):
        self.outputs = outputs or {}
        self.calls: list[tuple[list[str], ExecutionOptions]] = []
        self.runner = MagicMock(spec=CommandRunner)
        self.runner.run = AsyncMock(side_effect=lambda command, options=None: make_result(command))

    async def run_sequence(self, commands, options=None):
        self.calls.append((list(commands), options))
        return [make_result(c, self.outputs.get(i, "")) for i, c in enumerate(commands)]


@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / "notes.txt").write_text("needle here\nother line\nneedle again\n")
    (tmp_path / "needle_module.py").write_text("print('hi')\n")
    return tmp_path


@pytest.fixture
def context(project: Path) -> MetaContext:
    return MetaContext(search_path=".", project_root=str(project))


class TestMetaCommandKind:
    """Test the closed name set."""

    def test_known_names(self):
        assert MetaCommandKind.from_name("ai-search") is MetaCommandKind.SEARCH
        assert MetaCommandKind.from_name("ai-analyze") is MetaCommandKind.ANALYZE
        assert MetaCommandKind.from_name("ai-explain") is MetaCommandKind.EXPLAIN

    def test_unknown_names_are_primitive(self):
        assert MetaCommandKind.from_name("grep") is MetaCommandKind.PRIMITIVE
        assert MetaCommandKind.from_name("") is MetaCommandKind.PRIMITIVE

    def test_names_excludes_primitive(self):
        assert MetaCommandKind.names() == ["ai-search", "ai-analyze", "ai-explain"]


class TestExpansion:
    """Test fixed expansions."""

    def test_search_expansion_quotes_argument(self):
        commands = expand(MetaCommandKind.SEARCH, "foo bar", MetaContext(search_path="src"))

        assert commands == [
            "grep -r 'foo bar' src",
            "find src -name '*foo bar*'",
            "git log --grep='foo bar' --oneline -10",
        ]

    def test_analyze_expansion(self):
        commands = expand(MetaCommandKind.ANALYZE, "main.py", MetaContext())

        assert commands == ["wc -l main.py", "file main.py", "head -20 main.py"]

    def test_primitive_has_no_expansion(self):
        with pytest.raises(ValueError):
            expand(MetaCommandKind.PRIMITIVE, "x", MetaContext())


class TestSearch:
    """Test ai-search synthesis."""

    @pytest.mark.asyncio
    async def test_issues_three_probes_in_order(self):
        batch = RecordingBatch()
        dispatcher = MetaCommandDispatcher(batch)  # type: ignore[arg-type]

        report = await dispatcher.dispatch("ai-search widget", MetaContext())

        assert isinstance(report, SearchReport)
        assert len(batch.calls) == 1
        commands, options = batch.calls[0]
        assert commands == [
            "grep -r widget .",
            "find . -name '*widget*'",
            "git log --grep=widget --oneline -10",
        ]
        assert options.continue_on_error is True

    @pytest.mark.asyncio
    async def test_match_count_is_non_blank_lines(self):
        batch = RecordingBatch(outputs={0: "a\n\n   \nb\nc\n", 1: "", 2: "one\n"})
        dispatcher = MetaCommandDispatcher(batch)  # type: ignore[arg-type]

        report = await dispatcher.dispatch("ai-search x", MetaContext())

        assert [match.matches for match in report.results] == [3, 0, 1]
        assert report.total_matches == 4

    @pytest.mark.asyncio
    async def test_preview_is_first_five_lines(self):
        batch = RecordingBatch(outputs={0: "\n".join(str(i) for i in range(10))})
        dispatcher = MetaCommandDispatcher(batch)  # type: ignore[arg-type]

        report = await dispatcher.dispatch("ai-search x", MetaContext())

        assert report.results[0].preview == "0\n1\n2\n3\n4"

    @pytest.mark.asyncio
    async def test_real_search(self, runner: CommandRunner, context: MetaContext):
        dispatcher = MetaCommandDispatcher(BatchRunner(runner))

        report = await dispatcher.dispatch("ai-search needle", context)

        assert report.command == "ai-search needle"
        assert len(report.results) == 3
        assert report.results[0].matches == 2
        assert report.results[1].matches == 1
        assert "needle_module.py" in report.results[1].preview

        result = report.to_result()
        assert result.exit_code == 0
        assert "2 match(es)" in result.stdout


class TestAnalyze:
    """Test ai-analyze synthesis."""

    @pytest.mark.asyncio
    async def test_analyze_existing_file(self, runner: CommandRunner, context: MetaContext):
        dispatcher = MetaCommandDispatcher(BatchRunner(runner))

        report = await dispatcher.dispatch("ai-analyze notes.txt", context)

        assert isinstance(report, AnalysisReport)
        assert report.line_count == "3 notes.txt"
        assert report.preview == "needle here\nother line\nneedle again\n"
        assert report.success

    @pytest.mark.asyncio
    async def test_analyze_missing_file(self, runner: CommandRunner, context: MetaContext):
        dispatcher = MetaCommandDispatcher(BatchRunner(runner))

        report = await dispatcher.dispatch("ai-analyze missing.txt", context)

        assert report.line_count is None
        assert report.preview is None
        assert not report.success
        assert report.to_result().exit_code != 0


class TestExplain:
    """Test ai-explain read-then-generate flow."""

    @pytest.fixture
    def generator(self) -> TextGenerator:
        generator = MagicMock(spec=TextGenerator)
        generator.generate = AsyncMock(return_value="It prints a greeting.")
        return generator

    @pytest.mark.asyncio
    async def test_explain_forwards_content(self, runner, context, generator):
        dispatcher = MetaCommandDispatcher(BatchRunner(runner), text_generator=generator, explain_max_tokens=123)

        report = await dispatcher.dispatch("ai-explain needle_module.py", context)

        assert isinstance(report, ExplanationReport)
        assert report.success
        assert report.explanation == "It prints a greeting."
        generator.generate.assert_awaited_once()
        kwargs = generator.generate.await_args.kwargs
        assert "print('hi')" in kwargs["prompt"]
        assert kwargs["max_tokens"] == 123
        assert kwargs["system_prompt"]

    @pytest.mark.asyncio
    async def test_failed_read_skips_generation(self, runner, context, generator):
        dispatcher = MetaCommandDispatcher(BatchRunner(runner), text_generator=generator)

        report = await dispatcher.dispatch("ai-explain missing.py", context)

        assert not report.success
        assert report.error == "Could not read file"
        assert report.stderr
        generator.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_without_generator(self, runner, context):
        dispatcher = MetaCommandDispatcher(BatchRunner(runner))

        report = await dispatcher.dispatch("ai-explain notes.txt", context)

        assert report.error == "No text generator configured"

    @pytest.mark.asyncio
    async def test_generation_failure_is_reported(self, runner, context, generator):
        generator.generate.side_effect = TextGenerationError("boom")
        dispatcher = MetaCommandDispatcher(BatchRunner(runner), text_generator=generator)

        report = await dispatcher.dispatch("ai-explain notes.txt", context)

        assert report.error == "Text generation failed"
        assert report.to_result().stderr == "Text generation failed: boom"


class TestFallThrough:
    """Unrecognized names run as ordinary commands."""

    @pytest.mark.asyncio
    async def test_primitive_command(self, runner, context):
        dispatcher = MetaCommandDispatcher(BatchRunner(runner))

        result = await dispatcher.dispatch("echo plain", context)

        assert isinstance(result, ExecutionResult)
        assert result.stdout == "plain\n"

    @pytest.mark.asyncio
    async def test_primitive_command_is_policy_gated(self, runner, context):
        dispatcher = MetaCommandDispatcher(BatchRunner(runner))

        result = await dispatcher.dispatch("sudo ls", context)

        assert result.blocked

    @pytest.mark.asyncio
    async def test_missing_argument(self):
        batch = RecordingBatch()
        dispatcher = MetaCommandDispatcher(batch)  # type: ignore[arg-type]

        result = await dispatcher.dispatch("ai-search", MetaContext())

        assert isinstance(result, ExecutionResult)
        assert result.exit_code != 0
        assert batch.calls == []


class TestSearchOutcome:
    """A search only succeeds if one of its probes actually ran."""

    @pytest.mark.asyncio
    async def test_denied_query_is_reported_as_blocked(self, runner: CommandRunner, context: MetaContext):
        dispatcher = MetaCommandDispatcher(BatchRunner(runner))

        report = await dispatcher.dispatch("ai-search sudoers", context)

        assert all(match.blocked for match in report.results)
        assert not report.success

        result = report.to_result()
        assert result.exit_code != 0
        assert result.blocked
        assert "privilege escalation" in result.stderr
        assert "match(es)" not in result.stdout

    def test_one_probe_running_is_enough(self):
        report = SearchReport(
            command="ai-search x",
            results=[
                SearchMatch(command="grep -r x .", matches=2, preview="a\nb"),
                SearchMatch(command="find . -name '*x*'", matches=0, preview="", exit_code=1, blocked=True),
            ],
        )

        result = report.to_result()

        assert result.exit_code == 0
        assert not result.blocked
        assert "grep -r x .: 2 match(es)" in result.stdout
        assert "find . -name '*x*': blocked" in result.stdout

    def test_timed_out_probes_are_errors(self):
        report = SearchReport(
            command="ai-search x",
            results=[
                SearchMatch(command="grep -r x .", matches=0, preview="", exit_code=124, error=True,
                            stderr="Command timed out"),
            ],
        )

        result = report.to_result()

        assert result.exit_code != 0
        assert result.error
        assert not result.blocked
        assert "Command timed out" in result.stderr


class TestTruncatedMetaOutput:
    """Truncated sub-results are flagged on the synthesized result."""

    @pytest.fixture
    def haystack(self, tmp_path: Path) -> Path:
        root = tmp_path / "haystack"
        root.mkdir()
        (root / "haystack.txt").write_text("needle\n" * 2000)
        return root

    @pytest.fixture
    def small_runner(self, policy: CommandPolicy, haystack: Path) -> CommandRunner:
        return CommandRunner(
            policy=policy,
            project_root=str(haystack),
            default_timeout_ms=10000,
            max_output_bytes=100,
        )

    @pytest.mark.asyncio
    async def test_truncated_search_counts_are_lower_bounds(self, small_runner: CommandRunner):
        dispatcher = MetaCommandDispatcher(BatchRunner(small_runner))

        report = await dispatcher.dispatch("ai-search needle", MetaContext())

        grep = report.results[0]
        assert grep.truncated
        # 4 complete "./haystack.txt:needle" lines plus one cut line; the marker is not a match
        assert grep.matches == 5
        assert TRUNCATION_MARKER.strip() not in grep.preview

        result = report.to_result()
        assert result.truncated
        assert f"{grep.command}: >=5 match(es)" in result.stdout

    @pytest.mark.asyncio
    async def test_truncated_analysis_is_flagged(self, small_runner: CommandRunner):
        dispatcher = MetaCommandDispatcher(BatchRunner(small_runner))

        report = await dispatcher.dispatch("ai-analyze haystack.txt", MetaContext())

        assert report.success
        assert report.truncated
        assert report.to_result().truncated

    @pytest.mark.asyncio
    async def test_truncated_file_explanation_is_flagged(self, small_runner: CommandRunner):
        generator = MagicMock(spec=TextGenerator)
        generator.generate = AsyncMock(return_value="A list of needles.")
        dispatcher = MetaCommandDispatcher(BatchRunner(small_runner), text_generator=generator)

        report = await dispatcher.dispatch("ai-explain haystack.txt", MetaContext())

        assert report.success
        assert report.truncated
        assert report.to_result().truncated
        prompt = generator.generate.await_args.kwargs["prompt"]
        assert TRUNCATION_MARKER.strip() not in prompt
        assert "Only the beginning of the file is shown" in prompt

    @pytest.mark.asyncio
    async def test_complete_output_is_not_flagged(self, runner: CommandRunner, context: MetaContext):
        dispatcher = MetaCommandDispatcher(BatchRunner(runner))

        report = await dispatcher.dispatch("ai-search needle", context)

        assert not report.truncated
        assert not report.to_result().truncated
        assert ">=" not in report.to_result().stdout
