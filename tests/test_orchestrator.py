"""Tests for the analysis orchestrator and prompt building."""

import pytest

from conftest import FakeChatClient, NO_WAIT_RETRY, review_json
from gradewise_core.analysis import (
    AnalysisOrchestrator,
    ReviewContext,
    Severity,
    build_system_prompt,
    build_user_prompt,
)
from gradewise_core.errors import AnalysisServiceError, EmptyAnalysisError, ErrorKind
from gradewise_core.vcs import ChangedFile


def make_files(*paths: str) -> list[ChangedFile]:
    return [
        ChangedFile(path=path, status="added", content=f"# {path}\nvalue = 1\n", language="python")
        for path in paths
    ]


def make_orchestrator(client: FakeChatClient) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(client, file_delay_seconds=0, retry_config=NO_WAIT_RETRY)


class TestPrompts:
    """Test prompt assembly."""

    def test_system_prompt_without_context(self) -> None:
        prompt = build_system_prompt()
        assert "GRADING RUBRIC" not in prompt
        assert "COURSE-SPECIFIC INSTRUCTIONS" not in prompt
        assert "at most 10 items per file" in prompt

    def test_system_prompt_with_rubric_and_guidelines(self) -> None:
        prompt = build_system_prompt(ReviewContext(rubric="Tests: 40%", guidelines="Prefer pathlib"))
        assert "Tests: 40%" in prompt
        assert "Prefer pathlib" in prompt
        assert prompt.index("Tests: 40%") < prompt.index("RESPONSE FORMAT")

    def test_user_prompt_embeds_file(self) -> None:
        prompt = build_user_prompt("src/app.py", "x = 1", "python")
        assert "FILE: src/app.py" in prompt
        assert "```python\nx = 1\n```" in prompt


class TestAnalysisOrchestrator:
    """Test per-file review and aggregation."""

    @pytest.mark.asyncio
    async def test_collects_feedback_for_every_file(self) -> None:
        client = FakeChatClient([
            review_json({"type": "naming", "severity": "low", "content": "a"}),
            review_json(
                {"type": "security", "severity": "high", "content": "b"},
                {"type": "performance", "severity": "medium", "content": "c"},
            ),
        ])
        result = await make_orchestrator(client).analyze(make_files("a.py", "b.py"))

        assert len(client.calls) == 2
        assert [f.file_path for f in result.feedback] == ["a.py", "b.py", "b.py"]
        assert result.summary.files_analyzed == 2
        assert result.summary.total_feedback == 3
        assert result.summary.by_severity == {"low": 1, "medium": 1, "high": 1, "critical": 0}
        assert result.summary.by_type == {"naming": 1, "security": 1, "performance": 1}
        assert result.score == 100 - 2 - 10 - 5

    @pytest.mark.asyncio
    async def test_code_snippet_in_feedback_is_usable(self) -> None:
        client = FakeChatClient([
            review_json({"severity": "high", "content": "Wrap it: ```python\ntry: ...```", "line_number": 1e20}),
            "not json",
        ])
        result = await make_orchestrator(client).analyze(make_files("a.py", "b.py"))

        assert result.summary.files_analyzed == 1
        assert result.summary.files_failed == 1
        assert [(f.file_path, f.line_number) for f in result.feedback] == [("a.py", None)]
        assert result.feedback[0].content.startswith("Wrap it: ```python")

    @pytest.mark.asyncio
    async def test_context_reaches_system_prompt(self) -> None:
        client = FakeChatClient(["[]"])
        context = ReviewContext(rubric="Readability counts")
        await make_orchestrator(client).analyze(make_files("a.py"), context)

        system_prompt, user_prompt = client.calls[0]
        assert "Readability counts" in system_prompt
        assert "FILE: a.py" in user_prompt

    @pytest.mark.asyncio
    async def test_files_without_content_are_skipped(self) -> None:
        client = FakeChatClient(["[]"])
        files = make_files("a.py") + [ChangedFile(path="empty.py", status="added", content="")]
        result = await make_orchestrator(client).analyze(files)

        assert len(client.calls) == 1
        assert result.summary.files_analyzed == 1

    @pytest.mark.asyncio
    async def test_truncates_items_per_file(self) -> None:
        client = FakeChatClient([review_json(*({"content": str(i)} for i in range(15)))])
        orchestrator = AnalysisOrchestrator(client, file_delay_seconds=0, max_items_per_file=4)
        result = await orchestrator.analyze(make_files("a.py"))
        assert len(result.feedback) == 4

    @pytest.mark.asyncio
    async def test_unparseable_file_is_counted_as_failed(self) -> None:
        client = FakeChatClient(["I cannot help with that", review_json({"severity": "critical", "content": "x"})])
        result = await make_orchestrator(client).analyze(make_files("a.py", "b.py"))

        assert result.summary.files_failed == 1
        assert result.summary.files_analyzed == 1
        assert [f.severity for f in result.feedback] == [Severity.CRITICAL]

    @pytest.mark.asyncio
    async def test_permanent_error_degrades_to_no_feedback(self) -> None:
        client = FakeChatClient([
            AnalysisServiceError(ErrorKind.BAD_REQUEST, "context too long", status_code=400),
            review_json({"content": "ok"}),
        ])
        result = await make_orchestrator(client).analyze(make_files("a.py", "b.py"))

        assert result.summary.files_failed == 1
        assert len(result.feedback) == 1

    @pytest.mark.asyncio
    async def test_no_usable_file_raises(self) -> None:
        client = FakeChatClient(["garbage"])
        with pytest.raises(EmptyAnalysisError):
            await make_orchestrator(client).analyze(make_files("a.py", "b.py"))

    @pytest.mark.asyncio
    async def test_no_files_is_an_empty_result(self) -> None:
        client = FakeChatClient()
        result = await make_orchestrator(client).analyze([])
        assert result.feedback == []
        assert result.score == 100
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_retryable_error_propagates_from_single_pass(self) -> None:
        client = FakeChatClient([AnalysisServiceError(ErrorKind.RATE_LIMITED, "slow down", status_code=429)])
        with pytest.raises(AnalysisServiceError):
            await make_orchestrator(client).analyze(make_files("a.py"))


class TestAnalyzeWithRetry:
    """Test batch-level retries."""

    @pytest.mark.asyncio
    async def test_batch_is_retried_after_transient_failure(self) -> None:
        client = FakeChatClient([
            AnalysisServiceError(ErrorKind.SERVER_ERROR, "overloaded", status_code=503),
            review_json({"severity": "high", "content": "x"}),
        ])
        retries: list[int] = []
        orchestrator = AnalysisOrchestrator(
            client,
            file_delay_seconds=0,
            retry_config=NO_WAIT_RETRY,
            on_retry=lambda error, attempt, delay: retries.append(attempt),
        )

        result = await orchestrator.analyze_with_retry(make_files("a.py"))

        assert result.score == 90
        assert retries == [1]
        assert len(client.calls) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self) -> None:
        client = FakeChatClient([AnalysisServiceError(ErrorKind.TIMEOUT, "timed out")])
        with pytest.raises(AnalysisServiceError) as exc_info:
            await make_orchestrator(client).analyze_with_retry(make_files("a.py"))

        assert exc_info.value.kind == ErrorKind.TIMEOUT
        assert len(client.calls) == NO_WAIT_RETRY.max_attempts

    @pytest.mark.asyncio
    async def test_empty_analysis_is_not_retried(self) -> None:
        client = FakeChatClient(["nope"])
        with pytest.raises(EmptyAnalysisError):
            await make_orchestrator(client).analyze_with_retry(make_files("a.py"))
        assert len(client.calls) == 1
