"""Orchestrates LLM review of the files changed by a push."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Sequence

import structlog

from gradewise_core.analysis.feedback import (
    MAX_ITEMS_PER_FILE,
    FeedbackDraft,
    Severity,
    parse_feedback,
)
from gradewise_core.analysis.llm import ChatClient
from gradewise_core.analysis.prompts import ReviewContext, build_system_prompt, build_user_prompt
from gradewise_core.analysis.scoring import calculate_score
from gradewise_core.errors import AnalysisServiceError, EmptyAnalysisError, is_analysis_retryable
from gradewise_core.retry import ANALYSIS_RETRY_CONFIG, RetryCallback, RetryConfig, with_retry
from gradewise_core.vcs.base import ChangedFile

logger = structlog.get_logger()


@dataclass
class AnalysisSummary:
    """Counts describing one analysis run."""

    files_analyzed: int = 0
    files_failed: int = 0
    total_feedback: int = 0
    by_severity: dict[str, int] = field(
        default_factory=lambda: {s.value: 0 for s in Severity}
    )
    by_type: dict[str, int] = field(default_factory=dict)

    def record(self, feedback: Sequence[FeedbackDraft]) -> None:
        self.files_analyzed += 1
        self.total_feedback += len(feedback)
        for item in feedback:
            self.by_severity[item.severity.value] += 1
            self.by_type[item.type.value] = self.by_type.get(item.type.value, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "files_analyzed": self.files_analyzed,
            "files_failed": self.files_failed,
            "total_feedback": self.total_feedback,
            "by_severity": dict(self.by_severity),
            "by_type": dict(self.by_type),
        }


@dataclass
class AnalysisResult:
    """Feedback for a batch of files plus its summary."""

    feedback: list[FeedbackDraft]
    summary: AnalysisSummary

    @property
    def score(self) -> int:
        return calculate_score(self.feedback)


@dataclass
class FileAnalysis:
    """Outcome for a single file. ``usable`` is False when the model gave
    nothing parseable or the call failed permanently."""

    path: str
    feedback: list[FeedbackDraft]
    usable: bool


class AnalysisOrchestrator:
    """Sends files to the LLM one at a time and collects normalized feedback.

    Files are reviewed sequentially with a small delay in between to bound
    load on the upstream service.
    """

    def __init__(
        self,
        client: ChatClient,
        file_delay_seconds: float = 0.5,
        max_items_per_file: int = MAX_ITEMS_PER_FILE,
        retry_config: RetryConfig | None = None,
        on_retry: RetryCallback | None = None,
    ) -> None:
        self.client = client
        self.file_delay_seconds = file_delay_seconds
        self.max_items_per_file = max_items_per_file
        self.retry_config = retry_config or ANALYSIS_RETRY_CONFIG
        self.on_retry = on_retry

    async def analyze_file(self, file: ChangedFile, system_prompt: str) -> FileAnalysis:
        """Review one file.

        Raises:
            AnalysisServiceError: only for retryable failures, so the batch
                can be retried. Permanent failures degrade to no feedback.
        """
        user_prompt = build_user_prompt(file.path, file.content, file.language or "unknown")
        try:
            text = await self.client.complete(system_prompt, user_prompt)
        except AnalysisServiceError as e:
            if is_analysis_retryable(e):
                raise
            logger.error(
                "AI error analyzing file",
                file_path=file.path,
                kind=e.kind.value,
                status=e.status_code,
                error=e.message,
            )
            return FileAnalysis(file.path, [], usable=False)

        feedback = parse_feedback(text, file.path, self.max_items_per_file)
        if feedback is None:
            return FileAnalysis(file.path, [], usable=False)
        return FileAnalysis(file.path, feedback, usable=True)

    async def analyze(
        self,
        files: Sequence[ChangedFile],
        context: ReviewContext | None = None,
    ) -> AnalysisResult:
        """Review every file once, without retrying.

        Raises:
            EmptyAnalysisError: there were files but none gave a usable review.
            AnalysisServiceError: a retryable failure on any file.
        """
        system_prompt = build_system_prompt(context)
        summary = AnalysisSummary()
        feedback: list[FeedbackDraft] = []

        logger.info("Starting analysis", files=len(files))

        for index, file in enumerate(files):
            if not file.content:
                logger.info("Skipping file without content", file_path=file.path)
                continue

            logger.debug("Analyzing file", file_path=file.path, language=file.language)
            result = await self.analyze_file(file, system_prompt)
            if result.usable:
                summary.record(result.feedback)
                feedback.extend(result.feedback)
            else:
                summary.files_failed += 1

            if index < len(files) - 1 and self.file_delay_seconds > 0:
                await asyncio.sleep(self.file_delay_seconds)

        if summary.files_analyzed == 0 and summary.files_failed > 0:
            raise EmptyAnalysisError(
                f"No usable analysis for any of {summary.files_failed} files"
            )

        logger.info(
            "Analysis complete",
            files_analyzed=summary.files_analyzed,
            files_failed=summary.files_failed,
            total_feedback=summary.total_feedback,
        )
        return AnalysisResult(feedback=feedback, summary=summary)

    async def analyze_with_retry(
        self,
        files: Sequence[ChangedFile],
        context: ReviewContext | None = None,
    ) -> AnalysisResult:
        """Review the batch, retrying the whole batch on transient failures."""
        return await with_retry(
            lambda: self.analyze(files, context),
            config=self.retry_config,
            is_retryable=is_analysis_retryable,
            on_retry=self.on_retry,
            name="analyze_files",
        )
