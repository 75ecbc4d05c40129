"""Submission processing pipeline.

One run takes a submission from a push (or a manual retry) to a scored
analysis: claim, fetch changed files, analyze, score, persist, notify. It is
shared by the webhook handler and the retry endpoint so both behave the
same past submission lookup.
"""

import time
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gradewise_api.db.database import get_db_context
from gradewise_api.db.models import Submission, SubmissionStatus
from gradewise_api.db.repositories import SubmissionRepository
from gradewise_api.middleware.metrics import (
    record_feedback,
    record_processing_finished,
    record_processing_started,
)
from gradewise_api.middleware.sentry import capture_pipeline_error
from gradewise_api.services.feedback_service import (
    Effect,
    FeedbackService,
    LiveUpdate,
    dispatch_effects,
)
from gradewise_core.analysis.orchestrator import AnalysisOrchestrator
from gradewise_core.analysis.prompts import ReviewContext
from gradewise_core.cache import StatsCache
from gradewise_core.errors import AnalysisServiceError, CodeHostError, EmptyAnalysisError
from gradewise_core.events import SUBMISSION_ANALYZED, SUBMISSION_STATUS, LiveUpdateBroker
from gradewise_core.vcs.fetcher import SourceFetcher
from gradewise_core.vcs.filters import parse_github_url

logger = structlog.get_logger()


@dataclass
class ProcessingOutcome:
    """What one pipeline run ended with."""

    submission_id: int
    status: str  # "skipped" when the claim was lost
    commit_sha: str
    score: int | None = None
    feedback_count: int = 0
    error_code: str | None = None
    message: str = ""


class PipelineFailure(Exception):
    """A pipeline stage failed in a way that ends the run as failed."""

    def __init__(self, error_code: str, message: str) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message


class SubmissionProcessor:
    """Runs the analysis pipeline for one submission at a time."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        fetcher: SourceFetcher,
        orchestrator: AnalysisOrchestrator,
        cache: StatsCache | None = None,
        broker: LiveUpdateBroker | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.fetcher = fetcher
        self.orchestrator = orchestrator
        self.cache = cache
        self.broker = broker

    async def process(
        self,
        submission_id: int,
        commit_sha: str,
        branch: str | None = None,
    ) -> ProcessingOutcome:
        """Process a submission at ``commit_sha``.

        Never raises: every failure ends up logged and, once the submission
        has been claimed, recorded as status ``failed``.
        """
        log = logger.bind(submission_id=submission_id, commit=commit_sha[:7], branch=branch)

        try:
            async with get_db_context(self.session_factory) as session:
                claim = await SubmissionRepository(session).try_start_processing(
                    submission_id, commit_sha, branch
                )
        except Exception as e:
            log.error("Could not claim submission", error=str(e))
            return ProcessingOutcome(
                submission_id, "skipped", commit_sha, error_code="CLAIM_FAILED", message=str(e)
            )

        if not claim.claimed or claim.submission is None:
            log.info("Submission already processing, skipping")
            return ProcessingOutcome(
                submission_id, "skipped", commit_sha, message="already processing"
            )

        submission = claim.submission
        record_processing_started()
        started = time.monotonic()
        await self._emit_status(submission, SubmissionStatus.PROCESSING, None)

        try:
            outcome = await self._run(submission, commit_sha, log)
        except PipelineFailure as e:
            outcome = await self._fail(submission, commit_sha, e.error_code, e.message, log)
        except Exception as e:
            capture_pipeline_error(e, submission_id, stage="process")
            log.exception("Unexpected pipeline error")
            outcome = await self._fail(submission, commit_sha, "UNKNOWN_ERROR", str(e), log)

        record_processing_finished(outcome.status, time.monotonic() - started)
        return outcome

    async def _run(self, submission: Submission, commit_sha: str, log: Any) -> ProcessingOutcome:
        repo_info = parse_github_url(submission.github_url)
        if repo_info is None:
            raise PipelineFailure(
                "INVALID_REPOSITORY", f"Could not parse repository URL: {submission.github_url}"
            )
        owner, repo = repo_info
        log = log.bind(repo=f"{owner}/{repo}")

        context = await self._review_context(submission.assignment.course_id)

        try:
            fetched = await self.fetcher.fetch_changed_files(owner, repo, commit_sha)
        except CodeHostError as e:
            raise PipelineFailure(
                f"GITHUB_{e.kind.value.upper()}", f"Failed to get commit files: {e.message}"
            ) from e

        if fetched.nothing_to_analyze:
            log.info("No code files to analyze in commit", files_in_commit=fetched.files_in_commit)
            async with get_db_context(self.session_factory) as session:
                await SubmissionRepository(session).update_status(
                    submission.id, SubmissionStatus.COMPLETED, commit_sha
                )
            await self._emit_status(submission, SubmissionStatus.COMPLETED, SubmissionStatus.PROCESSING)
            return ProcessingOutcome(
                submission.id,
                SubmissionStatus.COMPLETED.value,
                commit_sha,
                message="No code files to analyze",
            )

        if fetched.all_unreadable:
            raise PipelineFailure("NO_READABLE_FILES", "No file contents could be retrieved")

        log.info(
            "Analyzing files",
            files=len(fetched.files),
            unreadable=len(fetched.files_unreadable),
        )

        try:
            result = await self.orchestrator.analyze_with_retry(fetched.files, context)
        except AnalysisServiceError as e:
            raise PipelineFailure(f"AI_{e.kind.value.upper()}", f"AI analysis failed: {e.message}") from e
        except EmptyAnalysisError as e:
            raise PipelineFailure("AI_ANALYSIS_EMPTY", str(e)) from e

        score = result.score

        async with get_db_context(self.session_factory) as session:
            persisted = await FeedbackService(session).replace_feedback(submission, result.feedback)
            await SubmissionRepository(session).update_with_score(
                submission.id, commit_sha, score, SubmissionStatus.ANALYZED
            )

        for severity, count in result.summary.by_severity.items():
            if count:
                record_feedback(severity, count)

        course_id = submission.assignment.course_id
        effects: list[Effect] = [
            *persisted.effects,
            LiveUpdate(
                course_id=course_id,
                event=SUBMISSION_ANALYZED,
                payload={
                    **self._submission_payload(submission),
                    "ai_score": score,
                    "status": SubmissionStatus.ANALYZED.value,
                },
            ),
            self._status_update(submission, SubmissionStatus.ANALYZED, SubmissionStatus.PROCESSING),
        ]
        await dispatch_effects(effects, self.cache, self.broker)

        log.info(
            "Analysis complete",
            score=score,
            feedback_items=len(persisted.saved),
            files_analyzed=result.summary.files_analyzed,
            files_failed=result.summary.files_failed,
        )
        return ProcessingOutcome(
            submission.id,
            SubmissionStatus.ANALYZED.value,
            commit_sha,
            score=score,
            feedback_count=len(persisted.saved),
        )

    async def _review_context(self, course_id: int) -> ReviewContext:
        async with get_db_context(self.session_factory) as session:
            course_settings = await SubmissionRepository(session).get_course_settings(course_id)
        if course_settings is None:
            return ReviewContext()
        return ReviewContext(rubric=course_settings.rubric, guidelines=course_settings.ai_guidelines)

    async def _fail(
        self,
        submission: Submission,
        commit_sha: str,
        error_code: str,
        message: str,
        log: Any,
    ) -> ProcessingOutcome:
        try:
            async with get_db_context(self.session_factory) as session:
                await SubmissionRepository(session).mark_failed(
                    submission.id, commit_sha, message, error_code
                )
        except Exception as e:
            log.error("Could not mark submission failed", error=str(e), error_code=error_code)
        else:
            await self._emit_status(submission, SubmissionStatus.FAILED, SubmissionStatus.PROCESSING)

        return ProcessingOutcome(
            submission.id,
            SubmissionStatus.FAILED.value,
            commit_sha,
            error_code=error_code,
            message=message,
        )

    @staticmethod
    def _submission_payload(submission: Submission) -> dict[str, Any]:
        return {
            "submission_id": submission.id,
            "student_id": submission.user_id,
            "assignment_id": submission.assignment_id,
        }

    def _status_update(
        self,
        submission: Submission,
        status: SubmissionStatus,
        previous: SubmissionStatus | None,
    ) -> LiveUpdate:
        return LiveUpdate(
            course_id=submission.assignment.course_id,
            event=SUBMISSION_STATUS,
            payload={
                **self._submission_payload(submission),
                "status": status.value,
                "previous_status": previous.value if previous else None,
            },
        )

    async def _emit_status(
        self,
        submission: Submission,
        status: SubmissionStatus,
        previous: SubmissionStatus | None,
    ) -> None:
        await dispatch_effects([self._status_update(submission, status, previous)], None, self.broker)
