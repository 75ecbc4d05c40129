"""Submission and feedback repositories."""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Sequence

import structlog
from sqlalchemy import case, delete, desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gradewise_api.db.models import (
    CourseSettings,
    Feedback,
    Reviewer,
    Submission,
    SubmissionStatus,
    utcnow,
)
from gradewise_api.db.repository import BaseRepository
from gradewise_core.analysis.feedback import FeedbackDraft
from gradewise_core.vcs.filters import canonical_repository_url

logger = structlog.get_logger()

DEFAULT_FAILED_MAX_AGE_HOURS = 24
MAX_FAILED_MAX_AGE_HOURS = 168


def clamp_max_age(value: Any) -> int:
    """Clamp a failed-list window to [1, 168] hours; junk means 24."""
    try:
        hours = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_FAILED_MAX_AGE_HOURS
    if hours == 0:
        return DEFAULT_FAILED_MAX_AGE_HOURS
    return min(max(hours, 1), MAX_FAILED_MAX_AGE_HOURS)


@dataclass
class ClaimResult:
    """Outcome of trying to move a submission into processing."""

    claimed: bool
    submission: Submission | None = None


class SubmissionRepository(BaseRepository[Submission]):
    """Repository for Submission entities."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Submission)

    def _with_assignment(self):
        return select(Submission).options(selectinload(Submission.assignment))

    async def get_with_assignment(self, id: int) -> Submission | None:
        """Get a submission with its assignment (and so course id) loaded."""
        query = (
            self._with_assignment()
            .where(Submission.id == id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_by_repository(
        self,
        full_name: str,
        branch: str | None = None,
    ) -> Submission | None:
        """Find the submission linked to a repository.

        An exact URL match wins over a case-insensitive one. With a branch,
        rows tagged with that branch are preferred, then rows without a
        branch, then any other; ties go to the most recently updated row.
        """
        url = canonical_repository_url(full_name)

        order: list[Any] = []
        if branch:
            order.append(
                case(
                    (Submission.branch == branch, 0),
                    (Submission.branch.is_(None), 1),
                    else_=2,
                )
            )
        order.append(desc(Submission.updated_at))

        for condition in (
            Submission.github_url == url,
            func.lower(Submission.github_url) == url.lower(),
        ):
            query = self._with_assignment().where(condition).order_by(*order).limit(1)
            result = await self.session.execute(query)
            submission = result.scalar_one_or_none()
            if submission is not None:
                return submission

        logger.info("No submission for repository", repo=full_name, branch=branch)
        return None

    async def list_by_repository(self, full_name: str) -> list[Submission]:
        """All submissions for a repository, across branches."""
        url = canonical_repository_url(full_name)
        query = (
            self._with_assignment()
            .where(func.lower(Submission.github_url) == url.lower())
            .order_by(desc(Submission.updated_at))
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def try_start_processing(
        self,
        submission_id: int,
        commit_sha: str,
        branch: str | None = None,
    ) -> ClaimResult:
        """Atomically claim a submission for processing.

        One conditional UPDATE, committed straight away: of any number of
        concurrent callers at most one sees ``claimed=True``.
        """
        stmt = (
            update(Submission)
            .where(
                Submission.id == submission_id,
                Submission.status != SubmissionStatus.PROCESSING.value,
            )
            .values(
                status=SubmissionStatus.PROCESSING.value,
                commit_sha=commit_sha,
                error_code=None,
                error_message=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()

        if result.rowcount == 0:
            return ClaimResult(claimed=False)

        submission = await self.get_with_assignment(submission_id)
        logger.debug(
            "Submission claimed",
            submission_id=submission_id,
            commit=commit_sha[:7],
            branch=branch,
        )
        return ClaimResult(claimed=True, submission=submission)

    async def _update(self, submission_id: int, **values: Any) -> bool:
        values.setdefault("updated_at", utcnow())
        stmt = (
            update(Submission)
            .where(Submission.id == submission_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def update_status(
        self,
        submission_id: int,
        status: SubmissionStatus | str,
        commit_sha: str | None = None,
    ) -> bool:
        values: dict[str, Any] = {"status": SubmissionStatus(status).value}
        if commit_sha is not None:
            values["commit_sha"] = commit_sha
        return await self._update(submission_id, **values)

    async def mark_failed(
        self,
        submission_id: int,
        commit_sha: str | None,
        error_message: str,
        error_code: str = "UNKNOWN_ERROR",
    ) -> bool:
        logger.error(
            "Submission failed",
            submission_id=submission_id,
            error_code=error_code,
            error=error_message,
        )
        values: dict[str, Any] = {
            "status": SubmissionStatus.FAILED.value,
            "error_code": error_code,
            "error_message": error_message[:2000],
        }
        if commit_sha is not None:
            values["commit_sha"] = commit_sha
        return await self._update(submission_id, **values)

    async def update_with_score(
        self,
        submission_id: int,
        commit_sha: str,
        ai_score: int,
        status: SubmissionStatus | str = SubmissionStatus.ANALYZED,
    ) -> bool:
        return await self._update(
            submission_id,
            commit_sha=commit_sha,
            ai_score=ai_score,
            status=SubmissionStatus(status).value,
            error_code=None,
            error_message=None,
        )

    async def get_for_retry(self, submission_id: int) -> Submission | None:
        return await self.get_with_assignment(submission_id)

    async def list_failed(self, max_age_hours: Any = DEFAULT_FAILED_MAX_AGE_HOURS) -> list[Submission]:
        """Failed submissions updated within the window, newest first."""
        hours = clamp_max_age(max_age_hours)
        cutoff = utcnow() - timedelta(hours=hours)
        query = (
            self._with_assignment()
            .where(
                Submission.status == SubmissionStatus.FAILED.value,
                Submission.updated_at > cutoff,
            )
            .order_by(desc(Submission.updated_at))
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_course_settings(self, course_id: int) -> CourseSettings | None:
        result = await self.session.execute(
            select(CourseSettings).where(CourseSettings.course_id == course_id)
        )
        return result.scalar_one_or_none()


_SEVERITY_RANK = case(
    (Feedback.severity == "critical", 4),
    (Feedback.severity == "high", 3),
    (Feedback.severity == "medium", 2),
    (Feedback.severity == "low", 1),
    else_=0,
)


class FeedbackRepository(BaseRepository[Feedback]):
    """Repository for Feedback entities."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Feedback)

    async def replace_ai_feedback(
        self,
        submission_id: int,
        items: Sequence[FeedbackDraft],
    ) -> list[Feedback]:
        """Delete every AI item for the submission, then insert ``items``.

        Teacher feedback is left alone. Runs inside the caller's transaction.
        """
        await self.session.execute(
            delete(Feedback).where(
                Feedback.submission_id == submission_id,
                Feedback.reviewer == Reviewer.AI.value,
            )
        )

        return [
            await self.add(
                submission_id=submission_id,
                content=item.content,
                reviewer=Reviewer.AI.value,
                severity=item.severity.value,
                line_number=item.line_number,
                suggestion=item.suggestion,
                type=item.type.value,
                file_path=item.file_path,
            )
            for item in items
        ]

    async def list_feedback(
        self,
        submission_id: int,
        reviewer: str | None = None,
        severity: str | None = None,
    ) -> list[Feedback]:
        """Feedback for a submission, most severe first, then by line.

        ``reviewer`` of None or "all" means every reviewer.
        """
        filters: dict[str, Any] = {"submission_id": submission_id}
        if reviewer and reviewer != "all":
            filters["reviewer"] = reviewer
        if severity:
            filters["severity"] = severity
        return await self.find(
            limit=None,
            order_by=(
                desc(_SEVERITY_RANK),
                Feedback.line_number.asc().nulls_last(),
                Feedback.created_at.asc(),
                Feedback.id.asc(),
            ),
            **filters,
        )
