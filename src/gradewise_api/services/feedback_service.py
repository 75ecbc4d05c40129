"""Feedback persistence and its post-commit side effects."""

from dataclasses import dataclass, field
from typing import Any, Sequence, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from gradewise_api.db.models import Feedback, Submission
from gradewise_api.db.repositories import FeedbackRepository
from gradewise_core.analysis.feedback import FeedbackDraft
from gradewise_core.analysis.scoring import average_severity
from gradewise_core.cache import StatsCache
from gradewise_core.events import FEEDBACK_ADDED, LiveUpdateBroker

logger = structlog.get_logger()


@dataclass
class CacheInvalidation:
    """Drop cached statistics for a course and an assignment."""

    course_id: int
    assignment_id: int


@dataclass
class LiveUpdate:
    """Push an event to the live subscribers of a course."""

    course_id: int
    event: str
    payload: dict[str, Any] = field(default_factory=dict)


Effect = Union[CacheInvalidation, LiveUpdate]


@dataclass
class PersistResult:
    """Saved rows plus the effects to run once the transaction commits."""

    saved: list[Feedback]
    effects: list[Effect]


class FeedbackService:
    """Replaces AI feedback for a submission.

    The service does not commit. Effects are returned instead of executed so
    that the caller can run them only after its transaction has committed.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.repository = FeedbackRepository(session)

    async def replace_feedback(
        self,
        submission: Submission,
        items: Sequence[FeedbackDraft],
    ) -> PersistResult:
        saved = await self.repository.replace_ai_feedback(submission.id, items)
        course_id = submission.assignment.course_id

        logger.info(
            "Feedback saved",
            submission_id=submission.id,
            count=len(saved),
        )

        avg = average_severity(items)
        effects: list[Effect] = [
            CacheInvalidation(course_id=course_id, assignment_id=submission.assignment_id),
            LiveUpdate(
                course_id=course_id,
                event=FEEDBACK_ADDED,
                payload={
                    "submission_id": submission.id,
                    "student_id": submission.user_id,
                    "assignment_id": submission.assignment_id,
                    "feedback_count": len(saved),
                    "avg_severity": round(avg, 2) if avg is not None else None,
                },
            ),
        ]
        return PersistResult(saved=saved, effects=effects)

    async def list_feedback(
        self,
        submission_id: int,
        reviewer: str | None = None,
        severity: str | None = None,
    ) -> list[Feedback]:
        return await self.repository.list_feedback(submission_id, reviewer, severity)


async def dispatch_effects(
    effects: Sequence[Effect],
    cache: StatsCache | None,
    broker: LiveUpdateBroker | None,
) -> int:
    """Run effects one by one. A failing effect is logged and skipped.

    Returns the number of effects that ran successfully.
    """
    succeeded = 0
    for effect in effects:
        try:
            if isinstance(effect, CacheInvalidation):
                if cache is None:
                    continue
                await cache.invalidate_course(effect.course_id)
                await cache.invalidate_assignment(effect.assignment_id)
            elif isinstance(effect, LiveUpdate):
                if broker is None:
                    continue
                await broker.emit(effect.course_id, effect.event, effect.payload)
            succeeded += 1
        except Exception as e:
            logger.warning(
                "Post-commit effect failed",
                effect=type(effect).__name__,
                course_id=effect.course_id,
                error=str(e),
            )
    return succeeded
