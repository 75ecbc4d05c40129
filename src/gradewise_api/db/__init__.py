"""Database module exports."""

from gradewise_api.db.database import Base, engine, get_db, get_db_context
from gradewise_api.db.models import (
    Assignment,
    Course,
    CourseSettings,
    Feedback,
    Reviewer,
    Submission,
    SubmissionStatus,
    User,
)

__all__ = [
    "Base",
    "engine",
    "get_db",
    "get_db_context",
    "Assignment",
    "Course",
    "CourseSettings",
    "Feedback",
    "Reviewer",
    "Submission",
    "SubmissionStatus",
    "User",
]
