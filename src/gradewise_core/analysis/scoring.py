"""Deterministic scoring of automated feedback."""

from typing import Iterable

from gradewise_core.analysis.feedback import FeedbackDraft, Severity, normalize_severity

MAX_SCORE = 100
MIN_SCORE = 0

SEVERITY_PENALTIES = {
    Severity.CRITICAL: 20,
    Severity.HIGH: 10,
    Severity.MEDIUM: 5,
    Severity.LOW: 2,
}

# Used when a severity cannot be recognized at all
DEFAULT_PENALTY = SEVERITY_PENALTIES[Severity.LOW]

# Numeric weight per severity, used for the mean severity of a feedback set
SEVERITY_WEIGHTS = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


def _severity_of(item: FeedbackDraft | dict | str) -> Severity:
    if isinstance(item, FeedbackDraft):
        return item.severity
    if isinstance(item, dict):
        return normalize_severity(item.get("severity"))
    return normalize_severity(item)


def calculate_score(feedback: Iterable[FeedbackDraft | dict | str]) -> int:
    """Score a feedback list: 100 minus a penalty per item, clamped to [0, 100]."""
    penalty = sum(SEVERITY_PENALTIES.get(_severity_of(item), DEFAULT_PENALTY) for item in feedback)
    return round(max(MIN_SCORE, min(MAX_SCORE, MAX_SCORE - penalty)))


def average_severity(feedback: Iterable[FeedbackDraft | dict | str]) -> float | None:
    """Mean severity weight (1 = low .. 4 = critical), or None for no feedback."""
    weights = [SEVERITY_WEIGHTS[_severity_of(item)] for item in feedback]
    if not weights:
        return None
    return round(sum(weights) / len(weights), 2)
