"""Feedback types and parsing of LLM review responses.

Parsing is total: any response, however malformed, becomes a (possibly
empty) list of well-typed :class:`FeedbackDraft` records. A bad response for
one file must never abort the analysis of a whole submission.
"""

import json
import re
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger()

MAX_ITEMS_PER_FILE = 10
MISSING_CONTENT_PLACEHOLDER = "No details available"


class Severity(str, Enum):
    """Severity of a feedback item, lowest first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FeedbackType(str, Enum):
    """Category of a feedback item."""

    CODE_QUALITY = "code_quality"
    BEST_PRACTICES = "best_practices"
    SECURITY = "security"
    PERFORMANCE = "performance"
    MAINTAINABILITY = "maintainability"
    DOCUMENTATION = "documentation"
    ERROR_HANDLING = "error_handling"
    NAMING = "naming"
    STRUCTURE = "structure"


# Vocabulary the model may answer with, folded onto the four severities
SEVERITY_MAP = {
    "critical": Severity.CRITICAL,
    "high": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "low": Severity.LOW,
    "info": Severity.LOW,
    "suggestion": Severity.LOW,
}

_FEEDBACK_TYPES = {t.value: t for t in FeedbackType}

_WRAPPING_FENCE_RE = re.compile(r"\A```[A-Za-z0-9_-]*[ \t]*\r?\n?(.*?)```\Z", re.DOTALL)
_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\r?\n?(.*?)```", re.DOTALL)

# Largest value an INTEGER column holds
MAX_LINE_NUMBER = 2**31 - 1


@dataclass
class FeedbackDraft:
    """One normalized feedback item, not yet persisted."""

    content: str
    type: FeedbackType = FeedbackType.CODE_QUALITY
    severity: Severity = Severity.LOW
    line_number: int | None = None
    suggestion: str | None = None
    file_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["severity"] = self.severity.value
        return data


def normalize_severity(value: Any) -> Severity:
    """Map any value onto a severity; unknown or missing becomes LOW."""
    if isinstance(value, Severity):
        return value
    if isinstance(value, str):
        return SEVERITY_MAP.get(value.strip().lower(), Severity.LOW)
    return Severity.LOW


def normalize_type(value: Any) -> FeedbackType:
    """Map any value onto a feedback type; unknown becomes CODE_QUALITY."""
    if isinstance(value, FeedbackType):
        return value
    if isinstance(value, str):
        return _FEEDBACK_TYPES.get(value.strip().lower(), FeedbackType.CODE_QUALITY)
    return FeedbackType.CODE_QUALITY


def normalize_line_number(value: Any) -> int | None:
    """A 1-based line number that fits an INTEGER column, else None."""
    # bool is an int subclass but never a line number
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, int) and 1 <= value <= MAX_LINE_NUMBER:
        return value
    return None


def normalize_content(value: Any) -> str:
    if value is None or value == "":
        return MISSING_CONTENT_PLACEHOLDER
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def normalize_suggestion(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else str(value)


def normalize_item(raw: dict[str, Any], file_path: str | None = None) -> FeedbackDraft:
    """Build a FeedbackDraft from one raw model item, defaulting every field."""
    return FeedbackDraft(
        content=normalize_content(raw.get("content")),
        type=normalize_type(raw.get("type")),
        severity=normalize_severity(raw.get("severity")),
        line_number=normalize_line_number(raw.get("line_number")),
        suggestion=normalize_suggestion(raw.get("suggestion")),
        file_path=file_path,
    )


def strip_code_fence(text: str) -> str:
    """Return the body of the fenced block in ``text``, or the text itself.

    A fence wrapping the whole text wins over the first block found inside
    surrounding prose.
    """
    text = text.strip()
    match = _WRAPPING_FENCE_RE.match(text) or _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return None


def parse_review_items(text: str | None) -> list[dict[str, Any]] | None:
    """Decode the JSON array from a model response.

    The bare text is tried before any fence is stripped, so fences quoted
    inside string values are left alone. Returns None when the response is
    empty, not JSON, or not an array.
    """
    if not text or not isinstance(text, str) or not text.strip():
        return None
    parsed = _loads(text)
    if parsed is None:
        parsed = _loads(strip_code_fence(text))
    if not isinstance(parsed, list):
        return None
    return [item for item in parsed if isinstance(item, dict)]


def parse_feedback(
    text: str | None,
    file_path: str | None = None,
    max_items: int = MAX_ITEMS_PER_FILE,
) -> list[FeedbackDraft] | None:
    """Parse a model response into at most ``max_items`` feedback drafts.

    Returns None, after logging a warning, when the response is unusable.
    An empty array is a usable response and yields ``[]``.
    """
    items = parse_review_items(text)
    if items is None:
        logger.warning(
            "Could not parse analysis response",
            file_path=file_path,
            preview=(text or "")[:200],
        )
        return None
    return [normalize_item(item, file_path) for item in items[:max_items]]


def parse_analysis_response(
    text: str | None,
    file_path: str | None = None,
    max_items: int = MAX_ITEMS_PER_FILE,
) -> list[FeedbackDraft]:
    """Like :func:`parse_feedback` but never None: unusable responses yield ``[]``."""
    return parse_feedback(text, file_path, max_items) or []
