"""LLM code review: prompting, response parsing and scoring."""

from gradewise_core.analysis.feedback import (
    MAX_ITEMS_PER_FILE,
    FeedbackDraft,
    FeedbackType,
    Severity,
    normalize_item,
    parse_analysis_response,
    parse_feedback,
)
from gradewise_core.analysis.llm import ChatClient, LLMConfig, OpenAIChatClient
from gradewise_core.analysis.orchestrator import (
    AnalysisOrchestrator,
    AnalysisResult,
    AnalysisSummary,
)
from gradewise_core.analysis.prompts import ReviewContext, build_system_prompt, build_user_prompt
from gradewise_core.analysis.scoring import average_severity, calculate_score

__all__ = [
    "MAX_ITEMS_PER_FILE",
    "AnalysisOrchestrator",
    "AnalysisResult",
    "AnalysisSummary",
    "ChatClient",
    "FeedbackDraft",
    "FeedbackType",
    "LLMConfig",
    "OpenAIChatClient",
    "ReviewContext",
    "Severity",
    "average_severity",
    "build_system_prompt",
    "build_user_prompt",
    "calculate_score",
    "normalize_item",
    "parse_analysis_response",
    "parse_feedback",
]
