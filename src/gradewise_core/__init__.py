"""Gradewise core: framework-free pieces of the submission analysis pipeline."""

from gradewise_core.cache import CacheBackendType, CacheConfig, StatsCache
from gradewise_core.errors import (
    AnalysisServiceError,
    CodeHostError,
    EmptyAnalysisError,
    ErrorKind,
    GradewiseError,
    RemoteServiceError,
    is_analysis_retryable,
    is_code_host_retryable,
)
from gradewise_core.events import LiveEvent, LiveUpdateBroker
from gradewise_core.retry import RetryConfig, with_retry

__version__ = "0.1.0"

__all__ = [
    "AnalysisServiceError",
    "CacheBackendType",
    "CacheConfig",
    "CodeHostError",
    "EmptyAnalysisError",
    "ErrorKind",
    "GradewiseError",
    "LiveEvent",
    "LiveUpdateBroker",
    "RemoteServiceError",
    "RetryConfig",
    "StatsCache",
    "is_analysis_retryable",
    "is_code_host_retryable",
    "with_retry",
]
