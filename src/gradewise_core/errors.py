"""Error taxonomy for calls to remote services.

Every remote failure is converted into a ``RemoteServiceError`` at the call
boundary, so retry predicates can match on ``kind`` instead of digging into
transport-specific exception shapes.
"""

from __future__ import annotations

from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from enum import Enum

import httpx


class ErrorKind(str, Enum):
    """Classification of a remote failure."""

    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NETWORK = "network"
    SERVER_ERROR = "server_error"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    BAD_REQUEST = "bad_request"
    INVALID_RESPONSE = "invalid_response"


class GradewiseError(Exception):
    """Base class for all domain errors."""


class RemoteServiceError(GradewiseError):
    """A failed call to an external service."""

    service: str = "remote"

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value!r}, "
            f"status_code={self.status_code!r}, message={self.message!r})"
        )


class CodeHostError(RemoteServiceError):
    """Failure talking to the code-hosting API (GitHub)."""

    service = "github"


class AnalysisServiceError(RemoteServiceError):
    """Failure talking to the LLM analysis API."""

    service = "llm"


class EmptyAnalysisError(GradewiseError):
    """No file in a batch produced a usable analysis response."""


CODE_HOST_RETRYABLE_KINDS = frozenset({
    ErrorKind.RATE_LIMITED,
    ErrorKind.TIMEOUT,
    ErrorKind.NETWORK,
    ErrorKind.SERVER_ERROR,
})

ANALYSIS_RETRYABLE_KINDS = frozenset({
    ErrorKind.RATE_LIMITED,
    ErrorKind.TIMEOUT,
    ErrorKind.NETWORK,
    ErrorKind.SERVER_ERROR,
})


def is_code_host_retryable(error: BaseException) -> bool:
    """Retry GitHub calls on rate limits, timeouts and 5xx, never on 404/401."""
    return isinstance(error, CodeHostError) and error.kind in CODE_HOST_RETRYABLE_KINDS


def is_analysis_retryable(error: BaseException) -> bool:
    """Retry LLM calls on rate limits, timeouts and 5xx, never on bad requests."""
    return isinstance(error, AnalysisServiceError) and error.kind in ANALYSIS_RETRYABLE_KINDS


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header (seconds or HTTP date) into seconds."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def kind_for_status(status_code: int, rate_limit_exhausted: bool = False) -> ErrorKind:
    """Map an HTTP status code to an error kind."""
    if status_code == 429 or (status_code == 403 and rate_limit_exhausted):
        return ErrorKind.RATE_LIMITED
    if status_code == 401:
        return ErrorKind.UNAUTHORIZED
    if status_code == 403:
        return ErrorKind.FORBIDDEN
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code == 408:
        return ErrorKind.TIMEOUT
    if status_code == 409:
        return ErrorKind.CONFLICT
    if status_code >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.BAD_REQUEST


def code_host_error_from_response(response: httpx.Response) -> CodeHostError:
    """Build a CodeHostError from a non-2xx GitHub response."""
    exhausted = response.headers.get("x-ratelimit-remaining") == "0"
    kind = kind_for_status(response.status_code, rate_limit_exhausted=exhausted)
    return CodeHostError(
        kind,
        f"GitHub API returned {response.status_code} for {response.request.url.path}",
        status_code=response.status_code,
        retry_after=parse_retry_after(response.headers.get("retry-after")),
    )


def code_host_error_from_transport(exc: httpx.TransportError) -> CodeHostError:
    """Build a CodeHostError from an httpx transport failure."""
    kind = ErrorKind.TIMEOUT if isinstance(exc, httpx.TimeoutException) else ErrorKind.NETWORK
    return CodeHostError(kind, f"GitHub API request failed: {exc}")
