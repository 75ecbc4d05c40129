"""Retry utilities for resilient remote API calls.

This module provides exponential backoff with jitter for transient failures
in GitHub and LLM API calls. Whether a failure is worth retrying is decided
by a predicate supplied by the caller, so each remote system keeps its own
classification.
"""

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")

RetryPredicate = Callable[[BaseException], bool]
RetryCallback = Callable[[BaseException, int, float], None]


class RetryConfig:
    """Backoff schedule for one remote system.

    Args:
        max_attempts: Total tries, the first call included (at least 1)
        base_delay: Wait before the first retry, in seconds
        max_delay: Ceiling for any single wait, hints included
        exponential_base: Growth factor between consecutive waits
        jitter: Spread each wait by up to 25% either way
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
    ) -> None:
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    def calculate_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Seconds to wait before retry number ``attempt + 1``.

        A server ``retry_after`` hint can lengthen the wait but never past
        ``max_delay``.
        """
        delay = min(
            self.base_delay * (self.exponential_base ** attempt),
            self.max_delay,
        )
        if self.jitter:
            # Up to 25% either way
            delay = delay * (0.75 + random.random() * 0.5)
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(delay, self.max_delay)


# GitHub: a handful of quick attempts, rate limits usually reset fast
CODE_HOST_RETRY_CONFIG = RetryConfig(
    max_attempts=3,
    base_delay=1.0,
    max_delay=10.0,
)

# LLM: longer waits, upstream overload can take a while to clear
ANALYSIS_RETRY_CONFIG = RetryConfig(
    max_attempts=3,
    base_delay=2.0,
    max_delay=30.0,
)


def _always(_: BaseException) -> bool:
    return True


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    is_retryable: RetryPredicate | None = None,
    on_retry: RetryCallback | None = None,
    name: str | None = None,
) -> T:
    """Run ``operation`` with retries and exponential backoff.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        config: Retry configuration
        is_retryable: Decides whether a failure is transient. Defaults to
            retrying every ``Exception``.
        on_retry: Called with ``(error, attempt, delay)`` before each wait
        name: Operation name used in log events

    Returns:
        The operation's result

    Raises:
        The last error once attempts are exhausted, or immediately when the
        error is not retryable.
    """
    config = config or RetryConfig()
    is_retryable = is_retryable or _always
    name = name or getattr(operation, "__name__", "operation")

    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            attempt += 1
            retryable = is_retryable(e)
            if attempt >= config.max_attempts or not retryable:
                if retryable:
                    logger.error(
                        "All retry attempts exhausted",
                        operation=name,
                        attempts=attempt,
                        final_error=str(e),
                    )
                raise

            delay = config.calculate_delay(attempt - 1, getattr(e, "retry_after", None))
            logger.warning(
                "Retry after error",
                operation=name,
                attempt=attempt,
                max_attempts=config.max_attempts,
                delay=round(delay, 3),
                error=str(e),
            )
            if on_retry is not None:
                on_retry(e, attempt, delay)
            await asyncio.sleep(delay)
