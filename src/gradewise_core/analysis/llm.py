"""Chat-completion client for the LLM analysis service."""

import os
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import openai
import structlog

from gradewise_core.errors import (
    AnalysisServiceError,
    ErrorKind,
    kind_for_status,
    parse_retry_after,
)

logger = structlog.get_logger()


class ChatClient(Protocol):
    """Anything that can turn a system and user prompt into response text."""

    async def complete(self, system_prompt: str, user_prompt: str) -> str: ...


@dataclass
class LLMConfig:
    """Configuration for the analysis LLM."""

    model: str = "gpt-4o-mini"
    api_key: str = ""
    base_url: str | None = None

    # Low temperature for consistent output
    temperature: float = 0.3
    max_tokens: int = 2000
    timeout_seconds: float = 120.0

    def __post_init__(self) -> None:
        """Load the API key from environment if not provided."""
        if not self.api_key:
            self.api_key = os.environ.get("OPENAI_API_KEY", "")


def analysis_error_from_openai(exc: Exception) -> AnalysisServiceError:
    """Convert an OpenAI SDK exception into the analysis error taxonomy."""
    if isinstance(exc, openai.APITimeoutError):
        return AnalysisServiceError(ErrorKind.TIMEOUT, "LLM request timed out")
    if isinstance(exc, openai.APIConnectionError):
        return AnalysisServiceError(ErrorKind.NETWORK, f"LLM connection failed: {exc}")
    if isinstance(exc, openai.APIStatusError):
        return AnalysisServiceError(
            kind_for_status(exc.status_code),
            f"LLM API returned {exc.status_code}: {exc.message}",
            status_code=exc.status_code,
            retry_after=parse_retry_after(exc.response.headers.get("retry-after")),
        )
    return AnalysisServiceError(ErrorKind.INVALID_RESPONSE, f"LLM call failed: {exc}")


class OpenAIChatClient:
    """Calls the OpenAI chat-completions API.

    The SDK's own retries are disabled; retry is owned by the caller's
    retry policy so that it can be applied to the whole batch.
    """

    def __init__(
        self,
        config: LLMConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or LLMConfig()
        self._http_client = http_client
        self._client: openai.AsyncOpenAI | None = None

    def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            if not self.config.api_key:
                raise AnalysisServiceError(
                    ErrorKind.UNAUTHORIZED, "OPENAI_API_KEY is not configured"
                )
            kwargs: dict[str, Any] = {
                "api_key": self.config.api_key,
                "timeout": self.config.timeout_seconds,
                "max_retries": 0,
            }
            if self.config.base_url:
                kwargs["base_url"] = self.config.base_url
            if self._http_client is not None:
                kwargs["http_client"] = self._http_client
            self._client = openai.AsyncOpenAI(**kwargs)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Send one chat request and return the assistant text ("" if none)."""
        client = self._get_client()
        start_time = time.time()

        try:
            response = await client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
        except openai.OpenAIError as e:
            error = analysis_error_from_openai(e)
            logger.error(
                "LLM API call failed",
                model=self.config.model,
                kind=error.kind.value,
                status=error.status_code,
            )
            raise error from e

        elapsed_ms = (time.time() - start_time) * 1000
        tokens = response.usage.total_tokens if response.usage else 0
        logger.info(
            "LLM API call completed",
            model=self.config.model,
            tokens=tokens,
            latency_ms=round(elapsed_ms, 1),
        )

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
