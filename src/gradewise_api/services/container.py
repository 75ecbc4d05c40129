"""Wiring of the pipeline's long-lived collaborators."""

from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gradewise_api.config import Settings, settings as default_settings
from gradewise_api.db.database import async_session_maker
from gradewise_api.middleware.metrics import record_retry
from gradewise_api.services.processor import SubmissionProcessor
from gradewise_core.analysis.llm import ChatClient, LLMConfig, OpenAIChatClient
from gradewise_core.analysis.orchestrator import AnalysisOrchestrator
from gradewise_core.cache import CacheBackendType, CacheConfig, StatsCache
from gradewise_core.events import LiveUpdateBroker
from gradewise_core.retry import RetryConfig
from gradewise_core.vcs.base import VCSConfig
from gradewise_core.vcs.fetcher import SourceFetcher
from gradewise_core.vcs.github import GitHubClient


@dataclass
class Services:
    """Everything a request handler or background task needs."""

    session_factory: async_sessionmaker[AsyncSession]
    github: GitHubClient
    llm: ChatClient
    cache: StatsCache
    broker: LiveUpdateBroker
    processor: SubmissionProcessor

    async def close(self) -> None:
        await self.github.close()
        close = getattr(self.llm, "close", None)
        if close is not None:
            await close()
        backend_close = getattr(self.cache.backend, "close", None)
        if backend_close is not None:
            await backend_close()


def build_services(
    config: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    github: GitHubClient | None = None,
    llm: ChatClient | None = None,
    cache: StatsCache | None = None,
    broker: LiveUpdateBroker | None = None,
    code_host_retry: RetryConfig | None = None,
    analysis_retry: RetryConfig | None = None,
) -> Services:
    """Build the service graph from settings; any piece can be supplied."""
    config = config or default_settings

    github = github or GitHubClient(
        VCSConfig(
            base_url=config.GITHUB_API_URL,
            token=config.GITHUB_TOKEN,
            timeout_seconds=config.GITHUB_TIMEOUT_SECONDS,
        )
    )
    llm = llm or OpenAIChatClient(
        LLMConfig(
            model=config.OPENAI_MODEL,
            api_key=config.OPENAI_API_KEY,
            base_url=config.OPENAI_BASE_URL,
            temperature=config.LLM_TEMPERATURE,
            max_tokens=config.LLM_MAX_TOKENS,
            timeout_seconds=config.LLM_TIMEOUT_SECONDS,
        )
    )
    cache = cache or StatsCache.from_config(
        CacheConfig(
            backend=CacheBackendType(config.CACHE_BACKEND),
            redis_url=config.REDIS_URL,
            ttl_seconds=config.CACHE_TTL_SECONDS,
        )
    )
    broker = broker or LiveUpdateBroker()
    session_factory = session_factory or async_session_maker

    code_host_retry = code_host_retry or RetryConfig(
        max_attempts=config.RETRY_MAX_ATTEMPTS,
        base_delay=config.RETRY_BASE_DELAY_SECONDS,
        max_delay=config.RETRY_MAX_DELAY_SECONDS,
    )
    # LLM overload takes longer to clear than a GitHub rate limit
    analysis_retry = analysis_retry or RetryConfig(
        max_attempts=config.RETRY_MAX_ATTEMPTS,
        base_delay=config.RETRY_BASE_DELAY_SECONDS * 2,
        max_delay=config.RETRY_MAX_DELAY_SECONDS * 3,
    )

    processor = SubmissionProcessor(
        session_factory=session_factory,
        fetcher=SourceFetcher(github, retry_config=code_host_retry, on_retry=record_retry),
        orchestrator=AnalysisOrchestrator(
            llm,
            file_delay_seconds=config.ANALYSIS_FILE_DELAY_SECONDS,
            retry_config=analysis_retry,
            on_retry=record_retry,
        ),
        cache=cache,
        broker=broker,
    )
    return Services(
        session_factory=session_factory,
        github=github,
        llm=llm,
        cache=cache,
        broker=broker,
        processor=processor,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the app's service container."""
    return request.app.state.services
