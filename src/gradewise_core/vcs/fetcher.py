"""Fetch the analyzable files changed by a commit."""

import structlog

from gradewise_core.errors import CodeHostError, is_code_host_retryable
from gradewise_core.retry import CODE_HOST_RETRY_CONFIG, RetryCallback, RetryConfig, with_retry
from gradewise_core.vcs.base import ChangedFile, FetchResult
from gradewise_core.vcs.filters import detect_language, filter_code_files
from gradewise_core.vcs.github import GitHubClient

logger = structlog.get_logger()


class SourceFetcher:
    """Retrieves changed source files for a commit.

    Only files touched by the commit are considered, never a full tree walk.
    Removed files, denylisted paths and non-source extensions are dropped
    before any content is downloaded.
    """

    def __init__(
        self,
        client: GitHubClient,
        retry_config: RetryConfig | None = None,
        on_retry: RetryCallback | None = None,
    ) -> None:
        self.client = client
        self.retry_config = retry_config or CODE_HOST_RETRY_CONFIG
        self.on_retry = on_retry

    async def fetch_changed_files(self, owner: str, repo: str, commit_sha: str) -> FetchResult:
        """Fetch content for every analyzable file in the commit.

        Raises:
            CodeHostError: listing the commit failed after retries. A file
                whose content cannot be read is dropped instead.
        """
        commit_files = await with_retry(
            lambda: self.client.get_commit_files(owner, repo, commit_sha),
            config=self.retry_config,
            is_retryable=is_code_host_retryable,
            on_retry=self.on_retry,
            name="get_commit_files",
        )

        selected = filter_code_files(commit_files)
        result = FetchResult(files_in_commit=len(commit_files), files_selected=len(selected))

        if not selected:
            logger.info(
                "No code files to analyze in commit",
                repo=f"{owner}/{repo}",
                commit=commit_sha[:7],
                files_in_commit=len(commit_files),
            )
            return result

        for commit_file in selected:
            path = commit_file.path
            try:
                content = await with_retry(
                    lambda: self.client.get_file_content(owner, repo, path, commit_sha),
                    config=self.retry_config,
                    is_retryable=is_code_host_retryable,
                    on_retry=self.on_retry,
                    name="get_file_content",
                )
            except CodeHostError as e:
                logger.warning(
                    "Could not fetch file content",
                    repo=f"{owner}/{repo}",
                    path=path,
                    kind=e.kind.value,
                    error=e.message,
                )
                result.files_unreadable.append(path)
                continue

            result.files.append(
                ChangedFile(
                    path=path,
                    status=commit_file.status,
                    content=content,
                    language=detect_language(path),
                )
            )

        logger.info(
            "Files retrieved",
            repo=f"{owner}/{repo}",
            retrieved=len(result.files),
            selected=len(selected),
        )
        return result
