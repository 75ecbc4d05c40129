"""Tests for fetching the changed files of a commit."""

import pytest

from conftest import status_error
from gradewise_core.errors import CodeHostError, ErrorKind
from gradewise_core.vcs import SourceFetcher


class TestSourceFetcher:
    """Test filtering, content retrieval and retries."""

    @pytest.mark.asyncio
    async def test_fetches_only_code_files(self, fake_github, no_wait_retry) -> None:
        fake_github.add_commit(
            "abc123",
            {
                "src/app.py": "print('hi')\n",
                "package-lock.json": "{}",
                "node_modules/x/index.js": "module.exports = 1",
                "assets/logo.png": "binary",
            },
        )
        fetcher = SourceFetcher(fake_github.client(), retry_config=no_wait_retry)

        result = await fetcher.fetch_changed_files("student", "repo", "abc123")

        assert [f.path for f in result.files] == ["src/app.py"]
        assert result.files[0].language == "python"
        assert result.files[0].content == "print('hi')\n"
        assert result.files_in_commit == 4
        assert result.files_selected == 1
        assert not result.nothing_to_analyze

        content_requests = [r for r in fake_github.requests if "/contents/" in r.url.path]
        assert len(content_requests) == 1

    @pytest.mark.asyncio
    async def test_nothing_to_analyze(self, fake_github, no_wait_retry) -> None:
        fake_github.add_commit("abc123", {"package-lock.json": "{}"})
        fetcher = SourceFetcher(fake_github.client(), retry_config=no_wait_retry)

        result = await fetcher.fetch_changed_files("student", "repo", "abc123")

        assert result.files == []
        assert result.nothing_to_analyze
        assert not result.all_unreadable

    @pytest.mark.asyncio
    async def test_removed_files_are_not_fetched(self, fake_github, no_wait_retry) -> None:
        fake_github.add_commit("abc123", {"src/gone.py": ""}, status="removed")
        fetcher = SourceFetcher(fake_github.client(), retry_config=no_wait_retry)

        result = await fetcher.fetch_changed_files("student", "repo", "abc123")

        assert result.nothing_to_analyze
        assert not any("/contents/" in r.url.path for r in fake_github.requests)

    @pytest.mark.asyncio
    async def test_unreadable_file_is_dropped(self, fake_github, no_wait_retry) -> None:
        fake_github.add_commit("abc123", {"src/a.py": "a = 1\n", "src/b.py": "b = 2\n"})
        fake_github.fail_next("/contents/src/b.py", status_error(404))
        fetcher = SourceFetcher(fake_github.client(), retry_config=no_wait_retry)

        result = await fetcher.fetch_changed_files("student", "repo", "abc123")

        assert [f.path for f in result.files] == ["src/a.py"]
        assert result.files_unreadable == ["src/b.py"]
        assert not result.all_unreadable

    @pytest.mark.asyncio
    async def test_all_files_unreadable(self, fake_github, no_wait_retry) -> None:
        fake_github.add_commit("abc123", {"src/a.py": "a = 1\n"})
        fake_github.fail_next("/contents/", status_error(403))
        fetcher = SourceFetcher(fake_github.client(), retry_config=no_wait_retry)

        result = await fetcher.fetch_changed_files("student", "repo", "abc123")

        assert result.files == []
        assert result.all_unreadable
        assert not result.nothing_to_analyze

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self, fake_github, no_wait_retry) -> None:
        fake_github.add_commit("abc123", {"src/app.py": "x = 1\n"})
        fake_github.fail_next("/commits/", status_error(500), status_error(502))
        retries: list[int] = []
        fetcher = SourceFetcher(
            fake_github.client(),
            retry_config=no_wait_retry,
            on_retry=lambda error, attempt, delay: retries.append(attempt),
        )

        result = await fetcher.fetch_changed_files("student", "repo", "abc123")

        assert [f.path for f in result.files] == ["src/app.py"]
        assert retries == [1, 2]

    @pytest.mark.asyncio
    async def test_missing_commit_is_not_retried(self, fake_github, no_wait_retry) -> None:
        fetcher = SourceFetcher(fake_github.client(), retry_config=no_wait_retry)

        with pytest.raises(CodeHostError) as exc_info:
            await fetcher.fetch_changed_files("student", "repo", "deadbeef")

        assert exc_info.value.kind == ErrorKind.NOT_FOUND
        commit_requests = [r for r in fake_github.requests if "/commits/" in r.url.path]
        assert len(commit_requests) == 1

    @pytest.mark.asyncio
    async def test_persistent_server_error_exhausts_retries(self, fake_github, no_wait_retry) -> None:
        fake_github.fail_next("/commits/", *(status_error(503) for _ in range(5)))
        fetcher = SourceFetcher(fake_github.client(), retry_config=no_wait_retry)

        with pytest.raises(CodeHostError) as exc_info:
            await fetcher.fetch_changed_files("student", "repo", "abc123")

        assert exc_info.value.kind == ErrorKind.SERVER_ERROR
        commit_requests = [r for r in fake_github.requests if "/commits/" in r.url.path]
        assert len(commit_requests) == no_wait_retry.max_attempts
