"""GitHub REST client for reading commits and file contents."""

import base64
import binascii
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from gradewise_core.errors import (
    CodeHostError,
    ErrorKind,
    code_host_error_from_response,
    code_host_error_from_transport,
)
from gradewise_core.vcs.base import CommitFile, VCSConfig

logger = structlog.get_logger()

# GitHub returns at most 300 files for a single commit (3 pages of 100)
MAX_COMMIT_FILE_PAGES = 3
COMMIT_FILES_PER_PAGE = 100


class GitHubClient:
    """GitHub API client authenticated with a token from the environment.

    Every failure leaves this class as a :class:`CodeHostError`, so callers
    can classify it without touching httpx.
    """

    def __init__(
        self,
        config: VCSConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or VCSConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self.config.api_version,
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers=self._get_headers(),
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make a request and return the decoded JSON body."""
        client = self._get_client()
        try:
            response = await client.request(method, endpoint, **kwargs)
        except httpx.TransportError as e:
            raise code_host_error_from_transport(e) from e

        if response.is_error:
            error = code_host_error_from_response(response)
            logger.debug(
                "GitHub API error",
                endpoint=endpoint,
                status=response.status_code,
                kind=error.kind.value,
            )
            raise error

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise CodeHostError(
                ErrorKind.INVALID_RESPONSE,
                f"GitHub API returned invalid JSON for {endpoint}",
                status_code=response.status_code,
            ) from e

    async def get_commit_files(self, owner: str, repo: str, sha: str) -> list[CommitFile]:
        """Get the files touched by one commit, with their change status."""
        files: list[CommitFile] = []
        for page in range(1, MAX_COMMIT_FILE_PAGES + 1):
            data = await self._request(
                "GET",
                f"/repos/{owner}/{repo}/commits/{sha}",
                params={"per_page": COMMIT_FILES_PER_PAGE, "page": page},
            )
            batch = data.get("files") or []
            files.extend(
                CommitFile(
                    path=f["filename"],
                    status=f.get("status", "modified"),
                    additions=f.get("additions", 0),
                    deletions=f.get("deletions", 0),
                )
                for f in batch
            )
            if len(batch) < COMMIT_FILES_PER_PAGE:
                break
        return files

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str:
        """Get the text content of a file at a specific ref."""
        data = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/contents/{quote(path)}",
            params={"ref": ref},
        )
        if isinstance(data, list) or data.get("type", "file") != "file":
            raise CodeHostError(ErrorKind.INVALID_RESPONSE, f"{path} is not a file")

        content = data.get("content") or ""
        if data.get("encoding") == "base64":
            try:
                return base64.b64decode(content).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                raise CodeHostError(
                    ErrorKind.INVALID_RESPONSE, f"{path} is not UTF-8 text"
                ) from e
        return content
