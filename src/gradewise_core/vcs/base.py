"""Data types shared by the code-host client and the source fetcher."""

from dataclasses import dataclass, field


@dataclass
class VCSConfig:
    """Configuration for the code-host client."""

    base_url: str = "https://api.github.com"
    token: str = ""
    timeout_seconds: float = 30.0
    api_version: str = "2022-11-28"


@dataclass
class CommitFile:
    """A file touched by a commit, before its content is fetched."""

    path: str
    status: str  # "added", "modified", "removed", "renamed"
    additions: int = 0
    deletions: int = 0


@dataclass
class ChangedFile:
    """A changed file with its content, ready for analysis."""

    path: str
    status: str
    content: str
    language: str = "unknown"


@dataclass
class FetchResult:
    """Outcome of fetching the changed files of one commit."""

    files: list[ChangedFile] = field(default_factory=list)
    files_in_commit: int = 0
    files_selected: int = 0
    files_unreadable: list[str] = field(default_factory=list)

    @property
    def nothing_to_analyze(self) -> bool:
        return self.files_selected == 0

    @property
    def all_unreadable(self) -> bool:
        return self.files_selected > 0 and not self.files
