"""Code-host access: GitHub client, source fetching and file filters."""

from gradewise_core.vcs.base import ChangedFile, CommitFile, FetchResult, VCSConfig
from gradewise_core.vcs.fetcher import SourceFetcher
from gradewise_core.vcs.filters import (
    CODE_EXTENSIONS,
    EXCLUDED_PATHS,
    canonical_repository_url,
    detect_language,
    filter_code_files,
    is_code_file,
    is_excluded_path,
    parse_github_url,
)
from gradewise_core.vcs.github import GitHubClient

__all__ = [
    "CODE_EXTENSIONS",
    "EXCLUDED_PATHS",
    "ChangedFile",
    "CommitFile",
    "FetchResult",
    "GitHubClient",
    "SourceFetcher",
    "VCSConfig",
    "canonical_repository_url",
    "detect_language",
    "filter_code_files",
    "is_code_file",
    "is_excluded_path",
    "parse_github_url",
]
