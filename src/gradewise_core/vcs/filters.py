"""Path filtering, language detection and GitHub URL parsing."""

import posixpath
import re
from typing import Iterable, TypeVar

from gradewise_core.vcs.base import CommitFile

FileT = TypeVar("FileT", bound=CommitFile)

CODE_EXTENSIONS = frozenset({
    # JavaScript/TypeScript
    ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs",
    # Python
    ".py", ".pyw",
    # Java/Kotlin
    ".java", ".kt", ".kts",
    # C/C++
    ".c", ".cpp", ".h", ".hpp", ".cc",
    # C#
    ".cs",
    ".go",
    ".rs",
    ".php",
    ".rb",
    ".swift",
    # Web
    ".html", ".css", ".scss", ".sass", ".less", ".vue", ".svelte",
    # Config/data
    ".json", ".yaml", ".yml", ".xml", ".toml",
    # Shell
    ".sh", ".bash", ".zsh",
    ".sql",
    ".md",
})

# Entries ending in "/" are directories, matched as a path segment at any
# depth. The rest are file names, matched against the final segment.
EXCLUDED_PATHS = (
    "node_modules/",
    ".git/",
    "vendor/",
    "__pycache__/",
    ".venv/",
    "venv/",
    "dist/",
    "build/",
    "out/",
    ".next/",
    ".nuxt/",
    "coverage/",
    ".cache/",
    ".idea/",
    ".vscode/",
    ".env",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "composer.lock",
    "Gemfile.lock",
)

LANGUAGE_MAP = {
    ".js": "javascript", ".jsx": "javascript", ".mjs": "javascript", ".cjs": "javascript",
    ".ts": "typescript", ".tsx": "typescript",
    ".py": "python", ".pyw": "python",
    ".java": "java",
    ".kt": "kotlin", ".kts": "kotlin",
    ".c": "c", ".h": "c",
    ".cpp": "cpp", ".hpp": "cpp", ".cc": "cpp",
    ".cs": "csharp",
    ".go": "go",
    ".rs": "rust",
    ".php": "php",
    ".rb": "ruby",
    ".swift": "swift",
    ".html": "html",
    ".css": "css", ".scss": "scss", ".sass": "sass", ".less": "less",
    ".vue": "vue", ".svelte": "svelte",
    ".json": "json",
    ".yaml": "yaml", ".yml": "yaml",
    ".xml": "xml",
    ".toml": "toml",
    ".sh": "shell", ".bash": "shell", ".zsh": "shell",
    ".sql": "sql",
    ".md": "markdown",
}

_GITHUB_URL_RE = re.compile(
    r"^(?:https?://)?(?:www\.)?github\.com/([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+)/?$",
    re.IGNORECASE,
)

_EXCLUDED_DIRS = tuple(p.rstrip("/").lower() for p in EXCLUDED_PATHS if p.endswith("/"))
_EXCLUDED_FILES = frozenset(p.lower() for p in EXCLUDED_PATHS if not p.endswith("/"))


def _extension(path: str) -> str:
    return posixpath.splitext(path)[1].lower()


def is_excluded_path(path: str) -> bool:
    """Return True when any segment of ``path`` hits the denylist."""
    segments = path.lower().strip("/").split("/")
    if any(segment in _EXCLUDED_DIRS for segment in segments[:-1]):
        return True
    return segments[-1] in _EXCLUDED_FILES


def is_code_file(path: str) -> bool:
    """Return True for paths worth sending to the analyzer."""
    return not is_excluded_path(path) and _extension(path) in CODE_EXTENSIONS


def filter_code_files(files: Iterable[FileT]) -> list[FileT]:
    """Drop removed files, denylisted paths and non-source extensions."""
    return [f for f in files if f.status != "removed" and is_code_file(f.path)]


def detect_language(path: str) -> str:
    """Detect the programming language from a file extension."""
    return LANGUAGE_MAP.get(_extension(path), "unknown")


def parse_github_url(url: str | None) -> tuple[str, str] | None:
    """Extract ``(owner, repo)`` from a GitHub repository URL.

    Accepts http/https or no scheme, an optional ``www.``, a trailing slash
    and a ``.git`` suffix. Returns None for anything else.
    """
    if not url or not isinstance(url, str):
        return None

    clean = url.strip().rstrip("/")
    if clean.endswith(".git"):
        clean = clean[: -len(".git")]

    match = _GITHUB_URL_RE.match(clean)
    if not match:
        return None
    owner, repo = match.group(1), match.group(2)
    if owner.startswith("-") or repo.startswith("-"):
        return None
    return owner, repo


def canonical_repository_url(full_name: str) -> str:
    """Build the URL submissions store for ``owner/repo``."""
    return f"https://github.com/{full_name}"
