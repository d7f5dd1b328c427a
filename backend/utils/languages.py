"""Language detection from file extensions."""

import os
from collections import Counter
from typing import Iterable, Optional

LANGUAGE_BY_EXTENSION: dict[str, str] = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".py": "python",
    ".java": "java",
    ".cpp": "cpp",
    ".c": "c",
    ".cs": "csharp",
    ".php": "php",
    ".rb": "ruby",
    ".go": "go",
    ".rs": "rust",
    ".swift": "swift",
    ".kt": "kotlin",
    ".scala": "scala",
    ".sh": "shell",
    ".sql": "sql",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".sass": "sass",
    ".less": "less",
    ".json": "json",
    ".xml": "xml",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".md": "markdown",
    ".dockerfile": "docker",
    ".r": "r",
    ".m": "matlab",
    ".pl": "perl",
    ".lua": "lua",
    ".vim": "vim",
}

# Languages that count toward a repository's primary language; data and
# markup formats are ignored.
PROGRAMMING_LANGUAGES = frozenset(
    {
        "javascript",
        "typescript",
        "python",
        "java",
        "cpp",
        "c",
        "csharp",
        "php",
        "ruby",
        "go",
        "rust",
        "swift",
        "kotlin",
        "scala",
    }
)


def file_extension(path: str) -> str:
    """Return the extension of the last path segment, "" if none."""
    return os.path.splitext(path)[1]


def detect_language(path: str) -> Optional[str]:
    """Map a file path to a language name, or None if the extension is unknown."""
    return LANGUAGE_BY_EXTENSION.get(file_extension(path).lower())


def detect_primary_language(paths: Iterable[str]) -> Optional[str]:
    """Return the most common programming language among paths.

    Ties keep the language seen first.
    """
    counts: Counter[str] = Counter()
    for path in paths:
        language = detect_language(path)
        if language in PROGRAMMING_LANGUAGES:
            counts[language] += 1
    if not counts:
        return None
    return counts.most_common(1)[0][0]
