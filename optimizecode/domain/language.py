"""Programming language detection from filename and content."""

import re

EXTENSION_LANGUAGES: dict[str, str] = {
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
    "java": "java",
    "cpp": "cpp",
    "c": "c",
    "go": "go",
    "rs": "rust",
    "php": "php",
    "rb": "ruby",
    "cs": "csharp",
    "html": "html",
    "css": "css",
    "scss": "scss",
    "sass": "sass",
    "sql": "sql",
    "sh": "bash",
    "bash": "bash",
    "ps1": "powershell",
    "kt": "kotlin",
    "scala": "scala",
    "swift": "swift",
    "dart": "dart",
    "vue": "vue",
    "svelte": "svelte",
}

# Evaluated in order; first hit wins.
CONTENT_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(function|const|let|var)\s+\w+"), "javascript"),
    (re.compile(r"\b(def|import.*from|class\s+\w+:)"), "python"),
    (re.compile(r"\b(public\s+class|private\s+|System\.out)"), "java"),
    (re.compile(r"#include|int\s+main"), "cpp"),
    (re.compile(r"\bfunc\s+\w+.*\{"), "go"),
    (re.compile(r"\bfn\s+\w+.*->"), "rust"),
    (re.compile(r"<\?php"), "php"),
    (re.compile(r"\bclass\s+\w+.*<"), "ruby"),
    (re.compile(r"<html|<!DOCTYPE", re.IGNORECASE), "html"),
    (re.compile(r"\{[^}]*color\s*:"), "css"),
    (re.compile(r"\bSELECT\s+.*FROM\b", re.IGNORECASE), "sql"),
]

DEFAULT_LANGUAGE = "text"


def language_for_extension(filename: str) -> str | None:
    if not filename:
        return None
    ext = filename.lower().rsplit(".", 1)[-1]
    return EXTENSION_LANGUAGES.get(ext)


def detect_language(code: str, filename: str = "") -> str:
    """Guess the language of ``code``.

    A known file extension always wins; otherwise the content patterns are
    tried in order and the first match is returned. Falls back to ``"text"``.
    """
    by_extension = language_for_extension(filename)
    if by_extension:
        return by_extension

    for pattern, language in CONTENT_PATTERNS:
        if pattern.search(code):
            return language

    return DEFAULT_LANGUAGE
