"""Source-file selection from a directory tree.

The same path and filename predicates gate both the local directory walk and
the server-side batch endpoint, so a file that would never be collected from
disk is also refused when submitted directly.
"""

import os
from collections import Counter
from pathlib import Path, PurePosixPath

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)

MAX_FILES = 15
MAX_FILE_SIZE = 200 * 1024
MAX_ENTRIES = 2000

# Matched against each directory segment, case-insensitively.
EXCLUDED_DIR_NAMES = frozenset({
    ".git",
    "dist",
    "build",
    "out",
    "target",
    "bin",
    "obj",
    ".cache",
    "cache",
    ".next",
    ".nuxt",
    "coverage",
    "__pycache__",
    ".vscode",
    ".idea",
    "logs",
    "log",
    "tmp",
    "temp",
    "public",
    "static",
    "assets",
    "uploads",
    "media",
    "images",
    "img",
    "fonts",
    "docs",
    "doc",
    "documentation",
    "packages",
    ".venv",
    "venv",
})

# Matched anywhere in the path.
EXCLUDED_PATH_TERMS = ("node_modules", "bower_components", "vendor")

ALLOWED_HIDDEN_DIRS = frozenset({".github", ".storybook", ".husky"})

EXCLUDED_FILENAMES = frozenset({
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    ".gitignore",
    ".eslintrc",
    ".prettierrc",
    "webpack.config.js",
    "vite.config.js",
    "tsconfig.json",
})

# Any of these inside a filename rejects it, even when the extension is allowed.
EXCLUDED_NAME_MARKERS = (
    ".min.", ".bundle.", ".chunk.", ".map", ".lock",
    ".test.", ".spec.", ".config.", ".conf.",
    ".json", ".xml", ".yml", ".yaml", ".toml", ".ini",
    ".md", ".txt", ".log", ".env", "readme", "license",
    ".jpg", ".jpeg", ".png", ".gif", ".svg", ".ico",
    ".mp4", ".mp3", ".zip", ".tar", ".gz", ".pdf",
)

SOURCE_EXTENSIONS = (
    ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs",
    ".py", ".pyw", ".java", ".kt", ".scala",
    ".c", ".cpp", ".cc", ".h", ".hpp", ".cs", ".vb",
    ".php", ".rb", ".go", ".rs", ".swift", ".dart",
    ".html", ".htm", ".css", ".scss", ".sass", ".less",
    ".vue", ".svelte", ".sql", ".sh", ".bash", ".ps1",
)


class CodeFile(BaseModel):
    name: str = Field(min_length=1)
    path: str = ""
    content: str = Field(min_length=1)
    size: int = 0
    extension: str = ""
    optimized_content: str | None = None

    @property
    def relative_path(self) -> str:
        return self.path or self.name


class IngestionResult(BaseModel):
    files: list[CodeFile] = []
    skipped: dict[str, int] = {}
    entries_visited: int = 0
    truncated: bool = False


def _segments(path: str) -> list[str]:
    return [part for part in path.replace("\\", "/").lower().split("/") if part not in ("", ".")]


def is_path_blocked(path: str, is_dir: bool = False) -> bool:
    """Return True if any directory component of ``path`` is excluded.

    The last segment is treated as a filename unless ``is_dir`` is set or the
    path ends with a slash.
    """
    normalized = path.replace("\\", "/")
    lowered = normalized.lower()
    if any(term in lowered for term in EXCLUDED_PATH_TERMS):
        return True

    parts = _segments(normalized)
    if not (is_dir or normalized.endswith("/")):
        parts = parts[:-1]
    for part in parts:
        if part in EXCLUDED_DIR_NAMES:
            return True
        if part.startswith(".") and part not in ALLOWED_HIDDEN_DIRS:
            return True
    return False


def is_source_file(name: str) -> bool:
    """Return True for filenames with an allowed source extension and no excluded marker."""
    lowered = PurePosixPath(name.replace("\\", "/")).name.lower()
    if not lowered or lowered in EXCLUDED_FILENAMES:
        return False
    if any(marker in lowered for marker in EXCLUDED_NAME_MARKERS):
        return False
    return lowered.endswith(SOURCE_EXTENSIONS)


def merge_files(existing: list[CodeFile], incoming: list[CodeFile]) -> list[CodeFile]:
    """Append ``incoming`` to ``existing``, dropping paths already present."""
    seen = {f.relative_path for f in existing}
    merged = list(existing)
    for f in incoming:
        if f.relative_path in seen:
            continue
        seen.add(f.relative_path)
        merged.append(f)
    return merged


def _extension(name: str) -> str:
    return name.rsplit(".", 1)[-1].lower() if "." in name else ""


def collect_source_files(
    root: str | os.PathLike,
    max_files: int = MAX_FILES,
    max_file_size: int = MAX_FILE_SIZE,
    max_entries: int = MAX_ENTRIES,
) -> IngestionResult:
    """Walk ``root`` and collect source files.

    Entries are visited in name order; the files of a directory are taken
    before any of its subdirectories are entered.

    Stops descending once ``max_files`` files are collected or ``max_entries``
    directory entries have been looked at; ``truncated`` reports either cap.
    """
    root = Path(root)
    skipped: Counter[str] = Counter()
    files: list[CodeFile] = []
    seen: set[str] = set()
    visited = 0
    truncated = False

    stack: list[Path] = [root]
    while stack:
        directory = stack.pop()
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as exc:
            logger.warning("ingestion_dir_unreadable", path=str(directory), error=str(exc))
            skipped["unreadable"] += 1
            continue

        subdirs: list[Path] = []
        for entry in entries:
            if len(files) >= max_files or visited >= max_entries:
                truncated = True
                break
            visited += 1
            rel = Path(entry.path).relative_to(root).as_posix()

            if entry.is_dir(follow_symlinks=False):
                if is_path_blocked(rel, is_dir=True):
                    skipped["blocked_directory"] += 1
                else:
                    subdirs.append(Path(entry.path))
                continue
            if not entry.is_file(follow_symlinks=False):
                continue

            if is_path_blocked(rel):
                skipped["blocked_path"] += 1
                continue
            if not is_source_file(entry.name):
                skipped["unsupported_type"] += 1
                continue
            size = entry.stat(follow_symlinks=False).st_size
            if size > max_file_size:
                skipped["too_large"] += 1
                continue
            if rel in seen:
                skipped["duplicate"] += 1
                continue
            try:
                content = Path(entry.path).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                skipped["unreadable"] += 1
                continue
            if not content:
                skipped["empty"] += 1
                continue

            seen.add(rel)
            files.append(
                CodeFile(
                    name=entry.name,
                    path=rel,
                    content=content,
                    size=size,
                    extension=_extension(entry.name),
                )
            )

        if truncated:
            break
        # Reverse so the alphabetically first subdirectory is walked next.
        stack.extend(reversed(subdirs))

    logger.info(
        "ingestion_complete",
        root=str(root),
        collected=len(files),
        visited=visited,
        skipped=dict(skipped),
        truncated=truncated,
    )
    return IngestionResult(
        files=files,
        skipped=dict(skipped),
        entries_visited=visited,
        truncated=truncated,
    )
