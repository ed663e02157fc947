"""Before/after statistics for an optimization result."""

import math
import re

from pydantic import BaseModel

MAX_IMPROVEMENTS = 5
DEFAULT_IMPROVEMENTS = ["Code structure optimized", "Best practices applied"]

_LIST_CALL = re.compile(r"\blist\(")

# (pattern, label): reported when the optimized text has more matches than the original
_GROWTH_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"/\*[\s\S]*?\*/|//.*$", re.MULTILINE), "Better documentation"),
    (re.compile(r"\btry\s*\{"), "Error handling"),
    (re.compile(r"\bcatch\s*\("), "Exception handling"),
    (re.compile(r"\bvalidate|sanitize", re.IGNORECASE), "Input validation"),
]


class OptimizationInsights(BaseModel):
    lines_reduced: int
    size_reduction: str
    size_change: str
    original_size: int
    optimized_size: int
    original_lines: int
    optimized_lines: int
    language: str
    improvements: list[str]
    performance_gain: int


class BatchInsights(BaseModel):
    total_files: int
    total_lines_reduced: int
    total_size_reduction: int
    average_performance_gain: int
    languages_processed: list[str]


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _reduction_percent(original_chars: int, optimized_chars: int) -> int:
    if original_chars <= 0:
        return 0
    return _round_half_up((1 - optimized_chars / original_chars) * 100)


def _added(token: str, original: str, optimized: str) -> bool:
    return token in optimized and token not in original


def _language_improvements(original: str, optimized: str, language: str) -> list[str]:
    found = []
    if language in ("javascript", "typescript"):
        if _added("const ", original, optimized):
            found.append("Modern variable declarations")
        if _added("=>", original, optimized):
            found.append("Arrow function syntax")
        if _added("async", original, optimized):
            found.append("Asynchronous improvements")
    elif language == "python":
        if _added("with ", original, optimized):
            found.append("Context manager usage")
        if len(_LIST_CALL.findall(optimized)) > len(_LIST_CALL.findall(original)):
            found.append("List comprehensions")
    return found


def generate_insights(original: str, optimized: str, language: str) -> OptimizationInsights:
    original_lines = len(original.split("\n"))
    optimized_lines = len(optimized.split("\n"))
    lines_reduced = max(0, original_lines - optimized_lines)
    reduction = _reduction_percent(len(original), len(optimized))

    improvements = _language_improvements(original, optimized, language)
    if lines_reduced > 0:
        improvements.append(f"Reduced {lines_reduced} lines of code")
    if reduction > 0:
        improvements.append(f"{reduction}% size reduction")
    for pattern, label in _GROWTH_PATTERNS:
        if len(pattern.findall(optimized)) > len(pattern.findall(original)):
            improvements.append(label)
    if not improvements:
        improvements = list(DEFAULT_IMPROVEMENTS)

    return OptimizationInsights(
        lines_reduced=lines_reduced,
        size_reduction=f"{abs(reduction)}%",
        size_change="reduced" if reduction >= 0 else "increased",
        original_size=len(original),
        optimized_size=len(optimized),
        original_lines=original_lines,
        optimized_lines=optimized_lines,
        language=language,
        improvements=improvements[:MAX_IMPROVEMENTS],
        performance_gain=min(max(lines_reduced * 2 + abs(reduction), 5), 50),
    )


def summarize_batch(insights: list[OptimizationInsights]) -> BatchInsights:
    """Aggregate per-file insights. Languages keep first-seen order."""
    total_original_lines = sum(i.original_lines for i in insights)
    total_optimized_lines = sum(i.optimized_lines for i in insights)
    total_original_chars = sum(i.original_size for i in insights)
    total_optimized_chars = sum(i.optimized_size for i in insights)
    average_gain = (
        _round_half_up(sum(i.performance_gain for i in insights) / len(insights)) if insights else 0
    )
    return BatchInsights(
        total_files=len(insights),
        total_lines_reduced=max(0, total_original_lines - total_optimized_lines),
        total_size_reduction=_reduction_percent(total_original_chars, total_optimized_chars),
        average_performance_gain=average_gain,
        languages_processed=list(dict.fromkeys(i.language for i in insights)),
    )
