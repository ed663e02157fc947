"""Tests for the local fallback transform and optimization insights."""

import pytest

from optimizecode.domain.insights import DEFAULT_IMPROVEMENTS, generate_insights, summarize_batch
from optimizecode.domain.transforms import fallback_transform

pytestmark = pytest.mark.unit


# ============================================================================
# fallback_transform
# ============================================================================


def test_javascript_var_becomes_const():
    assert fallback_transform("var x = 1;   \nvar y = 2;\n", "javascript") == "const x = 1;\nconst y = 2;\n"


def test_typescript_uses_javascript_rules():
    assert fallback_transform("var n: number = 1;\n", "typescript") == "const n: number = 1;\n"


def test_python_trailing_whitespace_and_star_import():
    assert fallback_transform("from os import *\nx = 1   \n", "python") == "import os\nx = 1\n"


def test_python_indentation_is_preserved():
    code = "def f():\n    if True:\n        return {\n            'a': 1\n        }\n"
    assert fallback_transform(code, "python") == code


def test_css_rule_layout():
    assert fallback_transform("a{color:red;}", "css") == "a {\n  color:red;\n}\n"


def test_unknown_language_only_normalizes_whitespace():
    assert fallback_transform("hello   \nworld\n", "text") == "hello\nworld\n"


def test_fallback_is_deterministic():
    code = "var a = 1;\nfunction f() {\n      return a;\n   }\n"
    assert fallback_transform(code, "javascript") == fallback_transform(code, "javascript")


# ============================================================================
# generate_insights
# ============================================================================


def test_insights_for_javascript_rewrite():
    insights = generate_insights("var a = 1;\nvar b = 2;\n\n", "const a = 1;\nconst b = 2;", "javascript")

    assert insights.original_lines == 4
    assert insights.optimized_lines == 2
    assert insights.lines_reduced == 2
    assert insights.original_size == 23
    assert insights.optimized_size == 25
    assert insights.size_reduction == "9%"
    assert insights.size_change == "increased"
    assert insights.improvements == ["Modern variable declarations", "Reduced 2 lines of code"]
    assert insights.performance_gain == 13


def test_unchanged_code_gets_default_improvements():
    insights = generate_insights("x = 1", "x = 1", "python")

    assert insights.improvements == DEFAULT_IMPROVEMENTS
    assert insights.size_reduction == "0%"
    assert insights.size_change == "reduced"
    assert insights.performance_gain == 5


def test_improvements_capped_at_five_and_gain_at_fifty():
    original = "var a = 1\n" * 20
    optimized = "// doc\nconst f = async () => { try { validate(a) } catch (e) {} }"

    insights = generate_insights(original, optimized, "javascript")

    assert len(insights.improvements) == 5
    assert insights.improvements[0] == "Modern variable declarations"
    assert insights.performance_gain == 50


def test_empty_original_has_zero_reduction():
    insights = generate_insights("", "x", "text")
    assert insights.size_reduction == "0%"
    assert insights.lines_reduced == 0


def test_python_context_manager_improvement():
    insights = generate_insights(
        "f = open('a')\ndata = f.read()\nf.close()\n",
        "with open('a') as f:\n    data = f.read()\n",
        "python",
    )
    assert "Context manager usage" in insights.improvements


# ============================================================================
# summarize_batch
# ============================================================================


def test_batch_summary():
    items = [
        generate_insights("var a = 1;\nvar b = 2;\n\n", "const a = 1;\nconst b = 2;", "javascript"),
        generate_insights("x = 1", "x = 1", "javascript"),
        generate_insights("y = 2", "y = 2", "python"),
    ]

    summary = summarize_batch(items)

    assert summary.total_files == 3
    assert summary.total_lines_reduced == 2
    assert summary.total_size_reduction == -6
    assert summary.average_performance_gain == 8
    assert summary.languages_processed == ["javascript", "python"]


def test_empty_batch_summary():
    summary = summarize_batch([])
    assert summary.total_files == 0
    assert summary.average_performance_gain == 0
    assert summary.languages_processed == []
