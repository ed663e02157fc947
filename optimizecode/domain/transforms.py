"""Deterministic local rewrite used when the generator is unavailable.

This is intentionally shallow: whitespace and brace normalization plus a
handful of language-specific substitutions. The output is always a pure
function of ``(code, language)``.
"""

import re

_JS_VAR = re.compile(r"\bvar\s+")
_JS_SEMICOLON_NEWLINE = re.compile(r";[ \t]*\n")
_PY_TRAILING_WS = re.compile(r"[ \t]+$", re.MULTILINE)
_PY_STAR_IMPORT = re.compile(r"from\s+(\w+)\s+import\s+\*")
_CSS_OPEN = re.compile(r"\s*\{\s*")
_CSS_DECL = re.compile(r";\s*")
_CSS_CLOSE = re.compile(r"\s*\}\s*")

_BRACE_OPEN = re.compile(r"\{[ \t]*\n\s*")
_BRACE_CLOSE = re.compile(r"\n\s*\}")
_TRAILING_WS = re.compile(r"[ \t]+\n")


def _javascript(code: str) -> str:
    code = _JS_VAR.sub("const ", code)
    return _JS_SEMICOLON_NEWLINE.sub(";\n", code)


def _python(code: str) -> str:
    code = _PY_TRAILING_WS.sub("", code)
    return _PY_STAR_IMPORT.sub(r"import \1", code)


def _css(code: str) -> str:
    code = _CSS_OPEN.sub(" {\n  ", code)
    code = _CSS_DECL.sub(";\n  ", code)
    return _CSS_CLOSE.sub("\n}\n", code)


_LANGUAGE_RULES = {
    "javascript": _javascript,
    "typescript": _javascript,
    "python": _python,
    "css": _css,
}


def fallback_transform(code: str, language: str = "javascript") -> str:
    rule = _LANGUAGE_RULES.get((language or "").lower())
    if rule is not None:
        code = rule(code)

    # Python blocks are indentation-sensitive; brace rules only apply elsewhere.
    if (language or "").lower() != "python":
        code = _BRACE_OPEN.sub("{\n  ", code)
        code = _BRACE_CLOSE.sub("\n}", code)
    return _TRAILING_WS.sub("\n", code)
