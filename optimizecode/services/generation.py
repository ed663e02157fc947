"""Code rewriting through a language model, with a deterministic local fallback.

Architecture:
- Direct anthropic.AsyncAnthropic call (no SDK retries, max_retries=0)
- asyncio.wait_for(timeout=generation_timeout_seconds) wraps the API call
- No retry: the first failure of any kind degrades to ``fallback_transform``
- The outcome is tagged: ``Generated`` when model text was used,
  ``FallbackApplied`` (with a reason) otherwise
- ``optimize_text()`` NEVER raises on generator failure
"""

import asyncio
import re
import time
from dataclasses import dataclass
from typing import Literal, Protocol

import anthropic
import structlog

from optimizecode.core.config import Settings
from optimizecode.domain.plans import Plan, generation_profile_for
from optimizecode.domain.transforms import fallback_transform
from optimizecode.metrics.cloudwatch import emit_llm_latency

logger = structlog.get_logger(__name__)

MIN_OUTPUT_RATIO = 0.1

OptimizationType = Literal["performance", "readability", "security", "best_practices"]

OPTIMIZATION_PROMPTS: dict[str, str] = {
    "performance": (
        "Optimize this {language} code for better performance. Focus on algorithmic "
        "improvements, memory usage, and execution speed. Return only the optimized code "
        "without explanations."
    ),
    "readability": (
        "Improve the readability and maintainability of this {language} code. Focus on clear "
        "variable names, proper structure, and code organization. Return only the optimized "
        "code without explanations."
    ),
    "security": (
        "Review and improve the security of this {language} code. Fix potential "
        "vulnerabilities and add security best practices. Return only the optimized code "
        "without explanations."
    ),
    "best_practices": (
        "Refactor this {language} code to follow modern best practices and coding standards. "
        "Return only the optimized code without explanations."
    ),
}

_SYSTEM_PROMPT = (
    "You are an expert {language} developer and code optimizer. Your task is to optimize "
    "code while maintaining its functionality. Always:\n"
    "1. Preserve the original functionality\n"
    "2. Use modern language features and best practices\n"
    "3. Optimize for the specified type: {optimization_type}\n"
    "4. Return only the optimized code without explanations or markdown formatting\n"
    "5. Ensure the code is production-ready"
)

_THOROUGH_SUFFIX = (
    "\n6. Consider the whole file: restructure functions, remove dead code and "
    "redundant work, and tighten error handling where it is weak"
)

_CODE_FENCE = re.compile(r"^```[\w+-]*\n(.*?)\n?```$", re.DOTALL)


@dataclass(frozen=True)
class Generated:
    text: str
    model: str
    engine: Literal["ai"] = "ai"
    fallback_reason: None = None


@dataclass(frozen=True)
class FallbackApplied:
    text: str
    reason: str
    engine: Literal["fallback"] = "fallback"

    @property
    def fallback_reason(self) -> str:
        return self.reason


GenerationResult = Generated | FallbackApplied


class CodeGenerator(Protocol):
    async def rewrite(
        self, code: str, language: str, optimization_type: str, plan: Plan
    ) -> tuple[str, str]:
        """Return ``(text, model)``; may raise on any provider failure."""
        ...


def build_prompt(
    code: str, language: str, optimization_type: str, thorough: bool = False
) -> tuple[str, list[dict]]:
    """Build system prompt and messages list for a rewrite request."""
    system = _SYSTEM_PROMPT.format(language=language, optimization_type=optimization_type)
    if thorough:
        system += _THOROUGH_SUFFIX
    instruction = OPTIMIZATION_PROMPTS.get(optimization_type, OPTIMIZATION_PROMPTS["performance"])
    user_content = f"{instruction.format(language=language)}\n\nOriginal code:\n\n{code}"
    return system, [{"role": "user", "content": user_content}]


def strip_code_fence(text: str) -> str:
    text = text.strip()
    match = _CODE_FENCE.match(text)
    return match.group(1).strip() if match else text


class AnthropicGenerator:
    """Rewrites code with Claude; the model and depth come from the caller's plan."""

    def __init__(self, settings: Settings, client: anthropic.AsyncAnthropic | None = None):
        self.settings = settings
        self.timeout = settings.generation_timeout_seconds
        self._client = client or anthropic.AsyncAnthropic(
            api_key=settings.anthropic_api_key, max_retries=0
        )

    def model_for(self, plan: Plan) -> str:
        return getattr(self.settings, generation_profile_for(plan).model_setting)

    async def rewrite(
        self, code: str, language: str, optimization_type: str, plan: Plan
    ) -> tuple[str, str]:
        profile = generation_profile_for(plan)
        model = self.model_for(plan)
        system, messages = build_prompt(code, language, optimization_type, profile.thorough)

        start = time.perf_counter()
        response = await asyncio.wait_for(
            self._client.messages.create(
                model=model,
                max_tokens=profile.max_tokens,
                temperature=0.1,
                system=system,
                messages=messages,
            ),
            timeout=self.timeout,
        )
        duration_ms = (time.perf_counter() - start) * 1000
        await emit_llm_latency(optimization_type, duration_ms, model)

        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        return strip_code_fence(text), model


async def optimize_text(
    generator: CodeGenerator | None,
    code: str,
    language: str,
    optimization_type: str,
    plan: Plan,
) -> GenerationResult:
    """Rewrite ``code`` with ``generator``, degrading to the local transform.

    Never raises on generator failure. Output shorter than 10% of the input is
    treated as a failed generation.
    """
    if generator is None:
        return FallbackApplied(fallback_transform(code, language), reason="generator_unavailable")

    try:
        text, model = await generator.rewrite(code, language, optimization_type, plan)
    except Exception as exc:
        logger.warning(
            "generation_fallback",
            reason="generator_error",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return FallbackApplied(fallback_transform(code, language), reason="generator_error")

    if not text or len(text) < len(code) * MIN_OUTPUT_RATIO:
        logger.warning("generation_fallback", reason="output_too_short", output_chars=len(text or ""))
        return FallbackApplied(fallback_transform(code, language), reason="output_too_short")

    return Generated(text=text, model=model)
