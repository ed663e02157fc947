"""Usage-gated optimization of single snippets and file batches.

Every request is validated against the caller's plan limits before any quota
is reserved or any generator call is made. A batch reserves one unit of quota
for the whole request and processes its files sequentially.
"""

import uuid
from datetime import datetime

import structlog
from pydantic import BaseModel

from optimizecode.core.capabilities import Capabilities
from optimizecode.core.exceptions import (
    PayloadTooLargeError,
    PlanRequiredError,
    ProfileNotFoundError,
    TooManyFilesError,
    ValidationFailedError,
)
from optimizecode.db.history import InsightsSummary, OptimizationRecord
from optimizecode.domain.ingestion import CodeFile, is_path_blocked, is_source_file
from optimizecode.domain.insights import (
    BatchInsights,
    OptimizationInsights,
    generate_insights,
    summarize_batch,
)
from optimizecode.domain.language import detect_language
from optimizecode.domain.plans import Plan, is_unlimited, meets_plan
from optimizecode.domain.profiles import UserProfile, effective_plan, utc_now
from optimizecode.metrics.cloudwatch import emit_business_event
from optimizecode.services.generation import GenerationResult, optimize_text
from optimizecode.services.usage_service import UsageService

logger = structlog.get_logger(__name__)

MAX_BATCH_FILES = 50
BATCH_REQUIRED_PLAN = Plan.PRO


class OptimizationResult(BaseModel):
    success: bool = True
    original: str
    optimized: str
    insights: OptimizationInsights
    language: str
    optimization_type: str
    engine: str
    model: str | None = None
    fallback_reason: str | None = None
    timestamp: datetime


class FileResult(BaseModel):
    file_name: str
    file_path: str
    original: str
    optimized: str
    insights: OptimizationInsights
    language: str
    engine: str
    fallback_reason: str | None = None


class SkippedFile(BaseModel):
    file_name: str
    file_path: str
    reason: str


class BatchResult(BaseModel):
    success: bool = True
    results: list[FileResult]
    skipped: list[SkippedFile]
    batch_insights: BatchInsights
    total_files: int
    optimization_type: str
    timestamp: datetime


class HistoryPage(BaseModel):
    history: list[OptimizationRecord]
    total: int
    limit: int
    offset: int


def _summary(insights: OptimizationInsights) -> InsightsSummary:
    return InsightsSummary(
        lines_reduced=insights.lines_reduced,
        size_reduction=insights.size_reduction,
        improvements=insights.improvements,
    )


class OptimizationService:
    def __init__(self, caps: Capabilities, usage: UsageService | None = None):
        self.caps = caps
        self.usage = usage or UsageService(caps.profiles)

    async def _load_profile(self, user_id: str) -> UserProfile:
        profile = await self.caps.profiles.get(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)
        return profile

    async def _generate(
        self, code: str, language: str, optimization_type: str, plan: Plan
    ) -> tuple[GenerationResult, OptimizationInsights]:
        result = await optimize_text(self.caps.generator, code, language, optimization_type, plan)
        return result, generate_insights(code, result.text, language)

    async def dispatch(
        self,
        user_id: str,
        code: str,
        language: str | None = None,
        optimization_type: str = "performance",
        filename: str = "",
        now: datetime | None = None,
    ) -> OptimizationResult:
        """Optimize one snippet for ``user_id``.

        Raises:
            ValidationFailedError: empty code
            PayloadTooLargeError: code longer than the plan's paste limit
            QuotaExceededError: daily limit already reached
        """
        now = now or utc_now()
        profile = await self._load_profile(user_id)

        if not code or not code.strip():
            raise ValidationFailedError("Code is required", [{"field": "code", "message": "Code is required"}])
        max_chars = profile.limits.max_paste_characters
        if not is_unlimited(max_chars) and len(code) > max_chars:
            logger.info("optimization_rejected_size", user_id=user_id, size=len(code), max_size=max_chars)
            raise PayloadTooLargeError(current_size=len(code), max_size=max_chars)

        await self.usage.check_and_reserve(user_id, now)

        plan = effective_plan(profile)
        detected = language or detect_language(code, filename)
        result, insights = await self._generate(code, detected, optimization_type, plan)

        logger.info(
            "optimization_dispatched",
            user_id=user_id,
            language=detected,
            optimization_type=optimization_type,
            engine=result.engine,
            fallback_reason=result.fallback_reason,
        )
        await self.caps.history.append(
            user_id,
            OptimizationRecord(
                id=f"opt_{uuid.uuid4().hex[:12]}",
                timestamp=now,
                mode="single",
                language=detected,
                optimization_type=optimization_type,
                engine=result.engine,
                insights=_summary(insights),
            ),
        )
        await emit_business_event("optimization_completed", plan=plan.value)

        return OptimizationResult(
            original=code,
            optimized=result.text,
            insights=insights,
            language=detected,
            optimization_type=optimization_type,
            engine=result.engine,
            model=getattr(result, "model", None),
            fallback_reason=result.fallback_reason,
            timestamp=now,
        )

    def _screen_files(
        self, files: list[CodeFile], profile: UserProfile
    ) -> tuple[list[CodeFile], list[SkippedFile]]:
        accepted: list[CodeFile] = []
        skipped: list[SkippedFile] = []
        seen: set[str] = set()
        max_bytes = profile.limits.max_file_size_mb * 1024 * 1024

        for f in files:
            path = f.relative_path
            if is_path_blocked(path):
                skipped.append(SkippedFile(file_name=f.name, file_path=path, reason="blocked_path"))
                continue
            if not is_source_file(f.name):
                skipped.append(SkippedFile(file_name=f.name, file_path=path, reason="unsupported_type"))
                continue
            if path in seen:
                skipped.append(SkippedFile(file_name=f.name, file_path=path, reason="duplicate"))
                continue
            size = len(f.content.encode("utf-8"))
            if size > max_bytes:
                raise PayloadTooLargeError(
                    current_size=size,
                    max_size=max_bytes,
                    message=f"File {path} exceeds the {profile.limits.max_file_size_mb} MB limit",
                )
            seen.add(path)
            accepted.append(f)
        return accepted, skipped

    async def dispatch_batch(
        self,
        user_id: str,
        files: list[CodeFile],
        optimization_type: str = "performance",
        now: datetime | None = None,
    ) -> BatchResult:
        """Optimize a batch of files as one quota unit (Pro and above)."""
        now = now or utc_now()
        profile = await self._load_profile(user_id)
        plan = effective_plan(profile)

        if not meets_plan(plan, BATCH_REQUIRED_PLAN):
            raise PlanRequiredError(current_plan=plan.value, required_plan=BATCH_REQUIRED_PLAN.value)
        if not 1 <= len(files) <= MAX_BATCH_FILES:
            raise ValidationFailedError(
                f"Files array is required (1-{MAX_BATCH_FILES} files)",
                [{"field": "files", "message": f"Expected 1-{MAX_BATCH_FILES} files, got {len(files)}"}],
            )
        max_files = profile.limits.max_file_uploads
        if not is_unlimited(max_files) and len(files) > max_files:
            raise TooManyFilesError(file_count=len(files), max_files=max_files)

        accepted, skipped = self._screen_files(files, profile)
        if not accepted:
            raise ValidationFailedError(
                "No supported source files in batch",
                [{"field": "files", "message": s.reason, "path": s.file_path} for s in skipped],
            )

        await self.usage.check_and_reserve(user_id, now)

        results: list[FileResult] = []
        for f in accepted:
            detected = detect_language(f.content, f.name)
            result, insights = await self._generate(f.content, detected, optimization_type, plan)
            results.append(
                FileResult(
                    file_name=f.name,
                    file_path=f.relative_path,
                    original=f.content,
                    optimized=result.text,
                    insights=insights,
                    language=detected,
                    engine=result.engine,
                    fallback_reason=result.fallback_reason,
                )
            )

        batch_insights = summarize_batch([r.insights for r in results])
        engine = "ai" if all(r.engine == "ai" for r in results) else "fallback"
        logger.info(
            "batch_optimization_dispatched",
            user_id=user_id,
            files=len(results),
            skipped=len(skipped),
            optimization_type=optimization_type,
            engine=engine,
        )
        await self.caps.history.append(
            user_id,
            OptimizationRecord(
                id=f"opt_{uuid.uuid4().hex[:12]}",
                timestamp=now,
                mode="batch",
                language=batch_insights.languages_processed,
                optimization_type=optimization_type,
                engine=engine,
                file_count=len(results),
                insights=InsightsSummary(
                    lines_reduced=batch_insights.total_lines_reduced,
                    size_reduction=f"{abs(batch_insights.total_size_reduction)}%",
                    improvements=[],
                ),
            ),
        )
        await emit_business_event("optimization_completed", plan=plan.value)

        return BatchResult(
            results=results,
            skipped=skipped,
            batch_insights=batch_insights,
            total_files=len(results),
            optimization_type=optimization_type,
            timestamp=now,
        )

    async def history(self, user_id: str, limit: int = 10, offset: int = 0) -> HistoryPage:
        """Stored optimization records, newest first (Pro and above)."""
        profile = await self._load_profile(user_id)
        plan = effective_plan(profile)
        if not meets_plan(plan, BATCH_REQUIRED_PLAN):
            raise PlanRequiredError(
                current_plan=plan.value,
                required_plan=BATCH_REQUIRED_PLAN.value,
            )
        records, total = await self.caps.history.list(user_id, limit, offset)
        return HistoryPage(history=records, total=total, limit=limit, offset=offset)
