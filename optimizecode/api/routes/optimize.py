"""Optimization routes: single snippet, file batch (Pro+), history (Pro+)."""

from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from optimizecode.core.auth import require_auth, require_plan
from optimizecode.core.capabilities import Capabilities, get_capabilities
from optimizecode.core.identity import Principal
from optimizecode.domain.ingestion import CodeFile
from optimizecode.domain.plans import Plan
from optimizecode.domain.profiles import UserProfile
from optimizecode.services.optimization_service import (
    MAX_BATCH_FILES,
    BatchResult,
    HistoryPage,
    OptimizationResult,
    OptimizationService,
)

router = APIRouter()

OptimizationType = Literal["performance", "readability", "security", "best_practices"]


class OptimizeCodeRequest(BaseModel):
    code: str = Field(min_length=1)
    language: str | None = None
    filename: str = ""
    optimization_type: OptimizationType = "performance"


class OptimizeBatchRequest(BaseModel):
    files: list[CodeFile] = Field(min_length=1, max_length=MAX_BATCH_FILES)
    optimization_type: OptimizationType = "performance"


def get_optimization_service(caps: Capabilities = Depends(get_capabilities)) -> OptimizationService:
    return OptimizationService(caps)


@router.post("/optimize/code", response_model=OptimizationResult)
async def optimize_code(
    body: OptimizeCodeRequest,
    user: Principal = Depends(require_auth),
    service: OptimizationService = Depends(get_optimization_service),
):
    return await service.dispatch(
        user.uid,
        body.code,
        language=body.language,
        optimization_type=body.optimization_type,
        filename=body.filename,
    )


@router.post("/optimize/batch", response_model=BatchResult)
async def optimize_batch(
    body: OptimizeBatchRequest,
    profile: UserProfile = Depends(require_plan(Plan.PRO)),
    service: OptimizationService = Depends(get_optimization_service),
):
    return await service.dispatch_batch(profile.uid, body.files, body.optimization_type)


@router.get("/optimize/history", response_model=HistoryPage)
async def optimization_history(
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    profile: UserProfile = Depends(require_plan(Plan.PRO)),
    service: OptimizationService = Depends(get_optimization_service),
):
    return await service.history(profile.uid, limit=limit, offset=offset)
