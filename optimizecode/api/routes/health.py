import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from optimizecode.core.capabilities import Capabilities, get_capabilities

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint for load balancer.

    Returns 503 during graceful shutdown so ALB stops routing traffic.
    """
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": "optimizecode-backend"},
        )
    return {"status": "healthy", "service": "optimizecode-backend"}


@router.get("/ready")
async def readiness_check(caps: Capabilities = Depends(get_capabilities)):
    """Readiness check - verifies the profile store is reachable."""
    checks = {"profile_store": False, "generator": caps.generator is not None}

    try:
        checks["profile_store"] = await caps.profiles.ping()
    except Exception as e:
        logger.error("profile_store_health_check_failed", error=str(e))

    healthy = checks["profile_store"]
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "ready" if healthy else "degraded",
            "mode": "demo" if caps.demo else "production",
            "checks": checks,
        },
    )
