"""OptimizeCode Backend: FastAPI application entry point."""

import signal
import threading
import uuid
from contextlib import asynccontextmanager

# CRITICAL ORDER: configure_structlog MUST be called before all other app imports
# to avoid the structlog cache pitfall (structlog caches the processor chain on first use).
from optimizecode.core.logging import configure_structlog
from optimizecode.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from optimizecode.api.routes import api_router
from optimizecode.core.capabilities import Capabilities, build_capabilities
from optimizecode.core.config import Settings, get_settings
from optimizecode.core.exceptions import OptimizeCodeError
from optimizecode.db.redis import close_redis, init_redis
from optimizecode.metrics.cloudwatch import configure_metrics
from optimizecode.middleware.correlation import get_correlation_id, setup_correlation_middleware
from optimizecode.services.billing_service import validate_price_map

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Graceful shutdown flag: SIGTERM handler flips this so the ALB health check returns 503
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    # signal handlers can only be installed from the main thread
    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, handle_sigterm)

    # Startup
    settings = app.state.settings
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    validate_price_map(settings)
    logger.info("stripe_price_map_validated")
    configure_metrics(settings)

    owns_redis = False
    if getattr(app.state, "capabilities", None) is None:
        redis = None
        if not settings.uses_demo_identity:
            redis = await init_redis(settings)
            owns_redis = True
            logger.info("redis_initialized")
        app.state.capabilities = build_capabilities(settings, redis)

    yield

    # Shutdown
    logger.info("shutdown_begin")
    if owns_redis:
        await close_redis()
    logger.info("shutdown_complete")


def _log_handled_error(request: Request, status_code: int, debug_id: str, **fields) -> None:
    log = logger.warning if status_code < 500 else logger.error
    log(
        "http_exception",
        status_code=status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        **fields,
    )


async def domain_exception_handler(request: Request, exc: OptimizeCodeError) -> JSONResponse:
    """Translate domain errors into the standard envelope with their structured detail."""
    debug_id = str(uuid.uuid4())
    _log_handled_error(request, exc.status_code, debug_id, code=exc.code, detail=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail(), "debug_id": debug_id},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Global exception handler for HTTPException with debug_id tracking.

    Logs errors server-side with full context, returns sanitized response to client.
    """
    debug_id = str(uuid.uuid4())
    _log_handled_error(request, exc.status_code, debug_id, detail=exc.detail)

    # Return sanitized response (no stack traces, no secrets)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "debug_id": debug_id},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body/query validation failures become 400 with field-level errors."""
    debug_id = str(uuid.uuid4())
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    _log_handled_error(request, 400, debug_id, errors=errors)
    return JSONResponse(
        status_code=400,
        content={
            "detail": {"code": "validation_error", "message": "Invalid input data", "errors": errors},
            "debug_id": debug_id,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors with debug_id tracking.

    Logs full exception with traceback, returns generic 500 to client.
    """
    debug_id = str(uuid.uuid4())

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    # Return generic 500 (no internal details leaked)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "debug_id": debug_id},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(OptimizeCodeError)(domain_exception_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)


def create_app(
    settings: Settings | None = None,
    capabilities: Capabilities | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    When ``capabilities`` is given it is used as is; otherwise they are built
    from settings during startup.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="AI code optimization with daily usage limits and subscription billing",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.capabilities = capabilities

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(dict.fromkeys([settings.frontend_url, *settings.allowed_origins])),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware (runs first on incoming requests)
    setup_correlation_middleware(app)

    register_exception_handlers(app)

    # Include API routes
    app.include_router(api_router, prefix="/api")

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "optimizecode.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
