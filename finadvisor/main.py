"""
Finance Advisor AI Service - FastAPI Application Entry Point

Streamed chat answers and cached one-shot insights for the personal finance
assistant.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from finadvisor.core.config import settings
from finadvisor.core.exceptions import UpstreamError
from finadvisor.core.rate_limit import limiter, rate_limit_exceeded_handler
from finadvisor.models.schemas import ErrorDetail, ErrorResponse

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    - Startup: validate the cache store and upstream configuration, log
      warnings if unavailable (don't crash: insights are served uncached)
    - Shutdown: close the upstream HTTP client and the shared engine
    """
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.debug}")

    try:
        from finadvisor.repositories.ai_cache_repository import get_ai_cache_repository
        cache_repo = get_ai_cache_repository()
        if await asyncio.to_thread(cache_repo.is_available):
            logger.info("✅ Cache store connection: Available")
        else:
            logger.warning("⚠️ Cache store connection: Unavailable (insights will not be cached)")
    except Exception as e:
        logger.warning(f"⚠️ Cache store validation failed: {e} (service will continue)")

    from finadvisor.engine.llm_gateway import get_llm_gateway
    llm_gateway = get_llm_gateway()
    if llm_gateway.is_configured:
        logger.info(f"✅ LLM gateway configured: {settings.llm_model}")
    else:
        logger.warning("⚠️ LLM_API_KEY not configured (generation requests will fail)")

    logger.info(f"🚀 {settings.app_name} started successfully")

    yield

    logger.info(f"Shutting down {settings.app_name}...")

    try:
        await llm_gateway.close()
    except Exception as e:
        logger.error(f"❌ Failed to close LLM gateway client: {e}")

    try:
        from finadvisor.core.database import close_shared_engine
        close_shared_engine()
        logger.info("✅ Shared database engine closed successfully")
    except Exception as e:
        logger.error(f"❌ Failed to close shared database engine: {e}")

    logger.info("👋 Shutdown complete")


def create_application() -> FastAPI:
    """
    Application factory pattern.
    Creates and configures the FastAPI application.
    """
    app = FastAPI(
        title=settings.app_name,
        description="Streamed financial chat and adaptively cached AI insights",
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_origins != ["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Session-ID", "Retry-After"],
    )

    # Configure Rate Limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # Register exception handlers
    app.add_exception_handler(UpstreamError, upstream_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include API routers
    from finadvisor.api.v1 import router as api_v1_router
    app.include_router(api_v1_router, prefix=settings.api_v1_prefix)

    return app


# =============================================================================
# Exception Handlers
# =============================================================================

async def upstream_exception_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    """
    Handle upstream generation failures.

    429 rate_limited and 402 quota_exhausted stay distinguishable from the
    generic 502 upstream_error.
    """
    logger.warning(f"Upstream failure ({exc.code}): {exc.message}")

    response = ErrorResponse(
        error=exc.code,
        message=exc.message,
        request_id=request.headers.get("X-Request-ID"),
    )

    headers = {"Retry-After": str(settings.rate_limit_window_seconds)} if exc.status_code == 429 else None
    return JSONResponse(
        status_code=exc.status_code,
        content=response.model_dump(mode="json"),
        headers=headers,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle Pydantic validation errors.
    Returns HTTP 400 with detailed error information.
    """
    errors = []
    for error in exc.errors():
        errors.append(
            ErrorDetail(
                field=".".join(str(loc) for loc in error["loc"]),
                message=error["msg"],
                code=error["type"],
            )
        )

    response = ErrorResponse(
        error="validation_error",
        message="Request validation failed",
        details=errors,
        request_id=request.headers.get("X-Request-ID"),
    )

    logger.warning(f"Validation error: {response.model_dump_json()}")

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=response.model_dump(mode="json"),
    )


async def general_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Handle unexpected exceptions.
    Returns HTTP 500 with error details while maintaining service availability.
    """
    logger.exception(f"Unexpected error: {exc}")

    response = ErrorResponse(
        error="internal_error",
        message="An unexpected error occurred" if not settings.debug else str(exc),
        request_id=request.headers.get("X-Request-ID"),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=response.model_dump(mode="json"),
    )


# Create application instance
app = create_application()


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """Root endpoint - service information"""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get("/health", tags=["Health"])
async def health_check_simple():
    """Simple health check for load balancers; no database access."""
    return {"status": "ok"}
