"""
Health Check Endpoint

GET /api/v1/health     - shallow, no database access
GET /api/v1/health/db  - deep, checks the cache store and upstream configuration

Timeout: 5 seconds per component.
"""
import asyncio
import logging
import time

from fastapi import APIRouter

from finadvisor.core.config import settings
from finadvisor.models.schemas import ComponentHealth, ComponentStatus, HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

HEALTH_CHECK_TIMEOUT = 5


async def check_api_health() -> ComponentHealth:
    """Check API component health"""
    return ComponentHealth(
        name="API",
        status=ComponentStatus.HEALTHY,
        latency_ms=0.0,
        message="API is responding",
    )


async def check_cache_store_health() -> ComponentHealth:
    """Check the ai_cache store and the gateway circuit breaker."""
    start = time.time()

    try:
        from finadvisor.cache.cache_gateway import get_cache_gateway
        from finadvisor.repositories.ai_cache_repository import get_ai_cache_repository

        available = await asyncio.to_thread(get_ai_cache_repository().is_available)
        circuit_open = get_cache_gateway().circuit_is_open
        latency = (time.time() - start) * 1000

        if available and not circuit_open:
            return ComponentHealth(
                name="Cache Store",
                status=ComponentStatus.HEALTHY,
                latency_ms=round(latency, 2),
                message="PostgreSQL connected",
            )
        if available:
            return ComponentHealth(
                name="Cache Store",
                status=ComponentStatus.DEGRADED,
                latency_ms=round(latency, 2),
                message="Connected, circuit breaker open",
            )
        return ComponentHealth(
            name="Cache Store",
            status=ComponentStatus.UNAVAILABLE,
            latency_ms=round(latency, 2),
            message="PostgreSQL unavailable (insights served uncached)",
        )
    except Exception as e:
        latency = (time.time() - start) * 1000
        logger.error(f"Cache store health check failed: {e}")
        return ComponentHealth(
            name="Cache Store",
            status=ComponentStatus.UNAVAILABLE,
            latency_ms=round(latency, 2),
            message=str(e),
        )


async def check_llm_health() -> ComponentHealth:
    """Report whether the upstream gateway is configured; never calls it."""
    from finadvisor.engine.llm_gateway import get_llm_gateway

    if get_llm_gateway().is_configured:
        return ComponentHealth(
            name="LLM Gateway",
            status=ComponentStatus.HEALTHY,
            message=f"Configured ({settings.llm_model})",
        )
    return ComponentHealth(
        name="LLM Gateway",
        status=ComponentStatus.UNAVAILABLE,
        message="LLM_API_KEY not configured",
    )


def determine_overall_status(components: dict[str, ComponentHealth]) -> str:
    """
    Determine overall system status based on component health.

    - healthy: All components are healthy
    - degraded: Some components are degraded or unavailable
    - unhealthy: The API itself is unavailable
    """
    statuses = [c.status for c in components.values()]

    if all(s == ComponentStatus.HEALTHY for s in statuses):
        return "healthy"
    api = components.get("api")
    if api is None or api.status == ComponentStatus.UNAVAILABLE:
        return "unhealthy"
    return "degraded"


async def check_with_timeout(check_func, component_name: str, timeout_seconds: float = HEALTH_CHECK_TIMEOUT) -> ComponentHealth:
    """Execute a health check, reporting UNAVAILABLE on timeout."""
    try:
        return await asyncio.wait_for(check_func(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning(f"Health check timeout for {component_name} (>{timeout_seconds}s)")
        return ComponentHealth(
            name=component_name,
            status=ComponentStatus.UNAVAILABLE,
            latency_ms=timeout_seconds * 1000,
            message=f"Health check timeout (>{timeout_seconds}s)",
        )


@router.get("", summary="Shallow Health Check")
async def health_check_shallow():
    """Shallow health check - no database access."""
    return {
        "status": "ok",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/db", response_model=HealthResponse, summary="Deep Health Check")
async def health_check_deep() -> HealthResponse:
    """Deep health check - queries the cache store."""
    components = {
        "api": await check_with_timeout(check_api_health, "API"),
        "cache_store": await check_with_timeout(check_cache_store_health, "Cache Store"),
        "llm": await check_with_timeout(check_llm_health, "LLM Gateway"),
    }

    overall_status = determine_overall_status(components)
    logger.info(f"Deep health check: {overall_status}")

    return HealthResponse(
        status=overall_status,
        version=settings.app_version,
        environment=settings.environment,
        components=components,
    )
