"""
Rate Limiting Module

Implements rate limiting using slowapi to protect the upstream model budget.
Returns HTTP 429 with retry-after header when limit exceeded.
"""
import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from finadvisor.core.config import settings
from finadvisor.models.schemas import RateLimitResponse

logger = logging.getLogger(__name__)


def get_client_identifier(request: Request) -> str:
    """
    Get unique client identifier for rate limiting.
    Uses the user id behind an API key if present, otherwise the IP address.
    """
    api_key = request.headers.get("X-API-Key")
    if api_key:
        user_id = request.headers.get("X-User-ID")
        if user_id:
            return f"user:{user_id}"
        return f"api_key:{api_key[:8]}..."  # Use partial key for privacy

    return get_remote_address(request)


# Create limiter instance
limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=[f"{settings.rate_limit_requests}/{settings.rate_limit_window_seconds}seconds"],
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Custom handler for rate limit exceeded errors: HTTP 429 with Retry-After."""
    retry_after = settings.rate_limit_window_seconds

    # slowapi puts the limit ("30 per 1 minute") in the detail
    if getattr(exc, "detail", None):
        for part in str(exc.detail).split():
            if part.isdigit():
                retry_after = int(part)
                break

    logger.warning(
        f"Rate limit exceeded for {get_client_identifier(request)}: {exc.detail}"
    )

    response = RateLimitResponse(
        error="rate_limited",
        message=f"Rate limit exceeded. Try again in {retry_after} seconds.",
        retry_after=retry_after,
    )

    return JSONResponse(
        status_code=429,
        content=response.model_dump(mode="json"),
        headers={"Retry-After": str(retry_after)},
    )


# =============================================================================
# Rate Limit Decorators
# =============================================================================

# Streaming chat and insight generation both spend upstream credits
chat_rate_limit = limiter.limit(settings.chat_rate_limit)
insight_rate_limit = limiter.limit(settings.insight_rate_limit)
