"""
API Dependencies - Dependency Injection for FastAPI

Provides reusable dependencies for authentication and services. Tests swap
services through ``app.dependency_overrides``.
"""
from typing import Annotated

from fastapi import Depends, HTTPException, status

from finadvisor.cache.cache_gateway import CacheGateway, get_cache_gateway
from finadvisor.cache.maintenance import CacheMaintenance, get_cache_maintenance
from finadvisor.core.security import AuthenticatedUser, require_auth
from finadvisor.services.chat_stream_service import ChatStreamService, get_chat_stream_service
from finadvisor.services.insight_service import InsightService, get_insight_service


# =============================================================================
# Authentication Dependencies
# =============================================================================

# Require authentication (API Key or JWT)
RequireAuth = Annotated[AuthenticatedUser, Depends(require_auth)]


async def _require_admin(auth: AuthenticatedUser = Depends(require_auth)) -> AuthenticatedUser:
    """
    Require admin role for endpoint access.

    Raises:
        HTTPException 403: If user is not admin
    """
    if not auth.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required. Your role: " + auth.role,
        )
    return auth


# Require admin role
RequireAdmin = Annotated[AuthenticatedUser, Depends(_require_admin)]


# =============================================================================
# Service Dependencies
# =============================================================================

def get_chat_service() -> ChatStreamService:
    return get_chat_stream_service()


def get_insights() -> InsightService:
    return get_insight_service()


def get_maintenance() -> CacheMaintenance:
    return get_cache_maintenance()


def get_gateway() -> CacheGateway:
    return get_cache_gateway()


ChatService = Annotated[ChatStreamService, Depends(get_chat_service)]
Insights = Annotated[InsightService, Depends(get_insights)]
Maintenance = Annotated[CacheMaintenance, Depends(get_maintenance)]
Gateway = Annotated[CacheGateway, Depends(get_gateway)]
