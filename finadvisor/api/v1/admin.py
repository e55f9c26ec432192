"""
Admin API - insight cache analytics and cleanup.

GET    /admin/cache/stats    - statistics over all rows plus gateway counters
DELETE /admin/cache/expired  - purge expired rows
DELETE /admin/cache          - clear every row
GET    /admin/cache/config   - adaptive TTL configuration
PUT    /admin/cache/config   - replace adaptive TTL configuration

Requires role=admin.
"""
import asyncio
import logging

from fastapi import APIRouter, HTTPException, status

from finadvisor.api.deps import Gateway, Maintenance, RequireAdmin
from finadvisor.core.exceptions import CacheStoreError
from finadvisor.models.schemas import (
    AdaptiveCacheConfigSchema,
    CacheDeleteResponse,
    CacheStatsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/cache", tags=["Admin"])


def _store_unavailable(e: CacheStoreError) -> HTTPException:
    logger.error(f"Admin cache operation failed: {e}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Cache store unavailable",
    )


@router.get("/stats", response_model=CacheStatsResponse)
async def get_cache_stats(auth: RequireAdmin, maintenance: Maintenance, gateway: Gateway):
    """Cache statistics: totals, active/expired split and hits per kind."""
    try:
        stats = await maintenance.stats()
    except CacheStoreError as e:
        raise _store_unavailable(e)
    return CacheStatsResponse(**stats.to_dict(), gateway=gateway.get_stats())


@router.delete("/expired", response_model=CacheDeleteResponse)
async def purge_expired_entries(auth: RequireAdmin, maintenance: Maintenance):
    """Delete rows whose expires_at has passed."""
    try:
        deleted = await maintenance.purge_expired()
    except CacheStoreError as e:
        raise _store_unavailable(e)
    logger.info(f"Admin {auth.user_id} purged {deleted} expired cache entries")
    return CacheDeleteResponse(deleted=deleted)


@router.delete("", response_model=CacheDeleteResponse)
async def clear_cache(auth: RequireAdmin, maintenance: Maintenance):
    """Delete every cache row."""
    try:
        deleted = await maintenance.clear_all()
    except CacheStoreError as e:
        raise _store_unavailable(e)
    logger.warning(f"Admin {auth.user_id} cleared the cache ({deleted} entries)")
    return CacheDeleteResponse(deleted=deleted)


@router.get("/config", response_model=AdaptiveCacheConfigSchema)
async def get_cache_config(auth: RequireAdmin, maintenance: Maintenance):
    """Current adaptive TTL configuration (stored value over defaults)."""
    config = await asyncio.to_thread(maintenance.load_config)
    return AdaptiveCacheConfigSchema.from_config(config)


@router.put("/config", response_model=AdaptiveCacheConfigSchema)
async def update_cache_config(
    config: AdaptiveCacheConfigSchema,
    auth: RequireAdmin,
    maintenance: Maintenance,
):
    """Replace the adaptive TTL configuration."""
    try:
        saved = await maintenance.save_config(config.to_config())
    except CacheStoreError as e:
        raise _store_unavailable(e)
    logger.info(f"Admin {auth.user_id} updated adaptive cache config: {saved.to_dict()}")
    return AdaptiveCacheConfigSchema.from_config(saved)
