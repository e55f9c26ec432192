"""
Cache Maintenance - analytics and cleanup for the insight cache.

Admin operations:
1. Statistics over all rows (active/expired, hits per kind)
2. Purge of expired rows
3. Full clear
4. Read/write of the adaptive TTL configuration
"""

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

from finadvisor.cache.adaptive_ttl import load_adaptive_config
from finadvisor.cache.models import AdaptiveCacheConfig, CacheStats, utc_now
from finadvisor.repositories.cache_settings_repository import (
    ADAPTIVE_CACHE_CONFIG_KEY,
    CacheSettingsRepository,
)

if TYPE_CHECKING:
    from finadvisor.repositories.ai_cache_repository import AICacheRepository

logger = logging.getLogger(__name__)


class CacheMaintenance:
    """
    Admin-facing cache operations.

    Unlike the gateway, store failures here propagate: an admin asking for a
    purge needs to know it did not happen.
    """

    def __init__(
        self,
        repository: "AICacheRepository",
        settings_repository: CacheSettingsRepository,
        default_config: AdaptiveCacheConfig,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repository = repository
        self._settings_repository = settings_repository
        self._default_config = default_config
        self._clock = clock

    async def stats(self, now: Optional[datetime] = None) -> CacheStats:
        """Aggregate statistics over every stored row."""
        now = now or self._clock()
        entries = await asyncio.to_thread(self._repository.list_entries)

        stats = CacheStats(total_entries=len(entries))
        for entry in entries:
            stats.total_hits += entry.hit_count
            if entry.is_expired(now):
                stats.expired_count += 1
            else:
                stats.active_count += 1

            bucket = stats.by_kind.setdefault(entry.kind, {"count": 0, "hits": 0})
            bucket["count"] += 1
            bucket["hits"] += entry.hit_count

        return stats

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete expired rows; returns the number deleted."""
        deleted = await asyncio.to_thread(self._repository.delete_expired, now or self._clock())
        logger.info(f"Purged {deleted} expired cache entries")
        return deleted

    async def clear_all(self) -> int:
        """Delete every row; returns the number deleted."""
        deleted = await asyncio.to_thread(self._repository.delete_all)
        logger.warning(f"Full cache clear requested: {deleted} entries removed")
        return deleted

    def load_config(self) -> AdaptiveCacheConfig:
        """Current adaptive TTL configuration (stored value over defaults)."""
        return load_adaptive_config(self._settings_repository, self._default_config)

    async def save_config(self, config: AdaptiveCacheConfig) -> AdaptiveCacheConfig:
        """Persist a new adaptive TTL configuration."""
        if config.min_ttl_hours > config.max_ttl_hours:
            raise ValueError("min_ttl_hours must not exceed max_ttl_hours")
        if config.hit_rate_threshold_low > config.hit_rate_threshold_high:
            raise ValueError("hit_rate_threshold_low must not exceed hit_rate_threshold_high")

        await asyncio.to_thread(
            self._settings_repository.put, ADAPTIVE_CACHE_CONFIG_KEY, config.to_dict()
        )
        return config


# =============================================================================
# Singleton instance
# =============================================================================

_cache_maintenance: Optional[CacheMaintenance] = None


def get_cache_maintenance() -> CacheMaintenance:
    """Get or create CacheMaintenance singleton."""
    global _cache_maintenance
    if _cache_maintenance is None:
        from finadvisor.core.config import settings
        from finadvisor.repositories.ai_cache_repository import get_ai_cache_repository
        from finadvisor.repositories.cache_settings_repository import get_cache_settings_repository

        _cache_maintenance = CacheMaintenance(
            get_ai_cache_repository(),
            get_cache_settings_repository(),
            default_config=AdaptiveCacheConfig.from_settings(settings),
        )
    return _cache_maintenance
