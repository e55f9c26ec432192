"""
Adaptive TTL Policy - widen or narrow cache validity from observed reuse.

Stable answers (reused often) cache longer, volatile ones expire sooner.

hit_rate is the plain ratio ``sum(hit_count) / entry_count`` over the entries
of one kind and subject created inside the lookback window. It is not a
time-decayed average.

The policy is advisory and read-only: it never touches existing rows, it only
decides the TTL of the next write.
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Optional, Sequence

from finadvisor.cache.models import AdaptiveCacheConfig, TTLDecision, utc_now
from finadvisor.core.exceptions import CacheStoreError
from finadvisor.repositories.cache_settings_repository import (
    ADAPTIVE_CACHE_CONFIG_KEY,
    CacheSettingsRepository,
)

if TYPE_CHECKING:
    from finadvisor.repositories.ai_cache_repository import AICacheRepository

logger = logging.getLogger(__name__)


def average_hit_rate(hit_counts: Sequence[int]) -> float:
    """Simple average of hit counts; 0.0 for no entries."""
    if not hit_counts:
        return 0.0
    return sum(hit_counts) / len(hit_counts)


def adjust_ttl(base_ttl_hours: int, hit_rate: float, config: AdaptiveCacheConfig) -> int:
    """
    Apply the threshold rules to a base TTL.

    Results are whole hours (rounded down) and clamped to the configured
    floor/ceiling only on the side being adjusted.
    """
    if hit_rate < config.hit_rate_threshold_low:
        return max(config.min_ttl_hours, math.floor(base_ttl_hours * config.ttl_decrease_factor))
    if hit_rate > config.hit_rate_threshold_high:
        return min(config.max_ttl_hours, math.floor(base_ttl_hours * config.ttl_increase_factor))
    return base_ttl_hours


def load_adaptive_config(
    settings_repository: Optional[CacheSettingsRepository],
    fallback: AdaptiveCacheConfig,
) -> AdaptiveCacheConfig:
    """Read the stored config, falling back to ``fallback`` when absent or unreadable."""
    if settings_repository is None:
        return fallback
    try:
        stored = settings_repository.get(ADAPTIVE_CACHE_CONFIG_KEY)
    except CacheStoreError as e:
        logger.warning(f"Adaptive cache config unavailable, using defaults: {e}")
        return fallback
    if not stored:
        return fallback
    return AdaptiveCacheConfig.from_dict({**fallback.to_dict(), **stored})


class AdaptiveTTLPolicy:
    """
    Computes the TTL for a freshly stored cache entry.

    Usage:
        policy = AdaptiveTTLPolicy(repository, config_provider=lambda: config)
        decision = await policy.compute("insight", user_id, base_ttl_hours=24)
        await gateway.put(key, user_id, "insight", payload, decision.ttl_hours)
    """

    def __init__(
        self,
        repository: "AICacheRepository",
        config_provider: Callable[[], AdaptiveCacheConfig],
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repository = repository
        self._config_provider = config_provider
        self._clock = clock

    async def compute(self, kind: str, subject: str, base_ttl_hours: int) -> TTLDecision:
        """
        Decide the TTL for the next write of ``kind`` for ``subject``.

        Falls back to the base TTL when the policy is disabled, when there are
        fewer entries than the minimum sample count, or when the store fails.
        """
        config = await asyncio.to_thread(self._config_provider)
        if not config.enabled:
            return TTLDecision(ttl_hours=base_ttl_hours)

        since = self._clock() - timedelta(days=config.lookback_days)
        try:
            hit_counts = await asyncio.to_thread(
                self._repository.hit_counts_since, kind, subject, since
            )
        except CacheStoreError as e:
            logger.error(f"Error calculating adaptive TTL: {e}")
            return TTLDecision(ttl_hours=base_ttl_hours)

        if len(hit_counts) < config.min_entries_for_analysis or not hit_counts:
            return TTLDecision(ttl_hours=base_ttl_hours)

        hit_rate = average_hit_rate(hit_counts)
        ttl_hours = adjust_ttl(base_ttl_hours, hit_rate, config)

        logger.info(
            f"Adaptive TTL for {kind}: hitRate={hit_rate:.2f} over {len(hit_counts)} entries, "
            f"base={base_ttl_hours}h, adjusted={ttl_hours}h"
        )
        return TTLDecision(ttl_hours=ttl_hours, hit_rate=hit_rate, is_adaptive=True)


# =============================================================================
# Singleton instance
# =============================================================================

_adaptive_ttl_policy: Optional[AdaptiveTTLPolicy] = None


def get_adaptive_ttl_policy() -> AdaptiveTTLPolicy:
    """Get or create AdaptiveTTLPolicy singleton reading config from cache_settings."""
    global _adaptive_ttl_policy
    if _adaptive_ttl_policy is None:
        from finadvisor.core.config import settings
        from finadvisor.repositories.ai_cache_repository import get_ai_cache_repository
        from finadvisor.repositories.cache_settings_repository import get_cache_settings_repository

        defaults = AdaptiveCacheConfig.from_settings(settings)
        settings_repository = get_cache_settings_repository()
        _adaptive_ttl_policy = AdaptiveTTLPolicy(
            get_ai_cache_repository(),
            config_provider=lambda: load_adaptive_config(settings_repository, defaults),
        )
    return _adaptive_ttl_policy
