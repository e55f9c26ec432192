"""
Cache Module - Insight Response Cache.

Daily-keyed cache for one-shot insight generation with adaptive TTLs:
- CacheGateway: lookup / hit bookkeeping / store-on-miss
- AdaptiveTTLPolicy: TTL from observed hit rate per kind and subject
- CacheMaintenance: analytics and cleanup for admins
"""

from finadvisor.cache.adaptive_ttl import (
    AdaptiveTTLPolicy,
    adjust_ttl,
    get_adaptive_ttl_policy,
    load_adaptive_config,
)
from finadvisor.cache.cache_gateway import CacheGateway, compute_cache_key, get_cache_gateway
from finadvisor.cache.maintenance import CacheMaintenance, get_cache_maintenance
from finadvisor.cache.models import (
    AdaptiveCacheConfig,
    CacheEntry,
    CacheLookupResult,
    CacheStats,
    InsightKind,
    TTLDecision,
)

__all__ = [
    "AdaptiveCacheConfig",
    "AdaptiveTTLPolicy",
    "CacheEntry",
    "CacheGateway",
    "CacheLookupResult",
    "CacheMaintenance",
    "CacheStats",
    "InsightKind",
    "TTLDecision",
    "adjust_ttl",
    "compute_cache_key",
    "get_adaptive_ttl_policy",
    "get_cache_gateway",
    "get_cache_maintenance",
    "load_adaptive_config",
]
