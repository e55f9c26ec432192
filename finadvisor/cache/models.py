"""
Cache Data Models - Insight Response Cache.

Defines cache entry structures, lookup results and adaptive TTL configuration.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class InsightKind(str, Enum):
    """Kinds of one-shot generation fronted by the cache."""
    INSIGHT = "insight"
    GOAL_SUGGESTION = "goal-suggestion"
    BUDGET_SUGGESTION = "budget-suggestion"


@dataclass
class CacheEntry:
    """
    A single cache row.

    ``payload`` is opaque to the cache; ``kind`` and ``owner`` drive the
    adaptive TTL statistics and the ownership check on lookup.
    """
    id: Any
    key: str
    kind: str
    owner: str
    payload: Any
    created_at: datetime
    expires_at: datetime
    hit_count: int = 0
    last_hit_at: Optional[datetime] = None
    base_ttl_hours: Optional[int] = None
    adjusted_ttl_hours: Optional[int] = None

    def is_expired(self, now: datetime) -> bool:
        """Check if entry has expired at ``now``."""
        return self.expires_at <= now

    @property
    def ttl_hours(self) -> float:
        return (self.expires_at - self.created_at).total_seconds() / 3600


@dataclass
class CacheLookupResult:
    """Result of a cache lookup: either a hit carrying the entry, or a miss."""
    hit: bool
    entry: Optional[CacheEntry] = None

    @classmethod
    def miss(cls) -> "CacheLookupResult":
        return cls(hit=False)

    @property
    def payload(self) -> Any:
        """Get cached payload if hit."""
        return self.entry.payload if self.entry else None

    @property
    def hit_count(self) -> int:
        """Hit count including the hit that produced this result."""
        return self.entry.hit_count if self.entry else 0


@dataclass
class AdaptiveCacheConfig:
    """
    Configuration for adaptive TTL adjustment.

    Field names match the JSON stored under ``adaptive_cache_config`` in the
    cache_settings table.
    """
    enabled: bool = True
    min_ttl_hours: int = 6
    max_ttl_hours: int = 48
    hit_rate_threshold_low: float = 0.2
    hit_rate_threshold_high: float = 0.5
    ttl_decrease_factor: float = 0.8
    ttl_increase_factor: float = 1.3
    min_entries_for_analysis: int = 5
    lookback_days: int = 30

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdaptiveCacheConfig":
        """Build from stored JSON, ignoring unknown keys and keeping defaults for missing ones."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    @classmethod
    def from_settings(cls, settings: Any) -> "AdaptiveCacheConfig":
        return cls(
            enabled=settings.adaptive_cache_enabled,
            min_ttl_hours=settings.adaptive_min_ttl_hours,
            max_ttl_hours=settings.adaptive_max_ttl_hours,
            hit_rate_threshold_low=settings.adaptive_hit_rate_low,
            hit_rate_threshold_high=settings.adaptive_hit_rate_high,
            ttl_decrease_factor=settings.adaptive_ttl_decrease_factor,
            ttl_increase_factor=settings.adaptive_ttl_increase_factor,
            min_entries_for_analysis=settings.adaptive_min_entries,
            lookback_days=settings.adaptive_lookback_days,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TTLDecision:
    """Outcome of the adaptive TTL policy for one write."""
    ttl_hours: int
    hit_rate: float = 0.0
    is_adaptive: bool = False


@dataclass
class CacheStats:
    """Statistics over all stored cache rows."""
    total_entries: int = 0
    total_hits: int = 0
    active_count: int = 0
    expired_count: int = 0
    by_kind: Dict[str, Dict[str, int]] = field(default_factory=dict)

    @property
    def avg_hits_per_entry(self) -> float:
        """Average hit count per entry."""
        return self.total_hits / self.total_entries if self.total_entries > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "total_entries": self.total_entries,
            "total_hits": self.total_hits,
            "avg_hits_per_entry": round(self.avg_hits_per_entry, 3),
            "active_count": self.active_count,
            "expired_count": self.expired_count,
            "by_kind": self.by_kind,
        }
