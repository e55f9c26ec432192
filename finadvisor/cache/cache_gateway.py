"""
Cache Gateway - fronts the one-shot insight generation path.

Features:
- Deterministic daily keys per (subject, kind, locale, day)
- Strict ownership check on lookup
- Hit bookkeeping on every served hit (feeds the adaptive TTL policy)
- Upsert on miss, last writer wins
- Circuit breaker: store failures degrade to misses / dropped writes and
  never block generation
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Union

from finadvisor.cache.models import CacheLookupResult, utc_now
from finadvisor.core.exceptions import CacheStoreError

if TYPE_CHECKING:
    from finadvisor.repositories.ai_cache_repository import AICacheRepository

logger = logging.getLogger(__name__)


def compute_cache_key(
    subject: str,
    kind: str,
    locale: str,
    reference_date: Union[date, datetime],
) -> str:
    """
    Build the cache key for one (subject, kind, locale, day) combination.

    Datetimes are truncated to their UTC calendar day, so every lookup made
    on the same day collides on one entry.
    """
    if isinstance(reference_date, datetime):
        if reference_date.tzinfo is not None:
            reference_date = reference_date.astimezone(timezone.utc)
        reference_date = reference_date.date()
    return f"{subject}-{kind}-{locale}-{reference_date.isoformat()}"


@dataclass
class CircuitBreakerState:
    """State for circuit breaker pattern."""
    failure_count: int = 0
    last_failure_time: float = 0.0
    is_open: bool = False

    # Configuration
    failure_threshold: int = 5
    recovery_timeout: float = 60.0  # seconds

    def record_failure(self) -> None:
        """Record a failure and potentially open circuit."""
        self.failure_count += 1
        self.last_failure_time = time.monotonic()

        if self.failure_count >= self.failure_threshold and not self.is_open:
            self.is_open = True
            logger.warning(f"Cache circuit breaker OPENED after {self.failure_count} failures")

    def record_success(self) -> None:
        """Record success and reset failure count."""
        self.failure_count = 0
        if self.is_open:
            self.is_open = False
            logger.info("Cache circuit breaker CLOSED")

    def is_closed(self) -> bool:
        """Check if circuit allows operations."""
        if not self.is_open:
            return True

        # Half-open: allow a probe once the recovery timeout has passed
        if time.monotonic() - self.last_failure_time > self.recovery_timeout:
            logger.info("Cache circuit breaker half-open, allowing probe request")
            return True

        return False


class CacheGateway:
    """
    Cache front for repeatable generation requests.

    Usage:
        gateway = CacheGateway(repository)
        key = compute_cache_key(user_id, "insight", "en", now)

        result = await gateway.get(key, user_id)
        if result.hit:
            return result.payload

        payload = await generate()
        await gateway.put(key, user_id, "insight", payload, ttl_hours=24)
    """

    def __init__(
        self,
        repository: "AICacheRepository",
        clock: Callable[[], datetime] = utc_now,
        enabled: bool = True,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
    ):
        self._repository = repository
        self._clock = clock
        self._enabled = enabled
        self._circuit = CircuitBreakerState(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
        )

        # Metrics
        self._lookups = 0
        self._hits = 0
        self._misses = 0
        self._bypasses = 0
        self._store_failures = 0

    async def get(self, key: str, subject: str) -> CacheLookupResult:
        """
        Look up ``key`` for ``subject``.

        A hit requires a non-expired row owned by ``subject``. Serving a hit
        always records it (hit_count + 1, last_hit_at = now).
        """
        self._lookups += 1

        if not self._enabled:
            self._misses += 1
            return CacheLookupResult.miss()

        if not self._circuit.is_closed():
            self._bypasses += 1
            self._misses += 1
            logger.debug("Cache lookup bypassed due to circuit breaker")
            return CacheLookupResult.miss()

        now = self._clock()
        try:
            entry = await asyncio.to_thread(self._repository.find_valid, key, subject, now)
            self._circuit.record_success()
        except CacheStoreError as e:
            self._record_store_failure()
            logger.error(f"Cache lookup failed, treating as miss: {e}")
            self._misses += 1
            return CacheLookupResult.miss()

        if entry is None or entry.owner != subject or entry.is_expired(now):
            self._misses += 1
            logger.info(f"Cache miss for {key}")
            return CacheLookupResult.miss()

        new_count = await self.on_hit(entry.id)
        entry.hit_count = new_count if new_count is not None else entry.hit_count + 1
        entry.last_hit_at = now
        self._hits += 1
        logger.info(f"Cache hit for {key} (hit_count={entry.hit_count})")
        return CacheLookupResult(hit=True, entry=entry)

    async def on_hit(self, entry_id: Any) -> Optional[int]:
        """
        Record a served hit.

        Returns:
            The stored hit count after the increment, or None if it could not
            be recorded
        """
        try:
            count = await asyncio.to_thread(self._repository.increment_hit, entry_id, self._clock())
            self._circuit.record_success()
            return count
        except CacheStoreError as e:
            self._record_store_failure()
            logger.error(f"Failed to record cache hit for {entry_id}: {e}")
            return None

    async def put(
        self,
        key: str,
        subject: str,
        kind: str,
        payload: Any,
        ttl_hours: int,
        base_ttl_hours: Optional[int] = None,
    ) -> bool:
        """
        Store ``payload`` under ``key`` for ``ttl_hours``.

        Returns:
            True if stored, False if the store was unavailable (the caller
            still returns the freshly generated payload)
        """
        if ttl_hours < 0:
            raise ValueError(f"ttl_hours must be >= 0, got {ttl_hours}")

        if not self._enabled:
            return False

        if not self._circuit.is_closed():
            logger.debug("Cache write skipped due to circuit breaker")
            return False

        created_at = self._clock()
        expires_at = created_at + timedelta(hours=ttl_hours)
        try:
            await asyncio.to_thread(
                self._repository.upsert,
                key,
                kind,
                subject,
                payload,
                created_at,
                expires_at,
                base_ttl_hours if base_ttl_hours is not None else ttl_hours,
                ttl_hours,
            )
            self._circuit.record_success()
        except CacheStoreError as e:
            self._record_store_failure()
            logger.error(f"Cache write failed for {key}, response not cached: {e}")
            return False

        logger.info(f"Cached response for {key} (ttl={ttl_hours}h)")
        return True

    def _record_store_failure(self) -> None:
        self._store_failures += 1
        self._circuit.record_failure()

    def get_stats(self) -> Dict[str, Any]:
        """Gateway counters and circuit breaker state."""
        return {
            "enabled": self._enabled,
            "lookups": self._lookups,
            "hits": self._hits,
            "misses": self._misses,
            "bypasses": self._bypasses,
            "store_failures": self._store_failures,
            "circuit_breaker": {
                "is_open": self._circuit.is_open,
                "failure_count": self._circuit.failure_count,
            },
        }

    @property
    def is_enabled(self) -> bool:
        """Check if caching is enabled."""
        return self._enabled

    @property
    def circuit_is_open(self) -> bool:
        """Check if circuit breaker is open."""
        return self._circuit.is_open


# =============================================================================
# Singleton instance
# =============================================================================

_cache_gateway: Optional[CacheGateway] = None


def get_cache_gateway() -> CacheGateway:
    """Get or create CacheGateway singleton."""
    global _cache_gateway
    if _cache_gateway is None:
        from finadvisor.core.config import settings
        from finadvisor.repositories.ai_cache_repository import get_ai_cache_repository

        _cache_gateway = CacheGateway(
            get_ai_cache_repository(),
            enabled=settings.cache_enabled,
            failure_threshold=settings.cache_failure_threshold,
            recovery_timeout=settings.cache_recovery_timeout_seconds,
        )
    return _cache_gateway
