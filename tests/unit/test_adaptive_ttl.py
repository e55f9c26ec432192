"""
Unit Tests for the Adaptive TTL Policy
"""
from datetime import timedelta

import pytest

from finadvisor.cache.adaptive_ttl import (
    AdaptiveTTLPolicy,
    adjust_ttl,
    average_hit_rate,
    load_adaptive_config,
)
from finadvisor.cache.models import AdaptiveCacheConfig
from finadvisor.core.exceptions import CacheStoreError
from finadvisor.repositories.cache_settings_repository import ADAPTIVE_CACHE_CONFIG_KEY


CONFIG = AdaptiveCacheConfig(
    enabled=True,
    min_ttl_hours=6,
    max_ttl_hours=72,
    hit_rate_threshold_low=1.0,
    hit_rate_threshold_high=5.0,
    ttl_decrease_factor=0.5,
    ttl_increase_factor=1.5,
    min_entries_for_analysis=5,
    lookback_days=30,
)


class StubRepository:
    """Returns canned hit counts and records the query window."""

    def __init__(self, hit_counts=None, error=None):
        self.hit_counts = hit_counts or []
        self.error = error
        self.queries = []

    def hit_counts_since(self, kind, owner, since):
        self.queries.append((kind, owner, since))
        if self.error:
            raise self.error
        return list(self.hit_counts)


class StubSettingsRepository:
    def __init__(self, stored=None, error=None):
        self.stored = stored
        self.error = error

    def get(self, setting_key):
        assert setting_key == ADAPTIVE_CACHE_CONFIG_KEY
        if self.error:
            raise self.error
        return self.stored


def make_policy(repository, clock, config=CONFIG):
    return AdaptiveTTLPolicy(repository, config_provider=lambda: config, clock=clock)


# =============================================================================
# Pure rules
# =============================================================================

class TestAdjustTTL:
    def test_low_hit_rate_shrinks(self):
        assert adjust_ttl(24, 0.3, CONFIG) == 12

    def test_high_hit_rate_grows(self):
        assert adjust_ttl(24, 8.0, CONFIG) == 36

    def test_mid_hit_rate_keeps_base(self):
        assert adjust_ttl(24, 2.0, CONFIG) == 24

    def test_thresholds_are_exclusive(self):
        assert adjust_ttl(24, 1.0, CONFIG) == 24
        assert adjust_ttl(24, 5.0, CONFIG) == 24

    def test_shrink_clamped_to_floor(self):
        assert adjust_ttl(10, 0.0, CONFIG) == 6

    def test_grow_clamped_to_ceiling(self):
        assert adjust_ttl(60, 9.0, CONFIG) == 72

    def test_fractional_results_round_down(self):
        assert adjust_ttl(25, 9.0, CONFIG) == 37
        assert adjust_ttl(25, 0.0, CONFIG) == 12

    def test_average_hit_rate(self):
        assert average_hit_rate([]) == 0.0
        assert average_hit_rate([0, 1, 2, 5]) == 2.0


# =============================================================================
# Policy
# =============================================================================

class TestAdaptiveTTLPolicy:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "hit_counts, expected",
        [
            ([1, 1, 1, 0, 0, 0, 0, 0, 0, 0], 12),
            ([8, 8, 8, 8, 8], 36),
            ([2, 2, 2, 2, 2], 24),
        ],
    )
    async def test_ttl_from_hit_rate(self, clock, hit_counts, expected):
        policy = make_policy(StubRepository(hit_counts), clock)

        decision = await policy.compute("insight", "u1", base_ttl_hours=24)

        assert decision.ttl_hours == expected
        assert decision.is_adaptive is True
        assert decision.hit_rate == sum(hit_counts) / len(hit_counts)

    @pytest.mark.asyncio
    async def test_too_few_entries_uses_base(self, clock):
        policy = make_policy(StubRepository([0, 0, 0, 0]), clock)

        decision = await policy.compute("insight", "u1", base_ttl_hours=24)

        assert decision.ttl_hours == 24
        assert decision.is_adaptive is False

    @pytest.mark.asyncio
    async def test_no_entries_uses_base_even_without_minimum(self, clock):
        config = AdaptiveCacheConfig(**{**CONFIG.to_dict(), "min_entries_for_analysis": 0})
        policy = make_policy(StubRepository([]), clock, config)

        decision = await policy.compute("insight", "u1", base_ttl_hours=24)

        assert decision.ttl_hours == 24
        assert decision.is_adaptive is False

    @pytest.mark.asyncio
    async def test_disabled_policy_uses_base_without_querying(self, clock):
        repository = StubRepository([0] * 10)
        config = AdaptiveCacheConfig(**{**CONFIG.to_dict(), "enabled": False})
        policy = make_policy(repository, clock, config)

        decision = await policy.compute("insight", "u1", base_ttl_hours=24)

        assert decision.ttl_hours == 24
        assert repository.queries == []

    @pytest.mark.asyncio
    async def test_store_error_falls_back_to_base(self, clock):
        policy = make_policy(StubRepository(error=CacheStoreError("down")), clock)

        decision = await policy.compute("insight", "u1", base_ttl_hours=24)

        assert decision.ttl_hours == 24
        assert decision.is_adaptive is False

    @pytest.mark.asyncio
    async def test_query_scoped_to_kind_subject_and_lookback(self, clock):
        repository = StubRepository([1] * 5)
        policy = make_policy(repository, clock)

        await policy.compute("budget-suggestion", "u7", base_ttl_hours=12)

        assert repository.queries == [("budget-suggestion", "u7", clock() - timedelta(days=30))]

    @pytest.mark.asyncio
    async def test_against_stored_rows(self, cache_repository, clock):
        now = clock()
        for i in range(5):
            cache_repository.upsert(
                f"u1-insight-tr-day{i}", "insight", "u1", {"insight": "x"},
                now - timedelta(days=i), now + timedelta(hours=24),
            )
        for entry in cache_repository.list_entries():
            for _ in range(8):
                cache_repository.increment_hit(entry.id, now)
        # Rows of another subject and older than the window do not count
        cache_repository.upsert("u2-insight-tr-x", "insight", "u2", {}, now, now + timedelta(hours=1))
        cache_repository.upsert(
            "u1-insight-tr-old", "insight", "u1", {}, now - timedelta(days=45), now - timedelta(days=44)
        )

        decision = await make_policy(cache_repository, clock).compute("insight", "u1", 24)

        assert decision.hit_rate == 8.0
        assert decision.ttl_hours == 36


# =============================================================================
# Configuration loading
# =============================================================================

class TestLoadAdaptiveConfig:
    def test_missing_repository_uses_fallback(self):
        assert load_adaptive_config(None, CONFIG) is CONFIG

    def test_absent_setting_uses_fallback(self):
        assert load_adaptive_config(StubSettingsRepository(stored=None), CONFIG) is CONFIG

    def test_stored_values_override_fallback(self):
        repository = StubSettingsRepository(stored={"max_ttl_hours": 96, "unknown_key": 1})

        config = load_adaptive_config(repository, CONFIG)

        assert config.max_ttl_hours == 96
        assert config.min_ttl_hours == CONFIG.min_ttl_hours

    def test_store_error_uses_fallback(self):
        repository = StubSettingsRepository(error=CacheStoreError("down"))
        assert load_adaptive_config(repository, CONFIG) is CONFIG

    def test_round_trip_through_settings_table(self, settings_repository):
        stored = AdaptiveCacheConfig(**{**CONFIG.to_dict(), "ttl_increase_factor": 2.0})
        settings_repository.put(ADAPTIVE_CACHE_CONFIG_KEY, stored.to_dict())

        assert load_adaptive_config(settings_repository, CONFIG) == stored
