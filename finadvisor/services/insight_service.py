"""
Insight Service - cached one-shot generation.

Flow:
    key = subject-kind-language-YYYY-MM-DD
    skip_cache? -> straight to generation
    cache hit?  -> cached payload (hit recorded)
    miss        -> generate -> adaptive TTL -> store -> fresh payload

Upstream failures propagate and are never cached. Cache store failures never
fail the request.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from finadvisor.cache.adaptive_ttl import AdaptiveTTLPolicy, get_adaptive_ttl_policy
from finadvisor.cache.cache_gateway import CacheGateway, compute_cache_key, get_cache_gateway
from finadvisor.cache.models import InsightKind, utc_now
from finadvisor.core.config import settings
from finadvisor.engine.llm_gateway import LLMGateway, get_llm_gateway
from finadvisor.services.context_builder import (
    ContextBuilder,
    get_context_builder,
    normalize_language,
)

logger = logging.getLogger(__name__)

JSON_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")

SUGGESTION_KINDS = (InsightKind.GOAL_SUGGESTION.value, InsightKind.BUDGET_SUGGESTION.value)


@dataclass
class InsightResult:
    """Payload plus cache bookkeeping for one insight request."""
    payload: Dict[str, Any]
    cached: bool
    cache_hit_count: Optional[int] = None
    adjusted_ttl_hours: Optional[int] = None
    is_adaptive: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Payload fields merged with the cache flags."""
        result = dict(self.payload)
        result["cached"] = self.cached
        if self.cache_hit_count is not None:
            result["cache_hit_count"] = self.cache_hit_count
        if self.adjusted_ttl_hours is not None:
            result["adjusted_ttl_hours"] = self.adjusted_ttl_hours
        if not self.cached:
            result["is_adaptive"] = self.is_adaptive
        return result


def parse_suggestions(content: str) -> Optional[List[Any]]:
    """
    Extract the JSON array of suggestions from model output.

    Returns:
        The parsed list ([] when no array is present), or None when an array
        is present but is not valid JSON
    """
    match = JSON_ARRAY_PATTERN.search(content)
    if not match:
        return []
    try:
        parsed = json.loads(match.group(0))
    except ValueError:
        return None
    return parsed if isinstance(parsed, list) else None


class InsightService:
    """
    Generates financial insights and suggestions behind the response cache.

    Usage:
        service = get_insight_service()
        result = await service.get_insight(user_id, "insight", language="en")
        return result.to_dict()
    """

    def __init__(
        self,
        llm_gateway: Optional[LLMGateway] = None,
        cache_gateway: Optional[CacheGateway] = None,
        ttl_policy: Optional[AdaptiveTTLPolicy] = None,
        context_builder: Optional[ContextBuilder] = None,
        base_ttl_hours: Optional[Dict[str, int]] = None,
        clock: Callable[[], datetime] = utc_now,
        generation_timeout_seconds: Optional[float] = None,
    ):
        self._llm = llm_gateway if llm_gateway is not None else get_llm_gateway()
        self._cache = cache_gateway if cache_gateway is not None else get_cache_gateway()
        self._policy = ttl_policy if ttl_policy is not None else get_adaptive_ttl_policy()
        self._context_builder = context_builder if context_builder is not None else get_context_builder()
        self._base_ttl_hours = base_ttl_hours or {
            InsightKind.INSIGHT.value: settings.insight_base_ttl_hours,
            InsightKind.GOAL_SUGGESTION.value: settings.suggestion_base_ttl_hours,
            InsightKind.BUDGET_SUGGESTION.value: settings.suggestion_base_ttl_hours,
        }
        self._clock = clock
        # None falls back to the gateway timeout
        self._generation_timeout = generation_timeout_seconds

    def base_ttl_for(self, kind: str) -> int:
        return self._base_ttl_hours[kind]

    async def get_insight(
        self,
        subject: str,
        kind: str,
        language: str = "tr",
        skip_cache: bool = False,
        context: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> InsightResult:
        """
        Serve an insight of ``kind`` for ``subject``.

        Args:
            subject: Owner of the cache entry (authenticated user id)
            kind: One of InsightKind values
            language: Response language (tr, en, de)
            skip_cache: Force regeneration; the result still refreshes the cache
            context: Opaque financial context text
            now: Reference time for the daily key (defaults to the clock)

        Raises:
            UpstreamError: if generation fails
        """
        kind = InsightKind(kind).value
        language = normalize_language(language)
        key = compute_cache_key(subject, kind, language, now or self._clock())

        if not skip_cache:
            lookup = await self._cache.get(key, subject)
            if lookup.hit:
                return InsightResult(
                    payload=lookup.payload,
                    cached=True,
                    cache_hit_count=lookup.hit_count,
                    adjusted_ttl_hours=lookup.entry.adjusted_ttl_hours,
                )
        else:
            logger.info(f"Cache bypass requested for {key}")

        content = await self._llm.complete(
            [{"role": "user", "content": self._context_builder.insight_user_prompt(context)}],
            self._context_builder.insight_system_prompt(kind, language),
            timeout=self._generation_timeout,
        )
        logger.info(f"Generated {kind} for user {subject}")

        payload = self._shape_payload(kind, content)
        if payload is None:
            # Unparseable suggestions are returned raw and not cached
            logger.error(f"Error parsing {kind} for user {subject}")
            return InsightResult(payload={"suggestions": [], "raw": content}, cached=False)

        base_ttl = self.base_ttl_for(kind)
        decision = await self._policy.compute(kind, subject, base_ttl)
        logger.info(
            f"Using TTL {decision.ttl_hours}h for {key} (base: {base_ttl}h, "
            f"adaptive: {decision.is_adaptive}, hitRate: {decision.hit_rate:.2f})"
        )

        await self._cache.put(
            key,
            subject,
            kind,
            payload,
            ttl_hours=decision.ttl_hours,
            base_ttl_hours=base_ttl,
        )

        return InsightResult(
            payload=payload,
            cached=False,
            adjusted_ttl_hours=decision.ttl_hours,
            is_adaptive=decision.is_adaptive,
        )

    def _shape_payload(self, kind: str, content: str) -> Optional[Dict[str, Any]]:
        if kind in SUGGESTION_KINDS:
            suggestions = parse_suggestions(content)
            if suggestions is None:
                return None
            return {"suggestions": suggestions}
        return {"insight": content}


# =============================================================================
# SINGLETON
# =============================================================================

_insight_service: Optional[InsightService] = None


def get_insight_service() -> InsightService:
    """Get or create InsightService singleton."""
    global _insight_service
    if _insight_service is None:
        _insight_service = InsightService()
    return _insight_service
