"""
Insights API - cached financial insights and suggestions.

POST /insights
    kind: insight | goal-suggestion | budget-suggestion
    skip_cache: force regeneration (the fresh result still refreshes the cache)

Upstream failures map to 429 (rate_limited), 402 (quota_exhausted) or
502 (upstream_error) through the application exception handlers.
"""
import logging

from fastapi import APIRouter, Request

from finadvisor.api.deps import Insights, RequireAuth
from finadvisor.core.rate_limit import insight_rate_limit
from finadvisor.models.schemas import InsightRequest, InsightResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/insights", tags=["Insights"])


@router.post("", response_model=InsightResponse, response_model_exclude_none=True)
@insight_rate_limit
async def create_insight(
    request: Request,
    insight_request: InsightRequest,
    auth: RequireAuth,
    service: Insights,
) -> InsightResponse:
    """Serve an insight for the authenticated user, from cache when possible."""
    result = await service.get_insight(
        subject=auth.user_id,
        kind=insight_request.kind.value,
        language=insight_request.language.value,
        skip_cache=insight_request.skip_cache,
        context=insight_request.context,
    )
    logger.info(
        f"Insight {insight_request.kind.value} for user {auth.user_id}: "
        f"cached={result.cached}, ttl={result.adjusted_ttl_hours}"
    )
    return InsightResponse(**result.to_dict())
