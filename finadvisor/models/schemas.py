"""
Pydantic Schemas for API Request/Response
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from finadvisor.cache.models import AdaptiveCacheConfig, InsightKind


def utc_now() -> datetime:
    """Get current UTC time (timezone-aware)"""
    return datetime.now(timezone.utc)


class ComponentStatus(str, Enum):
    """Status of a system component"""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


class Language(str, Enum):
    """Supported response languages"""
    TR = "tr"
    EN = "en"
    DE = "de"


# =============================================================================
# Chat Schemas
# =============================================================================

class ChatStreamRequest(BaseModel):
    """
    Streamed chat request.

    The conversation history lives server-side per session; the client only
    sends the new user turn.
    """
    message: str = Field(..., min_length=1, max_length=10000, description="User question")
    session_id: Optional[str] = Field(
        default=None,
        max_length=128,
        description="Session to continue. A new session is created when omitted.",
    )
    language: Language = Field(default=Language.TR, description="Response language")
    context: Optional[str] = Field(
        default=None,
        max_length=50000,
        description="Financial context text produced by the caller",
    )

    @field_validator("message")
    @classmethod
    def validate_message_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message cannot be empty or whitespace only")
        return v.strip()

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "message": "Bu ay en çok hangi kategoriye harcama yaptım?",
                    "session_id": "0f5b8c2e-5a0e-4c2b-9a55-0b7f6f1f4e21",
                    "language": "tr",
                    "context": "Toplam Bakiye: ₺42.500\nDönem Gideri: ₺18.200",
                }
            ]
        }
    }


class TranscriptEntrySchema(BaseModel):
    """One visible message of a chat session"""
    role: str = Field(..., description="user | assistant")
    content: str = Field(..., description="Message text")
    is_provisional: bool = Field(default=False, description="True while still streaming")


class SessionHistoryResponse(BaseModel):
    """Transcript of a chat session"""
    session_id: str
    entries: list[TranscriptEntrySchema]


# =============================================================================
# Insight Schemas
# =============================================================================

class InsightRequest(BaseModel):
    """One-shot insight or suggestion request"""
    kind: InsightKind = Field(default=InsightKind.INSIGHT, description="insight | goal-suggestion | budget-suggestion")
    language: Language = Field(default=Language.TR, description="Response language")
    skip_cache: bool = Field(default=False, description="Force regeneration; the fresh result still refreshes the cache")
    context: Optional[str] = Field(
        default=None,
        max_length=50000,
        description="Financial context text produced by the caller",
    )


class InsightResponse(BaseModel):
    """Insight payload plus cache bookkeeping"""
    insight: Optional[str] = Field(default=None, description="Insight text (kind=insight)")
    suggestions: Optional[list[Any]] = Field(default=None, description="Parsed suggestions (suggestion kinds)")
    raw: Optional[str] = Field(default=None, description="Unparsed model output when suggestions could not be parsed")
    cached: bool = Field(..., description="True if served from cache")
    cache_hit_count: Optional[int] = Field(default=None, description="Hit count including this hit")
    adjusted_ttl_hours: Optional[int] = Field(default=None, description="TTL of the cache entry in hours")
    is_adaptive: Optional[bool] = Field(default=None, description="True if the TTL was adjusted from hit rate")


# =============================================================================
# Admin Cache Schemas
# =============================================================================

class KindStats(BaseModel):
    count: int
    hits: int


class CacheStatsResponse(BaseModel):
    """Statistics over all cache rows"""
    total_entries: int
    total_hits: int
    avg_hits_per_entry: float
    active_count: int
    expired_count: int
    by_kind: dict[str, KindStats]
    gateway: Optional[dict[str, Any]] = Field(default=None, description="In-process gateway counters")


class CacheDeleteResponse(BaseModel):
    status: str = Field(default="deleted")
    deleted: int = Field(..., description="Number of rows deleted")


class AdaptiveCacheConfigSchema(BaseModel):
    """Adaptive TTL configuration stored under cache_settings.adaptive_cache_config"""
    enabled: bool = True
    min_ttl_hours: int = Field(default=6, ge=1)
    max_ttl_hours: int = Field(default=48, ge=1)
    hit_rate_threshold_low: float = Field(default=0.2, ge=0)
    hit_rate_threshold_high: float = Field(default=0.5, ge=0)
    ttl_decrease_factor: float = Field(default=0.8, gt=0, le=1)
    ttl_increase_factor: float = Field(default=1.3, ge=1)
    min_entries_for_analysis: int = Field(default=5, ge=0)
    lookback_days: int = Field(default=30, ge=1)

    @model_validator(mode="after")
    def check_ranges(self) -> "AdaptiveCacheConfigSchema":
        if self.min_ttl_hours > self.max_ttl_hours:
            raise ValueError("min_ttl_hours must not exceed max_ttl_hours")
        if self.hit_rate_threshold_low > self.hit_rate_threshold_high:
            raise ValueError("hit_rate_threshold_low must not exceed hit_rate_threshold_high")
        return self

    def to_config(self) -> AdaptiveCacheConfig:
        return AdaptiveCacheConfig(**self.model_dump())

    @classmethod
    def from_config(cls, config: AdaptiveCacheConfig) -> "AdaptiveCacheConfigSchema":
        return cls(**config.to_dict())


# =============================================================================
# Health Schemas
# =============================================================================

class ComponentHealth(BaseModel):
    """Health status of a single component"""
    name: str = Field(..., description="Component name")
    status: ComponentStatus = Field(..., description="Component status")
    latency_ms: Optional[float] = Field(default=None, description="Response latency in ms")
    message: Optional[str] = Field(default=None, description="Status message or error")


class HealthResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Overall system status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Current environment")
    components: dict[str, ComponentHealth] = Field(..., description="Status of each component")
    timestamp: datetime = Field(default_factory=utc_now, description="Check timestamp")


# =============================================================================
# Error Response Schemas
# =============================================================================

class ErrorDetail(BaseModel):
    """Detail of a validation or processing error"""
    field: Optional[str] = Field(default=None, description="Field that caused the error")
    message: str = Field(..., description="Error message")
    code: Optional[str] = Field(default=None, description="Error code")


class ErrorResponse(BaseModel):
    """Standard error response format"""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[list[ErrorDetail]] = Field(default=None, description="Error details")
    request_id: Optional[str] = Field(default=None, description="Request ID for tracking")
    timestamp: datetime = Field(default_factory=utc_now, description="Error timestamp")


class RateLimitResponse(BaseModel):
    """Rate limit exceeded response"""
    error: str = Field(default="rate_limited", description="Error type")
    message: str = Field(default="Rate limit exceeded", description="Error message")
    retry_after: int = Field(..., description="Seconds until rate limit resets")
