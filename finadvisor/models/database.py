"""
SQLAlchemy database models for the Finance Advisor AI service.

Two tables back the insight cache:
- ai_cache: one row per cache key (unique), owned by a single subject
- cache_settings: key/value JSON settings, e.g. the adaptive TTL config
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Integer, String, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


# ============================================================================
# INSIGHT CACHE
# ============================================================================

class AICacheModel(Base):
    """
    SQLAlchemy model for cached one-shot generation results.

    Uniqueness is enforced on cache_key; writes are upserts so the last
    writer wins when two requests race on the same miss.
    """
    __tablename__ = "ai_cache"

    id: Mapped[Any] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    cache_key: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    cache_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    response_data: Mapped[Any] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    hit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_hit_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    base_ttl_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    adjusted_ttl_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class CacheSettingModel(Base):
    """Key/value settings for the cache (JSON value)."""
    __tablename__ = "cache_settings"

    id: Mapped[Any] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    setting_key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    setting_value: Mapped[Any] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now)
