"""
Pytest Configuration and Fixtures for Finance Advisor AI Service Tests
"""
from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import settings
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from finadvisor.models.database import Base
from finadvisor.repositories.ai_cache_repository import AICacheRepository
from finadvisor.repositories.cache_settings_repository import CacheSettingsRepository

# Configure Hypothesis profiles
settings.register_profile("ci", max_examples=100, deadline=None)
settings.register_profile("dev", max_examples=50, deadline=5000)
settings.load_profile("dev")


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def sample_user_id():
    """Sample user ID for testing"""
    return "550e8400-e29b-41d4-a716-446655440000"


@pytest.fixture
def sample_chat_message():
    """Sample chat message for testing"""
    return "Bu ay en çok hangi kategoriye harcama yaptım?"


@pytest.fixture
def clock():
    """Clock pinned to 2026-03-14 09:30 UTC."""
    return FixedClock(datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def session_factory():
    """In-memory SQLite shared across threads (store calls run in to_thread)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def cache_repository(session_factory):
    return AICacheRepository(session_factory=session_factory)


@pytest.fixture
def settings_repository(session_factory):
    return CacheSettingsRepository(session_factory=session_factory)
