"""
Cache Settings Repository - JSON key/value settings for the insight cache.

The adaptive TTL configuration lives under ``adaptive_cache_config`` so it can
be tuned at runtime from the admin API without a redeploy.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from finadvisor.core.exceptions import CacheStoreError
from finadvisor.models.database import CacheSettingModel

logger = logging.getLogger(__name__)

ADAPTIVE_CACHE_CONFIG_KEY = "adaptive_cache_config"


class CacheSettingsRepository:
    """Repository for the cache_settings table."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    def _factory(self) -> sessionmaker:
        if self._session_factory is None:
            from finadvisor.core.database import get_shared_session_factory

            try:
                self._session_factory = get_shared_session_factory()
            except Exception as e:
                raise CacheStoreError(f"Settings store unavailable: {e}") from e
        return self._session_factory

    def get(self, setting_key: str) -> Optional[Dict[str, Any]]:
        """
        Read a setting value.

        Returns:
            The stored JSON object, or None when the key is absent
        """
        try:
            with self._factory()() as session:
                row = session.execute(
                    select(CacheSettingModel).where(CacheSettingModel.setting_key == setting_key)
                ).scalar_one_or_none()
                return dict(row.setting_value) if row and row.setting_value else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to read cache setting {setting_key}: {e}")
            raise CacheStoreError(str(e)) from e

    def put(self, setting_key: str, value: Dict[str, Any]) -> None:
        """Create or replace a setting value."""
        try:
            with self._factory()() as session:
                row = session.execute(
                    select(CacheSettingModel).where(CacheSettingModel.setting_key == setting_key)
                ).scalar_one_or_none()
                now = datetime.now(timezone.utc)
                if row is None:
                    session.add(CacheSettingModel(
                        id=uuid4(),
                        setting_key=setting_key,
                        setting_value=value,
                        updated_at=now,
                    ))
                else:
                    row.setting_value = value
                    row.updated_at = now
                session.commit()
                logger.info(f"Cache setting {setting_key} saved")
        except SQLAlchemyError as e:
            logger.error(f"Failed to save cache setting {setting_key}: {e}")
            raise CacheStoreError(str(e)) from e


# Singleton
_settings_repository: Optional[CacheSettingsRepository] = None


def get_cache_settings_repository() -> CacheSettingsRepository:
    """Get or create CacheSettingsRepository singleton."""
    global _settings_repository
    if _settings_repository is None:
        _settings_repository = CacheSettingsRepository()
    return _settings_repository
