"""
AI Cache Repository - persistent store behind the insight cache.

Provides the row-level operations the cache gateway, the adaptive TTL policy
and the maintenance tooling need. Every store failure is raised as
CacheStoreError; deciding whether it degrades to a miss is the caller's job.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from finadvisor.cache.models import CacheEntry
from finadvisor.core.exceptions import CacheStoreError
from finadvisor.models.database import AICacheModel

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from drivers that drop tzinfo."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_entry(row: AICacheModel) -> CacheEntry:
    return CacheEntry(
        id=row.id,
        key=row.cache_key,
        kind=row.cache_type,
        owner=row.user_id,
        payload=row.response_data,
        created_at=_as_utc(row.created_at),
        expires_at=_as_utc(row.expires_at),
        hit_count=row.hit_count or 0,
        last_hit_at=_as_utc(row.last_hit_at),
        base_ttl_hours=row.base_ttl_hours,
        adjusted_ttl_hours=row.adjusted_ttl_hours,
    )


class AICacheRepository:
    """
    Repository for the ai_cache table.

    Uses the SHARED engine unless a session factory is injected.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    def _factory(self) -> sessionmaker:
        if self._session_factory is None:
            from finadvisor.core.database import get_shared_session_factory

            try:
                self._session_factory = get_shared_session_factory()
            except Exception as e:
                raise CacheStoreError(f"Cache store unavailable: {e}") from e
        return self._session_factory

    def _run(self, operation: str, fn: Callable[[Session], Any]) -> Any:
        try:
            with self._factory()() as session:
                return fn(session)
        except CacheStoreError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Cache store {operation} failed: {e}")
            raise CacheStoreError(f"{operation} failed: {e}") from e

    def is_available(self) -> bool:
        """Check if the store answers a trivial query."""
        try:
            self._run("ping", lambda s: s.execute(select(1)).scalar())
            return True
        except CacheStoreError:
            return False

    # =========================================================================
    # Lookup / hit bookkeeping
    # =========================================================================

    def find_valid(self, key: str, owner: str, now: datetime) -> Optional[CacheEntry]:
        """
        Return the non-expired row for ``key`` owned by ``owner``.

        Rows owned by another subject are never returned, even when the key
        collides.
        """
        def _query(session: Session) -> Optional[CacheEntry]:
            stmt = select(AICacheModel).where(
                AICacheModel.cache_key == key,
                AICacheModel.user_id == owner,
                AICacheModel.expires_at > now,
            )
            row = session.execute(stmt).scalar_one_or_none()
            return _to_entry(row) if row else None

        return self._run("find_valid", _query)

    def increment_hit(self, entry_id: Any, now: datetime) -> Optional[int]:
        """
        Atomically bump hit_count and set last_hit_at.

        Returns:
            The new hit count, or None if the row no longer exists
        """
        def _update(session: Session) -> Optional[int]:
            session.execute(
                update(AICacheModel)
                .where(AICacheModel.id == entry_id)
                .values(hit_count=AICacheModel.hit_count + 1, last_hit_at=now)
            )
            session.commit()
            return session.execute(
                select(AICacheModel.hit_count).where(AICacheModel.id == entry_id)
            ).scalar_one_or_none()

        return self._run("increment_hit", _update)

    # =========================================================================
    # Writes
    # =========================================================================

    def upsert(
        self,
        key: str,
        kind: str,
        owner: str,
        payload: Any,
        created_at: datetime,
        expires_at: datetime,
        base_ttl_hours: Optional[int] = None,
        adjusted_ttl_hours: Optional[int] = None,
    ) -> None:
        """Insert or overwrite the row for ``key``; resets hit statistics."""
        values = {
            "cache_type": kind,
            "user_id": owner,
            "response_data": payload,
            "created_at": created_at,
            "expires_at": expires_at,
            "hit_count": 0,
            "last_hit_at": None,
            "base_ttl_hours": base_ttl_hours,
            "adjusted_ttl_hours": adjusted_ttl_hours,
        }

        def _write(session: Session) -> None:
            dialect = session.get_bind().dialect.name
            insert = _dialect_insert(dialect)
            if insert is not None:
                stmt = insert(AICacheModel).values(id=uuid4(), cache_key=key, **values)
                stmt = stmt.on_conflict_do_update(index_elements=["cache_key"], set_=values)
                session.execute(stmt)
            else:
                row = session.execute(
                    select(AICacheModel).where(AICacheModel.cache_key == key)
                ).scalar_one_or_none()
                if row is None:
                    session.add(AICacheModel(id=uuid4(), cache_key=key, **values))
                else:
                    for name, value in values.items():
                        setattr(row, name, value)
            session.commit()

        self._run("upsert", _write)

    # =========================================================================
    # Statistics / maintenance
    # =========================================================================

    def hit_counts_since(self, kind: str, owner: str, since: datetime) -> List[int]:
        """Hit counts of rows of ``kind`` owned by ``owner`` created after ``since``."""
        def _query(session: Session) -> List[int]:
            stmt = select(AICacheModel.hit_count).where(
                AICacheModel.cache_type == kind,
                AICacheModel.user_id == owner,
                AICacheModel.created_at > since,
            )
            return [count or 0 for count in session.execute(stmt).scalars()]

        return self._run("hit_counts_since", _query)

    def list_entries(self) -> List[CacheEntry]:
        """All rows, newest first."""
        def _query(session: Session) -> List[CacheEntry]:
            stmt = select(AICacheModel).order_by(AICacheModel.created_at.desc())
            return [_to_entry(row) for row in session.execute(stmt).scalars()]

        return self._run("list_entries", _query)

    def delete_expired(self, now: datetime) -> int:
        """Delete rows whose expires_at is in the past."""
        def _delete(session: Session) -> int:
            result = session.execute(delete(AICacheModel).where(AICacheModel.expires_at < now))
            session.commit()
            return result.rowcount or 0

        return self._run("delete_expired", _delete)

    def delete_all(self) -> int:
        """Delete every cache row."""
        def _delete(session: Session) -> int:
            result = session.execute(delete(AICacheModel))
            session.commit()
            return result.rowcount or 0

        return self._run("delete_all", _delete)


def _dialect_insert(dialect: str):
    """INSERT construct supporting ON CONFLICT for the given dialect, if any."""
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    return None


# =============================================================================
# Singleton
# =============================================================================

_ai_cache_repository: Optional[AICacheRepository] = None


def get_ai_cache_repository() -> AICacheRepository:
    """Get or create AICacheRepository singleton."""
    global _ai_cache_repository
    if _ai_cache_repository is None:
        _ai_cache_repository = AICacheRepository()
    return _ai_cache_repository
