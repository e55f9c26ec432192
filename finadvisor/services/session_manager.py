"""
Session Manager - in-memory chat transcripts per user session.

Transcripts are not persisted: they live as long as the process, and the
least recently used sessions are evicted past ``max_sessions``.

**Pattern:** Singleton Service
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional, Tuple
from uuid import uuid4

from finadvisor.engine.transcript import Transcript

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """Session info for one chat request."""
    session_id: str
    user_id: str
    transcript: Transcript
    is_new: bool = False


class SessionManager:
    """
    Maps (user_id, session_id) to a Transcript.

    Sessions are scoped by user: a session id presented by another user
    resolves to a different transcript.
    """

    def __init__(self, max_sessions: int = 1000):
        self._max_sessions = max_sessions
        self._sessions: "OrderedDict[Tuple[str, str], Transcript]" = OrderedDict()

        logger.info("SessionManager initialized")

    def get_or_create_session(self, user_id: str, session_id: Optional[str] = None) -> SessionContext:
        """
        Get or create a session for user.

        Args:
            user_id: User identifier
            session_id: Existing session to continue; a new one is created when None

        Returns:
            SessionContext with the session's transcript
        """
        session_id = session_id or str(uuid4())
        key = (user_id, session_id)

        transcript = self._sessions.get(key)
        is_new = transcript is None
        if is_new:
            transcript = Transcript(session_id=session_id)
            self._sessions[key] = transcript
            self._evict()
        else:
            self._sessions.move_to_end(key)

        return SessionContext(
            session_id=session_id,
            user_id=user_id,
            transcript=transcript,
            is_new=is_new,
        )

    def get_transcript(self, user_id: str, session_id: str) -> Optional[Transcript]:
        return self._sessions.get((user_id, session_id))

    def end_session(self, user_id: str, session_id: str) -> bool:
        """Drop a session, cancelling any stream still running on it."""
        transcript = self._sessions.pop((user_id, session_id), None)
        if transcript is None:
            return False
        transcript.cancel_active()
        return True

    def _evict(self) -> None:
        while len(self._sessions) > self._max_sessions:
            (user_id, session_id), transcript = self._sessions.popitem(last=False)
            transcript.cancel_active()
            logger.debug(f"Evicted chat session {session_id} of user {user_id}")

    def __len__(self) -> int:
        return len(self._sessions)


# =============================================================================
# SINGLETON
# =============================================================================

_session_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    """Get or create SessionManager singleton."""
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager
