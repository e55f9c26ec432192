"""
Live Transcript Builder - applies reassembled frames to a conversation.

Each stream owns one provisional assistant entry. Every delta rewrites the
entry with the whole accumulated text (full replacement, never a patch). When
the stream settles the entry is promoted if it has content and removed if it
is empty, so no empty bubble survives.

Starting a stream while another is active on the same transcript cancels the
older one first (cancel-and-restart).
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from finadvisor.engine.frame_reassembler import Frame, FrameKind

logger = logging.getLogger(__name__)


class TranscriptRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class StreamOutcome(str, Enum):
    """How a stream handle settled."""
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class TranscriptEntry:
    """One message bubble."""
    role: str
    content: str = ""
    is_provisional: bool = False


class Transcript:
    """
    In-memory conversation for one session.

    Usage:
        transcript = Transcript()
        transcript.add_user_message("How much did I spend on food?")
        handle = transcript.start_stream()
        for frame in frames:
            handle.apply(frame)
        handle.finish()
    """

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id
        self._entries: List[TranscriptEntry] = []
        self._active: Optional["StreamHandle"] = None

    @property
    def entries(self) -> List[TranscriptEntry]:
        return list(self._entries)

    @property
    def active_stream(self) -> Optional["StreamHandle"]:
        return self._active

    def add_user_message(self, content: str) -> TranscriptEntry:
        entry = TranscriptEntry(role=TranscriptRole.USER.value, content=content)
        self._entries.append(entry)
        return entry

    def start_stream(self) -> "StreamHandle":
        """
        Append an empty provisional assistant entry and return its handle.

        Any stream still active on this transcript is cancelled first.
        """
        self.cancel_active()

        entry = TranscriptEntry(role=TranscriptRole.ASSISTANT.value, is_provisional=True)
        self._entries.append(entry)
        handle = StreamHandle(self, entry)
        self._active = handle
        return handle

    def cancel_active(self) -> bool:
        """Cancel the active stream, if any. Returns True if one was cancelled."""
        if self._active is None or not self._active.is_active:
            return False
        logger.info(f"Cancelling active stream on session {self.session_id}")
        self._active.cancel()
        return True

    def to_messages(self) -> List[Dict[str, str]]:
        """Conversation to send upstream; provisional entries are excluded."""
        return [
            {"role": entry.role, "content": entry.content}
            for entry in self._entries
            if not entry.is_provisional
        ]

    def _remove(self, entry: TranscriptEntry) -> None:
        self._entries = [e for e in self._entries if e is not entry]

    def _release(self, handle: "StreamHandle") -> None:
        if self._active is handle:
            self._active = None


class StreamHandle:
    """
    Session handle for one in-progress assistant reply.

    After settling (finish, fail or cancel) the handle ignores further frames
    and further settle calls.
    """

    def __init__(self, transcript: Transcript, entry: TranscriptEntry):
        self._transcript = transcript
        self._entry = entry
        self._parts: List[str] = []
        self.outcome: Optional[StreamOutcome] = None
        self.error: Optional[BaseException] = None

    @property
    def entry(self) -> TranscriptEntry:
        return self._entry

    @property
    def content(self) -> str:
        return "".join(self._parts)

    @property
    def is_active(self) -> bool:
        return self.outcome is None

    def apply(self, frame: Frame) -> None:
        """Apply one frame in arrival order."""
        if not self.is_active:
            return

        if frame.kind is FrameKind.END:
            self.finish()
            return

        self._parts.append(frame.text)
        self._entry.content = self.content

    def finish(self) -> None:
        """Stream ended normally (end frame or input exhaustion)."""
        self._settle(StreamOutcome.COMPLETED)

    def fail(self, error: Optional[BaseException] = None) -> None:
        """Stream failed; partial content stays visible."""
        if self.is_active:
            self.error = error
        self._settle(StreamOutcome.FAILED)

    def cancel(self) -> None:
        """Stream abandoned by the caller."""
        self._settle(StreamOutcome.CANCELLED)

    def _settle(self, outcome: StreamOutcome) -> None:
        if not self.is_active:
            return

        self.outcome = outcome
        if self.content:
            self._entry.is_provisional = False
        else:
            self._transcript._remove(self._entry)
        self._transcript._release(self)
