"""
Frame Reassembler - SSE byte chunks to logical frames.

The upstream streams an OpenAI-compatible chat completion as Server-Sent
Events. Transport chunks arrive at arbitrary byte boundaries, so a single
``data:`` record (or a single UTF-8 character) may be split across chunks.

Wire format:
    : keepalive                                      (comment, ignored)
    data: {"choices":[{"delta":{"content":"Hi"}}]}   (content delta)
    data: [DONE]                                     (end of stream)

A record whose JSON contains a raw newline arrives as several lines. When a
``data:`` payload does not decode, the following continuation lines are
joined onto it until it does. If the buffer runs out of terminated lines
first, the fragment is pushed back and the scan waits for more bytes. A new
``data:`` line (or the end of input) before a successful decode means the
record is malformed; it is dropped.

Output depends only on the byte stream, never on how it was chunked.
"""

import codecs
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Tuple

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

_UNDECODABLE = object()


# =============================================================================
# FRAMES AND STATE
# =============================================================================

class FrameKind(str, Enum):
    """Kinds of logical frames."""
    DELTA = "delta"
    END = "end"


@dataclass(frozen=True)
class Frame:
    """One logical unit parsed from the transport."""
    kind: FrameKind
    text: str = ""

    @classmethod
    def delta(cls, text: str) -> "Frame":
        return cls(kind=FrameKind.DELTA, text=text)

    @classmethod
    def end(cls) -> "Frame":
        return cls(kind=FrameKind.END)

    @property
    def is_end(self) -> bool:
        return self.kind is FrameKind.END


class StreamPhase(str, Enum):
    """Lifecycle of one reassembled stream."""
    IDLE = "idle"           # Nothing received yet
    OPEN = "open"           # Receiving chunks
    DRAINING = "draining"   # Final pass after input exhaustion
    CLOSED = "closed"       # [DONE] seen or input exhausted
    ERRORED = "errored"     # Caller reported a transport failure

    @property
    def is_terminal(self) -> bool:
        return self in (StreamPhase.CLOSED, StreamPhase.ERRORED)


@dataclass(frozen=True)
class StreamState:
    """Snapshot of the reassembler state."""
    phase: StreamPhase
    pending_buffer: str
    accumulated_text: str


# =============================================================================
# REASSEMBLER
# =============================================================================

class FrameReassembler:
    """
    Resumable SSE parser for one stream.

    Not safe to share between concurrent tasks: one reassembler per stream.

    Usage:
        reassembler = FrameReassembler()
        async for chunk in source:
            for frame in reassembler.feed(chunk):
                handle.apply(frame)
        for frame in reassembler.flush():
            handle.apply(frame)
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._phase = StreamPhase.IDLE
        self._deltas: List[str] = []
        self.malformed_count = 0

    @property
    def state(self) -> StreamState:
        return StreamState(
            phase=self._phase,
            pending_buffer=self._buffer,
            accumulated_text="".join(self._deltas),
        )

    @property
    def phase(self) -> StreamPhase:
        return self._phase

    def feed(self, chunk: bytes) -> List[Frame]:
        """
        Accept one transport chunk and return every frame it completes.

        Bytes received after the end-of-stream sentinel, or after ``fail()``,
        are ignored.
        """
        if self._phase.is_terminal:
            return []
        if self._phase is StreamPhase.IDLE:
            self._phase = StreamPhase.OPEN

        self._buffer += self._decoder.decode(chunk)
        return self._drain(final=False)

    def flush(self) -> List[Frame]:
        """
        Final pass on input exhaustion.

        An unterminated trailing line and any fragment still waiting for
        continuation lines are discarded.
        """
        if self._phase.is_terminal:
            return []

        self._phase = StreamPhase.DRAINING
        self._buffer += self._decoder.decode(b"", final=True)
        frames = self._drain(final=True)

        if self._buffer:
            logger.debug(f"Discarding {len(self._buffer)} unterminated chars at end of stream")
        self._buffer = ""
        self._phase = StreamPhase.CLOSED
        return frames

    def fail(self) -> None:
        """Mark the stream as errored; later input is ignored."""
        self._phase = StreamPhase.ERRORED
        self._buffer = ""

    def reset(self) -> None:
        """Return to idle so the reassembler can take a new stream."""
        self._decoder.reset()
        self._buffer = ""
        self._phase = StreamPhase.IDLE
        self._deltas = []
        self.malformed_count = 0

    # -------------------------------------------------------------------------
    # Scanning
    # -------------------------------------------------------------------------

    def _drain(self, final: bool) -> List[Frame]:
        frames: List[Frame] = []

        while True:
            line, rest = _split_line(self._buffer)
            if line is None:
                return frames

            payload = _data_payload(line)
            if payload is None:
                self._buffer = rest
                continue

            if payload.rstrip() == DONE_SENTINEL:
                frames.append(Frame.end())
                self._phase = StreamPhase.CLOSED
                self._buffer = ""
                return frames

            record = _decode(payload)
            if record is not _UNDECODABLE:
                self._buffer = rest
                self._emit(record, frames)
                continue

            outcome, record, remaining = self._join_fragment(payload, rest)
            if outcome == "pending" and not final:
                # Pushed back: the fragment stays at the front of the buffer
                return frames

            if outcome == "joined":
                self._emit(record, frames)
            else:
                self.malformed_count += 1
                logger.debug(f"Dropping malformed stream record: {payload[:80]!r}")
            self._buffer = remaining

    def _join_fragment(self, payload: str, rest: str) -> Tuple[str, Any, str]:
        """
        Join continuation lines onto an undecodable payload.

        Returns:
            ("joined", record, remaining) when a join decodes,
            ("malformed", None, remaining) when a new data line comes first,
            ("pending", None, remaining) when terminated lines run out
        """
        pieces = [payload]
        cursor = rest
        while True:
            line, after = _split_line(cursor)
            if line is None:
                return "pending", None, cursor
            if _is_frame_boundary(line):
                return "malformed", None, cursor

            pieces.append(line)
            cursor = after
            record = _decode("\n".join(pieces))
            if record is not _UNDECODABLE:
                return "joined", record, cursor

    def _emit(self, record: Any, frames: List[Frame]) -> None:
        text = _delta_content(record)
        if text:
            self._deltas.append(text)
            frames.append(Frame.delta(text))


# =============================================================================
# LINE HELPERS
# =============================================================================

def _split_line(buffer: str) -> Tuple[Optional[str], str]:
    """Split off the first terminated line (without ``\\n`` and trailing ``\\r``)."""
    index = buffer.find("\n")
    if index < 0:
        return None, buffer
    line = buffer[:index]
    if line.endswith("\r"):
        line = line[:-1]
    return line, buffer[index + 1:]


def _data_payload(line: str) -> Optional[str]:
    """Payload of a ``data:`` line, or None for blank, comment and other lines."""
    if not line or line.startswith(":") or not line.startswith(DATA_PREFIX):
        return None
    return line[len(DATA_PREFIX):].lstrip()


def _is_frame_boundary(line: str) -> bool:
    # Blank and comment lines may sit inside a raw JSON string
    return line.startswith("data:")


def _decode(payload: str) -> Any:
    try:
        # strict=False admits raw control characters (newlines) inside strings
        return json.loads(payload, strict=False)
    except ValueError:
        return _UNDECODABLE


def _delta_content(record: Any) -> Optional[str]:
    """Read ``choices[0].delta.content``; None when absent or not a string."""
    try:
        content = record["choices"][0]["delta"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    return content if isinstance(content, str) else None
