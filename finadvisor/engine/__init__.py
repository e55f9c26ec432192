"""
Engine Module - streamed answer delivery.

- FrameReassembler: raw SSE byte chunks -> logical frames
- Transcript / StreamHandle: frames -> live conversation transcript
- LLMGateway: OpenAI-compatible upstream (streamed and one-shot)
"""

from finadvisor.engine.frame_reassembler import (
    Frame,
    FrameKind,
    FrameReassembler,
    StreamPhase,
    StreamState,
)
from finadvisor.engine.transcript import StreamHandle, Transcript, TranscriptEntry

__all__ = [
    "Frame",
    "FrameKind",
    "FrameReassembler",
    "StreamHandle",
    "StreamPhase",
    "StreamState",
    "Transcript",
    "TranscriptEntry",
]
