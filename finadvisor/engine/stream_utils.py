"""
Stream Utilities for chat SSE delivery.

Events sent to the client while an answer is being generated:
- answer: one content delta (streamed real-time)
- done:   stream complete, carries the final answer
- error:  stream failed, carries a stable code (rate_limited, quota_exhausted,
          upstream_error) so the client can tell the conditions apart
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional


# =============================================================================
# EVENT TYPES
# =============================================================================

class StreamEventType:
    """Standard event types for SSE streaming."""
    ANSWER = "answer"   # Response tokens (streamed real-time)
    DONE = "done"       # Stream complete
    ERROR = "error"     # Error occurred


# =============================================================================
# STREAM EVENT DATACLASS
# =============================================================================

@dataclass
class StreamEvent:
    """
    Unified stream event for SSE.

    Attributes:
        type: Event type (answer, done, error)
        content: Event content (delta text, final text or error message)
        details: Additional details such as the error code (optional)
    """
    type: str
    content: Any
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for SSE serialization."""
        result = {"content": self.content}
        if self.details:
            result.update(self.details)
        return result

    def to_sse(self) -> str:
        return format_sse(self.type, self.to_dict())


def format_sse(event: str, data: dict) -> str:
    """Format data as Server-Sent Event."""
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


# =============================================================================
# CONSTRUCTORS
# =============================================================================

def create_answer_event(text: str) -> StreamEvent:
    return StreamEvent(type=StreamEventType.ANSWER, content=text)


def create_done_event(content: str, outcome: str = "complete") -> StreamEvent:
    return StreamEvent(type=StreamEventType.DONE, content=content, details={"status": outcome})


def create_error_event(message: str, code: str) -> StreamEvent:
    return StreamEvent(type=StreamEventType.ERROR, content=message, details={"code": code})
