"""
Streaming Chat API - Server-Sent Events (SSE)

- Event types: answer, done, error
- Flow: open the upstream stream first, so a rate-limited (429) or
  quota-exhausted (402) upstream is answered with a plain HTTP error before
  any event is sent; then relay deltas as they are reassembled
"""

import logging
import time
from typing import AsyncGenerator

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from finadvisor.api.deps import ChatService, RequireAuth
from finadvisor.core.rate_limit import chat_rate_limit
from finadvisor.models.schemas import ChatStreamRequest, SessionHistoryResponse, TranscriptEntrySchema
from finadvisor.services.chat_stream_service import ChatReply

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


async def _relay_events(reply: ChatReply, started: float) -> AsyncGenerator[str, None]:
    events = reply.events()
    try:
        async for event in events:
            yield event.to_sse()
    finally:
        await events.aclose()
        logger.info(f"[STREAM] Session {reply.session_id} finished in {time.time() - started:.3f}s")


@router.post("/chat/stream")
@chat_rate_limit
async def chat_stream(
    request: Request,
    chat_request: ChatStreamRequest,
    auth: RequireAuth,
    service: ChatService,
):
    """
    Streaming Chat API - SSE Response

    Event Types:
    - answer: one content delta
    - done: stream completed, carries the final answer
    - error: upstream failed mid-stream (code: rate_limited, quota_exhausted, upstream_error)

    The ``X-Session-ID`` response header names the session to continue.
    """
    started = time.time()
    logger.info(f"[STREAM] Chat request from user {auth.user_id}: {chat_request.message[:50]}...")

    reply = await service.open_reply(
        user_id=auth.user_id,
        session_id=chat_request.session_id,
        message=chat_request.message,
        context=chat_request.context,
        language=chat_request.language.value,
    )

    return StreamingResponse(
        _relay_events(reply, started),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "X-Session-ID": reply.session_id},
    )


@router.get("/chat/sessions/{session_id}", response_model=SessionHistoryResponse)
async def get_session_history(session_id: str, auth: RequireAuth, service: ChatService):
    """Visible transcript of one of the caller's sessions."""
    entries = service.history(auth.user_id, session_id)
    if entries is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return SessionHistoryResponse(
        session_id=session_id,
        entries=[TranscriptEntrySchema(**entry) for entry in entries],
    )
