"""
Chat Stream Service - drives one streamed answer end to end.

Flow per request:
1. Resolve the session transcript (cancel-and-restart of a running stream)
2. Record the user message and open a provisional assistant entry
3. Open the upstream stream; rate-limit/quota errors surface here, before
   any byte is sent to the client
4. Feed chunks through a FrameReassembler and apply frames to the handle in
   arrival order, emitting one ``answer`` event per delta
5. Settle: ``done`` on completion, ``error`` on upstream failure

If the client disconnects, the upstream response is closed and the handle is
cancelled without a final flush.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncGenerator, List, Optional

from finadvisor.core.exceptions import UpstreamError
from finadvisor.engine.frame_reassembler import FrameKind, FrameReassembler, StreamPhase
from finadvisor.engine.llm_gateway import ChatByteStream, LLMGateway, get_llm_gateway
from finadvisor.engine.stream_utils import (
    StreamEvent,
    create_answer_event,
    create_done_event,
    create_error_event,
)
from finadvisor.engine.transcript import StreamHandle, StreamOutcome
from finadvisor.services.context_builder import ContextBuilder, get_context_builder
from finadvisor.services.session_manager import SessionManager, get_session_manager

logger = logging.getLogger(__name__)


@dataclass
class ChatReply:
    """
    An opened upstream stream bound to its transcript handle.

    ``events()`` must be consumed by a single task.
    """
    session_id: str
    source: ChatByteStream
    handle: StreamHandle
    reassembler: FrameReassembler

    async def events(self) -> AsyncGenerator[StreamEvent, None]:
        """Yield answer events, then exactly one done or error event."""
        try:
            async for chunk in self.source:
                for frame in self.reassembler.feed(chunk):
                    self.handle.apply(frame)
                    if frame.kind is FrameKind.DELTA and self.handle.is_active:
                        yield create_answer_event(frame.text)

                if self.reassembler.phase is StreamPhase.CLOSED or not self.handle.is_active:
                    break
            else:
                for frame in self.reassembler.flush():
                    self.handle.apply(frame)
                    if frame.kind is FrameKind.DELTA and self.handle.is_active:
                        yield create_answer_event(frame.text)

            if self.handle.outcome is StreamOutcome.CANCELLED:
                # Superseded by a newer stream on the same session
                logger.info(f"[STREAM] Session {self.session_id} restarted, stopping old stream")
                yield create_done_event(self.handle.content, outcome="superseded")
                return

            self.handle.finish()
            if self.reassembler.malformed_count:
                logger.debug(
                    f"[STREAM] Session {self.session_id}: dropped "
                    f"{self.reassembler.malformed_count} malformed records"
                )
            yield create_done_event(self.handle.content)

        except UpstreamError as e:
            self.reassembler.fail()
            self.handle.fail(e)
            logger.warning(f"[STREAM] Upstream failed mid-stream for session {self.session_id}: {e}")
            yield create_error_event(e.message, e.code)

        except (GeneratorExit, asyncio.CancelledError):
            self.handle.cancel()
            logger.info(f"[STREAM] Client disconnected from session {self.session_id}")
            raise

        except Exception as e:
            self.reassembler.fail()
            self.handle.fail(e)
            logger.exception(f"[STREAM] Error: {e}")
            yield create_error_event("Internal error while streaming", "internal_error")

        finally:
            await self.source.aclose()


class ChatStreamService:
    """
    Streams chat answers into session transcripts.

    Usage:
        service = get_chat_stream_service()
        reply = await service.open_reply(user_id, session_id, "Hi", context, "en")
        async for event in reply.events():
            ...
    """

    def __init__(
        self,
        llm_gateway: Optional[LLMGateway] = None,
        session_manager: Optional[SessionManager] = None,
        context_builder: Optional[ContextBuilder] = None,
    ):
        self._llm = llm_gateway if llm_gateway is not None else get_llm_gateway()
        self._sessions = session_manager if session_manager is not None else get_session_manager()
        self._context_builder = context_builder if context_builder is not None else get_context_builder()

    async def open_reply(
        self,
        user_id: str,
        session_id: Optional[str],
        message: str,
        context: Optional[str] = None,
        language: str = "tr",
    ) -> ChatReply:
        """
        Start a streamed answer to ``message``.

        Raises:
            UpstreamError: if the upstream refuses the request; the
                provisional entry has already been removed
        """
        session = self._sessions.get_or_create_session(user_id, session_id)
        transcript = session.transcript
        transcript.cancel_active()
        transcript.add_user_message(message)

        history = transcript.to_messages()
        handle = transcript.start_stream()
        system_prompt = self._context_builder.chat_system_prompt(context, language)

        try:
            source = await self._llm.stream_chat(history, system_prompt)
        except UpstreamError as e:
            handle.fail(e)
            raise
        except asyncio.CancelledError:
            handle.cancel()
            raise

        logger.info(f"[STREAM] Opened upstream stream for session {session.session_id}")
        return ChatReply(
            session_id=session.session_id,
            source=source,
            handle=handle,
            reassembler=FrameReassembler(),
        )

    async def stream_reply(
        self,
        user_id: str,
        session_id: Optional[str],
        message: str,
        context: Optional[str] = None,
        language: str = "tr",
    ) -> AsyncGenerator[StreamEvent, None]:
        """Like ``open_reply`` but reports an upstream refusal as an error event."""
        try:
            reply = await self.open_reply(user_id, session_id, message, context, language)
        except UpstreamError as e:
            yield create_error_event(e.message, e.code)
            return

        events = reply.events()
        try:
            async for event in events:
                yield event
        finally:
            await events.aclose()

    def history(self, user_id: str, session_id: str) -> Optional[List[dict]]:
        """Visible entries of a session, or None if unknown."""
        transcript = self._sessions.get_transcript(user_id, session_id)
        if transcript is None:
            return None
        return [
            {"role": e.role, "content": e.content, "is_provisional": e.is_provisional}
            for e in transcript.entries
        ]


# =============================================================================
# SINGLETON
# =============================================================================

_chat_stream_service: Optional[ChatStreamService] = None


def get_chat_stream_service() -> ChatStreamService:
    """Get or create ChatStreamService singleton."""
    global _chat_stream_service
    if _chat_stream_service is None:
        _chat_stream_service = ChatStreamService()
    return _chat_stream_service
