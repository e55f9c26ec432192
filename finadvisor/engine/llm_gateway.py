"""
LLM Gateway - OpenAI-compatible chat completions upstream.

Two call shapes:
- stream_chat(): token-streamed chat, exposed as raw SSE byte chunks
- complete(): one-shot completion for the insight path

Non-success statuses are mapped so callers can tell them apart:
    429 -> UpstreamRateLimited
    402 -> UpstreamQuotaExhausted
    other / transport error / timeout -> UpstreamGenericFailure
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from finadvisor.core.config import settings
from finadvisor.core.exceptions import (
    UpstreamError,
    UpstreamGenericFailure,
    UpstreamQuotaExhausted,
    UpstreamRateLimited,
)

logger = logging.getLogger(__name__)


def map_upstream_status(status_code: int, detail: str = "") -> UpstreamError:
    """Translate a non-success upstream status into the matching exception."""
    if status_code == 429:
        return UpstreamRateLimited("Rate limit exceeded, please try again later", status_code)
    if status_code == 402:
        return UpstreamQuotaExhausted("AI credits exhausted", status_code)
    message = f"AI gateway error ({status_code})"
    if detail:
        message = f"{message}: {detail[:200]}"
    return UpstreamGenericFailure(message, status_code)


class ChatByteStream:
    """
    Raw byte chunks of one streamed completion.

    The underlying HTTP response is released by ``aclose()``, which is safe to
    call more than once.
    """

    def __init__(self, response: httpx.Response):
        self._response = response

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.TimeoutException as e:
            raise UpstreamGenericFailure("AI gateway stream timed out") from e
        except httpx.HTTPError as e:
            raise UpstreamGenericFailure(f"AI gateway stream interrupted: {e}") from e
        finally:
            await self._response.aclose()

    async def aclose(self) -> None:
        await self._response.aclose()

    @property
    def is_closed(self) -> bool:
        return self._response.is_closed


class LLMGateway:
    """
    Client for the generation backend.

    Usage:
        gateway = get_llm_gateway()
        stream = await gateway.stream_chat(messages, system_prompt)
        try:
            async for chunk in stream:
                ...
        finally:
            await stream.aclose()
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        model: str,
        timeout_seconds: float = 60.0,
        connect_timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self._timeout = httpx.Timeout(timeout_seconds, connect=connect_timeout_seconds)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _build_payload(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str],
        stream: bool,
    ) -> Dict[str, Any]:
        conversation = []
        if system_prompt:
            conversation.append({"role": "system", "content": system_prompt})
        conversation.extend(messages)

        payload: Dict[str, Any] = {"model": self.model, "messages": conversation}
        if stream:
            payload["stream"] = True
        return payload

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            logger.error("LLM API key not configured")
            raise UpstreamGenericFailure("AI service not configured")
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def stream_chat(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
    ) -> ChatByteStream:
        """
        Open a token-streamed chat completion.

        The status is checked before returning, so rate-limit and quota
        failures surface before the first byte is consumed.

        Raises:
            UpstreamError: on a non-success status, transport error or timeout
        """
        headers = self._headers()
        client = await self._get_client()
        request = client.build_request(
            "POST",
            f"{self.base_url}/chat/completions",
            json=self._build_payload(messages, system_prompt, stream=True),
            headers=headers,
        )

        try:
            response = await client.send(request, stream=True)
        except httpx.TimeoutException as e:
            logger.warning("AI gateway timeout while opening stream")
            raise UpstreamGenericFailure("AI gateway timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"AI gateway transport error: {e}")
            raise UpstreamGenericFailure(f"AI gateway unreachable: {e}") from e

        if response.is_success:
            return ChatByteStream(response)

        try:
            body = (await response.aread()).decode("utf-8", errors="replace")
        finally:
            await response.aclose()
        logger.warning(f"AI gateway error: {response.status_code} - {body[:200]}")
        raise map_upstream_status(response.status_code, body)

    async def complete(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        One-shot completion.

        ``timeout`` (seconds) overrides the gateway timeout for this call.

        Returns:
            Content of the first choice, or "" when the upstream sent none

        Raises:
            UpstreamError: on a non-success status, transport error or timeout
        """
        headers = self._headers()
        client = await self._get_client()

        try:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                json=self._build_payload(messages, system_prompt, stream=False),
                headers=headers,
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.TimeoutException as e:
            logger.warning("AI gateway timeout on completion")
            raise UpstreamGenericFailure("AI gateway timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"AI gateway transport error: {e}")
            raise UpstreamGenericFailure(f"AI gateway unreachable: {e}") from e

        if not response.is_success:
            logger.warning(f"AI gateway error: {response.status_code} - {response.text[:200]}")
            raise map_upstream_status(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamGenericFailure("AI gateway returned invalid JSON") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        return content or ""


# =============================================================================
# Singleton instance
# =============================================================================

_llm_gateway: Optional[LLMGateway] = None


def get_llm_gateway() -> LLMGateway:
    """Get singleton LLMGateway instance."""
    global _llm_gateway
    if _llm_gateway is None:
        _llm_gateway = LLMGateway(
            base_url=settings.llm_base_url,
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            timeout_seconds=settings.llm_timeout_seconds,
            connect_timeout_seconds=settings.llm_connect_timeout_seconds,
        )
    return _llm_gateway
