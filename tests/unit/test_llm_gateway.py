"""
Unit Tests for the LLM Gateway

The upstream is replaced with httpx.MockTransport.
"""
import json

import httpx
import pytest

from finadvisor.core.exceptions import (
    UpstreamGenericFailure,
    UpstreamQuotaExhausted,
    UpstreamRateLimited,
)
from finadvisor.engine.llm_gateway import LLMGateway, map_upstream_status


SSE_BODY = (
    b'data: {"choices":[{"delta":{"content":"Mer"}}]}\n\n'
    b'data: {"choices":[{"delta":{"content":"haba"}}]}\n\n'
    b"data: [DONE]\n\n"
)


class RecordingHandler:
    """MockTransport handler answering with a fixed response."""

    def __init__(self, status_code=200, content=b"", json_body=None, error=None):
        self.status_code = status_code
        self.content = content
        self.json_body = json_body
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error:
            raise self.error
        if self.json_body is not None:
            return httpx.Response(self.status_code, json=self.json_body)
        return httpx.Response(self.status_code, content=self.content)


def make_gateway(handler, api_key="test-key"):
    return LLMGateway(
        base_url="https://llm.test/v1/",
        api_key=api_key,
        model="test-model",
        transport=httpx.MockTransport(handler),
    )


class TestMapUpstreamStatus:
    def test_rate_limited(self):
        error = map_upstream_status(429)
        assert isinstance(error, UpstreamRateLimited)
        assert error.code == "rate_limited"
        assert error.status_code == 429

    def test_quota_exhausted(self):
        error = map_upstream_status(402)
        assert isinstance(error, UpstreamQuotaExhausted)
        assert error.code == "quota_exhausted"
        assert error.status_code == 402

    def test_other_status_is_generic(self):
        error = map_upstream_status(503, "overloaded")
        assert isinstance(error, UpstreamGenericFailure)
        assert error.code == "upstream_error"
        assert error.status_code == 502
        assert error.upstream_status == 503
        assert "503" in error.message and "overloaded" in error.message


class TestStreamChat:
    @pytest.mark.asyncio
    async def test_streams_raw_bytes(self):
        handler = RecordingHandler(content=SSE_BODY)
        gateway = make_gateway(handler)

        stream = await gateway.stream_chat([{"role": "user", "content": "Selam"}], "Sen bir asistansın")
        received = b"".join([chunk async for chunk in stream])

        assert received == SSE_BODY
        assert stream.is_closed

        request = handler.requests[0]
        assert str(request.url) == "https://llm.test/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer test-key"
        body = json.loads(request.content)
        assert body["stream"] is True
        assert body["model"] == "test-model"
        assert body["messages"] == [
            {"role": "system", "content": "Sen bir asistansın"},
            {"role": "user", "content": "Selam"},
        ]
        await gateway.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code, error_type",
        [
            (429, UpstreamRateLimited),
            (402, UpstreamQuotaExhausted),
            (500, UpstreamGenericFailure),
        ],
    )
    async def test_error_status_raised_before_streaming(self, status_code, error_type):
        gateway = make_gateway(RecordingHandler(status_code=status_code, content=b"nope"))

        with pytest.raises(error_type):
            await gateway.stream_chat([{"role": "user", "content": "x"}])
        await gateway.close()

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        handler = RecordingHandler(content=SSE_BODY)
        gateway = make_gateway(handler, api_key=None)

        assert not gateway.is_configured
        with pytest.raises(UpstreamGenericFailure):
            await gateway.stream_chat([{"role": "user", "content": "x"}])
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_transport_error_is_generic_failure(self):
        gateway = make_gateway(RecordingHandler(error=httpx.ConnectError("refused")))

        with pytest.raises(UpstreamGenericFailure):
            await gateway.stream_chat([{"role": "user", "content": "x"}])
        await gateway.close()

    @pytest.mark.asyncio
    async def test_aclose_releases_response(self):
        gateway = make_gateway(RecordingHandler(content=SSE_BODY))
        stream = await gateway.stream_chat([{"role": "user", "content": "x"}])

        await stream.aclose()
        await stream.aclose()

        assert stream.is_closed
        await gateway.close()


class TestComplete:
    @pytest.mark.asyncio
    async def test_returns_first_choice_content(self):
        handler = RecordingHandler(json_body={"choices": [{"message": {"content": "Bütçeniz dengede."}}]})
        gateway = make_gateway(handler)

        content = await gateway.complete([{"role": "user", "content": "özet"}], "sistem")

        assert content == "Bütçeniz dengede."
        assert "stream" not in json.loads(handler.requests[0].content)
        await gateway.close()

    @pytest.mark.asyncio
    async def test_missing_content_returns_empty_string(self):
        gateway = make_gateway(RecordingHandler(json_body={"choices": []}))

        assert await gateway.complete([{"role": "user", "content": "x"}]) == ""
        await gateway.close()

    @pytest.mark.asyncio
    async def test_quota_exhausted(self):
        gateway = make_gateway(RecordingHandler(status_code=402, json_body={"error": "credits"}))

        with pytest.raises(UpstreamQuotaExhausted):
            await gateway.complete([{"role": "user", "content": "x"}])
        await gateway.close()

    @pytest.mark.asyncio
    async def test_invalid_json_is_generic_failure(self):
        gateway = make_gateway(RecordingHandler(content=b"<html>"))

        with pytest.raises(UpstreamGenericFailure):
            await gateway.complete([{"role": "user", "content": "x"}])
        await gateway.close()

    @pytest.mark.asyncio
    async def test_caller_timeout_overrides_gateway_timeout(self):
        handler = RecordingHandler(json_body={"choices": [{"message": {"content": "ok"}}]})
        gateway = make_gateway(handler)

        await gateway.complete([{"role": "user", "content": "x"}], timeout=2.5)
        await gateway.complete([{"role": "user", "content": "x"}])

        overridden, default = (r.extensions["timeout"] for r in handler.requests)
        assert overridden == {"connect": 2.5, "read": 2.5, "write": 2.5, "pool": 2.5}
        assert default == {"connect": 10.0, "read": 60.0, "write": 60.0, "pool": 60.0}
        await gateway.close()
