"""
API Tests - chat streaming, insights, admin cache and health endpoints

Services are swapped through ``app.dependency_overrides``; the application
lifespan is not started, so no PostgreSQL is needed.
"""
import json
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from finadvisor.api.deps import get_chat_service, get_gateway, get_insights, get_maintenance
from finadvisor.cache.adaptive_ttl import AdaptiveTTLPolicy
from finadvisor.cache.cache_gateway import CacheGateway
from finadvisor.cache.maintenance import CacheMaintenance
from finadvisor.cache.models import AdaptiveCacheConfig
from finadvisor.core.exceptions import UpstreamQuotaExhausted, UpstreamRateLimited
from finadvisor.core.security import create_access_token
from finadvisor.main import app
from finadvisor.services.chat_stream_service import ChatStreamService
from finadvisor.services.context_builder import ContextBuilder
from finadvisor.services.insight_service import InsightService
from finadvisor.services.session_manager import SessionManager


def delta(content: str) -> bytes:
    payload = json.dumps({"choices": [{"delta": {"content": content}}]}, ensure_ascii=False)
    return f"data: {payload}\n\n".encode("utf-8")


class FakeSource:
    def __init__(self, chunks):
        self.chunks = chunks
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self):
        self.closed = True


class FakeLLM:
    def __init__(self, chunks=None, completion="", error=None):
        self.chunks = chunks or []
        self.completion = completion
        self.error = error

    async def stream_chat(self, messages, system_prompt=None):
        if self.error:
            raise self.error
        return FakeSource(self.chunks)

    async def complete(self, messages, system_prompt=None, timeout=None):
        if self.error:
            raise self.error
        return self.completion


def auth_headers(user_id=None, role=None):
    headers = {"X-API-Key": "test-key", "X-User-ID": user_id or f"user-{uuid4()}"}
    if role:
        headers["X-Role"] = role
    return headers


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def use_llm(cache_repository, settings_repository, clock):
    """Install services around a fake LLM; returns the installer."""
    def install(llm):
        gateway = CacheGateway(cache_repository, clock=clock)
        policy = AdaptiveTTLPolicy(cache_repository, config_provider=AdaptiveCacheConfig, clock=clock)
        chat_service = ChatStreamService(llm, SessionManager(), ContextBuilder())
        insight_service = InsightService(
            llm_gateway=llm,
            cache_gateway=gateway,
            ttl_policy=policy,
            context_builder=ContextBuilder(),
            base_ttl_hours={"insight": 24, "goal-suggestion": 12, "budget-suggestion": 12},
            clock=clock,
        )
        maintenance = CacheMaintenance(
            cache_repository, settings_repository, AdaptiveCacheConfig(), clock=clock
        )
        app.dependency_overrides[get_chat_service] = lambda: chat_service
        app.dependency_overrides[get_insights] = lambda: insight_service
        app.dependency_overrides[get_maintenance] = lambda: maintenance
        app.dependency_overrides[get_gateway] = lambda: gateway
        return chat_service

    return install


def parse_sse(body: str):
    events = []
    for block in body.strip().split("\n\n"):
        lines = block.split("\n")
        events.append((lines[0][len("event: "):], json.loads(lines[1][len("data: "):])))
    return events


# =============================================================================
# Chat streaming
# =============================================================================

class TestChatStream:
    def test_streams_sse_events(self, client, use_llm):
        use_llm(FakeLLM(chunks=[delta("Mer"), delta("haba"), b"data: [DONE]\n\n"]))

        response = client.post(
            "/api/v1/chat/stream",
            json={"message": "Selam", "session_id": "s1"},
            headers=auth_headers("chat-user"),
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["X-Session-ID"] == "s1"
        assert parse_sse(response.text) == [
            ("answer", {"content": "Mer"}),
            ("answer", {"content": "haba"}),
            ("done", {"content": "Merhaba", "status": "complete"}),
        ]

    def test_session_history(self, client, use_llm):
        use_llm(FakeLLM(chunks=[delta("Cevap"), b"data: [DONE]\n\n"]))
        headers = auth_headers()
        client.post("/api/v1/chat/stream", json={"message": "Soru", "session_id": "h1"}, headers=headers)

        response = client.get("/api/v1/chat/sessions/h1", headers=headers)

        assert response.status_code == 200
        assert [(e["role"], e["content"]) for e in response.json()["entries"]] == [
            ("user", "Soru"),
            ("assistant", "Cevap"),
        ]
        assert client.get("/api/v1/chat/sessions/h1", headers=auth_headers()).status_code == 404

    def test_upstream_rate_limit_maps_to_429(self, client, use_llm):
        use_llm(FakeLLM(error=UpstreamRateLimited("Rate limit exceeded, please try again later", 429)))

        response = client.post("/api/v1/chat/stream", json={"message": "x"}, headers=auth_headers())

        assert response.status_code == 429
        assert response.json()["error"] == "rate_limited"
        assert "Retry-After" in response.headers

    def test_upstream_quota_maps_to_402(self, client, use_llm):
        use_llm(FakeLLM(error=UpstreamQuotaExhausted("AI credits exhausted", 402)))

        response = client.post("/api/v1/chat/stream", json={"message": "x"}, headers=auth_headers())

        assert response.status_code == 402
        assert response.json()["error"] == "quota_exhausted"

    def test_blank_message_rejected(self, client, use_llm):
        use_llm(FakeLLM())

        response = client.post("/api/v1/chat/stream", json={"message": "   "}, headers=auth_headers())

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_authentication_required(self, client, use_llm):
        use_llm(FakeLLM())

        assert client.post("/api/v1/chat/stream", json={"message": "x"}).status_code == 401
        assert client.post(
            "/api/v1/chat/stream", json={"message": "x"}, headers={"X-API-Key": "test-key"}
        ).status_code == 401


# =============================================================================
# Insights
# =============================================================================

class TestInsights:
    def test_miss_then_cached(self, client, use_llm):
        use_llm(FakeLLM(completion="Tasarruf oranınız %18."))
        headers = auth_headers()

        first = client.post("/api/v1/insights", json={"kind": "insight", "language": "tr"}, headers=headers)
        second = client.post("/api/v1/insights", json={"kind": "insight", "language": "tr"}, headers=headers)

        assert first.status_code == 200
        assert first.json() == {
            "insight": "Tasarruf oranınız %18.",
            "cached": False,
            "adjusted_ttl_hours": 24,
            "is_adaptive": False,
        }
        assert second.json() == {
            "insight": "Tasarruf oranınız %18.",
            "cached": True,
            "cache_hit_count": 1,
            "adjusted_ttl_hours": 24,
        }

    def test_suggestions(self, client, use_llm):
        use_llm(FakeLLM(completion='[{"title": "Acil fon"}]'))

        response = client.post("/api/v1/insights", json={"kind": "budget-suggestion"}, headers=auth_headers())

        assert response.json()["suggestions"] == [{"title": "Acil fon"}]
        assert response.json()["adjusted_ttl_hours"] == 12

    def test_quota_exhausted(self, client, use_llm):
        use_llm(FakeLLM(error=UpstreamQuotaExhausted("AI credits exhausted", 402)))

        response = client.post("/api/v1/insights", json={"kind": "insight"}, headers=auth_headers())

        assert response.status_code == 402
        assert response.json()["error"] == "quota_exhausted"

    def test_unknown_kind_rejected(self, client, use_llm):
        use_llm(FakeLLM(completion="x"))

        response = client.post("/api/v1/insights", json={"kind": "horoscope"}, headers=auth_headers())

        assert response.status_code == 400


# =============================================================================
# Admin cache
# =============================================================================

class TestAdminCache:
    def test_requires_admin_role(self, client, use_llm):
        use_llm(FakeLLM())

        assert client.get("/api/v1/admin/cache/stats", headers=auth_headers()).status_code == 403

    def test_stats_and_cleanup(self, client, use_llm):
        use_llm(FakeLLM(completion="x"))
        client.post("/api/v1/insights", json={"kind": "insight"}, headers=auth_headers("stats-user"))
        admin = auth_headers("admin-1", role="admin")

        stats = client.get("/api/v1/admin/cache/stats", headers=admin)
        assert stats.status_code == 200
        assert stats.json()["total_entries"] == 1
        assert stats.json()["by_kind"] == {"insight": {"count": 1, "hits": 0}}
        assert stats.json()["gateway"]["lookups"] == 1

        assert client.delete("/api/v1/admin/cache/expired", headers=admin).json()["deleted"] == 0
        assert client.delete("/api/v1/admin/cache", headers=admin).json()["deleted"] == 1

    def test_config_round_trip_with_jwt(self, client, use_llm):
        use_llm(FakeLLM())
        admin = {"Authorization": f"Bearer {create_access_token('admin-2', role='admin')}"}

        current = client.get("/api/v1/admin/cache/config", headers=admin).json()
        current["max_ttl_hours"] = 96

        saved = client.put("/api/v1/admin/cache/config", json=current, headers=admin)
        assert saved.status_code == 200
        assert client.get("/api/v1/admin/cache/config", headers=admin).json()["max_ttl_hours"] == 96

    def test_invalid_config_rejected(self, client, use_llm):
        use_llm(FakeLLM())

        response = client.put(
            "/api/v1/admin/cache/config",
            json={"min_ttl_hours": 50, "max_ttl_hours": 10},
            headers=auth_headers("admin-3", role="admin"),
        )

        assert response.status_code == 400


# =============================================================================
# Health
# =============================================================================

class TestHealth:
    def test_shallow_health(self, client):
        assert client.get("/api/v1/health").json()["status"] == "ok"
        assert client.get("/health").json() == {"status": "ok"}
