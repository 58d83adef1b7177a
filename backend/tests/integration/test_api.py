"""Integration tests for API endpoints using FastAPI TestClient."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import ScriptedClient, always_failing, make_engine, make_settings
from marketing_bot import dependencies
from marketing_bot.application.services import ConversationMemory
from marketing_bot.domain.exceptions import MessagingError
from marketing_bot.main import create_app
from marketing_bot.ports.outbound import MessagingPort
from marketing_bot.shared.providers.engine import RotationEngine
from marketing_bot.shared.providers.pool import ProviderPool

OPENROUTER_ID = "openrouter:deepseek/deepseek-r1:free"


class FakeConnector(MessagingPort):
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str]] = []

    async def send_text(self, to: str, message: str) -> None:
        if self.fail:
            raise MessagingError("Connector unreachable: refused")
        self.sent.append((to, message))

    async def health(self) -> dict[str, object]:
        return {"status": "connected"}


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def memory() -> ConversationMemory:
    return ConversationMemory(max_turns=10)


@pytest.fixture
def wire(monkeypatch, connector, memory):
    """Install an engine (and the fake connector/memory) as the app singletons."""

    def _wire(engine: RotationEngine) -> RotationEngine:
        monkeypatch.setattr(dependencies, "_engine", engine)
        monkeypatch.setattr(dependencies, "_connector", connector)
        monkeypatch.setattr(dependencies, "_memory", memory)
        return engine

    return _wire


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app(make_settings()))


# ═══════════════════════════════════════════════════════════════
#  Health & metrics
# ═══════════════════════════════════════════════════════════════
class TestHealthEndpoints:
    def test_healthy_with_providers(self, client, wire) -> None:
        wire(make_engine(ScriptedClient("p1")))

        resp = client.get("/api/v1/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["pool_size"] == 1
        assert data["components"]["whatsapp"] == {"status": "connected"}
        assert data["components"]["api_keys"]["groq"] == "missing"

    def test_degraded_without_providers(self, client, wire) -> None:
        wire(RotationEngine(ProviderPool.of([])))

        resp = client.get("/api/v1/health")

        assert resp.status_code == 503
        assert resp.json()["status"] == "degraded"

    def test_metrics_endpoint(self, client, wire) -> None:
        wire(make_engine(ScriptedClient("p1")))
        client.get("/api/v1/health")

        resp = client.get("/api/v1/metrics")

        assert resp.status_code == 200
        assert b"http_requests_total" in resp.content
        assert b"llm_attempts_total" in resp.content

    def test_request_id_header(self, client, wire) -> None:
        wire(make_engine(ScriptedClient("p1")))
        resp = client.get("/api/v1/health", headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"


# ═══════════════════════════════════════════════════════════════
#  Chat
# ═══════════════════════════════════════════════════════════════
class TestChatEndpoint:
    def test_reply_from_pool(self, client, wire, memory) -> None:
        wire(make_engine(ScriptedClient("p1", default="Halo Kak, ada yang bisa dibantu?")))

        resp = client.post("/api/v1/chat", json={"message": "Halo", "phoneNumber": "62811"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["response"] == "Halo Kak, ada yang bisa dibantu?"
        assert data["provider_id"] == "p1"
        assert data["fallback"] is False
        assert len(memory.history("62811")) == 2

    def test_blank_message_rejected(self, client, wire) -> None:
        wire(make_engine(ScriptedClient("p1")))

        resp = client.post("/api/v1/chat", json={"message": "   "})

        assert resp.status_code == 422
        assert resp.json()["code"] == "VALIDATION_ERROR"

    def test_fallback_when_every_model_fails(self, client, wire) -> None:
        wire(make_engine(always_failing("p1", status_code=429), max_attempts=2))

        resp = client.post("/api/v1/chat", json={"message": "Halo"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["fallback"] is True
        assert data["response"] == make_settings().fallback_reply


# ═══════════════════════════════════════════════════════════════
#  Webhook
# ═══════════════════════════════════════════════════════════════
class TestWebhookEndpoint:
    @pytest.mark.parametrize(
        "payload",
        [
            {"from": "12345@g.us", "body": "group chatter"},
            {"from": "status@s.whatsapp.net", "body": "status update"},
            {"from": "62811@c.us", "body": "   "},
        ],
    )
    def test_ignored_messages(self, client, wire, connector, payload) -> None:
        model = ScriptedClient("p1")
        wire(make_engine(model))

        resp = client.post("/api/v1/webhook", json=payload)

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "ignored": True}
        assert model.call_count == 0
        assert connector.sent == []

    def test_reply_sent_and_lead_extracted(self, client, wire, connector, memory) -> None:
        model = ScriptedClient("p1", ["Siap Kak Budi!", '{"name": "Budi"}'])
        wire(make_engine(model))

        resp = client.post(
            "/api/v1/webhook",
            json={"from": "62811@c.us", "body": "Saya Budi, mau tanya unit", "pushname": "Budi"},
        )

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "ignored": False}
        assert connector.sent == [("62811@c.us", "Siap Kak Budi!")]
        assert [m.content for m in memory.history("62811@c.us")] == [
            "Saya Budi, mau tanya unit",
            "Siap Kak Budi!",
        ]
        # Reply, then the background lead extraction
        assert model.call_count == 2

    def test_connector_failure_does_not_fail_webhook(self, client, wire, monkeypatch) -> None:
        wire(make_engine(ScriptedClient("p1", default="Halo Kak")))
        monkeypatch.setattr(dependencies, "_connector", FakeConnector(fail=True))

        resp = client.post("/api/v1/webhook", json={"from": "62811@c.us", "body": "Halo"})

        assert resp.status_code == 200
        assert resp.json()["success"] is True

    def test_fallback_reply_skips_lead_extraction(self, client, wire, connector) -> None:
        model = always_failing("p1", status_code=503)
        wire(make_engine(model, max_attempts=1))

        resp = client.post("/api/v1/webhook", json={"from": "62811@c.us", "body": "Halo"})

        assert resp.status_code == 200
        assert connector.sent == [("62811@c.us", make_settings().fallback_reply)]
        assert model.call_count == 1


# ═══════════════════════════════════════════════════════════════
#  Sentiment
# ═══════════════════════════════════════════════════════════════
class TestSentimentEndpoint:
    def test_classifies_text(self, client, wire) -> None:
        wire(make_engine(ScriptedClient("p1", default="Positive")))

        resp = client.post("/api/v1/sentiment", json={"text": "Mantap sekali pelayanannya"})

        assert resp.status_code == 200
        assert resp.json()["sentiment"] == "positive"

    def test_blank_text_rejected(self, client, wire) -> None:
        wire(make_engine(ScriptedClient("p1")))
        resp = client.post("/api/v1/sentiment", json={"text": ""})
        assert resp.status_code == 422


# ═══════════════════════════════════════════════════════════════
#  Model pool administration
# ═══════════════════════════════════════════════════════════════
class TestModelPoolEndpoints:
    @pytest.fixture
    def engine(self, wire) -> RotationEngine:
        return wire(make_engine(always_failing("p1"), ScriptedClient(OPENROUTER_ID)))

    def test_status_reflects_failures(self, client, engine) -> None:
        client.post("/api/v1/chat", json={"message": "Halo"})

        resp = client.get("/api/v1/models/status")

        assert resp.status_code == 200
        by_id = {s["id"]: s for s in resp.json()}
        assert by_id["p1"]["available"] is False
        assert by_id["p1"]["fail_count"] == 1
        assert by_id["p1"]["cooldown_remaining_seconds"] == 60
        assert by_id[OPENROUTER_ID]["available"] is True

    def test_reset_all(self, client, engine) -> None:
        client.post("/api/v1/chat", json={"message": "Halo"})

        resp = client.post("/api/v1/models/reset")

        assert resp.status_code == 200
        assert resp.json()["entry_ids"] == ["p1", OPENROUTER_ID]
        assert all(e.fail_count == 0 for e in engine.pool)

    def test_reset_entry_with_slashes_in_id(self, client, engine) -> None:
        engine.pool.get(OPENROUTER_ID).fail_count = 2

        resp = client.post(f"/api/v1/models/{OPENROUTER_ID}/reset")

        assert resp.status_code == 200
        assert resp.json() == {"status": "reset", "entry_ids": [OPENROUTER_ID]}
        assert engine.pool.get(OPENROUTER_ID).fail_count == 0

    def test_reset_unknown_entry(self, client, engine) -> None:
        resp = client.post("/api/v1/models/nope/reset")
        assert resp.status_code == 404
