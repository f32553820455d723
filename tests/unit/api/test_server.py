"""
API tests for the FastAPI application.

Components are injected so no engine YAML, database or network is needed;
the completion provider is an AsyncMock.
"""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from fleetpilot.api.server import create_app
from fleetpilot.application.config import EngineConfig
from fleetpilot.application.engine import AutomationEngine
from fleetpilot.application.factory import EngineComponents
from fleetpilot.application.optimizer import ModelOptimizer
from fleetpilot.core.domain.models import AutomationBot, SessionStatus
from fleetpilot.infrastructure.catalog.openrouter_catalog import CatalogFetchError


def answer(payload: dict) -> dict:
    return {
        "success": True,
        "content": json.dumps(payload),
        "usage": {"input_tokens": 3, "output_tokens": 2},
        "model": "vendor/a-text",
        "provider": "openrouter",
        "latency_ms": 4,
    }


@pytest.fixture
def provider():
    mock = AsyncMock()
    mock.complete = AsyncMock(
        return_value=answer(
            {
                "action": {"type": "type", "selector": "#email", "text": "bot@example.com"},
                "reasoning": "Fill the email field",
                "confidence": 0.9,
                "goal_progress": 40,
            }
        )
    )
    return mock


@pytest.fixture
def catalog_source():
    mock = AsyncMock()
    mock.fetch = AsyncMock()
    return mock


@pytest.fixture
def app(store, provider, catalog_source):
    components = EngineComponents(
        engine=AutomationEngine(store=store, completion_provider=provider),
        optimizer=ModelOptimizer(store, catalog_source=catalog_source),
        store=store,
        config=EngineConfig(),
    )
    return create_app(components=components)


def client_for(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
class TestAgentEndpoints:
    async def test_start_then_decide(self, app, store):
        async with client_for(app) as client:
            created = await client.post("/api/v1/sessions", json={"goal": "Sign up", "task_id": "t-1"})
            assert created.status_code == 201, created.text
            session_id = created.json()["id"]
            assert created.json()["status"] == "queued"

            started = await client.post(
                "/api/v1/agent/start",
                json={"session_id": session_id, "task": {"target_platform": "spotify", "goal_type": "signup"}},
            )
            assert started.status_code == 200, started.text
            assert started.json()["initial_action"] == {"type": "navigate", "url": "https://open.spotify.com"}

            decided = await client.post(
                "/api/v1/agent/decide",
                json={"session_id": session_id, "goal": "Sign up", "current_url": "https://open.spotify.com"},
            )
            assert decided.status_code == 200, decided.text
            body = decided.json()
            assert body["action"]["type"] == "type"
            assert body["goal_progress"] == 40

        assert (await store.get_session(session_id)).progress == 40

    async def test_decide_unknown_session(self, app):
        async with client_for(app) as client:
            res = await client.post("/api/v1/agent/decide", json={"session_id": "nope", "goal": "g"})
        assert res.status_code == 404

    async def test_decide_requires_goal(self, app):
        async with client_for(app) as client:
            res = await client.post("/api/v1/agent/decide", json={"session_id": "s"})
        assert res.status_code == 422

    async def test_report(self, app, make_session):
        session = await make_session(metadata={"goal": "Like a video"})
        async with client_for(app) as client:
            res = await client.post(
                "/api/v1/agent/report",
                json={"session_id": session.id, "action_result": "clicked", "current_url": "https://x.test"},
            )
        assert res.status_code == 200, res.text
        assert res.json()["action"]["selector"] == "#email"

    async def test_verify(self, app):
        async with client_for(app) as client:
            res = await client.post(
                "/api/v1/agent/verify",
                json={
                    "verification_criteria": [{"type": "url_contains", "value": "/home"}],
                    "after_state": {"url": "https://x.test/home"},
                },
            )
        assert res.status_code == 200
        assert res.json()["verified"] is True
        assert res.json()["confidence"] == 1.0

    async def test_verify_unknown_criterion(self, app):
        async with client_for(app) as client:
            res = await client.post(
                "/api/v1/agent/verify", json={"verification_criteria": [{"type": "vibes"}]}
            )
        assert res.status_code == 400

    async def test_bot_generation_requires_success(self, app, make_session):
        session = await make_session(SessionStatus.RUNNING)
        async with client_for(app) as client:
            res = await client.post("/api/v1/agent/bots", json={"session_id": session.id})
        assert res.status_code == 409

    async def test_bot_generation_parse_failure(self, app, provider, make_session):
        session = await make_session(SessionStatus.SUCCESS)
        provider.complete.return_value = {**answer({}), "content": "not json"}
        async with client_for(app) as client:
            res = await client.post("/api/v1/agent/bots", json={"session_id": session.id})
        assert res.status_code == 400

    async def test_bot_lifecycle(self, app, provider, make_session):
        session = await make_session(SessionStatus.SUCCESS)
        provider.complete.return_value = answer(
            {"name": "Signup bot", "steps": [{"action": "navigate", "value": "https://x.test"}]}
        )
        async with client_for(app) as client:
            created = await client.post("/api/v1/agent/bots", json={"session_id": session.id})
            assert created.status_code == 201, created.text
            bot_id = created.json()["bot_id"]

            listed = await client.get("/api/v1/agent/bots")
            assert [b["id"] for b in listed.json()["bots"]] == [bot_id]

            executed = await client.post(f"/api/v1/agent/bots/{bot_id}/execute", json={"count": 2})
            assert executed.status_code == 200
            assert executed.json()["sessions_created"] == 2

            too_many = await client.post(f"/api/v1/agent/bots/{bot_id}/execute", json={"count": 500})
            assert too_many.status_code == 422

            missing = await client.post("/api/v1/agent/bots/nope/execute", json={})
            assert missing.status_code == 404

    async def test_cost_stats(self, app):
        async with client_for(app) as client:
            res = await client.get("/api/v1/agent/cost-stats", params={"hours": 6})
        assert res.json() == {"hours": 6, "total_cost": 0.0, "by_task_type": {}, "calls": 0}


@pytest.mark.asyncio
class TestSessionEndpoints:
    async def test_pause_resume_cancel(self, app, make_session):
        session = await make_session()
        async with client_for(app) as client:
            paused = await client.post(f"/api/v1/sessions/{session.id}/pause")
            assert paused.json()["status"] == "paused"

            resumed = await client.post(f"/api/v1/sessions/{session.id}/resume")
            assert resumed.json()["status"] == "running"

            cancelled = await client.post(
                f"/api/v1/sessions/{session.id}/cancel", json={"reason": "operator stop"}
            )
            assert cancelled.json()["status"] == "cancelled"
            assert cancelled.json()["error_message"] == "operator stop"

            again = await client.post(f"/api/v1/sessions/{session.id}/resume")
            assert again.status_code == 409

            logs = await client.get(f"/api/v1/sessions/{session.id}/logs", params={"limit": 2})
            assert [e["action"] for e in logs.json()["logs"]] == ["pause", "resume"]

    async def test_unknown_session(self, app):
        async with client_for(app) as client:
            assert (await client.get("/api/v1/sessions/nope")).status_code == 404
            assert (await client.get("/api/v1/sessions/nope/logs")).status_code == 404


@pytest.mark.asyncio
class TestModelEndpoints:
    async def test_check(self, app):
        async with client_for(app) as client:
            res = await client.get("/api/v1/models/check")
        assert res.status_code == 200
        assert res.json()["applied"] is False

    async def test_refresh_failure_is_bad_gateway(self, app, catalog_source):
        catalog_source.fetch.side_effect = CatalogFetchError("OpenRouter returned HTTP 500")
        async with client_for(app) as client:
            res = await client.post("/api/v1/models/refresh")
        assert res.status_code == 502
        assert "500" in res.json()["detail"]


@pytest.mark.asyncio
class TestHealth:
    async def test_healthy_with_store_stats(self, app, store):
        await store.save_bot(AutomationBot(name="b"))
        async with client_for(app) as client:
            res = await client.get("/health")
        body = res.json()
        assert body["status"] == "healthy"
        assert body["store"]["bots"] == 1
