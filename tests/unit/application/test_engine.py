"""
Unit tests for AutomationEngine service operations.
"""

import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from fleetpilot.application.config import EngineConfig
from fleetpilot.application.engine import AutomationEngine, compose_goal, derive_start_url
from fleetpilot.core.domain.errors import (
    BotGenerationError,
    BotNotFoundError,
    InvalidTransitionError,
    SessionNotFoundError,
)
from fleetpilot.core.domain.models import (
    ActionOutcome,
    AutomationBot,
    LogLevel,
    SessionStatus,
    TaskDescriptor,
    UsageRecord,
    utcnow,
)

PLATFORM_URLS = EngineConfig().platform_urls


def answer(payload) -> dict:
    return {
        "success": True,
        "content": payload if isinstance(payload, str) else json.dumps(payload),
        "usage": {"input_tokens": 1, "output_tokens": 1},
        "model": "m",
        "provider": "openrouter",
        "latency_ms": 1,
    }


@pytest.fixture
def provider():
    mock = AsyncMock()
    mock.complete = AsyncMock(return_value=answer({"action": {"type": "observe"}}))
    return mock


@pytest.fixture
def engine(store, provider) -> AutomationEngine:
    return AutomationEngine(store=store, completion_provider=provider)


class TestStartDerivation:
    def test_goal_composition(self):
        task = TaskDescriptor(
            target_platform="youtube",
            goal_type="like",
            target_url="https://youtu.be/x",
            search_query="lofi",
            description="Like the first video",
        )
        assert compose_goal(task) == (
            "Platform: youtube. Action: like. Target: https://youtu.be/x. "
            "Search: lofi. Details: Like the first video"
        )

    def test_explicit_url_wins(self):
        task = TaskDescriptor(target_url="https://a.test", entry_method="search", search_query="q")
        assert derive_start_url(task, PLATFORM_URLS, "https://www.google.com") == "https://a.test"

    def test_search_entry_builds_google_query(self):
        task = TaskDescriptor(target_platform="spotify", entry_method="search", search_query="lofi beats & chill")
        assert derive_start_url(task, PLATFORM_URLS, "https://www.google.com") == (
            "https://www.google.com/search?q=lofi%20beats%20%26%20chill"
        )

    def test_search_entry_falls_back_to_platform_name(self):
        task = TaskDescriptor(target_platform="telegram", entry_method="search")
        assert derive_start_url(task, PLATFORM_URLS, "x").endswith("?q=telegram")

    def test_platform_lookup_is_case_insensitive(self):
        task = TaskDescriptor(target_platform="YouTube")
        assert derive_start_url(task, PLATFORM_URLS, "x") == "https://www.youtube.com"

    def test_unknown_platform_uses_default(self):
        task = TaskDescriptor(target_platform="myspace")
        assert derive_start_url(task, PLATFORM_URLS, "https://www.google.com") == "https://www.google.com"


@pytest.mark.asyncio
class TestStartAndReport:
    async def test_start_marks_session_running(self, engine, store, make_session):
        session = await make_session(SessionStatus.QUEUED)
        result = await engine.start(
            session.id, TaskDescriptor(target_platform="twitter", goal_type="follow", task_id="t-1")
        )

        assert result.start_url == "https://twitter.com"
        assert result.initial_action == {"type": "navigate", "url": "https://twitter.com"}
        saved = await store.get_session(session.id)
        assert saved.status == SessionStatus.RUNNING
        assert saved.current_url == "https://twitter.com"
        assert saved.metadata["autonomous_mode"] is True
        assert saved.metadata["goal"] == "Platform: twitter. Action: follow"
        assert saved.metadata["task_id"] == "t-1"
        logs = await store.list_logs(session.id)
        assert logs[-1].message == "Starting: Platform: twitter. Action: follow"

    async def test_start_unknown_session(self, engine):
        with pytest.raises(SessionNotFoundError):
            await engine.start("missing", TaskDescriptor())

    async def test_start_finished_session_is_rejected(self, engine, make_session):
        session = await make_session(SessionStatus.SUCCESS)
        with pytest.raises(InvalidTransitionError):
            await engine.start(session.id, TaskDescriptor())

    async def test_report_replays_previous_actions(self, engine, provider, make_session):
        session = await make_session(metadata={"goal": "Sign up"})
        failed = await engine.verify(
            [{"type": "url_contains", "value": "/welcome"}],
            after_state={"url": "https://x.test/form"},
        )
        provider.complete.side_effect = [
            answer({"action": {"type": "navigate", "url": "https://x.test"}}),
            answer({"action": {"type": "click", "selector": "#a"}}),
            answer({"action": {"type": "observe"}}),
        ]
        for _ in range(2):
            await engine.report(ActionOutcome(session_id=session.id, action_result="ok"))

        await engine.report(
            ActionOutcome(
                session_id=session.id,
                action_result="clicked",
                current_url="https://x.test/form",
                error="element detached",
                verification_data=failed.to_dict(),
            )
        )

        context = provider.complete.await_args.args[1][1]["content"]
        assert "GOAL: Sign up" in context
        assert "CURRENT URL: https://x.test/form" in context
        assert "LAST ERROR: element detached" in context
        assert '"navigate"' in context and '"#a"' in context
        assert "ATTEMPT: 3" in context
        assert "LAST VERIFICATION: FAILED" in context

    async def test_report_passes_top_level_verdict(self, engine, provider, make_session):
        session = await make_session(metadata={"goal": "Sign up"})
        passed = await engine.verify(
            [{"type": "url_contains", "value": "foo"}],
            after_state={"url": "https://x.test/foo"},
        )
        assert passed.verified

        await engine.report(
            ActionOutcome(session_id=session.id, verification_data=passed.to_dict())
        )

        context = provider.complete.await_args.args[1][1]["content"]
        assert "LAST VERIFICATION: PASSED" in context

    async def test_report_logs_outcome(self, engine, store, make_session):
        session = await make_session()
        await engine.report(ActionOutcome(session_id=session.id, error="timeout"))

        report_logs = [e for e in await store.list_logs(session.id) if e.action == "report"]
        assert report_logs[0].message == "Report: completed (timeout)"
        assert report_logs[0].level == LogLevel.WARNING

    async def test_report_unknown_session(self, engine):
        with pytest.raises(SessionNotFoundError):
            await engine.report(ActionOutcome(session_id="missing"))


@pytest.mark.asyncio
class TestVerify:
    async def test_writes_audit_rows_and_summary(self, engine, store, make_session):
        session = await make_session()
        result = await engine.verify(
            [
                {"type": "url_contains", "value": "/welcome"},
                {"type": "network_request", "value": "/api/signup"},
            ],
            session_id=session.id,
            action_index=2,
            action_type="click",
            after_state={"url": "https://x.test/welcome"},
            network_requests=[{"url": "https://x.test/api/signup", "method": "POST"}],
        )

        assert result.verified is True
        rows = await store.list_verifications(session.id)
        assert [r.verification_type for r in rows] == ["url_contains", "network_request"]
        assert all(r.action_index == 2 and r.verified_at is not None for r in rows)
        summary = (await store.list_logs(session.id))[-1]
        assert summary.message == "Verification: PASSED (100%)"
        assert summary.level == LogLevel.SUCCESS

    async def test_failed_verification_logs_warning(self, engine, store, make_session):
        session = await make_session()
        await engine.verify([{"type": "dom_change"}], session_id=session.id)
        summary = (await store.list_logs(session.id))[-1]
        assert summary.message == "Verification: FAILED (0%)"
        assert summary.level == LogLevel.WARNING
        assert (await store.list_verifications(session.id))[0].verified_at is None

    async def test_without_session_nothing_is_written(self, engine, store):
        result = await engine.verify([])
        assert result.verified and result.confidence == 1.0
        assert store.verifications == [] and store.logs == []


@pytest.mark.asyncio
class TestBots:
    async def test_create_bot_from_successful_session(self, engine, provider, store, make_session):
        session = await make_session(SessionStatus.SUCCESS, metadata={"goal": "Follow", "target_platform": "twitter"})
        provider.complete.return_value = answer(
            "Here is the bot:\n"
            + json.dumps(
                {
                    "name": "Follow bot",
                    "description": "Follows an account",
                    "steps": [{"action": "click", "selector": "[data-testid=follow]"}],
                }
            )
        )

        bot = await engine.create_bot(session.id, task_id="t-9")

        assert bot.name == "Follow bot"
        assert bot.target_platform == "twitter"
        assert bot.created_by_task_id == "t-9"
        assert await store.get_bot(bot.id) == bot
        assert provider.complete.await_args.args[0] == "bot_generation"

    async def test_create_bot_requires_success(self, engine, make_session):
        session = await make_session(SessionStatus.RUNNING)
        with pytest.raises(InvalidTransitionError):
            await engine.create_bot(session.id)

    async def test_unparseable_definition(self, engine, provider, make_session):
        session = await make_session(SessionStatus.SUCCESS)
        provider.complete.return_value = answer("no json here")
        with pytest.raises(BotGenerationError):
            await engine.create_bot(session.id)

    async def test_generation_call_failure(self, engine, provider, make_session):
        session = await make_session(SessionStatus.SUCCESS)
        provider.complete.return_value = {"success": False, "error": "down", "error_type": "X", "model": None}
        with pytest.raises(BotGenerationError, match="down"):
            await engine.create_bot(session.id)

    async def test_execute_bot_queues_sessions(self, engine, store):
        bot = AutomationBot(name="b", execution_count=1)
        await store.save_bot(bot)

        sessions = await engine.execute_bot(bot.id, profile_id="p-1", count=3)

        assert len(sessions) == 3
        assert all(s.status == SessionStatus.QUEUED and s.automation_bot_id == bot.id for s in sessions)
        assert [s.metadata["index"] for s in sessions] == [0, 1, 2]
        assert set(store.queue) == {s.id for s in sessions}
        assert (await store.get_bot(bot.id)).execution_count == 4

    async def test_execute_unknown_bot(self, engine):
        with pytest.raises(BotNotFoundError):
            await engine.execute_bot("missing")

    async def test_list_bots_only_active(self, engine, store):
        await store.save_bot(AutomationBot(name="on"))
        await store.save_bot(AutomationBot(name="off", is_active=False))
        assert [b.name for b in await engine.list_bots()] == ["on"]


@pytest.mark.asyncio
async def test_cost_stats_window(engine, store):
    now = utcnow()
    for task_type, cost, age in (("execution", 0.5, 1), ("vision", 0.25, 2), ("execution", 9.0, 48)):
        await store.record_usage(
            UsageRecord(
                session_id=None,
                task_type=task_type,
                model="m",
                provider="openrouter",
                input_tokens=0,
                output_tokens=0,
                cost_usd=cost,
                latency_ms=0,
                created_at=now - timedelta(hours=age),
            )
        )

    stats = await engine.cost_stats()

    assert stats["total_cost"] == pytest.approx(0.75)
    assert stats["by_task_type"] == {"execution": 0.5, "vision": 0.25}
    assert stats["calls"] == 2
