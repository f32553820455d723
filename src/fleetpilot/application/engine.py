"""
Application Layer - Automation Engine

Service layer used by both the HTTP API and the CLI. It wires the decision
loop, the session tracker, the verification evaluator and the completion
client into the operations a browser runner calls:

- start: derive goal and start URL for a session
- decide / report: run one iteration of the decision loop
- verify: score an executed action and keep an audit trail
- pause / resume / cancel: session lifecycle control
- create_bot / execute_bot / list_bots: reusable flows from successful runs
- cost_stats: AI spend over a time window
"""

import json
from collections import defaultdict
from datetime import timedelta
from typing import Any
from urllib.parse import quote

import structlog

from fleetpilot.application.config import EngineConfig
from fleetpilot.core.domain.actions import AgentResponse, Navigate
from fleetpilot.core.domain.decision_loop import DecisionLoop
from fleetpilot.core.domain.errors import (
    BotGenerationError,
    BotNotFoundError,
    InvalidTransitionError,
)
from fleetpilot.core.domain.models import (
    ActionOutcome,
    AutomationBot,
    DecisionState,
    LogLevel,
    Session,
    SessionLogEntry,
    SessionStatus,
    StartResult,
    TaskDescriptor,
    VerificationAuditRow,
    utcnow,
)
from fleetpilot.core.domain.parsing import extract_json_object
from fleetpilot.core.domain.session_tracker import SessionTracker
from fleetpilot.core.domain.verification import (
    VerificationCriterion,
    VerificationResult,
    evaluate_criteria,
)
from fleetpilot.core.interfaces.llm import CompletionProviderProtocol
from fleetpilot.core.interfaces.storage import EngineStoreProtocol
from fleetpilot.core.prompts.automation_prompts import BOT_GENERATION_PROMPT

logger = structlog.get_logger()


def compose_goal(task: TaskDescriptor) -> str:
    parts = [f"Platform: {task.target_platform}", f"Action: {task.goal_type}"]
    if task.target_url:
        parts.append(f"Target: {task.target_url}")
    if task.search_query:
        parts.append(f"Search: {task.search_query}")
    if task.description:
        parts.append(f"Details: {task.description}")
    return ". ".join(parts)


def derive_start_url(
    task: TaskDescriptor, platform_urls: dict[str, str], default_url: str
) -> str:
    """
    Pick the first page the runner opens.

    Order: explicit target URL, search engine query when the task enters
    through search, platform home page, default URL.
    """
    if task.target_url:
        return task.target_url
    if task.entry_method == "search":
        query = task.search_query or task.target_platform
        return f"https://www.google.com/search?q={quote(query, safe='')}"
    platform = (task.target_platform or "").lower()
    return platform_urls.get(platform, default_url)


class AutomationEngine:
    """
    Runner facing operations of the decision engine.

    The engine keeps no per-session state; every call reads and writes
    through the storage collaborator.
    """

    def __init__(
        self,
        store: EngineStoreProtocol,
        completion_provider: CompletionProviderProtocol,
        config: EngineConfig | None = None,
        tracker: SessionTracker | None = None,
        decision_loop: DecisionLoop | None = None,
    ):
        self.store = store
        self.completion_provider = completion_provider
        self.config = config or EngineConfig()
        self.tracker = tracker or SessionTracker(store)
        self.decision_loop = decision_loop or DecisionLoop(
            completion_provider,
            self.tracker,
            recent_action_window=self.config.recent_action_window,
            max_model_failures=self.config.max_model_failures,
            paused_wait_ms=self.config.paused_wait_ms,
        )
        self.logger = logger.bind(component="automation_engine")

    # Sessions

    async def create_session(
        self,
        goal: str = "",
        task_id: str | None = None,
        profile_id: str | None = None,
        priority: int = 0,
        metadata: dict[str, Any] | None = None,
    ) -> Session:
        """Create a queued session and put it on the execution queue."""
        session = Session(
            goal=goal,
            task_id=task_id,
            profile_id=profile_id,
            metadata=dict(metadata or {}),
        )
        await self.tracker.create(session)
        await self.store.enqueue_session(session.id, priority)
        return session

    async def get_session(self, session_id: str) -> Session:
        return await self.tracker.get(session_id)

    async def get_logs(self, session_id: str, limit: int | None = None) -> list[SessionLogEntry]:
        await self.tracker.get(session_id)
        return await self.store.list_logs(session_id, limit=limit)

    async def pause(self, session_id: str) -> Session:
        return await self.tracker.pause(session_id)

    async def resume(self, session_id: str) -> Session:
        return await self.tracker.resume(session_id)

    async def cancel(self, session_id: str, reason: str | None = None) -> Session:
        return await self.tracker.cancel(session_id, reason)

    # Decision loop

    async def start(self, session_id: str, task: TaskDescriptor) -> StartResult:
        """
        Derive the goal and start URL and move the session to running.

        Raises:
            SessionNotFoundError: If the session does not exist
            InvalidTransitionError: If the session already finished
        """
        session = await self.tracker.get(session_id)
        goal = compose_goal(task)
        start_url = derive_start_url(
            task, self.config.platform_urls, self.config.default_start_url
        )

        task_id = task.task_id or session.task_id
        session.goal = goal
        session.metadata.update(
            {
                "autonomous_mode": True,
                "goal": goal,
                "task_id": task_id,
                "target_platform": task.target_platform,
            }
        )
        await self.tracker.transition_session(
            session, SessionStatus.RUNNING, current_url=start_url, task_id=task_id
        )
        await self.tracker.log(
            session_id,
            LogLevel.INFO,
            f"Starting: {goal}",
            action="start",
            details={"goal": goal, "start_url": start_url},
        )
        self.logger.info("session_started", session_id=session_id, start_url=start_url)

        return StartResult(
            goal=goal,
            start_url=start_url,
            initial_action=Navigate(url=start_url).to_dict(),
        )

    async def decide(self, state: DecisionState) -> AgentResponse:
        return await self.decision_loop.decide(state)

    async def report(self, outcome: ActionOutcome) -> AgentResponse:
        """
        Record the outcome of the last action and decide the next one.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = await self.tracker.get(outcome.session_id)

        recent = await self.store.list_logs(
            outcome.session_id,
            limit=self.config.report_history_window,
            newest_first=True,
        )
        previous_actions = [
            entry.details["action"]
            for entry in reversed(recent)
            if isinstance(entry.details, dict) and entry.details.get("action")
        ]

        result_text = outcome.action_result or "completed"
        message = f"Report: {result_text}"
        if outcome.error:
            message += f" ({outcome.error})"
        await self.tracker.log(
            outcome.session_id,
            LogLevel.WARNING if outcome.error else LogLevel.INFO,
            message,
            action="report",
            details={
                "action_result": outcome.action_result,
                "current_url": outcome.current_url,
                "verification": outcome.verification_data,
            },
        )

        verification = outcome.verification_data or {}
        if "verified" in verification:
            verification_results = [verification]
        else:
            verification_results = [
                row for row in verification.get("results") or [] if isinstance(row, dict)
            ]
        state = DecisionState(
            session_id=outcome.session_id,
            goal=session.metadata.get("goal") or session.goal or "Unknown",
            current_url=outcome.current_url or session.current_url,
            error=outcome.error,
            attempt=len(previous_actions) + 1,
            previous_actions=previous_actions,
            verification_results=verification_results,
            screenshot_base64=outcome.screenshot_base64,
            task_id=session.task_id,
        )
        return await self.decision_loop.decide(state)

    # Verification

    async def verify(
        self,
        criteria: list[dict[str, Any]],
        session_id: str | None = None,
        action_index: int | None = None,
        action_type: str | None = None,
        before_state: dict[str, Any] | None = None,
        after_state: dict[str, Any] | None = None,
        dom_changes: dict[str, Any] | None = None,
        network_requests: list[Any] | None = None,
    ) -> VerificationResult:
        """
        Score an executed action against its criteria.

        With a session id every criterion result is written to the audit
        trail and summarized in the session log.

        Raises:
            ValueError: If a criterion type is unknown
        """
        parsed = [VerificationCriterion.from_dict(c) for c in criteria]
        result = evaluate_criteria(parsed, before_state, after_state, dom_changes, network_requests)

        if session_id:
            now = utcnow()
            for item in result.results:
                await self.store.add_verification(
                    VerificationAuditRow(
                        session_id=session_id,
                        action_index=action_index,
                        action_type=action_type,
                        verification_type=item.type,
                        verified=item.passed,
                        confidence=item.confidence,
                        evidence={"value": item.value, "passed": item.passed},
                        before_state=before_state or {},
                        after_state=after_state or {},
                        verified_at=now if item.passed else None,
                    )
                )
            verdict = "PASSED" if result.verified else "FAILED"
            await self.tracker.log(
                session_id,
                LogLevel.SUCCESS if result.verified else LogLevel.WARNING,
                f"Verification: {verdict} ({result.confidence * 100:.0f}%)",
                action="verify",
                details=result.to_dict(),
            )

        self.logger.debug(
            "action_verified",
            session_id=session_id,
            verified=result.verified,
            confidence=result.confidence,
            criteria=len(parsed),
        )
        return result

    # Bots

    async def create_bot(
        self,
        session_id: str,
        task_id: str | None = None,
        name: str | None = None,
        description: str | None = None,
    ) -> AutomationBot:
        """
        Turn a successful session into a reusable bot.

        Raises:
            SessionNotFoundError: If the session does not exist
            InvalidTransitionError: If the session did not succeed
            BotGenerationError: If the model output is not a bot definition
        """
        session = await self.tracker.get(session_id)
        if session.status != SessionStatus.SUCCESS:
            raise InvalidTransitionError(
                session_id, session.status.value, "bot generation (needs success)"
            )

        logs = await self.store.list_logs(
            session_id, levels=(LogLevel.INFO.value, LogLevel.SUCCESS.value)
        )
        history = [{"action": entry.action, "details": entry.details} for entry in logs]
        platform = session.metadata.get("target_platform")

        messages = [
            {"role": "system", "content": BOT_GENERATION_PROMPT},
            {
                "role": "user",
                "content": (
                    f"Goal: {session.metadata.get('goal') or session.goal}\n"
                    f"Platform: {platform}\n"
                    f"Execution History: {json.dumps(history, default=str)}"
                ),
            },
        ]
        result = await self.completion_provider.complete(
            "bot_generation", messages, session_id=session_id
        )
        if not result.get("success"):
            raise BotGenerationError(f"Bot generation failed: {result.get('error')}")

        definition = extract_json_object(result.get("content"))
        if definition is None:
            raise BotGenerationError("Failed to parse bot config")

        steps = definition.get("steps")
        bot = AutomationBot(
            name=name or definition.get("name") or f"Bot from {session_id[:8]}",
            description=description or definition.get("description") or "",
            steps=steps if isinstance(steps, list) else [],
            target_platform=definition.get("target_platform") or platform,
            created_by_task_id=task_id or session.task_id,
        )
        await self.store.save_bot(bot)
        self.logger.info("bot_created", bot_id=bot.id, session_id=session_id, steps=len(bot.steps))
        return bot

    async def execute_bot(
        self, bot_id: str, profile_id: str | None = None, count: int = 1
    ) -> list[Session]:
        """
        Queue ``count`` sessions running a bot.

        Raises:
            BotNotFoundError: If the bot does not exist
        """
        bot = await self.store.get_bot(bot_id)
        if bot is None:
            raise BotNotFoundError(bot_id)

        sessions = []
        for index in range(count):
            session = Session(
                goal=bot.description or bot.name,
                profile_id=profile_id,
                automation_bot_id=bot_id,
                metadata={"bot_execution": True, "bot_name": bot.name, "index": index},
            )
            await self.tracker.create(session)
            await self.store.enqueue_session(session.id, 0)
            sessions.append(session)

        bot.execution_count += len(sessions)
        await self.store.save_bot(bot)
        self.logger.info("bot_executed", bot_id=bot_id, sessions_created=len(sessions))
        return sessions

    async def list_bots(self) -> list[AutomationBot]:
        return await self.store.list_bots(active_only=True)

    # Telemetry

    async def cost_stats(self, hours: int = 24) -> dict[str, Any]:
        records = await self.store.list_usage(since=utcnow() - timedelta(hours=hours))
        by_task_type: dict[str, float] = defaultdict(float)
        total = 0.0
        for record in records:
            by_task_type[record.task_type] += record.cost_usd
            total += record.cost_usd
        return {
            "hours": hours,
            "total_cost": total,
            "by_task_type": dict(by_task_type),
            "calls": len(records),
        }
