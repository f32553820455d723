"""
Decision Loop - perceive, plan, act

One call to ``decide`` runs a single iteration of the control loop for a
session:

1. Build a textual context block from the runner supplied state
2. Optionally ask the "vision" task class to enumerate interactive elements
   on the attached screenshot
3. Ask the "execution" task class for exactly one next action as JSON
4. Parse the answer permissively (synthesized fallback on malformed output)
5. Record the decision, update progress and apply terminal transitions

The caller always receives a well-formed AgentResponse. Malformed output and
unavailable models are converted into synthesized responses; only storage
failures propagate as exceptions.
"""

import json
from typing import Any

import structlog

from fleetpilot.core.domain.actions import AgentResponse, Complete, Fail
from fleetpilot.core.domain.models import DecisionState, LogLevel, Session, SessionStatus
from fleetpilot.core.domain.parsing import (
    parse_agent_response,
    paused_response,
    unavailable_response,
)
from fleetpilot.core.domain.session_tracker import SessionTracker
from fleetpilot.core.interfaces.llm import CompletionProviderProtocol
from fleetpilot.core.prompts.automation_prompts import (
    AUTOMATION_SYSTEM_PROMPT,
    VISION_ANALYSIS_PROMPT,
)

FAILURE_COUNTER_KEY = "consecutive_model_failures"


class DecisionLoop:
    """
    Stateless decision engine for browser automation sessions.

    All session state is read from and written to the storage collaborator
    through the SessionTracker, so any number of sessions can be decided
    concurrently. The runner must not submit two decisions for the same
    session at once.
    """

    def __init__(
        self,
        completion_provider: CompletionProviderProtocol,
        tracker: SessionTracker,
        recent_action_window: int = 3,
        max_model_failures: int = 3,
        paused_wait_ms: int = 2000,
        system_prompt: str | None = None,
    ):
        """
        Initialize the loop with injected dependencies.

        Args:
            completion_provider: Routed completion client
            tracker: Session lifecycle and logging
            recent_action_window: Number of prior actions included in the context
            max_model_failures: Consecutive unavailable decisions before the
                session is failed
            paused_wait_ms: Wait duration returned while a session is paused
            system_prompt: Override of the execution system prompt
        """
        self.completion_provider = completion_provider
        self.tracker = tracker
        self.recent_action_window = recent_action_window
        self.max_model_failures = max_model_failures
        self.paused_wait_ms = paused_wait_ms
        self.system_prompt = system_prompt or AUTOMATION_SYSTEM_PROMPT
        self.logger = structlog.get_logger().bind(component="decision_loop")

    def build_context(self, state: DecisionState) -> str:
        """Render the planning context block for the execution call."""
        parts = [f"GOAL: {state.goal}"]
        if state.current_url:
            parts.append(f"CURRENT URL: {state.current_url}")
        if state.error:
            parts.append(f"LAST ERROR: {state.error}")
        if state.attempt:
            parts.append(f"ATTEMPT: {state.attempt}")
        if state.previous_actions:
            recent = state.previous_actions[-self.recent_action_window:]
            parts.append(f"RECENT ACTIONS: {json.dumps(recent, default=str)}")
        if state.verification_results:
            last = state.verification_results[-1]
            verdict = "PASSED" if last.get("verified", last.get("passed")) else "FAILED"
            parts.append(f"LAST VERIFICATION: {verdict}")
        return "\n\n".join(parts)

    async def decide(self, state: DecisionState) -> AgentResponse:
        """
        Produce the next action for a session.

        Args:
            state: Observed state reported by the runner

        Returns:
            AgentResponse with exactly one action

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = await self.tracker.get(state.session_id)
        if not self._accepts_decisions(session):
            return paused_response(session.status.value, self.paused_wait_ms)
        session = await self.tracker.ensure_running(session)

        self.logger.info(
            "decision_started",
            session_id=state.session_id,
            attempt=state.attempt,
            has_screenshot=bool(state.screenshot_base64),
        )

        context = self.build_context(state)
        if state.screenshot_base64:
            vision = await self._analyze_screenshot(state)
            if vision:
                context += f"\n\nVISION ANALYSIS:\n{vision}"

        messages = [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": context},
        ]
        result = await self.completion_provider.complete(
            "execution", messages, session_id=state.session_id
        )

        # The session may have been paused or cancelled while the call was in flight
        session = await self.tracker.get(state.session_id)
        if not self._accepts_decisions(session):
            await self.tracker.log(
                state.session_id,
                LogLevel.WARNING,
                f"Decision discarded: session {session.status.value}",
                action="decision_discarded",
                details={"model_answered": bool(result.get("success"))},
            )
            self.logger.info(
                "decision_discarded", session_id=state.session_id, status=session.status.value
            )
            return paused_response(session.status.value, self.paused_wait_ms)

        if not result.get("success"):
            return await self._handle_unavailable(session, state, result)

        outcome = parse_agent_response(result.get("content"))
        if outcome.synthesized:
            self.logger.warning(
                "decision_parse_failed",
                session_id=state.session_id,
                error=outcome.error,
                raw_content=str(result.get("content"))[:500],
            )

        await self._apply_decision(session, state, outcome.response, failures=0)
        return outcome.response

    @staticmethod
    def _accepts_decisions(session: Session) -> bool:
        return session.status in (SessionStatus.QUEUED, SessionStatus.RUNNING)

    async def _analyze_screenshot(self, state: DecisionState) -> str | None:
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": VISION_ANALYSIS_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": f"Analyze this page. Goal: {state.goal}"},
                    {
                        "type": "image_url",
                        "image_url": {
                            "url": f"data:image/png;base64,{state.screenshot_base64}",
                            "detail": "low",
                        },
                    },
                ],
            },
        ]
        result = await self.completion_provider.complete(
            "vision", messages, session_id=state.session_id
        )
        if not result.get("success"):
            self.logger.warning(
                "vision_analysis_failed",
                session_id=state.session_id,
                error=result.get("error"),
            )
            return None
        return result.get("content") or None

    async def _handle_unavailable(
        self, session: Session, state: DecisionState, result: dict[str, Any]
    ) -> AgentResponse:
        failures = int(session.metadata.get(FAILURE_COUNTER_KEY, 0)) + 1
        terminal = failures >= self.max_model_failures
        reason = str(result.get("error") or "no model answered")
        response = unavailable_response(reason, terminal=terminal)

        self.logger.error(
            "decision_model_unavailable",
            session_id=state.session_id,
            error_type=result.get("error_type"),
            consecutive_failures=failures,
            terminal=terminal,
        )
        await self.tracker.log(
            state.session_id,
            LogLevel.ERROR if terminal else LogLevel.WARNING,
            f"Model unavailable ({failures}/{self.max_model_failures}): {reason}",
            action="model_unavailable",
            details={"error_type": result.get("error_type"), "model": result.get("model")},
        )
        await self._apply_decision(session, state, response, failures=failures)
        return response

    async def _apply_decision(
        self,
        session: Session,
        state: DecisionState,
        response: AgentResponse,
        failures: int,
    ) -> None:
        action_type = response.action.type.value
        await self.tracker.log(
            state.session_id,
            LogLevel.INFO,
            f"AI Decision: {action_type}",
            action=action_type,
            details={
                "action": response.action.to_dict(),
                "reasoning": response.reasoning,
                "confidence": response.confidence,
                "goal_progress": response.goal_progress,
                "synthesized": response.synthesized,
            },
        )

        # Synthesized responses carry no progress estimate
        if not response.synthesized:
            session.progress = response.goal_progress
        if state.current_url:
            session.current_url = state.current_url
        session.metadata.update(
            {
                "current_action": action_type,
                "reasoning": response.reasoning,
                FAILURE_COUNTER_KEY: failures,
            }
        )
        await self.tracker.save(session)

        if response.is_success:
            if response.generated_data:
                session.metadata["generated_data"] = dict(response.generated_data)
            reason = response.action.reason if isinstance(response.action, Complete) else "Goal achieved"
            await self.tracker.transition_session(session, SessionStatus.SUCCESS, progress=100)
            await self.tracker.log(
                state.session_id,
                LogLevel.SUCCESS,
                f"Goal achieved: {reason}",
                action="complete",
                details={"generated_data": response.generated_data},
            )
        elif response.is_failure:
            reason = response.action.reason if isinstance(response.action, Fail) else ""
            await self.tracker.transition_session(session, SessionStatus.ERROR, error_message=reason)
            await self.tracker.log(
                state.session_id, LogLevel.ERROR, f"Agent failed: {reason}", action="fail"
            )
