"""
Core Domain Models

This module defines the records the engine reads and writes through the
storage collaborator: sessions and their lifecycle, structured log entries,
verification audit rows, usage telemetry and generated automation bots. It
also defines the per-call inputs supplied by the browser runner.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    """Lifecycle status of an automation session."""

    QUEUED = "queued"
    RUNNING = "running"
    PAUSED = "paused"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {SessionStatus.SUCCESS, SessionStatus.ERROR, SessionStatus.CANCELLED}
)

ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.QUEUED: frozenset({SessionStatus.RUNNING, SessionStatus.CANCELLED}),
    SessionStatus.RUNNING: frozenset(
        {
            SessionStatus.PAUSED,
            SessionStatus.SUCCESS,
            SessionStatus.ERROR,
            SessionStatus.CANCELLED,
        }
    ),
    SessionStatus.PAUSED: frozenset(
        {SessionStatus.RUNNING, SessionStatus.CANCELLED, SessionStatus.ERROR}
    ),
    SessionStatus.SUCCESS: frozenset(),
    SessionStatus.ERROR: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
}


class LogLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Session:
    """
    One automation run.

    Attributes:
        id: Unique session identifier
        goal: Natural language goal the agent pursues
        status: Current lifecycle status
        progress: Progress towards the goal (0-100)
        current_url: Last URL reported by the runner
        error_message: Reason of the last terminal failure
        resumable: Whether a paused session may be resumed
        metadata: Free-form data (current action, reasoning, goal, task id)
        task_id: Task the session was started for
        profile_id: Browser profile used by the runner
        automation_bot_id: Bot that spawned the session (bot executions)
        started_at: When the session moved to running
        completed_at: When the session reached a terminal status
        execution_time_ms: Wall time between start and completion
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    goal: str = ""
    status: SessionStatus = SessionStatus.QUEUED
    progress: int = 0
    current_url: str | None = None
    error_message: str | None = None
    resumable: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)
    task_id: str | None = None
    profile_id: str | None = None
    automation_bot_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    execution_time_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "goal": self.goal,
            "status": self.status.value,
            "progress": self.progress,
            "current_url": self.current_url,
            "error_message": self.error_message,
            "resumable": self.resumable,
            "metadata": dict(self.metadata),
            "task_id": self.task_id,
            "profile_id": self.profile_id,
            "automation_bot_id": self.automation_bot_id,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "execution_time_ms": self.execution_time_ms,
        }


@dataclass
class SessionLogEntry:
    session_id: str
    level: LogLevel
    message: str
    action: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "level": self.level.value,
            "message": self.message,
            "action": self.action,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class VerificationAuditRow:
    session_id: str | None
    action_index: int | None
    action_type: str | None
    verification_type: str
    verified: bool
    confidence: float
    evidence: dict[str, Any] = field(default_factory=dict)
    before_state: dict[str, Any] = field(default_factory=dict)
    after_state: dict[str, Any] = field(default_factory=dict)
    verified_at: datetime | None = None


@dataclass
class UsageRecord:
    """AI usage telemetry for one successful completion."""

    session_id: str | None
    task_type: str
    model: str
    provider: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    latency_ms: int
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class AutomationBot:
    """Reusable scripted flow generated from a successful session."""

    name: str
    description: str = ""
    steps: list[dict[str, Any]] = field(default_factory=list)
    target_platform: str | None = None
    created_by_task_id: str | None = None
    execution_count: int = 0
    is_active: bool = True
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "steps": self.steps,
            "target_platform": self.target_platform,
            "created_by_task_id": self.created_by_task_id,
            "execution_count": self.execution_count,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class TaskDescriptor:
    """Task fields the start operation derives a goal and start URL from."""

    target_platform: str = "generic"
    goal_type: str = "browse"
    target_url: str | None = None
    search_query: str | None = None
    description: str | None = None
    entry_method: str | None = None
    task_id: str | None = None


@dataclass
class DecisionState:
    """
    Observed state the runner supplies for one decision.

    Attributes:
        session_id: Session the decision belongs to
        goal: Goal text
        current_url: URL currently open in the browser
        error: Error raised by the last executed action
        attempt: Iteration counter maintained by the caller
        previous_actions: Previously executed actions (oldest first)
        verification_results: Earlier verification outcomes (oldest first)
        screenshot_base64: PNG screenshot of the current viewport
        task_id: Task the session runs for
    """

    session_id: str
    goal: str
    current_url: str | None = None
    error: str | None = None
    attempt: int | None = None
    previous_actions: list[Any] = field(default_factory=list)
    verification_results: list[dict[str, Any]] = field(default_factory=list)
    screenshot_base64: str | None = None
    task_id: str | None = None


@dataclass
class ActionOutcome:
    """What the runner observed after executing the last action."""

    session_id: str
    action_result: str | None = None
    current_url: str | None = None
    error: str | None = None
    screenshot_base64: str | None = None
    verification_data: dict[str, Any] | None = None


@dataclass
class StartResult:
    goal: str
    start_url: str
    initial_action: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "goal": self.goal,
            "start_url": self.start_url,
            "initial_action": self.initial_action,
        }
