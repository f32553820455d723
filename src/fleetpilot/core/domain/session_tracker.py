"""
Session State Tracker

Owns session status transitions, progress and structured log entries. All
reads and writes go through the storage collaborator; the tracker keeps no
session state between calls.
"""

from typing import Any

import structlog

from fleetpilot.core.domain.errors import InvalidTransitionError, SessionNotFoundError
from fleetpilot.core.domain.models import (
    ALLOWED_TRANSITIONS,
    LogLevel,
    Session,
    SessionLogEntry,
    SessionStatus,
    utcnow,
)
from fleetpilot.core.interfaces.storage import EngineStoreProtocol


class SessionTracker:
    """Lifecycle and logging for automation sessions."""

    def __init__(self, store: EngineStoreProtocol):
        self.store = store
        self.logger = structlog.get_logger().bind(component="session_tracker")

    async def get(self, session_id: str) -> Session:
        """
        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = await self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def create(self, session: Session) -> Session:
        await self.store.save_session(session)
        self.logger.info("session_created", session_id=session.id, status=session.status.value)
        return session

    async def save(self, session: Session) -> Session:
        await self.store.save_session(session)
        return session

    async def transition(
        self, session_id: str, target: SessionStatus, **fields: Any
    ) -> Session:
        """
        Move a session to ``target`` and apply extra field updates.

        Sets ``started_at`` when a session first runs and ``completed_at``
        plus ``execution_time_ms`` on terminal statuses. Terminal sessions
        leave the execution queue.

        Raises:
            SessionNotFoundError: If the session does not exist
            InvalidTransitionError: If the lifecycle forbids the change
        """
        session = await self.get(session_id)
        return await self.transition_session(session, target, **fields)

    async def transition_session(
        self, session: Session, target: SessionStatus, **fields: Any
    ) -> Session:
        """Apply a validated transition to an already loaded session."""
        current = session.status
        if target != current and target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(session.id, current.value, target.value)

        now = utcnow()
        session.status = target
        for name, value in fields.items():
            setattr(session, name, value)

        if target == SessionStatus.RUNNING and session.started_at is None:
            session.started_at = now

        if target.is_terminal:
            session.completed_at = now
            if session.started_at is not None:
                session.execution_time_ms = int((now - session.started_at).total_seconds() * 1000)
            await self.store.dequeue_session(session.id)

        await self.store.save_session(session)
        self.logger.info(
            "session_transition",
            session_id=session.id,
            from_status=current.value,
            to_status=target.value,
        )
        return session

    async def ensure_running(self, session: Session) -> Session:
        """Promote a queued session to running; other statuses are returned unchanged."""
        if session.status == SessionStatus.QUEUED:
            return await self.transition_session(session, SessionStatus.RUNNING)
        return session

    async def update_progress(
        self, session_id: str, progress: int, metadata: dict[str, Any] | None = None
    ) -> Session:
        session = await self.get(session_id)
        session.progress = max(0, min(100, int(progress)))
        if metadata:
            session.metadata.update(metadata)
        await self.store.save_session(session)
        return session

    async def pause(self, session_id: str) -> Session:
        session = await self.get(session_id)
        if not session.resumable:
            self.logger.warning("pause_non_resumable_session", session_id=session_id)
        session = await self.transition_session(session, SessionStatus.PAUSED)
        await self.log(session_id, LogLevel.WARNING, "Session paused", action="pause")
        return session

    async def resume(self, session_id: str) -> Session:
        """
        Raises:
            InvalidTransitionError: If the session is not paused or not resumable
        """
        session = await self.get(session_id)
        if session.status != SessionStatus.PAUSED or not session.resumable:
            raise InvalidTransitionError(session_id, session.status.value, SessionStatus.RUNNING.value)
        session = await self.transition_session(session, SessionStatus.RUNNING)
        await self.log(session_id, LogLevel.INFO, "Session resumed", action="resume")
        return session

    async def cancel(self, session_id: str, reason: str | None = None) -> Session:
        session = await self.get(session_id)
        session = await self.transition_session(
            session, SessionStatus.CANCELLED, error_message=reason or session.error_message
        )
        await self.log(
            session_id, LogLevel.WARNING, f"Session cancelled{f': {reason}' if reason else ''}", action="cancel"
        )
        return session

    async def log(
        self,
        session_id: str,
        level: LogLevel,
        message: str,
        action: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> SessionLogEntry:
        entry = SessionLogEntry(
            session_id=session_id,
            level=level,
            message=message,
            action=action,
            details=details or {},
        )
        await self.store.append_log(entry)
        return entry
