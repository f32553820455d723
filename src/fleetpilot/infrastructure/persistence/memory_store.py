"""
In-Memory Engine Store

Process-local implementation of the storage protocol. Used by tests and by
single-process deployments that do not need durable history.
"""

from collections import Counter
from dataclasses import replace
from datetime import datetime
from typing import Any, Iterable

import structlog

from fleetpilot.core.domain.catalog import ModelCatalog
from fleetpilot.core.domain.models import (
    AutomationBot,
    Session,
    SessionLogEntry,
    UsageRecord,
    VerificationAuditRow,
)
from fleetpilot.core.domain.routing import TaskModelConfig


class InMemoryEngineStore:
    """
    Dictionary backed store.

    Thread Safety:
        Not thread-safe. Intended for a single event loop.
    """

    def __init__(self, task_configs: Iterable[TaskModelConfig] = (), catalog: ModelCatalog | None = None):
        self.sessions: dict[str, Session] = {}
        self.logs: list[SessionLogEntry] = []
        self.verifications: list[VerificationAuditRow] = []
        self.usage: list[UsageRecord] = []
        self.task_configs: dict[str, TaskModelConfig] = {c.task_type: c for c in task_configs}
        self.catalog = catalog or ModelCatalog()
        self.bots: dict[str, AutomationBot] = {}
        self.queue: dict[str, int] = {}
        self.logger = structlog.get_logger().bind(component="memory_store")

    async def get_session(self, session_id: str) -> Session | None:
        session = self.sessions.get(session_id)
        # Copies keep callers from mutating stored state without save_session
        return replace(session, metadata=dict(session.metadata)) if session else None

    async def save_session(self, session: Session) -> None:
        self.sessions[session.id] = replace(session, metadata=dict(session.metadata))

    async def append_log(self, entry: SessionLogEntry) -> None:
        self.logs.append(entry)

    async def list_logs(
        self,
        session_id: str,
        limit: int | None = None,
        newest_first: bool = False,
        levels: tuple[str, ...] | None = None,
    ) -> list[SessionLogEntry]:
        entries = [e for e in self.logs if e.session_id == session_id]
        if levels:
            entries = [e for e in entries if e.level.value in levels]
        entries.sort(key=lambda e: e.timestamp)
        if newest_first:
            entries.reverse()
        return entries[:limit] if limit is not None else entries

    async def add_verification(self, row: VerificationAuditRow) -> None:
        self.verifications.append(row)

    async def list_verifications(self, session_id: str) -> list[VerificationAuditRow]:
        return [r for r in self.verifications if r.session_id == session_id]

    async def record_usage(self, record: UsageRecord) -> None:
        self.usage.append(record)

    async def list_usage(self, since: datetime | None = None) -> list[UsageRecord]:
        if since is None:
            return list(self.usage)
        return [u for u in self.usage if u.created_at >= since]

    async def get_catalog(self) -> ModelCatalog:
        return self.catalog

    async def save_catalog(self, catalog: ModelCatalog) -> None:
        self.catalog = catalog
        self.logger.debug("catalog_saved", catalog_version=catalog.version, models=len(catalog))

    async def get_task_config(self, task_type: str) -> TaskModelConfig | None:
        config = self.task_configs.get(task_type)
        return replace(config, required_capabilities=list(config.required_capabilities)) if config else None

    async def list_task_configs(self) -> list[TaskModelConfig]:
        return [
            replace(c, required_capabilities=list(c.required_capabilities))
            for c in self.task_configs.values()
        ]

    async def save_task_config(self, config: TaskModelConfig) -> None:
        self.task_configs[config.task_type] = config

    async def save_bot(self, bot: AutomationBot) -> None:
        self.bots[bot.id] = bot

    async def get_bot(self, bot_id: str) -> AutomationBot | None:
        return self.bots.get(bot_id)

    async def list_bots(self, active_only: bool = True) -> list[AutomationBot]:
        bots = [b for b in self.bots.values() if b.is_active or not active_only]
        bots.sort(key=lambda b: b.created_at, reverse=True)
        return bots

    async def enqueue_session(self, session_id: str, priority: int = 0) -> None:
        self.queue[session_id] = priority

    async def dequeue_session(self, session_id: str) -> None:
        self.queue.pop(session_id, None)

    async def stats(self) -> dict[str, Any]:
        counts = Counter(s.status.value for s in self.sessions.values())
        return {
            "sessions": dict(counts),
            "queued": len(self.queue),
            "bots": len(self.bots),
            "catalog_version": self.catalog.version,
        }
