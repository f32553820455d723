"""
Storage Protocol

Interface of the external storage collaborator. The engine owns no schema
beyond these records; implementations live in the infrastructure layer.
Storage failures are not caught by the engine and propagate to the caller.
"""

from datetime import datetime
from typing import Any, Protocol

from fleetpilot.core.domain.catalog import ModelCatalog
from fleetpilot.core.domain.models import (
    AutomationBot,
    Session,
    SessionLogEntry,
    UsageRecord,
    VerificationAuditRow,
)
from fleetpilot.core.domain.routing import TaskModelConfig


class EngineStoreProtocol(Protocol):
    """Persistence operations used by the engine."""

    async def get_session(self, session_id: str) -> Session | None:
        ...

    async def save_session(self, session: Session) -> None:
        ...

    async def append_log(self, entry: SessionLogEntry) -> None:
        ...

    async def list_logs(
        self,
        session_id: str,
        limit: int | None = None,
        newest_first: bool = False,
        levels: tuple[str, ...] | None = None,
    ) -> list[SessionLogEntry]:
        ...

    async def add_verification(self, row: VerificationAuditRow) -> None:
        ...

    async def list_verifications(self, session_id: str) -> list[VerificationAuditRow]:
        ...

    async def record_usage(self, record: UsageRecord) -> None:
        ...

    async def list_usage(self, since: datetime | None = None) -> list[UsageRecord]:
        ...

    async def get_catalog(self) -> ModelCatalog:
        ...

    async def save_catalog(self, catalog: ModelCatalog) -> None:
        ...

    async def get_task_config(self, task_type: str) -> TaskModelConfig | None:
        ...

    async def list_task_configs(self) -> list[TaskModelConfig]:
        ...

    async def save_task_config(self, config: TaskModelConfig) -> None:
        ...

    async def save_bot(self, bot: AutomationBot) -> None:
        ...

    async def get_bot(self, bot_id: str) -> AutomationBot | None:
        ...

    async def list_bots(self, active_only: bool = True) -> list[AutomationBot]:
        ...

    async def enqueue_session(self, session_id: str, priority: int = 0) -> None:
        ...

    async def dequeue_session(self, session_id: str) -> None:
        ...

    async def stats(self) -> dict[str, Any]:
        ...
