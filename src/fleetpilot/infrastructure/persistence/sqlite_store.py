"""
SQLite Engine Store

Durable implementation of the storage protocol on a single SQLite file.
A short-lived connection per operation keeps things simple and safe for
asyncio; every write commits immediately.
"""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from fleetpilot.core.domain.catalog import ModelCacheEntry, ModelCatalog
from fleetpilot.core.domain.models import (
    AutomationBot,
    LogLevel,
    Session,
    SessionLogEntry,
    SessionStatus,
    UsageRecord,
    VerificationAuditRow,
)
from fleetpilot.core.domain.routing import TaskModelConfig

SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    goal TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL,
    progress INTEGER NOT NULL DEFAULT 0,
    current_url TEXT,
    error_message TEXT,
    resumable INTEGER NOT NULL DEFAULT 1,
    metadata TEXT NOT NULL DEFAULT '{}',
    task_id TEXT,
    profile_id TEXT,
    automation_bot_id TEXT,
    created_at TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT,
    execution_time_ms INTEGER
);

CREATE TABLE IF NOT EXISTS session_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    level TEXT NOT NULL,
    message TEXT NOT NULL,
    action TEXT,
    details TEXT NOT NULL DEFAULT '{}',
    timestamp TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_session_logs_session ON session_logs(session_id);

CREATE TABLE IF NOT EXISTS action_verifications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT,
    action_index INTEGER,
    action_type TEXT,
    verification_type TEXT NOT NULL,
    verified INTEGER NOT NULL,
    confidence REAL NOT NULL,
    evidence TEXT NOT NULL DEFAULT '{}',
    before_state TEXT NOT NULL DEFAULT '{}',
    after_state TEXT NOT NULL DEFAULT '{}',
    verified_at TEXT
);

CREATE TABLE IF NOT EXISTS ai_usage_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT,
    task_type TEXT NOT NULL,
    model_used TEXT NOT NULL,
    provider TEXT NOT NULL,
    input_tokens INTEGER NOT NULL DEFAULT 0,
    output_tokens INTEGER NOT NULL DEFAULT 0,
    cost_usd REAL NOT NULL DEFAULT 0,
    latency_ms INTEGER,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ai_model_cache (
    id TEXT PRIMARY KEY,
    name TEXT,
    pricing_input REAL NOT NULL,
    pricing_output REAL NOT NULL,
    context_length INTEGER NOT NULL DEFAULT 0,
    capabilities TEXT NOT NULL DEFAULT '[]',
    is_free INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS catalog_meta (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    version INTEGER NOT NULL,
    fetched_at TEXT
);

CREATE TABLE IF NOT EXISTS ai_model_config (
    task_type TEXT PRIMARY KEY,
    data TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS automation_bots (
    id TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS execution_queue (
    session_id TEXT PRIMARY KEY,
    priority INTEGER NOT NULL DEFAULT 0
);
"""


def _connect(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SqliteEngineStore:
    """Storage protocol on SQLite (stdlib ``sqlite3``)."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.logger = structlog.get_logger().bind(component="sqlite_store")
        self.init_db()

    def init_db(self) -> None:
        """Initialize database schema if it does not exist."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with _connect(self.db_path) as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    # Sessions

    async def get_session(self, session_id: str) -> Session | None:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        if row is None:
            return None
        return Session(
            id=row["id"],
            goal=row["goal"],
            status=SessionStatus(row["status"]),
            progress=row["progress"],
            current_url=row["current_url"],
            error_message=row["error_message"],
            resumable=bool(row["resumable"]),
            metadata=json.loads(row["metadata"]),
            task_id=row["task_id"],
            profile_id=row["profile_id"],
            automation_bot_id=row["automation_bot_id"],
            created_at=_dt(row["created_at"]),
            started_at=_dt(row["started_at"]),
            completed_at=_dt(row["completed_at"]),
            execution_time_ms=row["execution_time_ms"],
        )

    async def save_session(self, session: Session) -> None:
        with _connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO sessions(
                    id, goal, status, progress, current_url, error_message, resumable,
                    metadata, task_id, profile_id, automation_bot_id, created_at,
                    started_at, completed_at, execution_time_ms
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session.id,
                    session.goal,
                    session.status.value,
                    session.progress,
                    session.current_url,
                    session.error_message,
                    int(session.resumable),
                    json.dumps(session.metadata, default=str),
                    session.task_id,
                    session.profile_id,
                    session.automation_bot_id,
                    _ts(session.created_at),
                    _ts(session.started_at),
                    _ts(session.completed_at),
                    session.execution_time_ms,
                ),
            )
            conn.commit()

    # Logs and audit

    async def append_log(self, entry: SessionLogEntry) -> None:
        with _connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO session_logs(session_id, level, message, action, details, timestamp) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    entry.session_id,
                    entry.level.value,
                    entry.message,
                    entry.action,
                    json.dumps(entry.details, default=str),
                    _ts(entry.timestamp),
                ),
            )
            conn.commit()

    async def list_logs(
        self,
        session_id: str,
        limit: int | None = None,
        newest_first: bool = False,
        levels: tuple[str, ...] | None = None,
    ) -> list[SessionLogEntry]:
        query = "SELECT * FROM session_logs WHERE session_id = ?"
        params: list[Any] = [session_id]
        if levels:
            query += f" AND level IN ({', '.join('?' for _ in levels)})"
            params.extend(levels)
        order = "DESC" if newest_first else "ASC"
        query += f" ORDER BY timestamp {order}, id {order}"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with _connect(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            SessionLogEntry(
                session_id=row["session_id"],
                level=LogLevel(row["level"]),
                message=row["message"],
                action=row["action"],
                details=json.loads(row["details"]),
                timestamp=_dt(row["timestamp"]),
            )
            for row in rows
        ]

    async def add_verification(self, row: VerificationAuditRow) -> None:
        with _connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO action_verifications(
                    session_id, action_index, action_type, verification_type, verified,
                    confidence, evidence, before_state, after_state, verified_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    row.session_id,
                    row.action_index,
                    row.action_type,
                    row.verification_type,
                    int(row.verified),
                    row.confidence,
                    json.dumps(row.evidence, default=str),
                    json.dumps(row.before_state, default=str),
                    json.dumps(row.after_state, default=str),
                    _ts(row.verified_at),
                ),
            )
            conn.commit()

    async def list_verifications(self, session_id: str) -> list[VerificationAuditRow]:
        with _connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM action_verifications WHERE session_id = ? ORDER BY id",
                (session_id,),
            ).fetchall()
        return [
            VerificationAuditRow(
                session_id=row["session_id"],
                action_index=row["action_index"],
                action_type=row["action_type"],
                verification_type=row["verification_type"],
                verified=bool(row["verified"]),
                confidence=row["confidence"],
                evidence=json.loads(row["evidence"]),
                before_state=json.loads(row["before_state"]),
                after_state=json.loads(row["after_state"]),
                verified_at=_dt(row["verified_at"]),
            )
            for row in rows
        ]

    # Telemetry

    async def record_usage(self, record: UsageRecord) -> None:
        with _connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO ai_usage_log(
                    session_id, task_type, model_used, provider, input_tokens,
                    output_tokens, cost_usd, latency_ms, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.session_id,
                    record.task_type,
                    record.model,
                    record.provider,
                    record.input_tokens,
                    record.output_tokens,
                    record.cost_usd,
                    record.latency_ms,
                    _ts(record.created_at),
                ),
            )
            conn.commit()

    async def list_usage(self, since: datetime | None = None) -> list[UsageRecord]:
        query = "SELECT * FROM ai_usage_log"
        params: tuple[Any, ...] = ()
        if since is not None:
            query += " WHERE created_at >= ?"
            params = (_ts(since),)
        with _connect(self.db_path) as conn:
            rows = conn.execute(query + " ORDER BY id", params).fetchall()
        return [
            UsageRecord(
                session_id=row["session_id"],
                task_type=row["task_type"],
                model=row["model_used"],
                provider=row["provider"],
                input_tokens=row["input_tokens"],
                output_tokens=row["output_tokens"],
                cost_usd=row["cost_usd"],
                latency_ms=row["latency_ms"],
                created_at=_dt(row["created_at"]),
            )
            for row in rows
        ]

    # Catalog and task configs

    async def get_catalog(self) -> ModelCatalog:
        with _connect(self.db_path) as conn:
            meta = conn.execute("SELECT version, fetched_at FROM catalog_meta WHERE id = 1").fetchone()
            rows = conn.execute("SELECT * FROM ai_model_cache ORDER BY pricing_input, id").fetchall()
        entries = tuple(
            ModelCacheEntry(
                id=row["id"],
                name=row["name"] or "",
                pricing_input=row["pricing_input"],
                pricing_output=row["pricing_output"],
                context_length=row["context_length"],
                capabilities=frozenset(json.loads(row["capabilities"])),
                is_free=bool(row["is_free"]),
            )
            for row in rows
        )
        if meta is None:
            return ModelCatalog(entries=entries)
        return ModelCatalog(entries=entries, version=meta["version"], fetched_at=_dt(meta["fetched_at"]))

    async def save_catalog(self, catalog: ModelCatalog) -> None:
        """Replace the cached catalog wholesale in one transaction."""
        with _connect(self.db_path) as conn:
            conn.execute("DELETE FROM ai_model_cache")
            conn.executemany(
                "INSERT INTO ai_model_cache(id, name, pricing_input, pricing_output, "
                "context_length, capabilities, is_free) VALUES (?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        e.id,
                        e.name,
                        e.pricing_input,
                        e.pricing_output,
                        e.context_length,
                        json.dumps(sorted(e.capabilities)),
                        int(e.is_free),
                    )
                    for e in catalog.entries
                ],
            )
            conn.execute(
                "INSERT OR REPLACE INTO catalog_meta(id, version, fetched_at) VALUES (1, ?, ?)",
                (catalog.version, _ts(catalog.fetched_at)),
            )
            conn.commit()
        self.logger.info("catalog_saved", catalog_version=catalog.version, models=len(catalog))

    @staticmethod
    def _config_from_row(data: dict[str, Any]) -> TaskModelConfig:
        config = TaskModelConfig.from_dict(data["task_type"], data)
        config.last_checked_at = _dt(data.get("last_checked_at"))
        config.last_updated_at = _dt(data.get("last_updated_at"))
        return config

    async def get_task_config(self, task_type: str) -> TaskModelConfig | None:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT data FROM ai_model_config WHERE task_type = ?", (task_type,)
            ).fetchone()
        return self._config_from_row(json.loads(row["data"])) if row else None

    async def list_task_configs(self) -> list[TaskModelConfig]:
        with _connect(self.db_path) as conn:
            rows = conn.execute("SELECT data FROM ai_model_config ORDER BY task_type").fetchall()
        return [self._config_from_row(json.loads(row["data"])) for row in rows]

    async def save_task_config(self, config: TaskModelConfig) -> None:
        data = {
            "task_type": config.task_type,
            "primary_model": config.primary_model,
            "fallback_model": config.fallback_model,
            "max_price_per_million_input": config.max_price_per_million_input,
            "required_capabilities": list(config.required_capabilities),
            "auto_update": config.auto_update,
            "provider": config.provider,
            "cost_per_1k_tokens": config.cost_per_1k_tokens,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "custom_endpoint": config.custom_endpoint,
            "is_active": config.is_active,
            "last_checked_at": _ts(config.last_checked_at),
            "last_updated_at": _ts(config.last_updated_at),
        }
        with _connect(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO ai_model_config(task_type, data) VALUES (?, ?)",
                (config.task_type, json.dumps(data)),
            )
            conn.commit()

    # Bots and queue

    async def save_bot(self, bot: AutomationBot) -> None:
        with _connect(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO automation_bots(id, data, is_active, created_at) VALUES (?, ?, ?, ?)",
                (bot.id, json.dumps(bot.to_dict(), default=str), int(bot.is_active), _ts(bot.created_at)),
            )
            conn.commit()

    @staticmethod
    def _bot_from_json(raw: str) -> AutomationBot:
        data = json.loads(raw)
        return AutomationBot(
            id=data["id"],
            name=data["name"],
            description=data.get("description") or "",
            steps=data.get("steps") or [],
            target_platform=data.get("target_platform"),
            created_by_task_id=data.get("created_by_task_id"),
            execution_count=data.get("execution_count", 0),
            is_active=data.get("is_active", True),
            created_at=_dt(data["created_at"]),
        )

    async def get_bot(self, bot_id: str) -> AutomationBot | None:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT data FROM automation_bots WHERE id = ?", (bot_id,)).fetchone()
        return self._bot_from_json(row["data"]) if row else None

    async def list_bots(self, active_only: bool = True) -> list[AutomationBot]:
        query = "SELECT data FROM automation_bots"
        if active_only:
            query += " WHERE is_active = 1"
        with _connect(self.db_path) as conn:
            rows = conn.execute(query + " ORDER BY created_at DESC").fetchall()
        return [self._bot_from_json(row["data"]) for row in rows]

    async def enqueue_session(self, session_id: str, priority: int = 0) -> None:
        with _connect(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO execution_queue(session_id, priority) VALUES (?, ?)",
                (session_id, priority),
            )
            conn.commit()

    async def dequeue_session(self, session_id: str) -> None:
        with _connect(self.db_path) as conn:
            conn.execute("DELETE FROM execution_queue WHERE session_id = ?", (session_id,))
            conn.commit()

    async def stats(self) -> dict[str, Any]:
        with _connect(self.db_path) as conn:
            status_rows = conn.execute(
                "SELECT status, COUNT(*) AS n FROM sessions GROUP BY status"
            ).fetchall()
            queued = conn.execute("SELECT COUNT(*) FROM execution_queue").fetchone()[0]
            bots = conn.execute("SELECT COUNT(*) FROM automation_bots").fetchone()[0]
            meta = conn.execute("SELECT version FROM catalog_meta WHERE id = 1").fetchone()
        return {
            "sessions": {row["status"]: row["n"] for row in status_rows},
            "queued": queued,
            "bots": bots,
            "catalog_version": meta["version"] if meta else 0,
        }
