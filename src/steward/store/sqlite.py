"""SQLite-backed store.

Every operation opens its own connection inside ``asyncio.to_thread`` so
the event loop never blocks on disk I/O. Budget usage is applied with a
single additive upsert, so two processes recording usage for the same
(agent, date) never lose each other's increments.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import uuid
from contextlib import closing
from datetime import datetime
from pathlib import Path
from typing import Any

from steward.store.models import (
    AgentBudget,
    ExecutionRecord,
    Memory,
    Signal,
    SignalQuery,
    UsageDelta,
    iso,
    parse_iso,
    utc_now,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS agent_budgets (
    agent_name TEXT NOT NULL,
    date TEXT NOT NULL,
    tokens_used INTEGER NOT NULL DEFAULT 0,
    tool_calls INTEGER NOT NULL DEFAULT 0,
    runs INTEGER NOT NULL DEFAULT 0,
    estimated_cost REAL NOT NULL DEFAULT 0,
    consecutive_failures INTEGER NOT NULL DEFAULT 0,
    is_circuit_broken INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT,
    PRIMARY KEY (agent_name, date)
);

CREATE TABLE IF NOT EXISTS agent_signals (
    id TEXT PRIMARY KEY,
    signal_type TEXT NOT NULL,
    source_agent TEXT NOT NULL,
    target_agent TEXT,
    message TEXT NOT NULL,
    payload TEXT NOT NULL DEFAULT '{}',
    priority INTEGER NOT NULL DEFAULT 3,
    created_at TEXT NOT NULL,
    expires_at TEXT,
    consumed INTEGER NOT NULL DEFAULT 0,
    consumed_by TEXT,
    consumed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_signals_target ON agent_signals(target_agent, consumed);
CREATE INDEX IF NOT EXISTS idx_signals_type ON agent_signals(signal_type, created_at);

CREATE TABLE IF NOT EXISTS agent_executions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    agent_name TEXT NOT NULL,
    goal TEXT NOT NULL,
    success INTEGER NOT NULL DEFAULT 0,
    output TEXT,
    tool_calls_count INTEGER NOT NULL DEFAULT 0,
    loops_count INTEGER NOT NULL DEFAULT 0,
    duration_ms INTEGER NOT NULL DEFAULT 0,
    trace TEXT,
    error TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_executions_agent ON agent_executions(agent_name, created_at);

CREATE TABLE IF NOT EXISTS agent_memories (
    id TEXT PRIMARY KEY,
    agent_name TEXT NOT NULL,
    memory_type TEXT NOT NULL,
    content TEXT NOT NULL,
    domain TEXT,
    importance INTEGER NOT NULL DEFAULT 3,
    tags TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_memories_agent ON agent_memories(agent_name, importance);
"""

_ADD_USAGE = """
INSERT INTO agent_budgets (
    agent_name, date, tokens_used, tool_calls, runs, estimated_cost,
    consecutive_failures, is_circuit_broken, updated_at
) VALUES (
    :agent_name, :date, :tokens_used, :tool_calls, 1, :estimated_cost,
    :first_failures, 0, :now
)
ON CONFLICT(agent_name, date) DO UPDATE SET
    tokens_used = agent_budgets.tokens_used + excluded.tokens_used,
    tool_calls = agent_budgets.tool_calls + excluded.tool_calls,
    runs = agent_budgets.runs + 1,
    estimated_cost = agent_budgets.estimated_cost + excluded.estimated_cost,
    consecutive_failures = CASE
        WHEN :success THEN 0
        ELSE agent_budgets.consecutive_failures + 1
    END,
    updated_at = excluded.updated_at
"""

_TRIP_CIRCUIT = """
UPDATE agent_budgets SET is_circuit_broken = 1, updated_at = ?
WHERE agent_name = ? AND date = ? AND is_circuit_broken = 0
"""

_RESET_CIRCUIT = """
INSERT INTO agent_budgets (agent_name, date, updated_at) VALUES (?, ?, ?)
ON CONFLICT(agent_name, date) DO UPDATE SET
    consecutive_failures = 0,
    is_circuit_broken = 0,
    updated_at = excluded.updated_at
"""


class SQLiteStore:
    """:class:`steward.store.base.Store` on a local SQLite file."""

    def __init__(self, path: str | Path, timeout: float = 10.0) -> None:
        self.path = Path(path).expanduser()
        self._timeout = timeout
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path, timeout=self._timeout)
        conn.row_factory = sqlite3.Row
        if not self._initialized:
            conn.executescript(SCHEMA)
            self._initialized = True
        return conn

    async def _run(self, fn: Any, *args: Any) -> Any:
        def _work() -> Any:
            with closing(self._connect()) as conn:
                with conn:
                    return fn(conn, *args)

        return await asyncio.to_thread(_work)

    # --- agent_budgets ---

    async def get_budget(self, agent_name: str, date: str) -> AgentBudget | None:
        def _get(conn: sqlite3.Connection) -> AgentBudget | None:
            row = conn.execute(
                "SELECT * FROM agent_budgets WHERE agent_name = ? AND date = ?",
                (agent_name, date),
            ).fetchone()
            return _row_to_budget(row) if row else None

        return await self._run(_get)

    async def add_budget_usage(
        self, agent_name: str, date: str, delta: UsageDelta
    ) -> AgentBudget:
        params = {
            "agent_name": agent_name,
            "date": date,
            "tokens_used": delta.tokens_used,
            "tool_calls": delta.tool_calls,
            "estimated_cost": delta.estimated_cost,
            "first_failures": 0 if delta.success else 1,
            "success": int(delta.success),
            "now": iso(utc_now()),
        }

        def _add(conn: sqlite3.Connection) -> AgentBudget:
            # The upsert holds the write lock until commit, so the read
            # below sees exactly the row this write produced.
            conn.execute(_ADD_USAGE, params)
            row = conn.execute(
                "SELECT * FROM agent_budgets WHERE agent_name = ? AND date = ?",
                (agent_name, date),
            ).fetchone()
            return _row_to_budget(row)

        return await self._run(_add)

    async def trip_circuit_breaker(self, agent_name: str, date: str) -> bool:
        now = iso(utc_now())

        def _trip(conn: sqlite3.Connection) -> bool:
            return conn.execute(_TRIP_CIRCUIT, (now, agent_name, date)).rowcount == 1

        return await self._run(_trip)

    async def reset_circuit_breaker(self, agent_name: str, date: str) -> None:
        now = iso(utc_now())
        await self._run(
            lambda conn: conn.execute(_RESET_CIRCUIT, (agent_name, date, now))
        )

    async def list_budgets(self, date: str) -> list[AgentBudget]:
        def _list(conn: sqlite3.Connection) -> list[AgentBudget]:
            rows = conn.execute(
                "SELECT * FROM agent_budgets WHERE date = ? ORDER BY agent_name",
                (date,),
            ).fetchall()
            return [_row_to_budget(r) for r in rows]

        return await self._run(_list)

    # --- agent_signals ---

    async def insert_signal(self, signal: Signal) -> str:
        signal_id = signal.id or uuid.uuid4().hex

        def _insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                INSERT INTO agent_signals (
                    id, signal_type, source_agent, target_agent, message,
                    payload, priority, created_at, expires_at, consumed
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    signal_id,
                    signal.signal_type,
                    signal.source_agent,
                    signal.target_agent,
                    signal.message,
                    json.dumps(signal.payload, ensure_ascii=False, default=str),
                    signal.priority,
                    iso(signal.created_at),
                    iso(signal.expires_at) if signal.expires_at else None,
                    int(signal.consumed),
                ),
            )

        await self._run(_insert)
        return signal_id

    async def query_signals(self, query: SignalQuery) -> list[Signal]:
        clauses = ["(expires_at IS NULL OR expires_at > ?)"]
        params: list[Any] = [iso(query.now)]
        if not query.include_consumed:
            clauses.append("consumed = 0")
        if query.recipient is not None:
            clauses.append("(target_agent IS NULL OR target_agent = ?)")
            params.append(query.recipient)
        if query.types:
            clauses.append(f"signal_type IN ({', '.join('?' for _ in query.types)})")
            params.extend(query.types)
        if query.source is not None:
            clauses.append("source_agent = ?")
            params.append(query.source)
        if query.since is not None:
            clauses.append("created_at >= ?")
            params.append(iso(query.since))
        if query.min_priority is not None:
            clauses.append("priority <= ?")
            params.append(query.min_priority)

        order = (
            "priority ASC, created_at DESC"
            if query.order == "priority"
            else "created_at DESC"
        )
        sql = (
            f"SELECT * FROM agent_signals WHERE {' AND '.join(clauses)} "
            f"ORDER BY {order} LIMIT ?"
        )
        params.append(query.limit)

        def _query(conn: sqlite3.Connection) -> list[Signal]:
            return [_row_to_signal(r) for r in conn.execute(sql, params).fetchall()]

        return await self._run(_query)

    async def mark_signals_consumed(
        self, ids: list[str], consumed_by: str, consumed_at: datetime
    ) -> int:
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)

        def _mark(conn: sqlite3.Connection) -> int:
            cur = conn.execute(
                f"UPDATE agent_signals SET consumed = 1, consumed_by = ?, consumed_at = ? "
                f"WHERE consumed = 0 AND id IN ({placeholders})",
                (consumed_by, iso(consumed_at), *ids),
            )
            return cur.rowcount

        return await self._run(_mark)

    # --- agent_executions ---

    async def insert_execution(self, record: ExecutionRecord) -> None:
        def _insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                INSERT INTO agent_executions (
                    agent_name, goal, success, output, tool_calls_count,
                    loops_count, duration_ms, trace, error, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.agent_name,
                    record.goal,
                    int(record.success),
                    record.output,
                    record.tool_calls_count,
                    record.loops_count,
                    record.duration_ms,
                    json.dumps(record.trace, ensure_ascii=False, default=str),
                    record.error,
                    iso(record.created_at),
                ),
            )

        await self._run(_insert)

    async def list_executions(
        self, agent_name: str | None = None, limit: int = 20
    ) -> list[ExecutionRecord]:
        def _list(conn: sqlite3.Connection) -> list[ExecutionRecord]:
            if agent_name is None:
                rows = conn.execute(
                    "SELECT * FROM agent_executions ORDER BY id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM agent_executions WHERE agent_name = ? "
                    "ORDER BY id DESC LIMIT ?",
                    (agent_name, limit),
                ).fetchall()
            return [_row_to_execution(r) for r in rows]

        return await self._run(_list)

    # --- agent_memories ---

    async def insert_memory(self, memory: Memory) -> str:
        memory_id = memory.id or uuid.uuid4().hex

        def _insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                INSERT INTO agent_memories (
                    id, agent_name, memory_type, content, domain,
                    importance, tags, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    memory_id,
                    memory.agent_name,
                    memory.memory_type,
                    memory.content,
                    memory.domain,
                    memory.importance,
                    json.dumps(memory.tags, ensure_ascii=False),
                    iso(memory.created_at),
                ),
            )

        await self._run(_insert)
        return memory_id

    async def search_memories(
        self,
        agent_name: str,
        query: str,
        domain: str | None = None,
        memory_type: str | None = None,
        limit: int = 5,
    ) -> list[Memory]:
        clauses = ["agent_name = ?", "content LIKE ?"]
        params: list[Any] = [agent_name, f"%{query}%"]
        if domain is not None:
            clauses.append("domain = ?")
            params.append(domain)
        if memory_type is not None:
            clauses.append("memory_type = ?")
            params.append(memory_type)
        params.append(limit)
        sql = (
            f"SELECT * FROM agent_memories WHERE {' AND '.join(clauses)} "
            "ORDER BY importance DESC, created_at DESC LIMIT ?"
        )

        def _search(conn: sqlite3.Connection) -> list[Memory]:
            return [_row_to_memory(r) for r in conn.execute(sql, params).fetchall()]

        return await self._run(_search)


def _row_to_budget(row: sqlite3.Row) -> AgentBudget:
    return AgentBudget(
        agent_name=row["agent_name"],
        date=row["date"],
        tokens_used=row["tokens_used"] or 0,
        tool_calls=row["tool_calls"] or 0,
        runs=row["runs"] or 0,
        estimated_cost=row["estimated_cost"] or 0.0,
        consecutive_failures=row["consecutive_failures"] or 0,
        is_circuit_broken=bool(row["is_circuit_broken"]),
    )


def _row_to_signal(row: sqlite3.Row) -> Signal:
    try:
        payload = json.loads(row["payload"] or "{}")
    except json.JSONDecodeError:
        logger.warning("Signal %s has a malformed payload", row["id"])
        payload = {}
    return Signal(
        id=row["id"],
        signal_type=row["signal_type"],
        source_agent=row["source_agent"],
        target_agent=row["target_agent"],
        message=row["message"],
        payload=payload,
        priority=row["priority"],
        created_at=parse_iso(row["created_at"]) or utc_now(),
        expires_at=parse_iso(row["expires_at"]),
        consumed=bool(row["consumed"]),
        consumed_by=row["consumed_by"],
        consumed_at=parse_iso(row["consumed_at"]),
    )


def _row_to_execution(row: sqlite3.Row) -> ExecutionRecord:
    return ExecutionRecord(
        agent_name=row["agent_name"],
        goal=row["goal"],
        success=bool(row["success"]),
        output=row["output"] or "",
        tool_calls_count=row["tool_calls_count"],
        loops_count=row["loops_count"],
        duration_ms=row["duration_ms"],
        trace=json.loads(row["trace"] or "[]"),
        error=row["error"],
        created_at=parse_iso(row["created_at"]) or utc_now(),
    )


def _row_to_memory(row: sqlite3.Row) -> Memory:
    return Memory(
        id=row["id"],
        agent_name=row["agent_name"],
        memory_type=row["memory_type"],
        content=row["content"],
        domain=row["domain"],
        importance=row["importance"],
        tags=json.loads(row["tags"] or "[]"),
        created_at=parse_iso(row["created_at"]) or utc_now(),
    )
