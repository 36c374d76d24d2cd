"""Process-local store, used for tests and dry runs."""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from dataclasses import replace
from datetime import datetime

from steward.store.models import (
    AgentBudget,
    ExecutionRecord,
    Memory,
    Signal,
    SignalQuery,
    UsageDelta,
)

logger = logging.getLogger(__name__)


class MemoryStore:
    """In-memory implementation of :class:`steward.store.base.Store`.

    Rows are copied on the way in and out so callers never alias stored
    state. A single lock serializes writers.
    """

    def __init__(self) -> None:
        self._budgets: dict[tuple[str, str], AgentBudget] = {}
        self._signals: dict[str, Signal] = {}
        self._executions: list[ExecutionRecord] = []
        self._memories: dict[str, Memory] = {}
        self._lock = asyncio.Lock()

    # --- agent_budgets ---

    async def get_budget(self, agent_name: str, date: str) -> AgentBudget | None:
        row = self._budgets.get((agent_name, date))
        return replace(row) if row else None

    async def add_budget_usage(
        self, agent_name: str, date: str, delta: UsageDelta
    ) -> AgentBudget:
        async with self._lock:
            row = self._budgets.setdefault(
                (agent_name, date), AgentBudget(agent_name=agent_name, date=date)
            )
            row.tokens_used += delta.tokens_used
            row.tool_calls += delta.tool_calls
            row.runs += 1
            row.estimated_cost += delta.estimated_cost
            if delta.success:
                row.consecutive_failures = 0
            else:
                row.consecutive_failures += 1
            return replace(row)

    async def trip_circuit_breaker(self, agent_name: str, date: str) -> bool:
        async with self._lock:
            row = self._budgets.get((agent_name, date))
            if row is None or row.is_circuit_broken:
                return False
            row.is_circuit_broken = True
            return True

    async def reset_circuit_breaker(self, agent_name: str, date: str) -> None:
        async with self._lock:
            row = self._budgets.setdefault(
                (agent_name, date), AgentBudget(agent_name=agent_name, date=date)
            )
            row.consecutive_failures = 0
            row.is_circuit_broken = False

    async def list_budgets(self, date: str) -> list[AgentBudget]:
        return [replace(b) for (_, d), b in sorted(self._budgets.items()) if d == date]

    # --- agent_signals ---

    async def insert_signal(self, signal: Signal) -> str:
        async with self._lock:
            stored = copy.deepcopy(signal)
            stored.id = stored.id or uuid.uuid4().hex
            self._signals[stored.id] = stored
            return stored.id

    async def query_signals(self, query: SignalQuery) -> list[Signal]:
        rows = [s for s in self._signals.values() if query.matches(s)]
        # Stable sorts: newest first, then (for priority order) by priority.
        rows.sort(key=lambda s: s.created_at, reverse=True)
        if query.order == "priority":
            rows.sort(key=lambda s: s.priority)
        return [copy.deepcopy(s) for s in rows[: query.limit]]

    async def mark_signals_consumed(
        self, ids: list[str], consumed_by: str, consumed_at: datetime
    ) -> int:
        count = 0
        async with self._lock:
            for signal_id in ids:
                row = self._signals.get(signal_id)
                if row is None or row.consumed:
                    continue
                row.consumed = True
                row.consumed_by = consumed_by
                row.consumed_at = consumed_at
                count += 1
        return count

    # --- agent_executions ---

    async def insert_execution(self, record: ExecutionRecord) -> None:
        async with self._lock:
            self._executions.append(copy.deepcopy(record))

    async def list_executions(
        self, agent_name: str | None = None, limit: int = 20
    ) -> list[ExecutionRecord]:
        rows = [
            r
            for r in reversed(self._executions)
            if agent_name is None or r.agent_name == agent_name
        ]
        return [copy.deepcopy(r) for r in rows[:limit]]

    # --- agent_memories ---

    async def insert_memory(self, memory: Memory) -> str:
        async with self._lock:
            stored = copy.deepcopy(memory)
            stored.id = stored.id or uuid.uuid4().hex
            self._memories[stored.id] = stored
            return stored.id

    async def search_memories(
        self,
        agent_name: str,
        query: str,
        domain: str | None = None,
        memory_type: str | None = None,
        limit: int = 5,
    ) -> list[Memory]:
        needle = query.lower()
        rows = [
            m
            for m in self._memories.values()
            if m.agent_name == agent_name
            and needle in m.content.lower()
            and (domain is None or m.domain == domain)
            and (memory_type is None or m.memory_type == memory_type)
        ]
        rows.sort(key=lambda m: m.importance, reverse=True)
        return [copy.deepcopy(m) for m in rows[:limit]]
