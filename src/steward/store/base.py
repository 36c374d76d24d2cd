"""Store protocol — the persisted tables the kernel reads and writes."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from steward.store.models import (
    AgentBudget,
    ExecutionRecord,
    Memory,
    Signal,
    SignalQuery,
    UsageDelta,
)


@runtime_checkable
class Store(Protocol):
    """Async access to budgets, signals, execution audit rows and memories.

    Implementations may raise on infrastructure failure; every kernel
    caller catches and logs.
    """

    # --- agent_budgets ---

    async def get_budget(self, agent_name: str, date: str) -> AgentBudget | None: ...

    async def add_budget_usage(
        self, agent_name: str, date: str, delta: UsageDelta
    ) -> AgentBudget:
        """Atomically add ``delta`` to the (agent_name, date) row, creating it.

        Returns the row as it stands after the update, including increments
        made by other writers.
        """
        ...

    async def trip_circuit_breaker(self, agent_name: str, date: str) -> bool:
        """Latch the breaker open. True only for the caller that flipped it."""
        ...

    async def reset_circuit_breaker(self, agent_name: str, date: str) -> None: ...

    async def list_budgets(self, date: str) -> list[AgentBudget]: ...

    # --- agent_signals ---

    async def insert_signal(self, signal: Signal) -> str: ...

    async def query_signals(self, query: SignalQuery) -> list[Signal]: ...

    async def mark_signals_consumed(
        self, ids: list[str], consumed_by: str, consumed_at: datetime
    ) -> int: ...

    # --- agent_executions ---

    async def insert_execution(self, record: ExecutionRecord) -> None: ...

    async def list_executions(
        self, agent_name: str | None = None, limit: int = 20
    ) -> list[ExecutionRecord]: ...

    # --- agent_memories ---

    async def insert_memory(self, memory: Memory) -> str: ...

    async def search_memories(
        self,
        agent_name: str,
        query: str,
        domain: str | None = None,
        memory_type: str | None = None,
        limit: int = 5,
    ) -> list[Memory]: ...
