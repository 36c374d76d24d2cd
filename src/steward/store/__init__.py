"""Persisted store — budgets, signals, execution audit rows, memories."""

from __future__ import annotations

from steward.config import StoreConfig
from steward.store.base import Store
from steward.store.memory import MemoryStore
from steward.store.models import (
    AgentBudget,
    ExecutionRecord,
    Memory,
    Signal,
    SignalQuery,
    UsageDelta,
)
from steward.store.sqlite import SQLiteStore


def open_store(config: StoreConfig) -> Store:
    """Create the store backend selected by ``config``."""
    if config.backend == "memory":
        return MemoryStore()
    return SQLiteStore(config.path)


__all__ = [
    "Store",
    "MemoryStore",
    "SQLiteStore",
    "open_store",
    "AgentBudget",
    "ExecutionRecord",
    "Memory",
    "Signal",
    "SignalQuery",
    "UsageDelta",
]
