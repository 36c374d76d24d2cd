"""Row types shared by the kernel and the persisted store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso(dt: datetime) -> str:
    """Fixed-width ISO timestamp so stored strings sort chronologically."""
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class AgentBudget:
    """Daily usage counters for one agent, keyed by (agent_name, date)."""

    agent_name: str
    date: str
    tokens_used: int = 0
    tool_calls: int = 0
    runs: int = 0
    estimated_cost: float = 0.0
    consecutive_failures: int = 0
    is_circuit_broken: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_name": self.agent_name,
            "date": self.date,
            "tokens_used": self.tokens_used,
            "tool_calls": self.tool_calls,
            "runs": self.runs,
            "estimated_cost": self.estimated_cost,
            "consecutive_failures": self.consecutive_failures,
            "is_circuit_broken": self.is_circuit_broken,
        }


@dataclass
class UsageDelta:
    """One run's contribution to an AgentBudget row.

    Applied additively by the store so concurrent writers never lose
    increments.
    """

    tokens_used: int
    tool_calls: int
    estimated_cost: float
    success: bool


@dataclass
class Signal:
    """An inter-agent message. ``target_agent=None`` means broadcast."""

    signal_type: str
    source_agent: str
    message: str
    target_agent: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    priority: int = 3
    created_at: datetime = field(default_factory=utc_now)
    expires_at: datetime | None = None
    consumed: bool = False
    consumed_by: str | None = None
    consumed_at: datetime | None = None
    id: str = ""

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "signal_type": self.signal_type,
            "source_agent": self.source_agent,
            "target_agent": self.target_agent,
            "message": self.message,
            "payload": self.payload,
            "priority": self.priority,
            "created_at": iso(self.created_at),
            "expires_at": iso(self.expires_at) if self.expires_at else None,
            "consumed": self.consumed,
        }


@dataclass
class SignalQuery:
    """Filter for reading signals.

    ``recipient`` restricts to signals addressed to that agent or broadcast.
    ``min_priority=p`` keeps signals with priority <= p (1 is most urgent).
    ``order`` is ``"priority"`` (priority asc, newest first) or ``"newest"``.
    """

    now: datetime
    recipient: str | None = None
    types: list[str] | None = None
    source: str | None = None
    since: datetime | None = None
    min_priority: int | None = None
    include_consumed: bool = False
    order: Literal["priority", "newest"] = "priority"
    limit: int = 20

    def matches(self, signal: Signal) -> bool:
        if signal.is_expired(self.now):
            return False
        if signal.consumed and not self.include_consumed:
            return False
        if self.recipient is not None and signal.target_agent not in (
            None,
            self.recipient,
        ):
            return False
        if self.types and signal.signal_type not in self.types:
            return False
        if self.source is not None and signal.source_agent != self.source:
            return False
        if self.since is not None and signal.created_at < self.since:
            return False
        if self.min_priority is not None and signal.priority > self.min_priority:
            return False
        return True


@dataclass
class ExecutionRecord:
    """Audit row written at the end of every agent run."""

    agent_name: str
    goal: str
    success: bool
    output: str
    tool_calls_count: int
    loops_count: int
    duration_ms: int
    trace: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    created_at: datetime = field(default_factory=utc_now)


MemoryType = Literal["decision", "pattern", "insight", "preference", "lesson"]


@dataclass
class Memory:
    """A long-term note an agent stores for later runs."""

    agent_name: str
    memory_type: str
    content: str
    domain: str | None = None
    importance: int = 3
    tags: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "agent_name": self.agent_name,
            "memory_type": self.memory_type,
            "content": self.content,
            "domain": self.domain,
            "importance": self.importance,
            "tags": list(self.tags),
            "created_at": iso(self.created_at),
        }
