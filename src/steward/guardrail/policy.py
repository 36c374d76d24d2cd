"""Circuit-breaker policies."""

from __future__ import annotations

from typing import Protocol

from steward.store.models import AgentBudget


class CircuitBreakerPolicy(Protocol):
    def should_trip(self, budget: AgentBudget, threshold: int) -> bool:
        """Called after a failed run has been counted."""
        ...

    def is_open(self, budget: AgentBudget) -> bool: ...


class ManualResetPolicy:
    """Trip after ``threshold`` consecutive failures; stay open until reset.

    The latch is cleared only by ``Guardrails.reset_circuit_breaker``, or
    implicitly when the date rolls over and a fresh budget row is used.
    """

    def should_trip(self, budget: AgentBudget, threshold: int) -> bool:
        return budget.consecutive_failures >= threshold

    def is_open(self, budget: AgentBudget) -> bool:
        return budget.is_circuit_broken
