"""Guardrails — budgets, circuit breaker and kill switch."""

from steward.guardrail.engine import Guardrails, RunDecision, ToolDecision
from steward.guardrail.policy import CircuitBreakerPolicy, ManualResetPolicy
from steward.store.models import AgentBudget

__all__ = [
    "AgentBudget",
    "CircuitBreakerPolicy",
    "Guardrails",
    "ManualResetPolicy",
    "RunDecision",
    "ToolDecision",
]
