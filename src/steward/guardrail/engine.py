"""Guardrail engine — per-agent daily budgets, circuit breaker and kill switch.

Every agent run goes through :meth:`Guardrails.can_run` before it starts and
:meth:`Guardrails.record_usage` after it ends. Budgets are kept per
``(agent, UTC date)``; a new day starts from a fresh row.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable

from steward.config import GuardrailConfig
from steward.guardrail.policy import CircuitBreakerPolicy, ManualResetPolicy
from steward.notify import Notifier
from steward.store.base import Store
from steward.store.models import AgentBudget, UsageDelta

logger = logging.getLogger(__name__)


def _utc_today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


@dataclass(frozen=True)
class RunDecision:
    allowed: bool
    reason: str | None = None


@dataclass(frozen=True)
class ToolDecision:
    allowed: bool
    needs_approval: bool = False
    reason: str | None = None


class Guardrails:
    """Budget and safety checks shared by every agent in the process.

    The store row is authoritative whenever the store is reachable. Each
    run's usage is sent as an additive delta and the cache is replaced by
    the row the store returns, so processes sharing a row never lose
    increments or miss a trip. The cache carries on through store outages.
    Store failures are logged and never surface to callers.
    """

    def __init__(
        self,
        config: GuardrailConfig | None = None,
        store: Store | None = None,
        notifier: Notifier | None = None,
        policy: CircuitBreakerPolicy | None = None,
        today: Callable[[], str] = _utc_today,
    ) -> None:
        self._config = config if config is not None else GuardrailConfig()
        self._store = store
        self._notifier = notifier
        self._policy = policy or ManualResetPolicy()
        self._today = today
        self._budgets: dict[tuple[str, str], AgentBudget] = {}
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    @property
    def config(self) -> GuardrailConfig:
        return self._config

    # -- Pre-run checks -------------------------------------------------------

    async def can_run(self, agent_name: str) -> RunDecision:
        """First failing check wins, in a fixed order."""
        cfg = self._config
        if cfg.kill_switch:
            return RunDecision(False, "Kill switch is active")

        budget = await self._refresh_budget(agent_name)

        if self._policy.is_open(budget):
            return RunDecision(
                False,
                f"Circuit breaker open: {budget.consecutive_failures} consecutive failures",
            )
        if budget.runs >= cfg.max_runs_per_day:
            return RunDecision(False, f"Daily run limit reached ({cfg.max_runs_per_day})")
        if budget.tokens_used >= cfg.max_tokens_per_day:
            return RunDecision(
                False, f"Daily token budget exhausted ({cfg.max_tokens_per_day})"
            )
        if budget.estimated_cost >= cfg.max_cost_per_day:
            return RunDecision(
                False, f"Daily cost budget exhausted (${cfg.max_cost_per_day})"
            )
        return RunDecision(True)

    def can_use_tool(self, tool_name: str) -> ToolDecision:
        if tool_name in self._config.blocked_tools:
            return ToolDecision(False, reason=f"Tool {tool_name} is blocked")
        if tool_name in self._config.gated_tools:
            return ToolDecision(True, needs_approval=True)
        return ToolDecision(True)

    # -- Budgets --------------------------------------------------------------

    async def get_budget(self, agent_name: str) -> AgentBudget:
        """Today's budget row, loaded from the store on first access."""
        return await self._budget_for(agent_name, self._today())

    async def _budget_for(self, agent_name: str, date: str) -> AgentBudget:
        key = (agent_name, date)
        budget = self._budgets.get(key)
        if budget is not None:
            return budget

        budget = await self._load_budget(*key)
        # Another task may have loaded it while we awaited the store.
        return self._budgets.setdefault(key, budget)

    async def _refresh_budget(self, agent_name: str) -> AgentBudget:
        """Re-read today's row so usage recorded elsewhere is seen."""
        date = self._today()
        key = (agent_name, date)
        async with self._locks.setdefault(key, asyncio.Lock()):
            if self._store is not None:
                try:
                    stored = await self._store.get_budget(agent_name, date)
                except Exception as e:
                    logger.warning("Failed to refresh budget for %s: %s", agent_name, e)
                else:
                    if stored is not None:
                        self._budgets[key] = stored
                        return stored
            return await self._budget_for(agent_name, date)

    async def _load_budget(self, agent_name: str, date: str) -> AgentBudget:
        if self._store is not None:
            try:
                stored = await self._store.get_budget(agent_name, date)
            except Exception as e:
                logger.warning("Failed to load budget for %s: %s", agent_name, e)
            else:
                if stored is not None:
                    return stored
        return AgentBudget(agent_name=agent_name, date=date)

    def estimate_cost(self, tokens: int, model: str) -> float:
        return tokens / 1000 * self._config.cost_rate(model)

    async def record_usage(
        self,
        agent_name: str,
        tokens_used: int,
        tool_calls: int,
        model: str,
        success: bool,
    ) -> AgentBudget:
        """Add one run's usage to today's budget and persist it.

        The trip decision is made on the row the store returns, so failures
        recorded by other processes count toward the threshold. Returns a
        snapshot of the updated budget.
        """
        date = self._today()
        key = (agent_name, date)
        lock = self._locks.setdefault(key, asyncio.Lock())

        async with lock:
            budget = await self._budget_for(agent_name, date)
            cost = self.estimate_cost(tokens_used, model)
            delta = UsageDelta(
                tokens_used=tokens_used,
                tool_calls=tool_calls,
                estimated_cost=cost,
                success=success,
            )

            stored = await self._persist_usage(agent_name, date, delta)
            if stored is not None:
                self._budgets[key] = budget = stored
            else:
                _apply_delta(budget, delta)

            tripped = False
            if (
                not success
                and not budget.is_circuit_broken
                and self._policy.should_trip(budget, self._config.circuit_breaker_threshold)
            ):
                budget.is_circuit_broken = True
                tripped = await self._persist_trip(agent_name, date)
            snapshot = replace(budget)

        if tripped:
            await self._alert_circuit_breaker(agent_name, snapshot.consecutive_failures)
        await self._check_alerts(agent_name, snapshot)
        return snapshot

    async def _persist_usage(
        self, agent_name: str, date: str, delta: UsageDelta
    ) -> AgentBudget | None:
        if self._store is None:
            return None
        try:
            return await self._store.add_budget_usage(agent_name, date, delta)
        except Exception as e:
            logger.error("Failed to persist budget for %s: %s", agent_name, e)
            return None

    async def _persist_trip(self, agent_name: str, date: str) -> bool:
        """Latch the breaker in the store; True if this call opened it."""
        if self._store is None:
            return True
        try:
            return await self._store.trip_circuit_breaker(agent_name, date)
        except Exception as e:
            logger.error("Failed to persist circuit trip for %s: %s", agent_name, e)
            return True

    # -- Circuit breaker and kill switch --------------------------------------

    async def reset_circuit_breaker(self, agent_name: str) -> None:
        budget = await self.get_budget(agent_name)
        budget.consecutive_failures = 0
        budget.is_circuit_broken = False
        logger.info("Circuit breaker reset for %s", agent_name)

        if self._store is not None:
            try:
                await self._store.reset_circuit_breaker(agent_name, budget.date)
            except Exception as e:
                logger.error("Failed to persist circuit reset for %s: %s", agent_name, e)

    def activate_kill_switch(self) -> None:
        self._config.kill_switch = True
        logger.warning("KILL SWITCH ACTIVATED: all agents stopped")

    def deactivate_kill_switch(self) -> None:
        self._config.kill_switch = False
        logger.info("Kill switch deactivated")

    # -- Alerts ---------------------------------------------------------------

    async def _check_alerts(self, agent_name: str, budget: AgentBudget) -> None:
        cfg = self._config
        if budget.estimated_cost >= cfg.max_cost_per_day * cfg.cost_alert_ratio:
            await self._notify(
                "⚠️ <b>AGENT BUDGET ALERT</b>\n"
                f"Agent: {agent_name}\n"
                f"Cost: ${budget.estimated_cost:.3f} / ${cfg.max_cost_per_day}\n"
                f"Tokens: {budget.tokens_used:,} / {cfg.max_tokens_per_day:,}\n"
                f"Runs: {budget.runs} / {cfg.max_runs_per_day}"
            )

        if budget.tokens_used >= cfg.max_tokens_per_day * cfg.token_alert_ratio:
            logger.warning(
                "%s at %d%% of daily token budget",
                agent_name,
                round(budget.tokens_used / cfg.max_tokens_per_day * 100),
            )

    async def _alert_circuit_breaker(self, agent_name: str, failures: int) -> None:
        logger.error(
            "Circuit breaker open for %s after %d consecutive failures",
            agent_name,
            failures,
        )
        await self._notify(
            "🔴 <b>CIRCUIT BREAKER OPEN</b>\n"
            f"Agent: {agent_name}\n"
            f"Consecutive failures: {failures}\n"
            "Agent is now STOPPED until manual reset.\n\n"
            f"Run: steward reset {agent_name}"
        )

    async def _notify(self, text: str) -> None:
        if self._notifier is None:
            logger.info("Guardrail alert (no notifier): %s", text)
            return
        try:
            await self._notifier.send(text)
        except Exception as e:
            logger.error("Failed to send guardrail alert: %s", e)

    # -- Status ---------------------------------------------------------------

    async def get_status(self) -> dict[str, AgentBudget]:
        """Today's budget per agent, from the store (cache as fallback)."""
        today = self._today()
        if self._store is not None:
            try:
                rows = await self._store.list_budgets(today)
            except Exception as e:
                logger.warning("Failed to read budgets: %s", e)
            else:
                return {b.agent_name: b for b in rows}

        return {
            name: replace(b) for (name, date), b in self._budgets.items() if date == today
        }

    def get_config(self) -> GuardrailConfig:
        """A copy; mutating it does not affect the engine."""
        return self._config.model_copy(deep=True)


def _apply_delta(budget: AgentBudget, delta: UsageDelta) -> None:
    budget.tokens_used += delta.tokens_used
    budget.tool_calls += delta.tool_calls
    budget.runs += 1
    budget.estimated_cost += delta.estimated_cost
    if delta.success:
        budget.consecutive_failures = 0
    else:
        budget.consecutive_failures += 1
