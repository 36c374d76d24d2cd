"""Tests for steward.agent.runner (guarded runs and reports)."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from conftest import ScriptedProvider, text_completion, tool_completion

from steward.agent import (
    Agent,
    AgentConfig,
    AgentResult,
    format_report,
    make_tool_gate,
    run_guarded_agent,
)
from steward.config import GuardrailConfig
from steward.guardrail import Guardrails
from steward.store import MemoryStore
from steward.tool import ToolContext, ToolDefinition, ToolOk, ToolRegistry


def _agent(**overrides) -> Agent:
    return Agent(config=AgentConfig(name="career", goal="Check jobs", **overrides))


def _registry(*definitions: ToolDefinition) -> tuple[ToolRegistry, AsyncMock]:
    registry = ToolRegistry()
    executor = AsyncMock(return_value=ToolOk(data="ok"))
    for d in definitions:
        registry.register(d, executor)
    return registry, executor


# ---------------------------------------------------------------------------
# Tool gate
# ---------------------------------------------------------------------------


class TestToolGate:
    async def test_allows_ordinary_tools(self, guardrails: Guardrails, registry: ToolRegistry) -> None:
        gate = make_tool_gate(guardrails, registry)
        assert await gate("think", {}) is True

    async def test_blocked_list_denies(self, store: MemoryStore) -> None:
        guardrails = Guardrails(GuardrailConfig(blocked_tools=["shell"]), store=store)
        gate = make_tool_gate(guardrails, ToolRegistry(), auto_approve=True)
        assert await gate("shell", {}) is False

    async def test_gated_list_without_approver_denies(self, store: MemoryStore) -> None:
        guardrails = Guardrails(GuardrailConfig(gated_tools=["post"]), store=store)
        registry, _ = _registry(ToolDefinition(name="post", description=""))
        gate = make_tool_gate(guardrails, registry)
        assert await gate("post", {}) is False

    async def test_gated_list_with_approver(self, store: MemoryStore) -> None:
        guardrails = Guardrails(GuardrailConfig(gated_tools=["post"]), store=store)
        registry, _ = _registry(ToolDefinition(name="post", description=""))
        approver = AsyncMock(return_value=True)
        gate = make_tool_gate(guardrails, registry, on_approval_needed=approver)
        assert await gate("post", {"text": "hi"}) is True
        approver.assert_awaited_once_with("post", {"text": "hi"})

    async def test_gated_list_auto_approve(self, store: MemoryStore) -> None:
        guardrails = Guardrails(GuardrailConfig(gated_tools=["post"]), store=store)
        gate = make_tool_gate(guardrails, ToolRegistry(), auto_approve=True)
        assert await gate("post", {}) is True

    async def test_gated_tier_defers_to_registry(self, guardrails: Guardrails) -> None:
        registry, _ = _registry(
            ToolDefinition(name="send_telegram", description="", tier="gated")
        )
        approver = AsyncMock(return_value=True)
        gate = make_tool_gate(guardrails, registry, on_approval_needed=approver)
        assert await gate("send_telegram", {}) is True
        approver.assert_not_called()


# ---------------------------------------------------------------------------
# Guarded runs
# ---------------------------------------------------------------------------


class TestRunGuardedAgent:
    async def test_blocked_run_never_calls_provider(self, guardrails: Guardrails) -> None:
        guardrails.activate_kill_switch()
        provider = ScriptedProvider([text_completion("unused")])

        result = await run_guarded_agent(_agent(), provider, ToolRegistry(), guardrails)

        assert provider.calls == []
        assert result.success is False
        assert result.stopped_by_guardrail is True
        assert result.guardrail_reason == "Kill switch is active"
        assert result.output == "career agent blocked: Kill switch is active"
        budget = await guardrails.get_budget("career")
        assert budget.runs == 0

    async def test_records_reported_tokens(self, guardrails: Guardrails, store: MemoryStore) -> None:
        provider = ScriptedProvider(
            [
                tool_completion(("think", {}), total_tokens=300),
                text_completion("done", total_tokens=200),
            ]
        )
        registry, _ = _registry(ToolDefinition(name="think", description=""))

        result = await run_guarded_agent(_agent(), provider, registry, guardrails, store=store)

        assert result.success
        budget = await guardrails.get_budget("career")
        assert budget.runs == 1
        assert budget.tokens_used == 500
        assert budget.tool_calls == 1
        assert budget.consecutive_failures == 0

    async def test_estimates_tokens_when_unreported(self, guardrails: Guardrails) -> None:
        provider = ScriptedProvider([tool_completion(("think", {})), text_completion("done")])
        registry, _ = _registry(ToolDefinition(name="think", description=""))

        await run_guarded_agent(_agent(), provider, registry, guardrails)

        budget = await guardrails.get_budget("career")
        assert budget.tokens_used == 2 * 2000

    async def test_failed_run_counts_failure(self, guardrails: Guardrails) -> None:
        provider = ScriptedProvider([RuntimeError("boom")])
        result = await run_guarded_agent(_agent(), provider, ToolRegistry(), guardrails)
        assert result.success is False
        assert (await guardrails.get_budget("career")).consecutive_failures == 1

    async def test_limits_capped_by_guardrails(self, store: MemoryStore) -> None:
        config = GuardrailConfig(max_loops_per_run=2, max_tool_calls_per_run=10)
        guardrails = Guardrails(config, store=store)
        provider = ScriptedProvider([tool_completion(("think", {}))])
        registry, _ = _registry(ToolDefinition(name="think", description=""))

        result = await run_guarded_agent(_agent(max_loops=8), provider, registry, guardrails)

        assert result.total_loops == 2
        assert result.guardrail_reason == "Max loops reached (2)"

    async def test_agent_limits_kept_when_tighter(self, guardrails: Guardrails) -> None:
        provider = ScriptedProvider([tool_completion(("think", {}), ("think", {}))])
        registry, _ = _registry(ToolDefinition(name="think", description=""))

        result = await run_guarded_agent(
            _agent(max_tool_calls=1), provider, registry, guardrails
        )

        assert result.guardrail_reason == "Tool call limit reached (1)"

    async def test_blocked_tool_not_executed(self, store: MemoryStore) -> None:
        guardrails = Guardrails(GuardrailConfig(blocked_tools=["shell"]), store=store)
        provider = ScriptedProvider([tool_completion(("shell", {})), text_completion("ok")])
        registry, executor = _registry(ToolDefinition(name="shell", description=""))

        result = await run_guarded_agent(_agent(), provider, registry, guardrails)

        executor.assert_not_called()
        assert result.total_tool_calls == 0

    async def test_context_wiring(self, guardrails: Guardrails, store: MemoryStore) -> None:
        seen: list[ToolContext] = []

        async def capture(args, context: ToolContext) -> ToolOk:
            seen.append(context)
            return ToolOk()

        registry = ToolRegistry()
        registry.register(ToolDefinition(name="capture", description=""), capture)
        provider = ScriptedProvider([tool_completion(("capture", {})), text_completion("ok")])
        notifier = AsyncMock()

        await run_guarded_agent(
            _agent(),
            provider,
            registry,
            guardrails,
            store=store,
            notifier=notifier,
            auto_approve=True,
            signal_ttl_hours=6,
        )

        [context] = seen
        assert context.agent_name == "career"
        assert context.store is store
        assert context.notifier is notifier
        assert context.auto_approve is True
        assert context.signal_bus is not None
        assert context.signal_bus.default_ttl_hours == 6

    async def test_gated_tool_needs_approval(self, guardrails: Guardrails) -> None:
        provider = ScriptedProvider(
            [tool_completion(("send_telegram", {"message": "hi"})), text_completion("ok")]
        )
        registry, executor = _registry(
            ToolDefinition(name="send_telegram", description="", tier="gated")
        )

        result = await run_guarded_agent(_agent(), provider, registry, guardrails)

        executor.assert_not_called()
        [execution] = result.trace[0].tool_calls
        assert execution.result.error == "Tool send_telegram requires approval"


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class TestFormatReport:
    def test_success(self) -> None:
        result = AgentResult(
            success=True,
            output="Apply to <Acme> & co",
            total_loops=2,
            total_tool_calls=3,
            duration_ms=4600,
        )
        report = format_report("career", result)
        assert report.startswith("<b>🤖 CAREER AGENT</b>")
        assert "Apply to &lt;Acme&gt; &amp; co" in report
        assert "⚡ 2 loops · 3 tools · 5s" in report
        assert "⚠️" not in report

    def test_stopped(self) -> None:
        result = AgentResult.blocked("career", "Daily run limit reached (20)")
        report = format_report("career", result)
        assert report.endswith("⚠️ Daily run limit reached (20)")

    @pytest.mark.parametrize("length", [10, 3000, 9000])
    def test_output_truncated(self, length: int) -> None:
        report = format_report("career", AgentResult(success=True, output="x" * length))
        assert report.count("x") == min(length, 3000)
