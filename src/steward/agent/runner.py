"""Guarded run — the protocol every scheduled agent follows.

1. Ask the guardrails whether the agent may run at all.
2. Cap the agent's limits with the per-run guardrail limits.
3. Run the ReAct loop with a tool gate built from ``can_use_tool``.
4. Record usage, estimating tokens when the provider reported none.
"""

from __future__ import annotations

import logging
from typing import Any

from steward.agent.agent import Agent
from steward.agent.loop import (
    AgentResult,
    BeforeToolCallHook,
    LoopCompleteHook,
    LoopTrace,
    run_react_agent,
)
from steward.guardrail.engine import Guardrails
from steward.llm.provider import ChatProvider
from steward.notify import Notifier, escape_html
from steward.signal.bus import get_signal_bus
from steward.store.base import Store
from steward.tool.base import ApprovalCallback, ToolContext
from steward.tool.registry import ToolRegistry

logger = logging.getLogger(__name__)

TOKENS_PER_LOOP_ESTIMATE = 2000
REPORT_OUTPUT_CHARS = 3000


def make_tool_gate(
    guardrails: Guardrails,
    registry: ToolRegistry,
    on_approval_needed: ApprovalCallback | None = None,
    auto_approve: bool = False,
) -> BeforeToolCallHook:
    """Build an ``on_before_tool_call`` hook from the guardrail tool lists."""

    async def gate(tool: str, args: dict[str, Any]) -> bool:
        decision = guardrails.can_use_tool(tool)
        if not decision.allowed:
            logger.warning("Tool blocked by guardrail: %s", tool)
            return False
        if not decision.needs_approval:
            return True

        definition = registry.get(tool)
        if definition is not None and definition.tier == "gated":
            return True  # registry asks for approval itself
        if auto_approve:
            return True
        if on_approval_needed is None:
            logger.warning("Tool %s needs approval and no approver is wired", tool)
            return False
        return await on_approval_needed(tool, args)

    return gate


async def run_guarded_agent(
    agent: Agent,
    provider: ChatProvider,
    registry: ToolRegistry,
    guardrails: Guardrails,
    *,
    store: Store | None = None,
    notifier: Notifier | None = None,
    on_approval_needed: ApprovalCallback | None = None,
    auto_approve: bool = False,
    on_loop_complete: LoopCompleteHook | None = None,
    tokens_per_loop_estimate: int = TOKENS_PER_LOOP_ESTIMATE,
    signal_ttl_hours: float | None = None,
) -> AgentResult:
    """Run ``agent`` under the guardrails and record its usage.

    A denied run returns a blocked result without calling the provider and
    without recording usage. ``signal_ttl_hours`` is the default lifetime of
    signals the agent emits.
    """
    decision = await guardrails.can_run(agent.name)
    if not decision.allowed:
        reason = decision.reason or "denied"
        logger.warning("Agent %s blocked: %s", agent.name, reason)
        return AgentResult.blocked(agent.name, reason)

    cfg = guardrails.config
    bounded = agent.bounded(cfg.max_loops_per_run, cfg.max_tool_calls_per_run)

    context = ToolContext(
        agent_name=agent.name,
        store=store,
        signal_bus=(
            get_signal_bus(agent.name, store, signal_ttl_hours) if store is not None else None
        ),
        notifier=notifier,
        on_approval_needed=on_approval_needed,
        auto_approve=auto_approve,
    )

    async def log_loop(loop: LoopTrace) -> None:
        logger.info(
            "[%s] Loop %d: %d tools (%s)",
            agent.name,
            loop.loop_number,
            len(loop.tool_calls),
            ", ".join(e.tool for e in loop.tool_calls),
        )

    result = await run_react_agent(
        bounded,
        provider,
        registry,
        context,
        store=store,
        on_before_tool_call=make_tool_gate(
            guardrails, registry, on_approval_needed, auto_approve
        ),
        on_loop_complete=on_loop_complete or log_loop,
    )

    tokens = result.usage.total_tokens or result.total_loops * tokens_per_loop_estimate
    model = agent.config.model or provider.config.model
    await guardrails.record_usage(
        agent.name, tokens, result.total_tool_calls, model, result.success
    )
    return result


def format_report(agent_name: str, result: AgentResult) -> str:
    """Short HTML report of a run for the messaging channel."""
    report = f"<b>🤖 {escape_html(agent_name.upper())} AGENT</b>\n━━━━━━━━━━━━━━━━━━━━\n\n"
    report += escape_html(result.output[:REPORT_OUTPUT_CHARS])
    report += (
        f"\n\n<i>⚡ {result.total_loops} loops · {result.total_tool_calls} tools · "
        f"{round(result.duration_ms / 1000)}s</i>"
    )
    if result.stopped_by_guardrail:
        report += f"\n⚠️ {escape_html(result.guardrail_reason or 'Guardrail triggered')}"
    return report
