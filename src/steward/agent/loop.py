"""The ReAct loop — think, act, observe, repeat within fixed budgets.

A run is bounded by three independent limits: ``max_loops``,
``max_tool_calls`` (cumulative over the run) and ``max_tokens_per_loop``
(per LLM call). It ends in one of three ways:

- the model answers without requesting tools (success);
- the requested tool calls would exceed ``max_tool_calls`` (stopped, none
  of that turn's calls are executed);
- the last loop finishes with tools still in use, after which one final
  call with tools disabled asks for a conclusion (stopped).

The loop never consults the guardrail engine; callers decide how usage is
attributed (see :mod:`steward.agent.runner`).
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from steward.agent.agent import Agent, AgentConfig
from steward.llm.message import Message, TokenUsage, ToolCallPart
from steward.llm.provider import ChatProvider, Completion, ToolSpec
from steward.signal.bus import get_signal_bus
from steward.store.base import Store
from steward.store.models import ExecutionRecord
from steward.tool.base import ToolContext, ToolError
from steward.tool.registry import ToolExecution, ToolRegistry
from steward.tool.truncation import serialize_result

logger = logging.getLogger(__name__)

FINAL_SUMMARY_PROMPT = (
    "Maximum loops reached. Provide your final conclusion and any remaining "
    "action items."
)
AUDIT_OUTPUT_CHARS = 2000
AUDIT_REASONING_CHARS = 500


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class LoopTrace:
    """What happened in one think/act/observe iteration."""

    loop_number: int
    reasoning: str = ""
    observation: str = ""
    tool_calls: list[ToolExecution] = field(default_factory=list)
    timestamp: str = field(default_factory=_now_iso)

    def to_audit_dict(self) -> dict[str, Any]:
        return {
            "loop": self.loop_number,
            "reasoning": self.reasoning[:AUDIT_REASONING_CHARS],
            "tools": [e.tool for e in self.tool_calls],
            "observation": self.observation,
        }


@dataclass
class AgentResult:
    """Outcome of one agent run."""

    success: bool
    output: str
    trace: list[LoopTrace] = field(default_factory=list)
    total_tool_calls: int = 0
    total_loops: int = 0
    duration_ms: int = 0
    stopped_by_guardrail: bool = False
    guardrail_reason: str | None = None
    usage: TokenUsage = field(default_factory=TokenUsage)
    error: str | None = None  # set when the LLM call itself failed

    @classmethod
    def blocked(cls, agent_name: str, reason: str) -> AgentResult:
        """Result for a run refused before it started."""
        return cls(
            success=False,
            output=f"{agent_name} agent blocked: {reason}",
            stopped_by_guardrail=True,
            guardrail_reason=reason,
        )


BeforeToolCallHook = Callable[[str, dict[str, Any]], Awaitable[bool]]
LoopCompleteHook = Callable[[LoopTrace], Awaitable[None]]


async def run_react_agent(
    agent: Agent,
    provider: ChatProvider,
    registry: ToolRegistry,
    context: ToolContext | None = None,
    *,
    store: Store | None = None,
    on_before_tool_call: BeforeToolCallHook | None = None,
    on_loop_complete: LoopCompleteHook | None = None,
) -> AgentResult:
    """Run one agent to completion.

    Args:
        agent: Agent definition (role, goal, limits).
        provider: LLM provider.
        registry: Tool registry; the agent sees only the tools it may use.
        context: Tool context. Built from ``store`` when omitted.
        store: Where the execution audit row goes. Defaults to
            ``context.store``.
        on_before_tool_call: Consulted before each tool call; False folds a
            synthetic denial into the conversation instead of executing.
        on_loop_complete: Called with each finished :class:`LoopTrace`.
    """
    start = time.monotonic()
    cfg = agent.config
    store = store if store is not None else (context.store if context else None)
    if context is None:
        context = ToolContext(
            agent_name=agent.name,
            store=store,
            signal_bus=get_signal_bus(agent.name, store) if store is not None else None,
        )

    model = cfg.model or provider.config.model
    tool_specs = registry.get_tool_schema_for_llm(agent.name)
    tool_names = [d.name for d in registry.get_tools_for_agent(agent.name)]

    messages = [
        Message.system(build_system_prompt(agent, tool_names)),
        Message.user(build_initial_prompt(agent)),
    ]

    trace: list[LoopTrace] = []
    usage = TokenUsage()
    total_tool_calls = 0
    stopped = False
    reason: str | None = None
    error: str | None = None
    output = ""

    for loop in range(cfg.max_loops):
        logger.info("Agent %s: loop %d/%d", agent.name, loop + 1, cfg.max_loops)

        # Think
        completion = await _think(provider, messages, tool_specs or None, cfg, model)
        usage += completion.usage
        if completion.finish_reason == "error":
            error = completion.message.text

        text = completion.message.text
        calls = completion.tool_calls
        loop_trace = LoopTrace(loop_number=loop + 1, reasoning=text)

        if not calls:
            output = text or "Agent completed without output"
            trace.append(loop_trace)
            await _loop_complete(on_loop_complete, loop_trace)
            break

        if total_tool_calls + len(calls) > cfg.max_tool_calls:
            stopped = True
            reason = f"Tool call limit reached ({cfg.max_tool_calls})"
            output = text or f"Stopped: {reason}"
            trace.append(loop_trace)
            logger.warning("Agent %s: %s", agent.name, reason)
            break

        # Act
        call_ids = [c.id or f"call_{loop}_{i}" for i, c in enumerate(calls)]
        messages.append(
            Message.assistant(
                text,
                [
                    ToolCallPart(id=call_id, name=c.name, arguments=json.dumps(c.arguments))
                    for call_id, c in zip(call_ids, calls)
                ],
            )
        )

        for call_id, call in zip(call_ids, calls):
            if on_before_tool_call is not None and not await _allowed(
                on_before_tool_call, call.name, call.arguments
            ):
                denial = ToolError(f"Tool {call.name} was blocked by guardrail")
                messages.append(
                    Message.tool_result(
                        call_id, serialize_result(denial.to_dict()), is_error=True
                    )
                )
                continue

            exec_start = time.monotonic()
            result = await registry.execute(call.name, call.arguments, context)
            loop_trace.tool_calls.append(
                ToolExecution(
                    tool=call.name,
                    args=call.arguments,
                    result=result,
                    duration_ms=int((time.monotonic() - exec_start) * 1000),
                    timestamp=_now_iso(),
                )
            )
            total_tool_calls += 1
            messages.append(
                Message.tool_result(
                    call_id,
                    serialize_result(result.to_dict()),
                    is_error=not result.success,
                )
            )

        # Observe
        loop_trace.observation = ", ".join(
            f"{e.tool}: {'OK' if e.result.success else 'FAIL'} ({e.duration_ms}ms)"
            for e in loop_trace.tool_calls
        )
        trace.append(loop_trace)
        await _loop_complete(on_loop_complete, loop_trace)

        if loop == cfg.max_loops - 1:
            messages.append(Message.user(FINAL_SUMMARY_PROMPT))
            final = await _think(provider, messages, None, cfg, model)
            usage += final.usage
            if final.finish_reason == "error":
                error = final.message.text
            output = final.message.text or "Agent reached max loops"
            stopped = True
            reason = f"Max loops reached ({cfg.max_loops})"
            logger.warning("Agent %s: %s", agent.name, reason)

    if not trace:
        output = "Agent completed without output"

    result = AgentResult(
        success=not stopped and error is None,
        output=output,
        trace=trace,
        total_tool_calls=total_tool_calls,
        total_loops=len(trace),
        duration_ms=int((time.monotonic() - start) * 1000),
        stopped_by_guardrail=stopped,
        guardrail_reason=reason,
        usage=usage,
        error=error,
    )
    logger.info(
        "Agent %s finished: success=%s loops=%d tool_calls=%d (%dms)",
        agent.name,
        result.success,
        result.total_loops,
        result.total_tool_calls,
        result.duration_ms,
    )

    if store is not None:
        await _record_execution(store, agent, result)
    return result


async def quick_agent(
    name: str,
    role: str,
    goal: str,
    provider: ChatProvider,
    registry: ToolRegistry,
    context: str | None = None,
    store: Store | None = None,
) -> str:
    """Run a small single-purpose agent and return only its output."""
    agent = Agent(
        config=AgentConfig(
            name=name, goal=goal, context=context, max_loops=3, max_tool_calls=8
        ),
        role=role,
    )
    result = await run_react_agent(agent, provider, registry, store=store)
    return result.output


async def _think(
    provider: ChatProvider,
    messages: list[Message],
    tools: list[ToolSpec] | None,
    cfg: AgentConfig,
    model: str,
) -> Completion:
    """One LLM call. Failures come back as an error completion, not an exception."""
    try:
        return await provider.complete(
            messages,
            tools=tools,
            max_tokens=cfg.max_tokens_per_loop,
            temperature=cfg.temperature,
            model=model,
        )
    except Exception as e:
        logger.error("Agent %s: LLM call failed: %s", cfg.name, e, exc_info=True)
        return Completion(
            message=Message.assistant(f"LLM error: {e}"), finish_reason="error"
        )


async def _allowed(hook: BeforeToolCallHook, tool: str, args: dict[str, Any]) -> bool:
    try:
        return bool(await hook(tool, args))
    except Exception as e:
        logger.error("before-tool hook failed for %s, denying: %s", tool, e)
        return False


async def _loop_complete(hook: LoopCompleteHook | None, loop_trace: LoopTrace) -> None:
    if hook is None:
        return
    try:
        await hook(loop_trace)
    except Exception as e:
        logger.error("loop-complete hook failed: %s", e)


async def _record_execution(store: Store, agent: Agent, result: AgentResult) -> None:
    record = ExecutionRecord(
        agent_name=agent.name,
        goal=agent.goal,
        success=result.success,
        output=result.output[:AUDIT_OUTPUT_CHARS],
        tool_calls_count=result.total_tool_calls,
        loops_count=result.total_loops,
        duration_ms=result.duration_ms,
        trace=[t.to_audit_dict() for t in result.trace],
        error=result.error,
    )
    try:
        await store.insert_execution(record)
    except Exception as e:
        logger.error("Failed to log execution for %s: %s", agent.name, e)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


def build_system_prompt(agent: Agent, tool_names: list[str]) -> str:
    today = datetime.now(timezone.utc).date().isoformat()
    return f"""{agent.role}

## OPERATING MODE: ReAct (Reasoning + Acting)

You are an autonomous agent. You REASON about what to do, then ACT using tools, then OBSERVE results, and repeat.

### Rules:
1. ALWAYS think step-by-step before acting
2. Use tools to gather data before making decisions
3. When you have enough information, provide your conclusion WITHOUT calling more tools
4. Be concise and avoid unnecessary tool calls
5. If a tool fails, reason about why and try an alternative approach
6. When done, output your final analysis/recommendations as plain text (no tool call)

### Available tools: {", ".join(tool_names)}

### Current date: {today}
### Agent: {agent.name}"""


def build_initial_prompt(agent: Agent) -> str:
    prompt = f"## GOAL\n{agent.goal}\n"
    if agent.context:
        prompt += f"\n## CONTEXT\n{agent.context}\n"
    prompt += (
        "\nAnalyze the situation, gather necessary data using tools, then "
        "provide your conclusion and recommended actions."
    )
    return prompt
