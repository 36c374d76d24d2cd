"""Tool registry — register, expose per agent, and execute tools behind tiers."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from steward.tool.base import (
    BaseTool,
    ToolContext,
    ToolDefinition,
    ToolError,
    ToolExecutor,
    ToolResult,
)

logger = logging.getLogger(__name__)

DEFAULT_LOG_CAPACITY = 100


@dataclass
class ToolExecution:
    """Audit record for one executed tool call."""

    tool: str
    args: dict[str, Any]
    result: ToolResult
    duration_ms: int
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "args": self.args,
            "result": self.result.to_dict(),
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp,
        }


@dataclass
class _Entry:
    definition: ToolDefinition
    executor: ToolExecutor


class ToolRegistry:
    """Registry of available tools.

    Agents only ever see the tools they may use (``get_tools_for_agent``),
    and ``execute`` enforces the same rules again before dispatch. Every
    executed call lands in a bounded execution log. ``execute`` never
    raises: denials and executor exceptions become :class:`ToolError`.
    """

    def __init__(self, log_capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        self._tools: dict[str, _Entry] = {}
        self._execution_log: deque[ToolExecution] = deque(maxlen=log_capacity)

    def register(self, definition: ToolDefinition, executor: ToolExecutor) -> None:
        """Register (or replace) a tool by name."""
        if definition.name in self._tools:
            logger.debug("Tool %s already registered, overwriting", definition.name)
        self._tools[definition.name] = _Entry(definition, executor)

    def register_tool(self, tool: BaseTool) -> None:
        """Register a class-based tool; it carries its own definition."""
        self.register(tool.definition, tool)

    def register_many(self, tools: list[BaseTool]) -> None:
        for tool in tools:
            self.register_tool(tool)

    def get(self, name: str) -> ToolDefinition | None:
        entry = self._tools.get(name)
        return entry.definition if entry else None

    def names(self) -> list[str]:
        """Get all registered tool names."""
        return list(self._tools.keys())

    def get_tools_for_agent(self, agent_name: str) -> list[ToolDefinition]:
        """Definitions the agent may use: not blocked, and allowed for it."""
        return [
            e.definition
            for e in self._tools.values()
            if e.definition.tier != "blocked" and e.definition.is_allowed_for(agent_name)
        ]

    def get_tool_schema_for_llm(self, agent_name: str) -> list[dict[str, Any]]:
        """OpenAI function-calling specs for the agent's tools."""
        return [d.to_openai_spec() for d in self.get_tools_for_agent(agent_name)]

    async def execute(
        self, tool_name: str, args: dict[str, Any], context: ToolContext
    ) -> ToolResult:
        """Check permissions and tier, then run the tool.

        Order: unknown tool, agent permission, blocked tier, gated approval.
        """
        entry = self._tools.get(tool_name)
        if entry is None:
            return ToolError(f"Unknown tool: {tool_name}")

        definition = entry.definition
        if not definition.is_allowed_for(context.agent_name):
            return ToolError(f"Agent {context.agent_name} cannot use tool {tool_name}")

        if definition.tier == "blocked":
            return ToolError(f"Tool {tool_name} is blocked")

        if definition.tier == "gated":
            denial = await self._check_approval(tool_name, args, context)
            if denial is not None:
                return denial

        start = time.monotonic()
        try:
            result = await entry.executor(args, context)
        except Exception as e:
            logger.error("Tool %s execution error: %s", tool_name, e, exc_info=True)
            result = ToolError(str(e) or type(e).__name__)

        self._execution_log.append(
            ToolExecution(
                tool=tool_name,
                args=args,
                result=result,
                duration_ms=int((time.monotonic() - start) * 1000),
                timestamp=datetime.now(timezone.utc).isoformat(),
            )
        )
        return result

    async def _check_approval(
        self, tool_name: str, args: dict[str, Any], context: ToolContext
    ) -> ToolError | None:
        if context.auto_approve:
            return None
        if context.on_approval_needed is None:
            logger.warning(
                "Gated tool %s denied for %s: no approval handler",
                tool_name,
                context.agent_name,
            )
            return ToolError(f"Tool {tool_name} requires approval")
        try:
            approved = await context.on_approval_needed(tool_name, args)
        except Exception as e:
            logger.error("Approval handler failed for %s: %s", tool_name, e)
            approved = False
        if not approved:
            return ToolError(f"Tool {tool_name} was not approved")
        return None

    def get_execution_log(self) -> list[ToolExecution]:
        """Most recent executions, oldest first."""
        return list(self._execution_log)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
