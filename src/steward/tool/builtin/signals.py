"""Signal tools — let agents read, emit and dismiss inter-agent signals."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, Field

from steward.tool.base import (
    BaseTool,
    ToolCategory,
    ToolContext,
    ToolError,
    ToolOk,
    ToolResult,
)

NO_BUS = "Signal bus is not available"


class QuerySignalsParams(BaseModel):
    source_agent: str | None = Field(
        default=None, description="Only signals emitted by this agent"
    )
    signal_type: str | None = Field(default=None, description="Only this signal type")
    hours_back: float = Field(default=24, description="Lookback window in hours")
    min_priority: int | None = Field(
        default=None,
        description="Only signals at least this urgent (1 = critical, 3 = info)",
    )


class QuerySignalsTool(BaseTool[QuerySignalsParams]):
    """Peek at active signals addressed to this agent or broadcast."""

    name: ClassVar[str] = "query_signals"
    description: ClassVar[str] = (
        "Read active signals from other agents (addressed to you or broadcast). "
        "Results are sorted most urgent first and are not consumed."
    )
    param_model: ClassVar[type[BaseModel]] = QuerySignalsParams

    async def execute(
        self, params: QuerySignalsParams, context: ToolContext
    ) -> ToolResult:
        if context.signal_bus is None:
            return ToolError(NO_BUS)

        signals = await context.signal_bus.peek(
            source=params.source_agent,
            types=[params.signal_type] if params.signal_type else None,
            hours_back=params.hours_back,
            min_priority=params.min_priority,
        )
        return ToolOk(data=[s.to_dict() for s in signals])


class EmitSignalParams(BaseModel):
    signal_type: str = Field(description="Signal type, e.g. 'deadline_approaching'")
    message: str = Field(description="Human-readable summary of the signal")
    target_agent: str | None = Field(
        default=None, description="Recipient agent; omit to broadcast"
    )
    priority: int = Field(default=3, description="1 = critical, 2 = important, 3 = info")
    payload: dict[str, Any] | None = Field(
        default=None, description="Structured data for the recipient"
    )
    ttl_hours: float | None = Field(
        default=None, description="Hours until the signal expires"
    )


class EmitSignalTool(BaseTool[EmitSignalParams]):
    name: ClassVar[str] = "emit_signal"
    description: ClassVar[str] = (
        "Send a signal to another agent, or broadcast it to all agents."
    )
    param_model: ClassVar[type[BaseModel]] = EmitSignalParams
    category: ClassVar[ToolCategory] = "action"

    async def execute(
        self, params: EmitSignalParams, context: ToolContext
    ) -> ToolResult:
        if context.signal_bus is None:
            return ToolError(NO_BUS)

        signal_id = await context.signal_bus.emit(
            params.signal_type,
            params.message,
            params.payload,
            target=params.target_agent,
            priority=params.priority,
            ttl_hours=params.ttl_hours,
        )
        if signal_id is None:
            return ToolError(f"Failed to emit signal {params.signal_type}")
        return ToolOk(data={"id": signal_id})


class DismissSignalParams(BaseModel):
    signal_id: str = Field(description="Id of the signal to dismiss")


class DismissSignalTool(BaseTool[DismissSignalParams]):
    name: ClassVar[str] = "dismiss_signal"
    description: ClassVar[str] = (
        "Mark a signal as handled so no agent sees it again."
    )
    param_model: ClassVar[type[BaseModel]] = DismissSignalParams
    category: ClassVar[ToolCategory] = "action"

    async def execute(
        self, params: DismissSignalParams, context: ToolContext
    ) -> ToolResult:
        if context.signal_bus is None:
            return ToolError(NO_BUS)

        if not await context.signal_bus.dismiss(params.signal_id):
            return ToolError(f"Signal {params.signal_id} not found or already dismissed")
        return ToolOk(data={"dismissed": params.signal_id})
