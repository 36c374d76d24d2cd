"""Tool system — definitions, registry, and output truncation."""

from steward.tool.base import (
    ApprovalCallback,
    BaseTool,
    ToolContext,
    ToolDefinition,
    ToolError,
    ToolExecutor,
    ToolOk,
    ToolParameter,
    ToolResult,
)
from steward.tool.registry import ToolExecution, ToolRegistry
from steward.tool.truncation import serialize_result, truncate_output

__all__ = [
    "ApprovalCallback",
    "BaseTool",
    "ToolContext",
    "ToolDefinition",
    "ToolError",
    "ToolExecution",
    "ToolExecutor",
    "ToolOk",
    "ToolParameter",
    "ToolRegistry",
    "ToolResult",
    "serialize_result",
    "truncate_output",
]
