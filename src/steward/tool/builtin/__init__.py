"""Built-in kernel tools."""

from steward.tool.base import BaseTool
from steward.tool.builtin.memory import RecallMemoriesTool, StoreMemoryTool
from steward.tool.builtin.notify import SendTelegramTool
from steward.tool.builtin.signals import (
    DismissSignalTool,
    EmitSignalTool,
    QuerySignalsTool,
)
from steward.tool.builtin.think import ThinkTool
from steward.tool.registry import ToolRegistry


def builtin_tools() -> list[BaseTool]:
    return [
        QuerySignalsTool(),
        EmitSignalTool(),
        DismissSignalTool(),
        SendTelegramTool(),
        StoreMemoryTool(),
        RecallMemoriesTool(),
        ThinkTool(),
    ]


def register_builtin_tools(registry: ToolRegistry) -> ToolRegistry:
    registry.register_many(builtin_tools())
    return registry


__all__ = [
    "DismissSignalTool",
    "EmitSignalTool",
    "QuerySignalsTool",
    "RecallMemoriesTool",
    "SendTelegramTool",
    "StoreMemoryTool",
    "ThinkTool",
    "builtin_tools",
    "register_builtin_tools",
]
