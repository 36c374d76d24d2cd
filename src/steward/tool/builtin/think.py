"""Think tool — scratchpad for reasoning without acting."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, Field

from steward.tool.base import BaseTool, ToolCategory, ToolContext, ToolOk, ToolResult


class ThinkParams(BaseModel):
    thought: str = Field(
        description=(
            "Your internal reasoning. Use this to plan, weigh signals against "
            "each other, or decide what to do before taking action."
        )
    )


class ThinkTool(BaseTool[ThinkParams]):
    """Scratchpad for internal reasoning.

    The content is recorded in the conversation but no side effects occur.
    """

    name: ClassVar[str] = "think"
    description: ClassVar[str] = (
        "Use this tool to think through a problem and plan your approach. "
        "No side effects, it just records your reasoning in context."
    )
    param_model: ClassVar[type[BaseModel]] = ThinkParams
    category: ClassVar[ToolCategory] = "analysis"

    async def execute(self, params: ThinkParams, context: ToolContext) -> ToolResult:
        return ToolOk(data="Thought recorded.")
