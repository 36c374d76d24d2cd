"""Telegram tool — the one outbound action agents can take, behind approval."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, Field

from steward.tool.base import (
    BaseTool,
    ToolCategory,
    ToolContext,
    ToolError,
    ToolOk,
    ToolResult,
    ToolTier,
)


class SendTelegramParams(BaseModel):
    message: str = Field(
        description="Message for the user. Telegram HTML (<b>, <i>, <code>) is allowed."
    )


class SendTelegramTool(BaseTool[SendTelegramParams]):
    name: ClassVar[str] = "send_telegram"
    description: ClassVar[str] = (
        "Send a message to the user on Telegram. Requires approval. "
        "Only use this for things the user needs to know now."
    )
    param_model: ClassVar[type[BaseModel]] = SendTelegramParams
    category: ClassVar[ToolCategory] = "external"
    tier: ClassVar[ToolTier] = "gated"

    async def execute(
        self, params: SendTelegramParams, context: ToolContext
    ) -> ToolResult:
        if context.notifier is None:
            return ToolError("No messaging channel configured")

        text = f"<b>{context.agent_name}</b>\n{params.message}"
        if not await context.notifier.send(text):
            return ToolError("Telegram message was not delivered")
        return ToolOk(data={"sent": True})
