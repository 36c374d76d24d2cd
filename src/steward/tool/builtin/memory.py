"""Memory tools — long-term notes an agent keeps between runs."""

from __future__ import annotations

import logging
from typing import ClassVar

from pydantic import BaseModel, Field

from steward.store.models import Memory, MemoryType
from steward.tool.base import (
    BaseTool,
    ToolCategory,
    ToolContext,
    ToolError,
    ToolOk,
    ToolResult,
)

logger = logging.getLogger(__name__)

NO_STORE = "Memory store is not available"


class StoreMemoryParams(BaseModel):
    content: str = Field(description="What to remember, in one or two sentences")
    memory_type: MemoryType = Field(
        default="insight", description="Kind of memory"
    )
    domain: str | None = Field(
        default=None, description="Area this applies to, e.g. 'career' or 'finance'"
    )
    importance: int = Field(default=3, ge=1, le=5, description="1 (trivia) to 5 (critical)")
    tags: list[str] = Field(default_factory=list, description="Keywords for recall")


class StoreMemoryTool(BaseTool[StoreMemoryParams]):
    """Persist a decision, pattern or lesson for future runs."""

    name: ClassVar[str] = "store_memory"
    description: ClassVar[str] = (
        "Remember something for future runs: a decision, a pattern you noticed, "
        "a user preference or a lesson learned."
    )
    param_model: ClassVar[type[BaseModel]] = StoreMemoryParams
    category: ClassVar[ToolCategory] = "action"

    async def execute(
        self, params: StoreMemoryParams, context: ToolContext
    ) -> ToolResult:
        if context.store is None:
            return ToolError(NO_STORE)

        memory = Memory(
            agent_name=context.agent_name,
            memory_type=params.memory_type,
            content=params.content,
            domain=params.domain,
            importance=params.importance,
            tags=params.tags,
        )
        try:
            memory_id = await context.store.insert_memory(memory)
        except Exception as e:
            logger.error("Failed to store memory for %s: %s", context.agent_name, e)
            return ToolError(f"Failed to store memory: {e}")
        return ToolOk(data={"id": memory_id})


class RecallMemoriesParams(BaseModel):
    query: str = Field(description="Text to search your memories for")
    domain: str | None = Field(default=None, description="Restrict to one domain")
    memory_type: MemoryType | None = Field(default=None, description="Restrict to one kind")
    limit: int = Field(default=5, ge=1, le=20)


class RecallMemoriesTool(BaseTool[RecallMemoriesParams]):
    name: ClassVar[str] = "recall_memories"
    description: ClassVar[str] = (
        "Search what you remembered in earlier runs. Most important first."
    )
    param_model: ClassVar[type[BaseModel]] = RecallMemoriesParams

    async def execute(
        self, params: RecallMemoriesParams, context: ToolContext
    ) -> ToolResult:
        if context.store is None:
            return ToolError(NO_STORE)

        try:
            memories = await context.store.search_memories(
                context.agent_name,
                params.query,
                domain=params.domain,
                memory_type=params.memory_type,
                limit=params.limit,
            )
        except Exception as e:
            logger.error("Memory search failed for %s: %s", context.agent_name, e)
            return ToolError(f"Memory search failed: {e}")
        return ToolOk(data=[m.to_dict() for m in memories])
