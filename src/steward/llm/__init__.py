"""LLM abstraction layer — unified via litellm."""

from steward.llm.message import (
    Message,
    ContentPart,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    ToolCall,
    TokenUsage,
)
from steward.llm.provider import (
    ChatProvider,
    Completion,
    LiteLLMProvider,
    ProviderConfig,
    ToolSpec,
    create_provider,
)

__all__ = [
    "Message",
    "ContentPart",
    "TextPart",
    "ToolCallPart",
    "ToolResultPart",
    "ToolCall",
    "TokenUsage",
    "ChatProvider",
    "Completion",
    "LiteLLMProvider",
    "ProviderConfig",
    "ToolSpec",
    "create_provider",
]
