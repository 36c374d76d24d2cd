"""LLM provider abstraction — unified via litellm.

One request type: chat messages plus optional OpenAI-format tool specs,
returning either free text or a list of requested tool calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from steward.llm.message import (
    ContentPart,
    Message,
    TextPart,
    TokenUsage,
    ToolCall,
    ToolCallPart,
)

if TYPE_CHECKING:
    from litellm import ModelResponse

logger = logging.getLogger(__name__)

# Type alias for tool specs in OpenAI format
ToolSpec = dict[str, Any]


@dataclass
class ProviderConfig:
    """Configuration for an LLM provider."""

    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    timeout: float = 30.0


@dataclass
class Completion:
    """Result of a single LLM call."""

    message: Message
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str | None = None

    @property
    def tool_calls(self) -> list[ToolCall]:
        return self.message.tool_calls

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


@runtime_checkable
class ChatProvider(Protocol):
    """Protocol for LLM providers."""

    @property
    def config(self) -> ProviderConfig: ...

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolSpec] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> Completion: ...


# ---------------------------------------------------------------------------
# litellm provider
# ---------------------------------------------------------------------------


@dataclass
class LiteLLMProvider:
    """LLM provider using litellm.

    litellm detects the backend from the model string and reads API keys
    from environment variables.
    """

    _config: ProviderConfig

    @property
    def config(self) -> ProviderConfig:
        return self._config

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolSpec] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> Completion:
        kwargs: dict[str, Any] = {
            "model": model or self._config.model,
            "messages": [m.to_openai_dict() for m in messages],
            "timeout": self._config.timeout,
        }

        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        temperature = temperature if temperature is not None else self._config.temperature
        if temperature is not None:
            kwargs["temperature"] = temperature

        max_tokens = max_tokens if max_tokens is not None else self._config.max_tokens
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        response = await _acompletion_with_retry(**kwargs)
        return _response_to_completion(response)


def _is_transient(exc: BaseException) -> bool:
    """Network, timeout, rate-limit and 5xx errors; everything else is final."""
    import litellm

    return isinstance(
        exc,
        (
            ConnectionError,
            TimeoutError,
            OSError,
            litellm.exceptions.APIConnectionError,
            litellm.exceptions.Timeout,
            litellm.exceptions.RateLimitError,
            litellm.exceptions.ServiceUnavailableError,
            litellm.exceptions.InternalServerError,
        ),
    )


@retry(
    retry=retry_if_exception(_is_transient),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=30),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def _acompletion_with_retry(**kwargs: Any) -> ModelResponse:
    """Call litellm.acompletion with retry on transient errors."""
    import litellm

    return await litellm.acompletion(**kwargs)


def _response_to_completion(response: Any) -> Completion:
    """Convert a litellm ModelResponse into a :class:`Completion`.

    litellm responses have the OpenAI shape:
      response.choices[0].message.{content, tool_calls}, .finish_reason, .usage
    Tool calls without an id get a positional ``call_<n>`` id.
    """
    choices = getattr(response, "choices", None)
    if not choices:
        logger.warning("LLM response had no choices")
        return Completion(message=Message.assistant(""), finish_reason="error")

    choice = choices[0]
    msg = choice.message
    parts: list[ContentPart] = []

    content = getattr(msg, "content", None)
    if content:
        parts.append(TextPart(text=content))

    for i, tc in enumerate(getattr(msg, "tool_calls", None) or []):
        func = getattr(tc, "function", None)
        if func is None or not func.name:
            continue
        parts.append(
            ToolCallPart(
                id=getattr(tc, "id", None) or f"call_{i}",
                name=func.name,
                arguments=func.arguments or "{}",
            )
        )

    usage = TokenUsage()
    raw_usage = getattr(response, "usage", None)
    if raw_usage:
        usage = TokenUsage(
            input_tokens=getattr(raw_usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(raw_usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(raw_usage, "total_tokens", 0) or 0,
        )

    return Completion(
        message=Message(role="assistant", parts=parts),
        usage=usage,
        finish_reason=getattr(choice, "finish_reason", None),
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_provider(
    model: str,
    temperature: float | None = None,
    max_tokens: int | None = None,
    timeout: float = 30.0,
) -> ChatProvider:
    """Create a LiteLLM provider.

    Args:
        model: Model name in litellm format (e.g. "gpt-4o-mini",
               "anthropic/claude-sonnet-4-5-20250929").
        temperature: Default sampling temperature.
        max_tokens: Default max output tokens.
        timeout: Per-call timeout in seconds.
    """
    config = ProviderConfig(
        model=model,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=timeout,
    )
    return LiteLLMProvider(_config=config)
