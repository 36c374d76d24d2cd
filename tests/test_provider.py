"""Tests for steward.llm.provider (retry logic, response parsing, factory)."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import litellm
import pytest
from tenacity import wait_none

from steward.llm.message import Message
from steward.llm.provider import (
    LiteLLMProvider,
    ProviderConfig,
    _acompletion_with_retry,
    _response_to_completion,
    create_provider,
)


def _response(content=None, tool_calls=None, finish_reason="stop", usage=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=usage,
    )


def _tool_call(name, arguments, id=None):
    return SimpleNamespace(
        id=id, function=SimpleNamespace(name=name, arguments=arguments)
    )


# ---------------------------------------------------------------------------
# ProviderConfig / create_provider
# ---------------------------------------------------------------------------


class TestCreateProvider:
    def test_defaults(self) -> None:
        config = ProviderConfig(model="gpt-4o-mini")
        assert config.temperature is None
        assert config.max_tokens is None
        assert config.timeout == 30.0

    def test_returns_litellm_provider(self) -> None:
        provider = create_provider("gpt-4o-mini", temperature=0.3, timeout=12.0)
        assert isinstance(provider, LiteLLMProvider)
        assert provider.config.model == "gpt-4o-mini"
        assert provider.config.temperature == 0.3
        assert provider.config.timeout == 12.0


# ---------------------------------------------------------------------------
# _acompletion_with_retry — retry logic
# ---------------------------------------------------------------------------


class TestRetryLogic:
    @pytest.fixture(autouse=True)
    def no_backoff(self, monkeypatch) -> None:
        monkeypatch.setattr(_acompletion_with_retry.retry, "wait", wait_none())

    async def test_success_on_first_try(self) -> None:
        mock_acompletion = AsyncMock(return_value="ok")
        with patch("litellm.acompletion", mock_acompletion):
            result = await _acompletion_with_retry(model="test", messages=[])
            assert result == "ok"
            assert mock_acompletion.call_count == 1

    async def test_retries_on_connection_error(self) -> None:
        mock_acompletion = AsyncMock(side_effect=[ConnectionError("conn failed"), "ok"])
        with patch("litellm.acompletion", mock_acompletion):
            result = await _acompletion_with_retry(model="test", messages=[])
            assert result == "ok"
            assert mock_acompletion.call_count == 2

    async def test_gives_up_after_3_attempts(self) -> None:
        mock_acompletion = AsyncMock(
            side_effect=[
                TimeoutError("fail 1"),
                TimeoutError("fail 2"),
                TimeoutError("fail 3"),
            ]
        )
        with patch("litellm.acompletion", mock_acompletion):
            with pytest.raises(TimeoutError, match="fail 3"):
                await _acompletion_with_retry(model="test", messages=[])
            assert mock_acompletion.call_count == 3

    async def test_retries_litellm_connection_error(self) -> None:
        error = litellm.exceptions.APIConnectionError(
            message="upstream down", llm_provider="openai", model="gpt-4o-mini"
        )
        mock_acompletion = AsyncMock(side_effect=error)
        with patch("litellm.acompletion", mock_acompletion):
            with pytest.raises(litellm.exceptions.APIConnectionError):
                await _acompletion_with_retry(model="gpt-4o-mini", messages=[])
        assert mock_acompletion.await_count == 3

    async def test_retries_rate_limit_then_succeeds(self) -> None:
        error = litellm.exceptions.RateLimitError(
            message="slow down", llm_provider="openai", model="gpt-4o-mini"
        )
        mock_acompletion = AsyncMock(side_effect=[error, "ok"])
        with patch("litellm.acompletion", mock_acompletion):
            assert await _acompletion_with_retry(model="gpt-4o-mini", messages=[]) == "ok"
        assert mock_acompletion.await_count == 2

    async def test_does_not_retry_auth_error(self) -> None:
        error = litellm.exceptions.AuthenticationError(
            message="bad key", llm_provider="openai", model="gpt-4o-mini"
        )
        mock_acompletion = AsyncMock(side_effect=error)
        with patch("litellm.acompletion", mock_acompletion):
            with pytest.raises(litellm.exceptions.AuthenticationError):
                await _acompletion_with_retry(model="gpt-4o-mini", messages=[])
        assert mock_acompletion.await_count == 1

    async def test_does_not_retry_on_value_error(self) -> None:
        """Non-transient errors should not be retried."""
        mock_acompletion = AsyncMock(side_effect=ValueError("bad input"))
        with patch("litellm.acompletion", mock_acompletion):
            with pytest.raises(ValueError, match="bad input"):
                await _acompletion_with_retry(model="test", messages=[])
            assert mock_acompletion.call_count == 1


# ---------------------------------------------------------------------------
# LiteLLMProvider.complete — request shape
# ---------------------------------------------------------------------------


class TestComplete:
    async def test_tools_and_overrides_forwarded(self) -> None:
        provider = create_provider("gpt-4o-mini", temperature=0.7, max_tokens=100)
        mock_acompletion = AsyncMock(return_value=_response(content="hi"))
        tools = [{"type": "function", "function": {"name": "think"}}]

        with patch("litellm.acompletion", mock_acompletion):
            completion = await provider.complete(
                [Message.user("hello")],
                tools=tools,
                max_tokens=800,
                temperature=0.3,
                model="gpt-4o",
            )

        kwargs = mock_acompletion.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["tools"] == tools
        assert kwargs["tool_choice"] == "auto"
        assert kwargs["max_tokens"] == 800
        assert kwargs["temperature"] == 0.3
        assert kwargs["messages"] == [{"role": "user", "content": "hello"}]
        assert completion.message.text == "hi"

    async def test_no_tools_omits_tool_choice(self) -> None:
        provider = create_provider("gpt-4o-mini")
        mock_acompletion = AsyncMock(return_value=_response(content="hi"))
        with patch("litellm.acompletion", mock_acompletion):
            await provider.complete([Message.user("hello")])

        kwargs = mock_acompletion.call_args.kwargs
        assert "tools" not in kwargs
        assert "tool_choice" not in kwargs
        assert "temperature" not in kwargs
        assert kwargs["timeout"] == 30.0


# ---------------------------------------------------------------------------
# _response_to_completion
# ---------------------------------------------------------------------------


class TestResponseToCompletion:
    def test_text(self) -> None:
        c = _response_to_completion(_response(content="done"))
        assert c.message.text == "done"
        assert c.has_tool_calls is False
        assert c.finish_reason == "stop"

    def test_tool_calls(self) -> None:
        c = _response_to_completion(
            _response(
                tool_calls=[
                    _tool_call("think", '{"thought": "plan"}', id="abc"),
                    _tool_call("query_signals", None),
                ],
                finish_reason="tool_calls",
            )
        )
        calls = c.tool_calls
        assert [tc.id for tc in calls] == ["abc", "call_1"]
        assert calls[0].arguments == {"thought": "plan"}
        assert calls[1].arguments == {}

    def test_no_choices_is_error(self) -> None:
        c = _response_to_completion(SimpleNamespace(choices=[], usage=None))
        assert c.finish_reason == "error"
        assert c.message.text == ""

    def test_usage(self) -> None:
        usage = SimpleNamespace(prompt_tokens=100, completion_tokens=50, total_tokens=150)
        c = _response_to_completion(_response(content="x", usage=usage))
        assert c.usage.input_tokens == 100
        assert c.usage.output_tokens == 50
        assert c.usage.total_tokens == 150
