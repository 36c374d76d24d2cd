"""Shared fixtures: a scripted LLM provider and in-memory collaborators."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import pytest

from steward.config import GuardrailConfig
from steward.guardrail import Guardrails
from steward.llm.message import Message, TextPart, TokenUsage, ToolCallPart
from steward.llm.provider import Completion, ProviderConfig
from steward.store import MemoryStore
from steward.tool import ToolRegistry


def text_completion(text: str, total_tokens: int = 0) -> Completion:
    return Completion(
        message=Message.assistant(text),
        usage=TokenUsage(total_tokens=total_tokens),
        finish_reason="stop",
    )


def tool_completion(
    *calls: tuple[str, dict[str, Any]], text: str = "", total_tokens: int = 0
) -> Completion:
    parts: list = [TextPart(text=text)] if text else []
    parts.extend(
        ToolCallPart(id=f"tc_{i}", name=name, arguments=json.dumps(args))
        for i, (name, args) in enumerate(calls)
    )
    return Completion(
        message=Message(role="assistant", parts=parts),
        usage=TokenUsage(total_tokens=total_tokens),
        finish_reason="tool_calls",
    )


@dataclass
class ScriptedProvider:
    """Returns queued completions in order; raises queued exceptions.

    Once the script runs out, the last entry is repeated.
    """

    script: list[Completion | Exception]
    calls: list[dict[str, Any]] = field(default_factory=list)
    _config: ProviderConfig = field(
        default_factory=lambda: ProviderConfig(model="gpt-4o-mini")
    )

    @property
    def config(self) -> ProviderConfig:
        return self._config

    async def complete(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> Completion:
        self.calls.append(
            {
                "messages": list(messages),
                "tools": tools,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "model": model,
            }
        )
        index = min(len(self.calls) - 1, len(self.script) - 1)
        entry = self.script[index]
        if isinstance(entry, Exception):
            raise entry
        return entry


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def guardrail_config() -> GuardrailConfig:
    return GuardrailConfig()


@pytest.fixture
def guardrails(guardrail_config: GuardrailConfig, store: MemoryStore) -> Guardrails:
    return Guardrails(guardrail_config, store=store, today=lambda: "2026-01-15")


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry()
