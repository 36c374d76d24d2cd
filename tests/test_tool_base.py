"""Tests for steward.tool.base (results, definitions, class-based tools)."""

from __future__ import annotations

from typing import ClassVar, Literal

from pydantic import BaseModel, Field

from steward.tool.base import (
    BaseTool,
    ToolContext,
    ToolDefinition,
    ToolError,
    ToolOk,
    ToolParameter,
    ToolResult,
    parameters_from_model,
)


class EchoParams(BaseModel):
    text: str = Field(description="What to echo")
    times: int = Field(default=1, description="Repeat count")
    weight: float = Field(default=1.0)
    mode: Literal["plain", "loud"] = Field(default="plain")
    note: str | None = Field(default=None, description="Optional note")
    tags: list[str] = Field(default_factory=list)


class EchoTool(BaseTool[EchoParams]):
    name: ClassVar[str] = "echo"
    description: ClassVar[str] = "Echo the text back"
    param_model: ClassVar[type[BaseModel]] = EchoParams
    allowed_agents: ClassVar[frozenset[str]] = frozenset({"career"})

    async def execute(self, params: EchoParams, context: ToolContext) -> ToolResult:
        text = params.text * params.times
        return ToolOk(data=text.upper() if params.mode == "loud" else text)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class TestResults:
    def test_ok(self) -> None:
        r = ToolOk(data={"n": 1})
        assert r.success is True
        assert r.to_dict() == {"success": True, "data": {"n": 1}}

    def test_error(self) -> None:
        r = ToolError("boom")
        assert r.success is False
        assert r.to_dict() == {"success": False, "error": "boom"}


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


class TestToolDefinition:
    def test_empty_allowed_agents_means_everyone(self) -> None:
        d = ToolDefinition(name="t", description="")
        assert d.is_allowed_for("anyone")

    def test_allowed_agents_restricts(self) -> None:
        d = ToolDefinition(name="t", description="", allowed_agents=frozenset({"career"}))
        assert d.is_allowed_for("career")
        assert not d.is_allowed_for("finance")

    def test_openai_spec(self) -> None:
        d = ToolDefinition(
            name="emit",
            description="Emit a signal",
            parameters=(
                ToolParameter("message", "string", "Text", required=True),
                ToolParameter("priority", "number", "1-3"),
                ToolParameter("level", "string", enum=("a", "b")),
                ToolParameter("ids", "array"),
            ),
        )
        spec = d.to_openai_spec()
        assert spec["type"] == "function"
        fn = spec["function"]
        assert fn["name"] == "emit"
        assert fn["parameters"]["required"] == ["message"]
        props = fn["parameters"]["properties"]
        assert props["message"] == {"type": "string", "description": "Text"}
        assert props["level"]["enum"] == ["a", "b"]
        assert props["ids"]["items"] == {"type": "string"}


# ---------------------------------------------------------------------------
# Class-based tools
# ---------------------------------------------------------------------------


class TestBaseTool:
    def test_parameters_from_model(self) -> None:
        params = {p.name: p for p in parameters_from_model(EchoParams)}
        assert params["text"].type == "string"
        assert params["text"].required is True
        assert params["text"].description == "What to echo"
        assert params["times"].type == "integer"
        assert params["weight"].type == "number"
        assert params["times"].required is False
        assert params["mode"].enum == ("plain", "loud")
        assert params["note"].type == "string"
        assert params["note"].description == "Optional note"
        assert params["tags"].type == "array"

    def test_definition(self) -> None:
        d = EchoTool().definition
        assert d.name == "echo"
        assert d.tier == "auto"
        assert d.category == "data"
        assert d.allowed_agents == frozenset({"career"})

    def test_integer_kept_in_llm_schema(self) -> None:
        props = EchoTool().definition.to_openai_spec()["function"]["parameters"]["properties"]
        assert props["times"]["type"] == "integer"
        assert props["weight"]["type"] == "number"

    async def test_call_validates_and_executes(self) -> None:
        result = await EchoTool()({"text": "ab", "times": 2, "mode": "loud"}, ToolContext("career"))
        assert result == ToolOk(data="ABAB")

    async def test_invalid_arguments_become_error(self) -> None:
        result = await EchoTool()({"times": "many"}, ToolContext("career"))
        assert isinstance(result, ToolError)
        assert result.error.startswith("Invalid parameters for echo")
