"""Tool definitions, results, and the class-based tool helper."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Generic, Literal, TypeVar

from pydantic import BaseModel, ValidationError

if TYPE_CHECKING:
    from steward.notify import Notifier
    from steward.signal.bus import SignalBus
    from steward.store.base import Store

logger = logging.getLogger(__name__)

ToolCategory = Literal["data", "action", "analysis", "external"]
ToolTier = Literal["auto", "gated", "blocked"]
ParamType = Literal["string", "integer", "number", "boolean", "object", "array"]

T = TypeVar("T", bound=BaseModel)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolOk:
    """Successful tool result."""

    data: Any = None

    @property
    def success(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {"success": True, "data": self.data}


@dataclass(frozen=True)
class ToolError:
    """Failed or denied tool result."""

    error: str

    @property
    def success(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "error": self.error}


ToolResult = ToolOk | ToolError


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolParameter:
    """One parameter in a tool's LLM-facing schema."""

    name: str
    type: ParamType
    description: str = ""
    required: bool = False
    enum: tuple[str, ...] | None = None
    items: dict[str, Any] | None = None  # array item schema

    def to_json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.type == "array":
            schema["items"] = self.items or {"type": "string"}
        return schema


@dataclass(frozen=True)
class ToolDefinition:
    """Static capability descriptor. ``allowed_agents`` empty means every agent."""

    name: str
    description: str
    category: ToolCategory = "data"
    parameters: tuple[ToolParameter, ...] = ()
    allowed_agents: frozenset[str] = frozenset()
    tier: ToolTier = "auto"

    def is_allowed_for(self, agent_name: str) -> bool:
        return not self.allowed_agents or agent_name in self.allowed_agents

    def to_openai_spec(self) -> dict[str, Any]:
        """Convert to OpenAI function tool specification."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {
                        p.name: p.to_json_schema() for p in self.parameters
                    },
                    "required": [p.name for p in self.parameters if p.required],
                },
            },
        }


ApprovalCallback = Callable[[str, dict[str, Any]], Awaitable[bool]]


@dataclass
class ToolContext:
    """Per-run context handed to every executor.

    Gated tools need approval: either ``auto_approve`` or an
    ``on_approval_needed`` callback answering True.
    """

    agent_name: str
    store: Store | None = None
    signal_bus: SignalBus | None = None
    notifier: Notifier | None = None
    on_approval_needed: ApprovalCallback | None = None
    auto_approve: bool = False
    extras: dict[str, Any] = field(default_factory=dict)


ToolExecutor = Callable[[dict[str, Any], ToolContext], Awaitable[ToolResult]]


# ---------------------------------------------------------------------------
# Class-based tools
# ---------------------------------------------------------------------------


class BaseTool(ABC, Generic[T]):
    """Base class for tools whose parameters are a Pydantic model.

    The LLM-facing :class:`ToolDefinition` is derived from the model's JSON
    schema, and arguments are validated before ``execute`` runs.

    Usage:
        class EchoParams(BaseModel):
            text: str = Field(description="What to echo")

        class EchoTool(BaseTool[EchoParams]):
            name = "echo"
            description = "Echo the text back"
            param_model = EchoParams

            async def execute(self, params, context):
                return ToolOk(data=params.text)
    """

    name: ClassVar[str]
    description: ClassVar[str]
    param_model: ClassVar[type[BaseModel]]
    category: ClassVar[ToolCategory] = "data"
    tier: ClassVar[ToolTier] = "auto"
    allowed_agents: ClassVar[frozenset[str]] = frozenset()

    async def __call__(
        self, arguments: dict[str, Any], context: ToolContext
    ) -> ToolResult:
        try:
            params = self.param_model.model_validate(arguments)
        except ValidationError as e:
            return ToolError(f"Invalid parameters for {self.name}: {e}")

        return await self.execute(params, context)  # type: ignore[arg-type]

    @abstractmethod
    async def execute(self, params: T, context: ToolContext) -> ToolResult:
        """Execute the tool with validated parameters."""
        ...

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            category=self.category,
            parameters=parameters_from_model(self.param_model),
            allowed_agents=frozenset(self.allowed_agents),
            tier=self.tier,
        )


_JSON_TYPE_MAP: dict[str, ParamType] = {
    "string": "string",
    "integer": "integer",
    "number": "number",
    "boolean": "boolean",
    "object": "object",
    "array": "array",
}


def parameters_from_model(model: type[BaseModel]) -> tuple[ToolParameter, ...]:
    """Flatten a Pydantic model's JSON schema into ordered ToolParameters."""
    schema = model.model_json_schema()
    required = set(schema.get("required", []))
    params = []
    for name, prop in schema.get("properties", {}).items():
        resolved = _resolve_optional(prop)
        params.append(
            ToolParameter(
                name=name,
                type=_JSON_TYPE_MAP.get(resolved.get("type", "string"), "string"),
                description=prop.get("description", resolved.get("description", "")),
                required=name in required,
                enum=tuple(resolved["enum"]) if "enum" in resolved else None,
                items=resolved.get("items"),
            )
        )
    return tuple(params)


def _resolve_optional(prop: dict[str, Any]) -> dict[str, Any]:
    """``X | None`` fields appear as ``anyOf``; keep the non-null branch."""
    for option in prop.get("anyOf", []):
        if option.get("type") != "null":
            return option
    return prop
