"""Agent definition — loaded from YAML frontmatter in markdown files."""

from __future__ import annotations

import dataclasses
import logging
import os
import re
from dataclasses import dataclass
from typing import Any

import yaml

logger = logging.getLogger(__name__)


@dataclass
class AgentConfig:
    """Configuration for an agent, typically from YAML frontmatter."""

    name: str
    description: str = ""
    goal: str = ""
    context: str | None = None
    max_loops: int = 5
    max_tool_calls: int = 15  # cumulative across the run
    max_tokens_per_loop: int = 800  # per LLM call
    model: str | None = None  # Override model for this agent
    temperature: float = 0.3
    schedule: str | None = None  # cron expression, informational

    def __post_init__(self) -> None:
        for field_name in ("max_loops", "max_tool_calls", "max_tokens_per_loop"):
            setattr(self, field_name, _positive_int(field_name, getattr(self, field_name)))


@dataclass
class Agent:
    """A configured agent ready to run.

    Agents are defined as markdown files with YAML frontmatter; the body
    is the agent's role (the head of its system prompt):

        ---
        name: career
        description: Job search and skill development
        goal: Review today's job pipeline and flag anything urgent
        max_loops: 4
        ---

        You are the Career Agent...
    """

    config: AgentConfig
    role: str = ""

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def goal(self) -> str:
        return self.config.goal

    @property
    def context(self) -> str | None:
        return self.config.context

    def with_goal(self, goal: str, context: str | None = None) -> Agent:
        """Copy of this agent pursuing a different goal."""
        config = dataclasses.replace(
            self.config,
            goal=goal,
            context=context if context is not None else self.config.context,
        )
        return Agent(config=config, role=self.role)

    def bounded(self, max_loops: int, max_tool_calls: int) -> Agent:
        """Copy with per-run limits capped at the given values."""
        config = dataclasses.replace(
            self.config,
            max_loops=min(self.config.max_loops, max_loops),
            max_tool_calls=min(self.config.max_tool_calls, max_tool_calls),
        )
        return Agent(config=config, role=self.role)

    @classmethod
    def from_markdown(cls, path: str) -> Agent:
        """Load an agent definition from a markdown file with YAML frontmatter."""
        with open(path, "r") as f:
            content = f.read()

        config_dict, body = _parse_frontmatter(content)
        if "name" not in config_dict:
            config_dict["name"] = os.path.splitext(os.path.basename(path))[0]
        return cls.from_dict(config_dict, role=body.strip())

    @classmethod
    def from_dict(cls, data: dict[str, Any], role: str = "") -> Agent:
        """Create an agent from a dictionary config; unknown keys are ignored."""
        known = {f.name for f in dataclasses.fields(AgentConfig)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.debug("Ignoring unknown agent keys: %s", ", ".join(unknown))
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError(f"Agent name must be a non-empty string, got {name!r}")
        config = AgentConfig(**{k: v for k, v in data.items() if k in known})
        return cls(config=config, role=role)


def _positive_int(field_name: str, value: Any) -> int:
    """Accept ints and numeric strings (YAML may give either); reject < 1."""
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f"{field_name} must be an integer, got {value!r}")
    try:
        number = int(value)
    except ValueError:
        raise ValueError(f"{field_name} must be an integer, got {value!r}") from None
    if number < 1:
        raise ValueError(f"{field_name} must be at least 1, got {number}")
    return number


def _parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Parse YAML frontmatter from markdown content.

    Returns (config_dict, body_text).
    """
    pattern = re.compile(r"^---\s*\n(.*?)\n---\s*\n(.*)", re.DOTALL)
    match = pattern.match(content)

    if not match:
        return {}, content

    frontmatter = match.group(1)
    body = match.group(2)

    try:
        config = yaml.safe_load(frontmatter) or {}
    except yaml.YAMLError as e:
        logger.warning("Invalid agent frontmatter: %s", e)
        config = {}

    if not isinstance(config, dict):
        config = {}
    return config, body


def discover_agents(search_dirs: list[str]) -> list[Agent]:
    """Discover agent definitions from markdown files in directories."""
    agents = []
    for dir_path in search_dirs:
        if not os.path.isdir(dir_path):
            continue
        for fname in sorted(os.listdir(dir_path)):
            if not fname.endswith(".md"):
                continue
            full_path = os.path.join(dir_path, fname)
            try:
                agent = Agent.from_markdown(full_path)
            except (OSError, TypeError, ValueError) as e:
                logger.warning("Skipping agent file %s: %s", full_path, e)
                continue
            agents.append(agent)
    return agents
