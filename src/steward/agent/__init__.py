"""Agent system — definitions, ReAct loop, guarded runner, registry."""

from steward.agent.agent import Agent, AgentConfig, discover_agents
from steward.agent.loop import AgentResult, LoopTrace, quick_agent, run_react_agent
from steward.agent.registry import AgentRegistry
from steward.agent.runner import format_report, make_tool_gate, run_guarded_agent

__all__ = [
    "Agent",
    "AgentConfig",
    "AgentRegistry",
    "AgentResult",
    "LoopTrace",
    "discover_agents",
    "format_report",
    "make_tool_gate",
    "quick_agent",
    "run_guarded_agent",
    "run_react_agent",
]
