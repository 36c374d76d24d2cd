"""CLI entry point for steward."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import timedelta, timezone
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from steward.agent import (
    Agent,
    AgentRegistry,
    AgentResult,
    format_report,
    run_guarded_agent,
)
from steward.config import StewardConfig
from steward.guardrail import Guardrails
from steward.llm import create_provider
from steward.notify import create_notifier
from steward.signal import get_signal_bus
from steward.store import SignalQuery, open_store
from steward.store.models import utc_now
from steward.tool import ToolRegistry
from steward.tool.builtin import register_builtin_tools

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="steward",
    help="Guarded ReAct agents with budgets, a tool registry and a signal bus.",
    no_args_is_help=True,
)
console = Console()

ConfigOption = typer.Option(None, "--config", "-c", help="Config file path.")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_config(config_file: str | None) -> StewardConfig:
    try:
        return StewardConfig.load(config_file)
    except (ValidationError, ValueError) as e:
        typer.echo(f"Error: invalid configuration: {e}", err=True)
        raise typer.Exit(1)


def _resolve_agent(target: str, config: StewardConfig) -> Agent:
    """``target`` is a markdown file or the name of an agent in agents_dir."""
    if os.path.isfile(target):
        return Agent.from_markdown(target)

    registry = AgentRegistry()
    registry.discover([config.agents_dir])
    agent = registry.get(target)
    if agent is None:
        available = ", ".join(registry.names()) or "none"
        typer.echo(f"Error: Unknown agent '{target}'. Available: {available}", err=True)
        raise typer.Exit(1)
    return agent


async def _confirm_tool(tool: str, args: dict[str, Any]) -> bool:
    prompt = f"Allow {tool} with {json.dumps(args, ensure_ascii=False)}?"
    return await asyncio.to_thread(typer.confirm, prompt, default=False)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def status(
    config_file: str | None = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show today's budget for every agent that has run."""
    setup_logging(verbose)
    config = _load_config(config_file)
    guardrails = Guardrails(config.guardrails, store=open_store(config.store))
    budgets = asyncio.run(guardrails.get_status())

    cfg = config.guardrails
    table = Table(title=f"Agent budgets ({utc_now().date().isoformat()})")
    table.add_column("Agent")
    table.add_column("Runs", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Tool calls", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Failures", justify="right")
    table.add_column("Circuit")

    for name, b in sorted(budgets.items()):
        table.add_row(
            name,
            f"{b.runs}/{cfg.max_runs_per_day}",
            f"{b.tokens_used:,}/{cfg.max_tokens_per_day:,}",
            str(b.tool_calls),
            f"${b.estimated_cost:.3f}/${cfg.max_cost_per_day}",
            str(b.consecutive_failures),
            "[red]OPEN[/red]" if b.is_circuit_broken else "[green]closed[/green]",
        )

    console.print(table)
    if cfg.kill_switch:
        console.print("[bold red]Kill switch is active[/bold red]")


@app.command()
def reset(
    agent: str = typer.Argument(help="Agent whose circuit breaker to reset."),
    config_file: str | None = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Reset an agent's circuit breaker."""
    setup_logging(verbose)
    config = _load_config(config_file)
    guardrails = Guardrails(config.guardrails, store=open_store(config.store))
    asyncio.run(guardrails.reset_circuit_breaker(agent))
    typer.echo(f"Circuit breaker reset for {agent}")


@app.command()
def signals(
    agent: str | None = typer.Option(
        None, "--agent", "-a", help="Only signals visible to this agent."
    ),
    hours: float = typer.Option(24, "--hours", help="Lookback window in hours."),
    limit: int = typer.Option(20, "--limit", "-n"),
    config_file: str | None = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """List active signals."""
    setup_logging(verbose)
    config = _load_config(config_file)
    store = open_store(config.store)

    if agent:
        rows = asyncio.run(
            get_signal_bus(agent, store).peek(hours_back=hours, limit=limit)
        )
    else:
        now = utc_now()
        query = SignalQuery(now=now, since=now - timedelta(hours=hours), limit=limit)
        rows = asyncio.run(store.query_signals(query))

    table = Table(title="Active signals")
    table.add_column("P", justify="right")
    table.add_column("Type")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Message")
    table.add_column("Created")
    table.add_column("Id", style="dim")
    for s in rows:
        table.add_row(
            str(s.priority),
            s.signal_type,
            s.source_agent,
            s.target_agent or "*",
            s.message,
            s.created_at.astimezone(timezone.utc).strftime("%m-%d %H:%M"),
            s.id,
        )
    console.print(table)


@app.command()
def emit(
    signal_type: str = typer.Argument(help="Signal type."),
    message: str = typer.Argument(help="Signal message."),
    source: str = typer.Option("cli", "--from", help="Emitting agent name."),
    target: str | None = typer.Option(None, "--to", help="Recipient; omit to broadcast."),
    priority: int = typer.Option(3, "--priority", "-p", help="1 = critical, 3 = info."),
    ttl_hours: float | None = typer.Option(None, "--ttl", help="Hours until expiry."),
    payload: str | None = typer.Option(None, "--payload", help="JSON object payload."),
    config_file: str | None = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Emit a signal by hand."""
    setup_logging(verbose)
    config = _load_config(config_file)

    data: dict[str, Any] = {}
    if payload:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            typer.echo(f"Error: --payload is not valid JSON: {e}", err=True)
            raise typer.Exit(1)
        if not isinstance(data, dict):
            typer.echo("Error: --payload must be a JSON object", err=True)
            raise typer.Exit(1)

    store = open_store(config.store)
    bus = get_signal_bus(source, store, config.signals.default_ttl_hours)
    signal_id = asyncio.run(
        bus.emit(
            signal_type,
            message,
            data,
            target=target,
            priority=priority,
            ttl_hours=ttl_hours,
        )
    )
    if signal_id is None:
        typer.echo("Error: failed to emit signal", err=True)
        raise typer.Exit(1)
    typer.echo(signal_id)


@app.command()
def tools(
    agent: str = typer.Argument(help="Agent name."),
    config_file: str | None = ConfigOption,
) -> None:
    """List the tools an agent can see."""
    config = _load_config(config_file)
    registry = register_builtin_tools(ToolRegistry())
    guardrails = Guardrails(config.guardrails)

    table = Table(title=f"Tools for {agent}")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Tier")
    table.add_column("Guardrail")
    table.add_column("Description")
    for d in registry.get_tools_for_agent(agent):
        decision = guardrails.can_use_tool(d.name)
        if not decision.allowed:
            gate = "[red]blocked[/red]"
        elif decision.needs_approval:
            gate = "[yellow]approval[/yellow]"
        else:
            gate = "auto"
        table.add_row(d.name, d.category, d.tier, gate, d.description)
    console.print(table)


@app.command()
def run(
    agent_ref: str = typer.Argument(
        help="Agent markdown file, or the name of an agent in the agents directory."
    ),
    goal: str | None = typer.Option(
        None, "--goal", "-g", help="Override the agent's goal."
    ),
    model: str | None = typer.Option(
        None, "--model", "-m", help="LLM model to use (default: from env/config)."
    ),
    auto_approve: bool = typer.Option(
        False, "--auto-approve", help="Approve gated tools without asking."
    ),
    report: bool = typer.Option(
        False, "--report", help="Send the run report to the messaging channel."
    ),
    config_file: str | None = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Run one agent under the guardrails."""
    setup_logging(verbose)
    config = _load_config(config_file)
    if model:
        config.llm.model = model

    agent = _resolve_agent(agent_ref, config)
    if goal:
        agent = agent.with_goal(goal)
    if not agent.goal:
        typer.echo("Error: agent has no goal; pass --goal", err=True)
        raise typer.Exit(1)

    typer.echo(f"Agent: {agent.name}")
    typer.echo(f"Goal: {agent.goal}")
    typer.echo(f"Model: {agent.config.model or config.llm.model}")
    typer.echo("---")

    result = asyncio.run(_run_agent(agent, config, auto_approve, report))

    typer.echo(result.output)
    typer.echo("---")
    typer.echo(
        f"success={result.success} loops={result.total_loops} "
        f"tool_calls={result.total_tool_calls} ({result.duration_ms}ms)"
    )
    if result.stopped_by_guardrail:
        typer.echo(f"Stopped: {result.guardrail_reason}", err=True)
    if not result.success:
        raise typer.Exit(1)


async def _run_agent(
    agent: Agent, config: StewardConfig, auto_approve: bool, send_report: bool
) -> AgentResult:
    store = open_store(config.store)
    notifier = create_notifier(config.telegram)
    provider = create_provider(
        model=config.llm.model,
        temperature=config.llm.temperature,
        max_tokens=config.llm.max_tokens,
        timeout=config.llm.timeout,
    )
    registry = register_builtin_tools(ToolRegistry())
    guardrails = Guardrails(config.guardrails, store=store, notifier=notifier)

    result = await run_guarded_agent(
        agent,
        provider,
        registry,
        guardrails,
        store=store,
        notifier=notifier,
        on_approval_needed=None if auto_approve else _confirm_tool,
        auto_approve=auto_approve,
        signal_ttl_hours=config.signals.default_ttl_hours,
    )

    if send_report and result.success and result.output:
        await notifier.send(format_report(agent.name, result))
    return result


def main() -> None:
    app()


if __name__ == "__main__":
    main()
