"""Tests for the steward CLI."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import ScriptedProvider, text_completion, tool_completion
from rich.console import Console
from typer.testing import CliRunner

from steward import cli

runner = CliRunner()

AGENT_MD = """\
---
name: career
goal: Review the job pipeline
---

You are the Career Agent.
"""


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("STEWARD_STORE", "sqlite")
    monkeypatch.setenv("STEWARD_DB_PATH", str(tmp_path / "steward.db"))
    for name in ("STEWARD_KILL_SWITCH", "STEWARD_MODEL", "TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cli, "console", Console(width=200))
    return tmp_path


@pytest.fixture
def agent_file(tmp_path: Path) -> Path:
    path = tmp_path / "career.md"
    path.write_text(AGENT_MD)
    return path


class TestSignals:
    def test_emit_then_list(self) -> None:
        result = runner.invoke(
            cli.app,
            ["emit", "skill_gap", "SQL keeps coming up", "--from", "career", "--to", "learning",
             "--priority", "2", "--payload", '{"skill": "SQL"}'],
        )
        assert result.exit_code == 0, result.output
        signal_id = result.output.strip().splitlines()[-1]

        listing = runner.invoke(cli.app, ["signals", "--agent", "learning"])
        assert listing.exit_code == 0
        assert "skill_gap" in listing.output
        assert signal_id in listing.output

        hidden = runner.invoke(cli.app, ["signals", "--agent", "finance"])
        assert "skill_gap" not in hidden.output

        everything = runner.invoke(cli.app, ["signals"])
        assert "skill_gap" in everything.output

    @pytest.mark.parametrize("payload", ["not json", "[1, 2]"])
    def test_bad_payload(self, payload: str) -> None:
        result = runner.invoke(cli.app, ["emit", "a", "b", "--payload", payload])
        assert result.exit_code == 1


class TestBudgets:
    def test_reset_then_status(self) -> None:
        reset = runner.invoke(cli.app, ["reset", "career"])
        assert reset.exit_code == 0
        assert "Circuit breaker reset for career" in reset.output

        status = runner.invoke(cli.app, ["status"])
        assert status.exit_code == 0
        assert "career" in status.output
        assert "closed" in status.output

    def test_status_shows_kill_switch(self, monkeypatch) -> None:
        monkeypatch.setenv("STEWARD_KILL_SWITCH", "1")
        status = runner.invoke(cli.app, ["status"])
        assert "Kill switch is active" in status.output


class TestTools:
    def test_lists_builtins_with_gate(self) -> None:
        result = runner.invoke(cli.app, ["tools", "career"])
        assert result.exit_code == 0
        assert "send_telegram" in result.output
        assert "approval" in result.output
        assert "query_signals" in result.output


class TestRun:
    def test_unknown_agent(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(cli.app, ["run", "nobody"])
        assert result.exit_code == 1

    def test_requires_goal(self, tmp_path: Path) -> None:
        path = tmp_path / "idle.md"
        path.write_text("---\nname: idle\n---\nYou idle.\n")
        result = runner.invoke(cli.app, ["run", str(path)])
        assert result.exit_code == 1

    def test_successful_run(self, agent_file: Path, monkeypatch) -> None:
        provider = ScriptedProvider(
            [tool_completion(("think", {"thought": "plan"})), text_completion("Apply to Acme.")]
        )
        monkeypatch.setattr(cli, "create_provider", lambda **kwargs: provider)

        result = runner.invoke(cli.app, ["run", str(agent_file), "--goal", "Find one job"])

        assert result.exit_code == 0, result.output
        assert "Goal: Find one job" in result.output
        assert "Apply to Acme." in result.output
        assert "success=True loops=2 tool_calls=1" in result.output

        status = runner.invoke(cli.app, ["status"])
        assert "1/20" in status.output

    def test_failed_run_exits_nonzero(self, agent_file: Path, monkeypatch) -> None:
        provider = ScriptedProvider([RuntimeError("no key")])
        monkeypatch.setattr(cli, "create_provider", lambda **kwargs: provider)

        result = runner.invoke(cli.app, ["run", str(agent_file)])

        assert result.exit_code == 1
        assert "LLM error: no key" in result.output

    def test_kill_switch_blocks_run(self, agent_file: Path, monkeypatch) -> None:
        monkeypatch.setenv("STEWARD_KILL_SWITCH", "true")
        provider = ScriptedProvider([text_completion("unused")])
        monkeypatch.setattr(cli, "create_provider", lambda **kwargs: provider)

        result = runner.invoke(cli.app, ["run", str(agent_file)])

        assert result.exit_code == 1
        assert provider.calls == []
        assert "career agent blocked: Kill switch is active" in result.output
