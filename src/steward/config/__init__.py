"""Configuration — Pydantic models for steward settings."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Approximate USD per 1K tokens (input + output averaged).
DEFAULT_COST_PER_1K_TOKENS: dict[str, float] = {
    "gpt-4o-mini": 0.00015 + 0.0006,
    "gpt-4o": 0.0025 + 0.01,
    "gpt-4-turbo": 0.01 + 0.03,
}


class LLMConfig(BaseModel):
    """LLM provider configuration.

    Model names use litellm's format ("gpt-4o-mini", "openai/gpt-4o",
    "anthropic/claude-sonnet-4-5-20250929"). API keys are read from env vars
    by litellm (OPENAI_API_KEY, ANTHROPIC_API_KEY, ...).
    """

    model: str = Field(default="gpt-4o-mini")
    temperature: float | None = Field(default=0.3)
    max_tokens: int | None = Field(default=None)
    timeout: float = Field(default=30.0, description="Per-call timeout in seconds")


class GuardrailConfig(BaseModel):
    """Process-wide guardrail settings.

    One instance is shared by reference with the guardrail engine; the kill
    switch is only flipped through ``Guardrails.activate_kill_switch`` and
    ``Guardrails.deactivate_kill_switch``.
    """

    max_tokens_per_day: int = Field(default=500_000, description="Per agent")
    max_tool_calls_per_run: int = Field(default=15, ge=1)
    max_loops_per_run: int = Field(default=5, ge=1)
    max_runs_per_day: int = Field(default=20, description="Per agent")
    max_cost_per_day: float = Field(default=5.0, description="USD, per agent")
    circuit_breaker_threshold: int = Field(
        default=3, description="Consecutive failed runs before the breaker opens"
    )
    blocked_tools: list[str] = Field(default_factory=list)
    gated_tools: list[str] = Field(default_factory=lambda: ["send_telegram"])
    kill_switch: bool = Field(default=False)
    cost_per_1k_tokens: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_COST_PER_1K_TOKENS)
    )
    fallback_cost_per_1k_tokens: float = Field(default=0.001)
    cost_alert_ratio: float = Field(default=0.8)
    token_alert_ratio: float = Field(default=0.9)

    def cost_rate(self, model: str) -> float:
        """USD per 1K tokens for ``model``; litellm provider prefixes are ignored."""
        rate = self.cost_per_1k_tokens.get(model)
        if rate is None and "/" in model:
            rate = self.cost_per_1k_tokens.get(model.rsplit("/", 1)[1])
        return rate if rate is not None else self.fallback_cost_per_1k_tokens


class SignalConfig(BaseModel):
    default_ttl_hours: float = Field(default=24.0, gt=0)


class StoreConfig(BaseModel):
    backend: Literal["sqlite", "memory"] = Field(default="sqlite")
    path: str = Field(default="~/.steward/steward.db")


class TelegramConfig(BaseModel):
    """Messaging channel. Both fields unset means notifications are only logged."""

    bot_token: str | None = Field(default=None)
    chat_id: str | None = Field(default=None)
    timeout: float = Field(default=10.0)

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)


class StewardConfig(BaseModel):
    """Top-level steward configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    guardrails: GuardrailConfig = Field(default_factory=GuardrailConfig)
    signals: SignalConfig = Field(default_factory=SignalConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    agents_dir: str = Field(
        default="agents", description="Directory for agent definitions"
    )

    @classmethod
    def load(cls, config_path: str | None = None) -> StewardConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            STEWARD_MODEL               - Override the LLM model
            STEWARD_DB_PATH             - SQLite database path
            STEWARD_STORE               - Store backend ("sqlite" or "memory")
            STEWARD_KILL_SWITCH         - "1"/"true" starts with the kill switch on
            STEWARD_MAX_COST_PER_DAY    - Per-agent daily cost cap (USD)
            STEWARD_MAX_TOKENS_PER_DAY  - Per-agent daily token cap
            TELEGRAM_BOT_TOKEN          - Telegram bot token
            TELEGRAM_CHAT_ID            - Telegram chat to report to
        """
        load_dotenv(override=True)

        config_data: dict[str, Any] = {}
        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)
            logger.debug("Loaded config file %s", config_path)

        llm = config_data.setdefault("llm", {})
        guardrails = config_data.setdefault("guardrails", {})
        store = config_data.setdefault("store", {})
        telegram = config_data.setdefault("telegram", {})

        env_model = os.environ.get("STEWARD_MODEL")
        if env_model:
            llm["model"] = env_model

        env_db_path = os.environ.get("STEWARD_DB_PATH")
        if env_db_path:
            store["path"] = env_db_path

        env_store = os.environ.get("STEWARD_STORE")
        if env_store:
            store["backend"] = env_store.lower()

        env_kill = os.environ.get("STEWARD_KILL_SWITCH")
        if env_kill:
            guardrails["kill_switch"] = env_kill.lower() in ("1", "true", "yes", "on")

        env_max_cost = os.environ.get("STEWARD_MAX_COST_PER_DAY")
        if env_max_cost:
            guardrails["max_cost_per_day"] = float(env_max_cost)

        env_max_tokens = os.environ.get("STEWARD_MAX_TOKENS_PER_DAY")
        if env_max_tokens:
            guardrails["max_tokens_per_day"] = int(env_max_tokens)

        env_token = os.environ.get("TELEGRAM_BOT_TOKEN")
        if env_token:
            telegram["bot_token"] = env_token

        env_chat = os.environ.get("TELEGRAM_CHAT_ID")
        if env_chat:
            telegram["chat_id"] = env_chat

        return cls.model_validate(config_data)
