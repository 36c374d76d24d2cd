"""Messaging channel used for alerts and run reports."""

from __future__ import annotations

from steward.config import TelegramConfig
from steward.notify.telegram import (
    Notifier,
    NullNotifier,
    TelegramNotifier,
    escape_html,
    strip_html,
)


def create_notifier(config: TelegramConfig) -> Notifier:
    """Telegram when configured, otherwise a notifier that only logs."""
    if config.enabled:
        return TelegramNotifier(
            bot_token=config.bot_token or "",
            chat_id=config.chat_id or "",
            timeout=config.timeout,
        )
    return NullNotifier()


__all__ = [
    "Notifier",
    "NullNotifier",
    "TelegramNotifier",
    "create_notifier",
    "escape_html",
    "strip_html",
]
