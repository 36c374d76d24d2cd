"""Telegram messaging channel."""

from __future__ import annotations

import logging
import re
from typing import Any, Protocol, runtime_checkable

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


@runtime_checkable
class Notifier(Protocol):
    """Fire-and-forget text dispatch. ``send`` never raises."""

    async def send(self, text: str) -> bool: ...


class NullNotifier:
    """Notifier used when no channel is configured: logs and reports failure."""

    async def send(self, text: str) -> bool:
        logger.info("Notification (no channel configured): %s", strip_html(text))
        return False


class _RetryableStatus(Exception):
    """429 or 5xx from the Bot API."""

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"Telegram returned HTTP {status_code}")


class TelegramNotifier:
    """Send HTML messages through the Telegram Bot API.

    Transient failures (connection errors, 429, 5xx) are retried with
    exponential backoff. If Telegram rejects the markup, the message is
    re-sent once as plain text.
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = f"{TELEGRAM_API_URL}/bot{bot_token}/sendMessage"
        self._chat_id = chat_id
        self._timeout = timeout
        self._client = client

    async def send(
        self,
        text: str,
        buttons: list[list[dict[str, str]]] | None = None,
        parse_mode: str = "HTML",
    ) -> bool:
        payload: dict[str, Any] = {
            "chat_id": self._chat_id,
            "text": text,
            "parse_mode": parse_mode,
            "disable_web_page_preview": True,
        }
        if buttons:
            payload["reply_markup"] = {"inline_keyboard": buttons}

        try:
            resp = await self._post(payload)
            if resp.is_success:
                return True

            logger.warning(
                "Telegram rejected message (HTTP %d), retrying as plain text",
                resp.status_code,
            )
            fallback = await self._post(
                {"chat_id": self._chat_id, "text": strip_html(text)}
            )
            return fallback.is_success
        except (httpx.HTTPError, _RetryableStatus) as e:
            logger.error("Telegram send failed: %s", e)
            return False

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            resp = await self._client.post(self._url, json=payload)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, json=payload)

        if resp.status_code == 429 or resp.status_code >= 500:
            raise _RetryableStatus(resp.status_code)
        return resp


def escape_html(text: str) -> str:
    """Escape the characters Telegram's HTML parse mode treats as markup."""
    return (
        (text or "").replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    )


def strip_html(text: str) -> str:
    return re.sub(r"<[^>]*>", "", text or "")
