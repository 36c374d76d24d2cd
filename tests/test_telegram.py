"""Tests for steward.notify (Telegram channel)."""

from __future__ import annotations

import json

import httpx
import pytest
from tenacity import wait_none

from steward.config import TelegramConfig
from steward.notify import (
    NullNotifier,
    TelegramNotifier,
    create_notifier,
    escape_html,
    strip_html,
)


class Recorder:
    """httpx transport handler that replays canned status codes."""

    def __init__(self, *statuses: int) -> None:
        self.statuses = list(statuses)
        self.requests: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return httpx.Response(status, json={"ok": status == 200})


def _notifier(handler) -> TelegramNotifier:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TelegramNotifier("token", "42", client=client)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch) -> None:
    monkeypatch.setattr(TelegramNotifier._post.retry, "wait", wait_none())


class TestTelegramNotifier:
    async def test_sends_html(self) -> None:
        handler = Recorder(200)
        assert await _notifier(handler).send("<b>hi</b>") is True
        [payload] = handler.requests
        assert payload["chat_id"] == "42"
        assert payload["text"] == "<b>hi</b>"
        assert payload["parse_mode"] == "HTML"
        assert payload["disable_web_page_preview"] is True

    async def test_buttons(self) -> None:
        handler = Recorder(200)
        buttons = [[{"text": "Open", "url": "https://example.com"}]]
        await _notifier(handler).send("x", buttons=buttons)
        assert handler.requests[0]["reply_markup"] == {"inline_keyboard": buttons}

    async def test_rejected_markup_falls_back_to_plain_text(self) -> None:
        handler = Recorder(400, 200)
        assert await _notifier(handler).send("<b>broken <i>markup</b>") is True
        assert len(handler.requests) == 2
        fallback = handler.requests[1]
        assert fallback["text"] == "broken markup"
        assert "parse_mode" not in fallback

    async def test_fallback_also_rejected(self) -> None:
        handler = Recorder(400, 400)
        assert await _notifier(handler).send("x") is False

    async def test_server_errors_retried(self) -> None:
        handler = Recorder(502, 503, 200)
        assert await _notifier(handler).send("x") is True
        assert len(handler.requests) == 3

    async def test_gives_up_after_retries(self) -> None:
        handler = Recorder(500)
        assert await _notifier(handler).send("x") is False
        assert len(handler.requests) == 3

    async def test_transport_error_returns_false(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        assert await _notifier(handler).send("x") is False


class TestNullNotifier:
    async def test_logs_and_reports_failure(self, caplog) -> None:
        caplog.set_level("INFO", logger="steward.notify.telegram")
        assert await NullNotifier().send("<b>hello</b>") is False
        assert "hello" in caplog.text
        assert "<b>" not in caplog.text


class TestFactoryAndHelpers:
    def test_create_notifier(self) -> None:
        assert isinstance(create_notifier(TelegramConfig()), NullNotifier)
        assert isinstance(create_notifier(TelegramConfig(bot_token="t")), NullNotifier)
        configured = create_notifier(TelegramConfig(bot_token="t", chat_id="1"))
        assert isinstance(configured, TelegramNotifier)

    def test_escape_html(self) -> None:
        assert escape_html("a < b & c > d") == "a &lt; b &amp; c &gt; d"
        assert escape_html("") == ""

    def test_strip_html(self) -> None:
        assert strip_html("<b>bold</b> and <i>it</i>") == "bold and it"
