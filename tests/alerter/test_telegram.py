"""Tests for the Telegram channel."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from crypto_mover_tracker.alerter.models import FormattedAlert
from crypto_mover_tracker.alerter.telegram import TelegramChannel, TelegramError


def make_session(status: int = 200, json_data: Any = None, *, error: Exception | None = None) -> MagicMock:
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=json_data if json_data is not None else {"ok": True})
    resp.text = AsyncMock(return_value="error body")
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=resp, side_effect=error)
    ctx.__aexit__ = AsyncMock(return_value=False)
    session = MagicMock()
    session.post.return_value = ctx
    return session


class TestTelegramChannel:
    @pytest.mark.asyncio
    async def test_send_posts_markdown(self) -> None:
        session = make_session()
        channel = TelegramChannel("123:abc", "-100", session=session)

        await channel.send(FormattedAlert(title="t", telegram_markdown="*hi*", plain_text="hi"))

        url = session.post.call_args.args[0]
        payload = session.post.call_args.kwargs["json"]
        assert url == "https://api.telegram.org/bot123:abc/sendMessage"
        assert payload == {
            "chat_id": "-100",
            "text": "*hi*",
            "parse_mode": "Markdown",
            "disable_web_page_preview": True,
        }

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        channel = TelegramChannel("t", "c", session=make_session(status=400))
        with pytest.raises(TelegramError, match="400"):
            await channel.send_message("x")

    @pytest.mark.asyncio
    async def test_api_rejection(self) -> None:
        channel = TelegramChannel("t", "c", session=make_session(json_data={"ok": False, "description": "bad"}))
        with pytest.raises(TelegramError, match="bad"):
            await channel.send_message("x")

    @pytest.mark.asyncio
    async def test_network_error(self) -> None:
        session = make_session(error=aiohttp.ClientConnectionError("reset"))
        channel = TelegramChannel("t", "c", session=session)
        with pytest.raises(TelegramError):
            await channel.send_message("x")
