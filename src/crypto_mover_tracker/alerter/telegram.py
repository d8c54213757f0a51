"""Telegram Bot API delivery channel."""

from __future__ import annotations

import logging

import aiohttp

from crypto_mover_tracker.alerter.models import FormattedAlert

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"
DEFAULT_TIMEOUT_SECONDS = 15.0


class TelegramError(Exception):
    """Raised when Telegram rejects or fails to deliver a message."""


class TelegramChannel:
    """Send alerts to one Telegram chat via `sendMessage`."""

    name = "telegram"

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        *,
        parse_mode: str = "Markdown",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._url = TELEGRAM_API_URL.format(token=bot_token)
        self._chat_id = chat_id
        self._parse_mode = parse_mode
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def aclose(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def send(self, alert: FormattedAlert) -> None:
        await self.send_message(alert.telegram_markdown)

    async def send_message(self, text: str) -> None:
        """Post `text` to the configured chat.

        Raises:
            TelegramError: On HTTP errors, API-level errors or network failures.
        """
        payload = {
            "chat_id": self._chat_id,
            "text": text,
            "parse_mode": self._parse_mode,
            "disable_web_page_preview": True,
        }
        try:
            async with self._get_session().post(self._url, json=payload) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise TelegramError(f"Telegram API error {resp.status}: {body[:200]}")
                data = await resp.json()
        except (aiohttp.ClientError, TimeoutError) as e:
            raise TelegramError(f"Failed to send Telegram message: {e}") from e

        if not data.get("ok", False):
            raise TelegramError(f"Telegram API rejected message: {data.get('description', 'unknown error')}")
        logger.debug("Telegram message sent to chat %s", self._chat_id)
