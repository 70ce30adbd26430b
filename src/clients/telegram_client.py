"""Telegram Bot API client (HTML messages to a single chat)."""

from __future__ import annotations

import logging

import httpx

from src.config import settings
from src.errors import SinkAPIError

logger = logging.getLogger(__name__)

_TELEGRAM_API = "https://api.telegram.org/bot{token}/{method}"


class TelegramClient:
    """Send messages via the Telegram Bot API."""

    def __init__(self, bot_token: str, chat_id: str) -> None:
        if not bot_token or not chat_id:
            raise RuntimeError("Telegram not configured — set telegram_bot_token and telegram_chat_id")
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._client = httpx.AsyncClient(timeout=settings.telegram_timeout_seconds)

    async def _call(self, method: str, payload: dict | None = None) -> dict:
        """Call one Bot API method and return its ``result``."""
        url = _TELEGRAM_API.format(token=self._bot_token, method=method)
        try:
            resp = await self._client.post(url, json=payload or {})
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SinkAPIError(f"Telegram request failed: {exc}") from exc

        if not data.get("ok"):
            description = data.get("description", f"HTTP {resp.status_code}")
            logger.error("Telegram API error on %s: %s", method, description)
            raise SinkAPIError(f"Telegram API error: {description}")
        return data.get("result", {})

    async def send_message(self, text: str) -> dict:
        """Post an HTML message to the configured chat."""
        result = await self._call("sendMessage", {
            "chat_id": self._chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        })
        logger.debug("Telegram message sent to %s", self._chat_id)
        return result

    async def get_me(self) -> dict:
        return await self._call("getMe")

    async def close(self) -> None:
        await self._client.aclose()
