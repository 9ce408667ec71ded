"""Telegram delivery for completion notifications."""

import asyncio
from typing import Any

import httpx

from sessionbridge.logging_config import setup_logger

logger = setup_logger("sessionbridge.telegram")

TELEGRAM_API_BASE = "https://api.telegram.org"
MAX_CHUNK_CHARS = 4000
MAX_ATTEMPTS = 3
BACKOFF_BASE = 1.0


def chunk_text(text: str, limit: int = MAX_CHUNK_CHARS) -> list[str]:
    """Split text on line boundaries into pieces no longer than ``limit``."""
    if len(text) <= limit:
        return [text]
    chunks: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        if len(current) + len(line) > limit:
            chunks.append(current)
            current = ""
        current += line
    if current:
        chunks.append(current)
    return [c.rstrip("\n") for c in chunks if c.strip()]


class TelegramApi:
    """Thin async wrapper around the Bot API with retry on transient errors."""

    def __init__(
        self,
        bot_token: str,
        transport: httpx.AsyncBaseTransport | None = None,
        backoff_base: float = BACKOFF_BASE,
    ):
        self._client = httpx.AsyncClient(
            base_url=f"{TELEGRAM_API_BASE}/bot{bot_token}",
            timeout=httpx.Timeout(10.0, read=40.0),
            transport=transport,
        )
        self.backoff_base = backoff_base

    async def close(self) -> None:
        await self._client.aclose()

    async def call(self, method: str, payload: dict[str, Any]) -> httpx.Response | None:
        """POST a Bot API method. Returns the last response, or None if unreachable."""
        response: httpx.Response | None = None
        for attempt in range(MAX_ATTEMPTS):
            delay = self.backoff_base * (2**attempt)
            try:
                response = await self._client.post(f"/{method}", json=payload)
            except httpx.HTTPError as e:
                logger.warning(f"Telegram [{method}] attempt {attempt + 1} failed: {e}")
                response = None
            else:
                if response.status_code == 429:
                    retry_after = _retry_after(response)
                    delay = retry_after if retry_after is not None else delay
                elif response.status_code < 500:
                    return response
                logger.warning(
                    f"Telegram [{method}] attempt {attempt + 1} got HTTP {response.status_code}"
                )
            if attempt < MAX_ATTEMPTS - 1:
                await asyncio.sleep(delay)
        return response


def _retry_after(response: httpx.Response) -> float | None:
    try:
        value = response.json().get("parameters", {}).get("retry_after")
    except ValueError:
        return None
    return float(value) if isinstance(value, (int, float)) else None


class TelegramNotifier:
    """Sends text to one chat; Markdown first, plain text when the markup is rejected."""

    def __init__(self, api: TelegramApi, chat_id: int):
        self.api = api
        self.chat_id = chat_id

    async def send(self, text: str, reply_to: int | None = None) -> bool:
        """Deliver every chunk of ``text``. Never raises."""
        try:
            for chunk in chunk_text(text):
                if not await self._send_chunk(chunk, reply_to):
                    return False
        except Exception as e:
            logger.error(f"Telegram send failed: {e}", exc_info=True)
            return False
        return True

    async def _send_chunk(self, chunk: str, reply_to: int | None) -> bool:
        payload: dict[str, Any] = {
            "chat_id": self.chat_id,
            "text": chunk,
            "parse_mode": "Markdown",
        }
        if reply_to:
            payload["reply_to_message_id"] = reply_to
            payload["allow_sending_without_reply"] = True

        response = await self.api.call("sendMessage", payload)
        if response is not None and response.is_success:
            return True

        if response is not None and response.status_code == 400:
            logger.info("Markdown send rejected, retrying as plain text")
            payload.pop("parse_mode")
            response = await self.api.call("sendMessage", payload)
            if response is not None and response.is_success:
                return True

        status = response.status_code if response is not None else "no response"
        logger.warning(f"Telegram sendMessage failed ({status})")
        return False
