"""HTTP client for a running OpenCode server."""

import json
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import quote

import httpx

from sessionbridge.completion.models import Message, MessagePart, SessionInfo, Todo
from sessionbridge.logging_config import setup_logger

logger = setup_logger("sessionbridge.opencode")


class OpenCodeError(Exception):
    """A request to the OpenCode server failed."""


def parse_session(data: dict[str, Any]) -> SessionInfo:
    return SessionInfo(
        id=data.get("id", ""),
        title=data.get("title") or None,
        parent_id=data.get("parentID") or None,
    )


def parse_message(data: dict[str, Any]) -> Message:
    """Convert an OpenCode ``{info, parts}`` message; timestamps arrive in ms."""
    info = data.get("info") or {}
    created = (info.get("time") or {}).get("created")
    parts = [
        MessagePart(type=p.get("type", ""), text=p.get("text"))
        for p in data.get("parts") or []
        if isinstance(p, dict)
    ]
    return Message(
        id=info.get("id", ""),
        role=info.get("role", ""),
        created_at=created / 1000.0 if isinstance(created, (int, float)) else None,
        parts=tuple(parts),
    )


def parse_todo(data: dict[str, Any]) -> Todo:
    return Todo(
        content=data.get("content", ""),
        status=data.get("status", ""),
        id=data.get("id"),
        priority=data.get("priority"),
    )


class OpenCodeClient:
    """Session data source and command dispatcher backed by the OpenCode API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise OpenCodeError(f"{method} {path}: {e}") from e
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise OpenCodeError(f"{method} {path}: invalid JSON") from e

    @staticmethod
    def _path(session_id: str, suffix: str = "") -> str:
        return f"/session/{quote(session_id, safe='')}{suffix}"

    async def get_session(self, session_id: str) -> SessionInfo | None:
        data = await self._request("GET", self._path(session_id))
        return parse_session(data) if isinstance(data, dict) else None

    async def list_messages(self, session_id: str) -> list[Message]:
        data = await self._request("GET", self._path(session_id, "/message"))
        return [parse_message(m) for m in data or [] if isinstance(m, dict)]

    async def list_todos(self, session_id: str) -> list[Todo]:
        data = await self._request("GET", self._path(session_id, "/todo"))
        return [parse_todo(t) for t in data or [] if isinstance(t, dict)]

    async def prompt(self, session_id: str, text: str) -> bool:
        """Queue a user message in the session without waiting for the reply."""
        try:
            await self._request(
                "POST",
                self._path(session_id, "/prompt_async"),
                json={"parts": [{"type": "text", "text": text}]},
            )
        except OpenCodeError as e:
            logger.error(f"Failed to send prompt to {session_id}: {e}")
            return False
        return True

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded server-sent events from ``/event`` until the stream ends."""
        try:
            async with self._client.stream("GET", "/event", timeout=None) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    payload = line[len("data:"):].strip()
                    if not payload:
                        continue
                    try:
                        event = json.loads(payload)
                    except json.JSONDecodeError:
                        logger.debug(f"Ignoring undecodable event: {payload[:80]}")
                        continue
                    if isinstance(event, dict):
                        yield event
        except httpx.HTTPError as e:
            raise OpenCodeError(f"event stream: {e}") from e
