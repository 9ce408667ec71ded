"""Inbound Telegram channel: replies become prompts for OpenCode sessions."""

import asyncio
from collections.abc import Callable
from typing import Any, Protocol

from sessionbridge.completion.coordinator import CompletionCoordinator
from sessionbridge.completion.status import format_status
from sessionbridge.completion.summary import extract_session_id
from sessionbridge.config import save_offset
from sessionbridge.logging_config import setup_logger
from sessionbridge.telegram.notifier import TelegramApi, TelegramNotifier

logger = setup_logger("sessionbridge.commands")

NO_SESSION_TEXT = "No active session. Reply to a notification to send commands."
HELP_TEXT = "\n".join(
    [
        "Reply to a completion notification to send its text to that session.",
        "Plain messages go to the most recent session.",
        "",
        "/status [session_id] - completion status of a session",
        "/help - this message",
    ]
)
MAX_BACKOFF = 60.0


class CommandDispatcher(Protocol):
    async def prompt(self, session_id: str, text: str) -> bool: ...


class TelegramCommandPoller:
    """Long-polls getUpdates and routes chat messages to sessions."""

    def __init__(
        self,
        api: TelegramApi,
        notifier: TelegramNotifier,
        dispatcher: CommandDispatcher,
        coordinator: CompletionCoordinator,
        chat_id: int,
        last_update_id: int = 0,
        poll_timeout: int = 25,
        persist_offset: Callable[[int], bool] = save_offset,
    ):
        self.api = api
        self.notifier = notifier
        self.dispatcher = dispatcher
        self.coordinator = coordinator
        self.chat_id = chat_id
        self.last_update_id = last_update_id
        self.poll_timeout = poll_timeout
        self._persist_offset = persist_offset

    async def run(self) -> None:
        """Poll forever; errors back off and retry."""
        backoff = 1.0
        while True:
            try:
                ok = await self.poll_once()
            except Exception as e:
                logger.error(f"Polling error: {e}", exc_info=True)
                ok = False
            if ok:
                backoff = 1.0
                continue
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, MAX_BACKOFF)

    async def poll_once(self) -> bool:
        """Fetch and handle one batch of updates. False when Telegram was unreachable."""
        response = await self.api.call(
            "getUpdates",
            {
                "offset": self.last_update_id + 1,
                "timeout": self.poll_timeout,
                "allowed_updates": ["message"],
            },
        )
        if response is None or not response.is_success:
            return False

        updates = response.json().get("result") or []
        for update in updates:
            self.last_update_id = max(self.last_update_id, int(update.get("update_id", 0)))
            try:
                await self.handle_update(update)
            except Exception as e:
                logger.error(f"Failed to handle update {update.get('update_id')}: {e}", exc_info=True)

        if updates:
            self._persist_offset(self.last_update_id)
        return True

    def _resolve_target(self, message: dict[str, Any]) -> str | None:
        reply = message.get("reply_to_message") or {}
        if reply.get("text"):
            session_id = extract_session_id(reply["text"])
            if session_id:
                return session_id
        return self.coordinator.current_session_id

    async def handle_update(self, update: dict[str, Any]) -> None:
        message = update.get("message")
        if not isinstance(message, dict):
            return
        if (message.get("chat") or {}).get("id") != self.chat_id:
            return
        text = message.get("text")
        if not text:
            return

        if text.startswith("/"):
            await self.handle_command(text, message)
            return

        target = self._resolve_target(message)
        if not target:
            await self.notifier.send(NO_SESSION_TEXT)
            return

        logger.info(f"Executing command from Telegram in {target}: {text[:80]}")
        if await self.dispatcher.prompt(target, text):
            self.coordinator.mark_busy(target)
            await self.notifier.send(f"✅ Command sent: {text[:50]}...")
        else:
            await self.notifier.send(f"❌ Could not send command to session `{target}`.")

    async def handle_command(self, text: str, message: dict[str, Any]) -> None:
        command, _, arg = text.partition(" ")
        command = command.split("@", 1)[0].lower()

        if command == "/help":
            await self.notifier.send(HELP_TEXT)
            return
        if command != "/status":
            return

        target = arg.strip() or self._resolve_target(message)
        if not target:
            await self.notifier.send(NO_SESSION_TEXT)
            return
        await self.notifier.send(await self.status_text(target))

    async def status_text(self, session_id: str) -> str:
        """Status report for a session, or a description of why there is none."""
        try:
            report = await self.coordinator.evaluate(session_id)
        except Exception as e:
            logger.error(f"Status query for {session_id} failed: {e}", exc_info=True)
            return f"Status unavailable for `{session_id}`: {e}"
        return format_status(report)
