"""Wires the OpenCode event stream, completion detection and Telegram together."""

import asyncio
from pathlib import Path

from sessionbridge.completion.coordinator import CompletionCoordinator
from sessionbridge.completion.state import CompletionSettings
from sessionbridge.config import BridgeConfig, config_path, load_config
from sessionbridge.logging_config import setup_logger
from sessionbridge.opencode.client import OpenCodeClient, OpenCodeError
from sessionbridge.opencode.events import parse_event
from sessionbridge.telegram.commands import TelegramCommandPoller
from sessionbridge.telegram.notifier import TelegramApi, TelegramNotifier

logger = setup_logger("sessionbridge.bridge")

INITIAL_RECONNECT_DELAY = 1.0
MAX_RECONNECT_DELAY = 30.0


def settings_from_config(config: BridgeConfig) -> CompletionSettings:
    return CompletionSettings(
        stability_delay=config.stability_delay,
        recheck_interval=config.recheck_interval,
        quiet_window=config.quiet_window,
        max_empty_retries=config.max_empty_retries,
        recent_activity_window=config.recent_activity_window,
    )


class Bridge:
    """One running bridge: a coordinator plus its collaborators."""

    def __init__(
        self,
        config: BridgeConfig,
        opencode: OpenCodeClient | None = None,
        api: TelegramApi | None = None,
    ):
        self.config = config
        self.opencode = opencode or OpenCodeClient(config.opencode_url)
        self.api = api or TelegramApi(config.bot_token)
        self.notifier = TelegramNotifier(self.api, config.chat_id)
        self.coordinator = CompletionCoordinator(
            self.opencode,
            self.notifier,
            settings=settings_from_config(config),
            project_name=config.project_name or Path.cwd().name or "Unknown",
        )
        self.poller = TelegramCommandPoller(
            self.api,
            self.notifier,
            self.opencode,
            self.coordinator,
            chat_id=config.chat_id,
            last_update_id=config.last_update_id,
            poll_timeout=config.poll_timeout,
        )

    @classmethod
    def from_config(cls) -> "Bridge | None":
        """Build a bridge from the config file, or None when it is not configured."""
        config = load_config()
        if config is None:
            logger.error(
                f"Config not found. Create {config_path()} with "
                '{ "botToken": "YOUR_TOKEN", "chatId": YOUR_CHAT_ID }'
            )
            return None
        return cls(config)

    async def consume_events(self) -> None:
        """Feed the OpenCode event stream to the coordinator, reconnecting forever."""
        delay = INITIAL_RECONNECT_DELAY
        while True:
            try:
                async for raw in self.opencode.events():
                    delay = INITIAL_RECONNECT_DELAY
                    event = parse_event(raw)
                    if event is not None:
                        self.coordinator.handle_event(event)
                logger.info("OpenCode event stream closed, reconnecting")
            except OpenCodeError as e:
                logger.warning(f"OpenCode event stream unavailable: {e}")
            except Exception as e:
                logger.error(f"OpenCode event stream failed: {e}", exc_info=True)
            await asyncio.sleep(delay)
            delay = min(delay * 2, MAX_RECONNECT_DELAY)

    async def run(self) -> None:
        logger.info(
            f"Bridge started for project {self.coordinator.project_name} "
            f"(OpenCode at {self.config.opencode_url})"
        )
        try:
            await asyncio.gather(self.consume_events(), self.poller.run())
        finally:
            self.coordinator.shutdown()
            await self.opencode.close()
            await self.api.close()
