"""Configuration and directory management for SessionBridge."""

import json
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sessionbridge.logging_config import setup_logger

logger = setup_logger("sessionbridge.config")

CONFIG_DIR = Path.home() / ".config" / "opencode"
CONFIG_FILE = CONFIG_DIR / "telegram-bridge.json"
LOG_DIR = CONFIG_DIR / "logs"

DEFAULT_OPENCODE_URL = "http://127.0.0.1:4096"

# Environment overrides, checked before the config file
ENV_BOT_TOKEN = "TELEGRAM_BOT_TOKEN"
ENV_CHAT_ID = "TELEGRAM_CHAT_ID"
ENV_OPENCODE_URL = "OPENCODE_URL"
ENV_CONFIG_PATH = "SESSIONBRIDGE_CONFIG"


class BridgeConfig(BaseModel):
    """Bridge settings as stored in telegram-bridge.json."""

    model_config = ConfigDict(populate_by_name=True)

    bot_token: str = Field(alias="botToken", description="Telegram bot token")
    chat_id: int = Field(alias="chatId", description="Chat that receives notifications")
    last_update_id: int = Field(default=0, alias="lastUpdateId")
    opencode_url: str = Field(default=DEFAULT_OPENCODE_URL, alias="opencodeUrl")
    project_name: str | None = Field(default=None, alias="projectName")
    stability_delay: float = Field(default=12.0, alias="stabilityDelay")
    recheck_interval: float = Field(default=3.0, alias="recheckInterval")
    quiet_window: float = Field(default=15.0, alias="quietWindow")
    max_empty_retries: int = Field(default=4, alias="maxEmptyRetries")
    recent_activity_window: float = Field(default=30.0, alias="recentActivityWindow")
    poll_timeout: int = Field(default=25, alias="pollTimeout")

    def masked_token(self) -> str:
        if len(self.bot_token) <= 8:
            return "****"
        return f"{self.bot_token[:4]}...{self.bot_token[-4:]}"


def config_path() -> Path:
    """Resolve the config file, honoring SESSIONBRIDGE_CONFIG."""
    override = os.getenv(ENV_CONFIG_PATH)
    if override:
        return Path(override).expanduser()
    return CONFIG_FILE


def _read_raw(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as e:
        logger.error(f"Unreadable config file {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def load_config(path: Path | None = None) -> BridgeConfig | None:
    """Load the bridge config, or None when credentials are missing."""
    path = path or config_path()
    raw = _read_raw(path)

    if os.getenv(ENV_BOT_TOKEN):
        raw["botToken"] = os.environ[ENV_BOT_TOKEN]
    if os.getenv(ENV_CHAT_ID):
        raw["chatId"] = os.environ[ENV_CHAT_ID]
    if os.getenv(ENV_OPENCODE_URL):
        raw["opencodeUrl"] = os.environ[ENV_OPENCODE_URL]

    if not raw.get("botToken") or not raw.get("chatId"):
        return None
    try:
        return BridgeConfig.model_validate(raw)
    except ValidationError as e:
        logger.error(f"Invalid config in {path}: {e}")
        return None


def save_config(config: BridgeConfig, path: Path | None = None) -> Path:
    """Write the config file (camelCase keys)."""
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(by_alias=True, exclude_none=True)
    path.write_text(json.dumps(data, indent=2) + "\n")
    return path


def save_offset(last_update_id: int, path: Path | None = None) -> bool:
    """Persist only the Telegram polling offset, keeping other keys intact."""
    path = path or config_path()
    try:
        raw: dict = {}
        if path.exists():
            try:
                raw = json.loads(path.read_text())
            except json.JSONDecodeError as e:
                logger.warning(f"Not persisting polling offset, {path} is unreadable: {e}")
                return False
            if not isinstance(raw, dict):
                logger.warning(f"Not persisting polling offset, {path} is not a JSON object")
                return False
        raw["lastUpdateId"] = last_update_id
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(raw, indent=2) + "\n")
        return True
    except OSError as e:
        logger.warning(f"Failed to persist polling offset: {e}")
        return False
