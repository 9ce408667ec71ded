"""Per-session completion state and tuning knobs."""

import asyncio
from dataclasses import dataclass

DEFAULT_STABILITY_DELAY = 12.0
DEFAULT_RECHECK_INTERVAL = 3.0
DEFAULT_QUIET_WINDOW = 15.0
DEFAULT_MAX_EMPTY_RETRIES = 4
DEFAULT_RECENT_ACTIVITY_WINDOW = 30.0

# Stored as last_notified_fingerprint once a session is known to be a subagent.
SKIPPED_SUBAGENT = "__skipped_subagent__"


@dataclass(frozen=True)
class CompletionSettings:
    """Timing and retry bounds for completion detection (seconds)."""

    stability_delay: float = DEFAULT_STABILITY_DELAY
    recheck_interval: float = DEFAULT_RECHECK_INTERVAL
    quiet_window: float = DEFAULT_QUIET_WINDOW
    max_empty_retries: int = DEFAULT_MAX_EMPTY_RETRIES
    recent_activity_window: float = DEFAULT_RECENT_ACTIVITY_WINDOW


@dataclass
class SessionState:
    """Everything the bridge remembers about one session."""

    session_id: str
    last_activity_at: float = 0.0
    idle: bool = False
    busy_until: float = 0.0
    pending_timer: asyncio.Task | None = None
    in_flight: bool = False
    last_notified_fingerprint: str | None = None
    last_notified_assistant_key: str | None = None
    empty_retry_count: int = 0
    last_user_message_at: float = 0.0
    last_assistant_content_at: float = 0.0

    @property
    def timer_pending(self) -> bool:
        return self.pending_timer is not None and not self.pending_timer.done()

    @property
    def skipped_as_subagent(self) -> bool:
        return self.last_notified_fingerprint == SKIPPED_SUBAGENT
