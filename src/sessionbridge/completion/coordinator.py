"""Completion coordinator: decides, once per finished state, that a session is done.

Idle events restart a per-session quiet timer. When it fires, the session is
read twice a few seconds apart; only an unchanged, not-yet-reported state
with a real assistant reply produces a notification.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar

from sessionbridge.completion.debouncer import CompletionDebouncer
from sessionbridge.completion.evidence import (
    advance_timestamps,
    collect_evidence,
    has_final_response,
    retry_gate,
)
from sessionbridge.completion.fingerprint import build_fingerprint, should_finalize
from sessionbridge.completion.models import (
    LifecycleEvent,
    Message,
    SessionInfo,
    Snapshot,
    StatusSnapshot,
    Todo,
)
from sessionbridge.completion.state import (
    SKIPPED_SUBAGENT,
    CompletionSettings,
    SessionState,
)
from sessionbridge.completion.status import classify_status
from sessionbridge.completion.subagent import is_subagent_session
from sessionbridge.completion.summary import compose_summary
from sessionbridge.logging_config import setup_logger

logger = setup_logger("sessionbridge.coordinator")

T = TypeVar("T")

# Events that name the session the user is currently working with.
FOCUS_EVENTS = ("session.idle", "session.active")


class SessionDataSource(Protocol):
    async def get_session(self, session_id: str) -> SessionInfo | None: ...

    async def list_messages(self, session_id: str) -> list[Message]: ...

    async def list_todos(self, session_id: str) -> list[Todo]: ...


class Notifier(Protocol):
    async def send(self, text: str) -> bool: ...


class CompletionCoordinator:
    """Owns all per-session state and runs the verification pipeline."""

    def __init__(
        self,
        source: SessionDataSource,
        notifier: Notifier,
        settings: CompletionSettings | None = None,
        project_name: str = "Unknown",
        clock: Callable[[], float] = time.time,
    ):
        self.source = source
        self.notifier = notifier
        self.settings = settings or CompletionSettings()
        self.project_name = project_name
        self.current_session_id: str | None = None
        self._clock = clock
        self._sessions: dict[str, SessionState] = {}
        self.debouncer = CompletionDebouncer(self.settings.stability_delay, self.verify)

    # ── State map ────────────────────────────────────────────────

    def state_for(self, session_id: str) -> SessionState:
        """Get the session's state record, creating it on first sight."""
        state = self._sessions.get(session_id)
        if state is None:
            state = SessionState(session_id=session_id)
            self._sessions[session_id] = state
        return state

    def get_state(self, session_id: str) -> SessionState | None:
        return self._sessions.get(session_id)

    def tracked_sessions(self) -> list[SessionState]:
        return list(self._sessions.values())

    # ── Activity tracking ────────────────────────────────────────

    def record_event(self, session_id: str, is_idle: bool) -> None:
        """Note activity for a session; idle transitions (re)arm the quiet timer."""
        state = self.state_for(session_id)
        now = self._clock()
        state.last_activity_at = now

        if not is_idle:
            state.idle = False
            state.busy_until = now + self.settings.quiet_window
            self.debouncer.cancel(state)
            return

        state.idle = True
        self.debouncer.schedule(state)

    def mark_busy(self, session_id: str) -> None:
        """Open the busy window after a command was sent to the session."""
        self.record_event(session_id, is_idle=False)

    def handle_event(self, event: LifecycleEvent) -> None:
        """Route one lifecycle event. Never raises."""
        try:
            if event.type in FOCUS_EVENTS:
                self.current_session_id = event.session_id
            self.record_event(event.session_id, event.is_idle)
        except Exception as e:
            logger.error(f"Failed to handle {event.type} for {event.session_id}: {e}", exc_info=True)

    # ── Snapshots ────────────────────────────────────────────────

    async def _fetch(
        self,
        what: str,
        session_id: str,
        call: Callable[[str], Awaitable[T]],
        default: T,
    ) -> T:
        try:
            return await call(session_id)
        except Exception as e:
            logger.warning(f"Failed to fetch {what} for {session_id}: {e}")
            return default

    async def capture(
        self, session_id: str, session: SessionInfo | None = None
    ) -> Snapshot:
        """Read metadata, messages and todos. Failed reads count as empty."""
        if session is None:
            session = await self._fetch("session", session_id, self.source.get_session, None)
        messages = await self._fetch("messages", session_id, self.source.list_messages, [])
        todos = await self._fetch("todos", session_id, self.source.list_todos, [])
        return Snapshot(
            session_id=session_id,
            session=session,
            messages=tuple(messages),
            todos=tuple(todos),
            taken_at=self._clock(),
        )

    # ── Verification ─────────────────────────────────────────────

    async def verify(self, session_id: str) -> None:
        """Run one stability pass for a session; concurrent passes are dropped."""
        state = self.state_for(session_id)
        if state.in_flight:
            logger.debug(f"Verification already running for {session_id}")
            return

        state.in_flight = True
        try:
            await self._verify(state)
        finally:
            state.in_flight = False

    async def _verify(self, state: SessionState) -> None:
        session_id = state.session_id
        if state.skipped_as_subagent:
            # Permanent: a later failed metadata read must not revive it.
            logger.debug(f"{session_id} is a subagent session, not verifying")
            return

        first = await self.capture(session_id)
        fingerprint_a = build_fingerprint(first.messages, first.todos)

        if is_subagent_session(first.session):
            logger.info(f"Skipping subagent session {session_id}")
            state.last_notified_fingerprint = SKIPPED_SUBAGENT
            state.empty_retry_count = 0
            return

        if self._clock() < state.busy_until:
            # Activity arrived after the idle signal; not unstable, just early.
            logger.debug(f"{session_id} still inside busy window, rescheduling")
            self.debouncer.schedule(state)
            return

        await asyncio.sleep(self.settings.recheck_interval)

        second = await self.capture(session_id, session=first.session)
        fingerprint_b = build_fingerprint(second.messages, second.todos)

        if fingerprint_a != fingerprint_b:
            logger.info(f"{session_id} changed during recheck, not finalizing")
            return
        if not should_finalize(fingerprint_a, fingerprint_b, state.last_notified_fingerprint):
            logger.debug(f"{session_id} already reported for this state")
            return

        evidence = collect_evidence(second.messages)
        advance_timestamps(state, evidence)
        final = has_final_response(
            state.last_user_message_at,
            state.last_assistant_content_at,
            evidence.assistant_text,
        )
        defer, state.empty_retry_count = retry_gate(
            final, state.empty_retry_count, self.settings.max_empty_retries
        )
        if defer:
            logger.info(
                f"No final reply yet for {session_id} "
                f"(attempt {state.empty_retry_count}/{self.settings.max_empty_retries}), rescheduling"
            )
            self.debouncer.schedule(state)
            return
        if not final:
            logger.warning(
                f"Notifying {session_id} without a final reply after "
                f"{self.settings.max_empty_retries} retries"
            )

        if evidence.assistant_key and evidence.assistant_key == state.last_notified_assistant_key:
            logger.info(f"Reply {evidence.assistant_key} of {session_id} already reported")
            state.last_notified_fingerprint = fingerprint_b
            state.empty_retry_count = 0
            return

        text = compose_summary(second, evidence, self.project_name, self._clock())
        if not await self._deliver(session_id, text):
            return

        state.last_notified_fingerprint = fingerprint_b
        if evidence.assistant_key:
            state.last_notified_assistant_key = evidence.assistant_key
        state.empty_retry_count = 0
        logger.info(f"Completion notification sent for {session_id}")

    async def _deliver(self, session_id: str, text: str) -> bool:
        try:
            delivered = await self.notifier.send(text)
        except Exception as e:
            logger.error(f"Notifier raised for {session_id}: {e}", exc_info=True)
            return False
        if not delivered:
            logger.warning(f"Completion notification for {session_id} was not delivered")
        return bool(delivered)

    # ── Status ───────────────────────────────────────────────────

    async def evaluate(self, session_id: str) -> StatusSnapshot:
        """Classify a session from a fresh snapshot without touching its state."""
        snapshot = await self.capture(session_id)
        return classify_status(
            self._sessions.get(session_id), snapshot, self._clock(), self.settings
        )

    def shutdown(self) -> None:
        """Cancel every pending timer."""
        for state in self._sessions.values():
            self.debouncer.cancel(state)
