"""Per-session single-shot delayed verification."""

import asyncio
from collections.abc import Awaitable, Callable

from sessionbridge.completion.state import SessionState
from sessionbridge.logging_config import setup_logger

logger = setup_logger("sessionbridge.debouncer")


class CompletionDebouncer:
    """Runs ``callback(session_id)`` once a session has been quiet for ``delay`` seconds.

    The live task handle is kept on ``SessionState.pending_timer``; scheduling
    always cancels the previous handle first, so a session never has more
    than one outstanding timer.
    """

    def __init__(self, delay: float, callback: Callable[[str], Awaitable[None]]):
        self.delay = delay
        self._callback = callback

    def schedule(self, state: SessionState, delay: float | None = None) -> asyncio.Task:
        """(Re)start the quiet-period clock for a session."""
        self.cancel(state)
        wait = self.delay if delay is None else delay
        task = asyncio.create_task(
            self._fire(state, wait), name=f"verify:{state.session_id}"
        )
        state.pending_timer = task
        logger.debug(f"Scheduled verification for {state.session_id} in {wait}s")
        return task

    def cancel(self, state: SessionState) -> bool:
        """Cancel the pending timer, if any. Returns True if one was cancelled."""
        task = state.pending_timer
        state.pending_timer = None
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug(f"Cancelled pending verification for {state.session_id}")
        return True

    async def _fire(self, state: SessionState, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return

        # Release the handle before running, so a schedule() issued during
        # verification starts a fresh timer instead of cancelling this one.
        if state.pending_timer is asyncio.current_task():
            state.pending_timer = None

        try:
            await self._callback(state.session_id)
        except Exception as e:
            logger.error(f"Verification for {state.session_id} failed: {e}", exc_info=True)
