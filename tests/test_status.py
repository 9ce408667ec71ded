"""Tests for the status classifier."""

import asyncio

import pytest

from conftest import msg, todo
from sessionbridge.completion.fingerprint import build_fingerprint
from sessionbridge.completion.models import Snapshot
from sessionbridge.completion.state import SKIPPED_SUBAGENT, CompletionSettings, SessionState
from sessionbridge.completion.status import (
    BUSY,
    COMPLETED,
    FINALIZING,
    IDLE,
    QUIET,
    SKIPPED,
    STABILIZING,
    classify_status,
    format_status,
)

NOW = 1_000.0
SETTINGS = CompletionSettings()


@pytest.fixture
def snapshot():
    return Snapshot(
        session_id="ses_1",
        messages=(msg("m1", "user", 900.0, "go"), msg("m2", "assistant", 950.0, "done")),
        todos=(todo("t1"), todo("t2")),
        taken_at=NOW,
    )


class TestClassifyStatus:
    def test_unknown_session_is_quiet(self, snapshot):
        report = classify_status(None, snapshot, NOW, SETTINGS)
        assert report.status == QUIET
        assert report.confidence == "low"
        assert report.todo_done == 2
        assert report.todo_total == 2

    def test_finalizing(self, snapshot):
        state = SessionState(session_id="ses_1", in_flight=True)
        report = classify_status(state, snapshot, NOW, SETTINGS)
        assert report.status == FINALIZING
        assert report.confidence == "high"

    @pytest.mark.asyncio
    async def test_stabilizing(self, snapshot):
        state = SessionState(session_id="ses_1")
        state.pending_timer = asyncio.create_task(asyncio.sleep(1))
        try:
            report = classify_status(state, snapshot, NOW, SETTINGS)
        finally:
            state.pending_timer.cancel()
        assert report.status == STABILIZING

    def test_pending_todos_are_busy(self, snapshot):
        busy = snapshot.model_copy(update={"todos": (todo("t1", "in_progress"),)})
        report = classify_status(SessionState(session_id="ses_1", idle=True), busy, NOW, SETTINGS)
        assert report.status == BUSY
        assert any("todo" in r for r in report.reasons)

    def test_busy_window(self, snapshot):
        state = SessionState(session_id="ses_1", idle=True, busy_until=NOW + 5)
        assert classify_status(state, snapshot, NOW, SETTINGS).status == BUSY

    def test_recent_activity_without_idle(self, snapshot):
        state = SessionState(session_id="ses_1", last_activity_at=NOW - 2)
        report = classify_status(state, snapshot, NOW, SETTINGS)
        assert report.status == BUSY
        assert report.confidence == "medium"

    def test_unanswered_user_message(self):
        snapshot = Snapshot(session_id="ses_1", messages=(msg("m1", "user", 900.0, "go"),))
        state = SessionState(session_id="ses_1", idle=True)
        assert classify_status(state, snapshot, NOW, SETTINGS).status == BUSY

    def test_completed(self, snapshot):
        state = SessionState(
            session_id="ses_1",
            idle=True,
            last_notified_fingerprint=build_fingerprint(snapshot.messages, snapshot.todos),
        )
        report = classify_status(state, snapshot, NOW, SETTINGS)
        assert report.status == COMPLETED
        assert report.confidence == "high"

    def test_idle_not_reported(self, snapshot):
        state = SessionState(session_id="ses_1", idle=True, last_activity_at=NOW - 100)
        report = classify_status(state, snapshot, NOW, SETTINGS)
        assert report.status == IDLE
        assert report.confidence == "low"

    def test_skipped_subagent(self, snapshot):
        state = SessionState(session_id="ses_1", last_notified_fingerprint=SKIPPED_SUBAGENT)
        assert classify_status(state, snapshot, NOW, SETTINGS).status == SKIPPED

    def test_does_not_mutate_state(self, snapshot):
        state = SessionState(session_id="ses_1", idle=True, last_activity_at=NOW - 1)
        before = dict(state.__dict__)
        classify_status(state, snapshot, NOW, SETTINGS)
        assert state.__dict__ == before


class TestFormatStatus:
    def test_report_text(self, snapshot):
        report = classify_status(
            SessionState(session_id="ses_1", idle=True, last_activity_at=NOW - 100),
            snapshot,
            NOW,
            SETTINGS,
        )
        text = format_status(report)
        assert "Session `ses_1`" in text
        assert "IDLE (quiet)" in text
        assert "Todos: 2/2" in text
