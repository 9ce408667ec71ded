"""Human-readable status derived from completion state.

Nothing here mutates the state it reads; the classifier is safe to call at
any time, including while a verification pass is running.
"""

from datetime import datetime

from sessionbridge.completion.evidence import collect_evidence, has_final_response
from sessionbridge.completion.fingerprint import build_fingerprint
from sessionbridge.completion.models import Snapshot, StatusSnapshot
from sessionbridge.completion.state import CompletionSettings, SessionState

FINALIZING = "FINALIZING"
STABILIZING = "STABILIZING"
BUSY = "BUSY"
COMPLETED = "COMPLETED (notified)"
IDLE = "IDLE (quiet)"
QUIET = "QUIET (unconfirmed)"
SKIPPED = "SKIPPED (subagent)"

HIGH_CONFIDENCE = {FINALIZING, COMPLETED, SKIPPED}


def classify_status(
    state: SessionState | None,
    snapshot: Snapshot,
    now: float,
    settings: CompletionSettings,
) -> StatusSnapshot:
    """Project the session's state plus a fresh snapshot onto a status label."""
    state = state or SessionState(session_id=snapshot.session_id)
    fingerprint = build_fingerprint(snapshot.messages, snapshot.todos)
    evidence = collect_evidence(snapshot.messages)
    user_at = max(state.last_user_message_at, evidence.user_at)
    assistant_at = max(state.last_assistant_content_at, evidence.assistant_at)
    recently_active = (
        state.last_activity_at > 0
        and now - state.last_activity_at < settings.recent_activity_window
    )

    reasons: list[str] = []
    if state.skipped_as_subagent:
        status = SKIPPED
        reasons.append("child or subagent session")
    elif state.in_flight:
        status = FINALIZING
        reasons.append("verification pass running")
    elif state.timer_pending:
        status = STABILIZING
        reasons.append("waiting out the quiet period")
    else:
        pending = snapshot.pending_todos
        if pending:
            reasons.append(f"{len(pending)} todo(s) not finished")
        if now < state.busy_until:
            reasons.append("inside busy window")
        if recently_active and not state.idle:
            reasons.append("recent activity, not marked idle")
        if user_at and not has_final_response(user_at, assistant_at, evidence.assistant_text):
            reasons.append("no assistant reply after latest user message")

        if reasons:
            status = BUSY
        elif state.last_notified_fingerprint == fingerprint:
            status = COMPLETED
            reasons.append("current state already reported")
        elif state.idle:
            status = IDLE
            reasons.append("idle, not yet reported")
        else:
            status = QUIET
            reasons.append("no idle signal observed")

    if status in HIGH_CONFIDENCE:
        confidence = "high"
    elif recently_active:
        confidence = "medium"
    else:
        confidence = "low"

    return StatusSnapshot(
        session_id=snapshot.session_id,
        status=status,
        confidence=confidence,
        reasons=reasons,
        fingerprint=fingerprint,
        todo_done=len(snapshot.completed_todos),
        todo_total=len(snapshot.todos),
        last_activity_at=state.last_activity_at or None,
        empty_retry_count=state.empty_retry_count,
    )


def format_status(report: StatusSnapshot) -> str:
    """Plain-text rendering for chat replies."""
    lines = [
        f"Session `{report.session_id}`",
        f"Status: {report.status} (confidence: {report.confidence})",
    ]
    if report.todo_total:
        lines.append(f"Todos: {report.todo_done}/{report.todo_total}")
    if report.last_activity_at:
        seen = datetime.fromtimestamp(report.last_activity_at).strftime("%H:%M:%S")
        lines.append(f"Last activity: {seen}")
    if report.empty_retry_count:
        lines.append(f"Empty-response retries: {report.empty_retry_count}")
    for reason in report.reasons:
        lines.append(f"  • {reason}")
    return "\n".join(lines)
