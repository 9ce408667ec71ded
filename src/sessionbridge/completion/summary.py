"""Completion summary text sent to the notifier."""

import re

from sessionbridge.completion.evidence import ResponseEvidence
from sessionbridge.completion.models import Snapshot

MAX_REPLY_CHARS = 600
MAX_PENDING_LISTED = 3

SESSION_ID_PATTERN = re.compile(r"Session ID: `([^`]+)`")


def format_duration(seconds: float) -> str:
    """Render a duration as ``1h 2m``, ``3m 4s`` or ``5s``."""
    total = int(max(seconds, 0))
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def truncate(text: str, max_len: int = MAX_REPLY_CHARS) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3].rstrip() + "..."


def extract_session_id(text: str) -> str | None:
    """Pull the session id back out of a notification we sent earlier."""
    match = SESSION_ID_PATTERN.search(text)
    return match.group(1) if match else None


def compose_summary(
    snapshot: Snapshot,
    evidence: ResponseEvidence,
    project_name: str,
    now: float,
) -> str:
    """Build the "session complete" message for one verified snapshot."""
    lines = [
        "✅ *OpenCode Session Complete*",
        "",
        f"📁 Project: `{project_name}`",
    ]

    if snapshot.session and snapshot.session.title:
        lines.append(f"📋 Title: `{snapshot.session.title}`")

    if evidence.user_at:
        lines.append(f"⏱️ Duration: {format_duration(now - evidence.user_at)}")

    if snapshot.todos:
        done = len(snapshot.completed_todos)
        lines.append(f"📝 Progress: {done}/{len(snapshot.todos)} tasks")
        pending = snapshot.pending_todos
        if pending:
            lines.append("")
            lines.append("*Pending:*")
            lines.extend(f"  • {t.content}" for t in pending[:MAX_PENDING_LISTED])

    if evidence.assistant_text:
        lines.append("")
        lines.append(f"💬 {truncate(evidence.assistant_text)}")

    lines.append("")
    lines.append("Reply to this message to send commands to OpenCode.")
    lines.append(f"Session ID: `{snapshot.session_id}`")
    return "\n".join(lines)
