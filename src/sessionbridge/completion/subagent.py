"""Primary vs. child-session classification."""

from sessionbridge.completion.models import SessionInfo

# Lowercase title fragments that OpenCode puts on delegated sessions.
SUBAGENT_TITLE_MARKERS = (
    "subagent",
    "sub-agent",
    "@general",
    "@explore",
    "@oracle",
    "@librarian",
)


def is_subagent_session(session: SessionInfo | None) -> bool:
    """Whether a session was spawned by another one and should not notify."""
    if session is None:
        return False
    if session.parent_id:
        return True
    title = (session.title or "").lower()
    return any(marker in title for marker in SUBAGENT_TITLE_MARKERS)
