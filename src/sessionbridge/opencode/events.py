"""Map raw OpenCode events onto lifecycle events."""

from typing import Any

from sessionbridge.completion.models import LifecycleEvent


def extract_session_id(event: dict[str, Any]) -> str | None:
    """Find the session an event refers to, wherever OpenCode put it."""
    props = event.get("properties")
    if not isinstance(props, dict):
        return None

    if isinstance(props.get("sessionID"), str):
        return props["sessionID"]

    for key in ("info", "part"):
        nested = props.get(key)
        if isinstance(nested, dict) and isinstance(nested.get("sessionID"), str):
            return nested["sessionID"]

    # session.updated / session.created carry the session itself as ``info``.
    info = props.get("info")
    if str(event.get("type", "")).startswith("session.") and isinstance(info, dict):
        if isinstance(info.get("id"), str):
            return info["id"]
    return None


def is_idle_event(event: dict[str, Any]) -> bool:
    event_type = event.get("type")
    if event_type == "session.idle":
        return True
    if event_type == "session.status":
        status = (event.get("properties") or {}).get("status")
        return isinstance(status, dict) and status.get("type") == "idle"
    return False


def parse_event(event: dict[str, Any]) -> LifecycleEvent | None:
    """Return a LifecycleEvent, or None for events without a session."""
    session_id = extract_session_id(event)
    if not session_id:
        return None
    return LifecycleEvent(
        type=str(event.get("type", "")),
        session_id=session_id,
        is_idle=is_idle_event(event),
    )
