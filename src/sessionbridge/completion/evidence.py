"""Evidence of a final assistant response, and the empty-response retry gate."""

from collections.abc import Sequence
from dataclasses import dataclass

from sessionbridge.completion.models import Message
from sessionbridge.completion.state import SessionState


@dataclass(frozen=True)
class ResponseEvidence:
    """Latest user input and latest non-empty assistant output in a message list."""

    user_at: float = 0.0
    assistant_at: float = 0.0
    assistant_text: str = ""
    assistant_key: str | None = None


def collect_evidence(messages: Sequence[Message]) -> ResponseEvidence:
    user_at = 0.0
    assistant: Message | None = None
    for message in messages:
        if message.role == "user":
            user_at = max(user_at, message.created_at or 0.0)
        elif message.role == "assistant" and message.text:
            if assistant is None or (message.created_at or 0.0) >= (assistant.created_at or 0.0):
                assistant = message
    if assistant is None:
        return ResponseEvidence(user_at=user_at)
    return ResponseEvidence(
        user_at=user_at,
        assistant_at=assistant.created_at or 0.0,
        assistant_text=assistant.text,
        assistant_key=assistant.id,
    )


def advance_timestamps(state: SessionState, evidence: ResponseEvidence) -> None:
    """Move the state's evidence timestamps forward; never backward."""
    state.last_user_message_at = max(state.last_user_message_at, evidence.user_at)
    state.last_assistant_content_at = max(
        state.last_assistant_content_at, evidence.assistant_at
    )


def has_final_response(user_at: float, assistant_at: float, assistant_text: str) -> bool:
    """Assistant content exists and was produced after the latest user input."""
    return bool(assistant_text) and assistant_at > user_at


def retry_gate(
    final_response: bool, retry_count: int, max_retries: int
) -> tuple[bool, int]:
    """Decide whether to defer finalizing.

    Returns ``(defer, new_retry_count)``. A missing response defers while the
    incremented count stays within ``max_retries``; past that the gate opens so
    a session is never left silently un-notified.
    """
    if final_response:
        return False, retry_count
    new_count = retry_count + 1
    return new_count <= max_retries, new_count
