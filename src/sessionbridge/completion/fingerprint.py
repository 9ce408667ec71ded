"""Change-detection fingerprints over a session's recent messages and todos."""

from collections.abc import Sequence

from sessionbridge.completion.models import Message, Todo

TAIL_SIZE = 5
GROUP_SEPARATOR = "::"
ITEM_SEPARATOR = "|"


def build_fingerprint(messages: Sequence[Message], todos: Sequence[Todo]) -> str:
    """Encode message count, the last few ``id:role`` pairs and every todo.

    Two reads of an unchanged session give identical strings; a new trailing
    message or any todo edit changes the result.
    """
    tail = ITEM_SEPARATOR.join(f"{m.id}:{m.role}" for m in messages[-TAIL_SIZE:])
    todo_part = ITEM_SEPARATOR.join(f"{t.content}:{t.status}" for t in todos)
    return GROUP_SEPARATOR.join([str(len(messages)), tail, todo_part])


def should_finalize(
    fingerprint_a: str, fingerprint_b: str, previous: str | None
) -> bool:
    """True when the session held still between reads and is not already reported."""
    if fingerprint_a != fingerprint_b:
        return False
    return previous != fingerprint_b
