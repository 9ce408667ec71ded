"""Session data models for completion detection."""

import time

from pydantic import BaseModel, ConfigDict, Field


class MessagePart(BaseModel):
    """One part of a message; only text parts carry content we report."""

    model_config = ConfigDict(frozen=True)

    type: str
    text: str | None = None


class Message(BaseModel):
    """A session message as returned by the session data source."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: str = Field(description="Author role (user, assistant, ...)")
    created_at: float | None = Field(default=None, description="Epoch seconds")
    parts: tuple[MessagePart, ...] = ()

    @property
    def text(self) -> str:
        """Concatenated text of all text parts, stripped."""
        chunks = [p.text for p in self.parts if p.type == "text" and p.text]
        return "\n".join(chunks).strip()


class Todo(BaseModel):
    """A todo item tracked by the agent."""

    model_config = ConfigDict(frozen=True)

    content: str
    status: str
    id: str | None = None
    priority: str | None = None

    @property
    def is_done(self) -> bool:
        return self.status in ("completed", "cancelled")


class SessionInfo(BaseModel):
    """Session metadata."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str | None = None
    parent_id: str | None = None


class Snapshot(BaseModel):
    """An immutable read of one session at one instant."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    session: SessionInfo | None = None
    messages: tuple[Message, ...] = ()
    todos: tuple[Todo, ...] = ()
    taken_at: float = Field(default_factory=time.time)

    @property
    def pending_todos(self) -> list[Todo]:
        return [t for t in self.todos if not t.is_done]

    @property
    def completed_todos(self) -> list[Todo]:
        return [t for t in self.todos if t.status == "completed"]


class LifecycleEvent(BaseModel):
    """A session-scoped event from the agent's event stream."""

    type: str
    session_id: str
    is_idle: bool = False


class StatusSnapshot(BaseModel):
    """Read-only status report for one session."""

    session_id: str
    status: str
    confidence: str
    reasons: list[str] = Field(default_factory=list)
    fingerprint: str = ""
    todo_done: int = 0
    todo_total: int = 0
    last_activity_at: float | None = None
    empty_retry_count: int = 0
