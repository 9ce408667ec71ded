"""Shared fakes for completion tests."""

import pytest

from sessionbridge.completion.models import Message, MessagePart, SessionInfo, Todo
from sessionbridge.completion.state import CompletionSettings


def msg(id: str, role: str, at: float | None, text: str | None = None) -> Message:
    parts = (MessagePart(type="text", text=text),) if text is not None else ()
    return Message(id=id, role=role, created_at=at, parts=parts)


def todo(content: str, status: str = "completed") -> Todo:
    return Todo(content=content, status=status)


class FakeSource:
    """In-memory session data source."""

    def __init__(self, session=None, messages=None, todos=None):
        self.session = session
        self.messages = list(messages or [])
        self.todos = list(todos or [])
        self.fail_session = False
        self.fail_messages = False
        self.fail_todos = False
        self.reads = 0

    async def get_session(self, session_id):
        if self.fail_session:
            raise RuntimeError("session lookup failed")
        return self.session

    async def list_messages(self, session_id):
        self.reads += 1
        if self.fail_messages:
            raise RuntimeError("messages unavailable")
        return list(self.messages)

    async def list_todos(self, session_id):
        if self.fail_todos:
            raise RuntimeError("todos unavailable")
        return list(self.todos)


class FakeNotifier:
    def __init__(self, result: bool = True):
        self.result = result
        self.sent: list[str] = []
        self.attempts = 0

    async def send(self, text: str) -> bool:
        self.attempts += 1
        if self.result:
            self.sent.append(text)
        return self.result


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings():
    return CompletionSettings(
        stability_delay=0.02,
        recheck_interval=0.0,
        quiet_window=15.0,
        max_empty_retries=4,
        recent_activity_window=30.0,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def finished_source():
    """A root session whose assistant answered the latest user message."""
    return FakeSource(
        session=SessionInfo(id="ses_1", title="Refactor auth module"),
        messages=[
            msg("m1", "user", 900.0, "please refactor auth"),
            msg("m2", "assistant", 950.0, "Done. Auth now uses JWT."),
        ],
        todos=[todo("write tests"), todo("update docs")],
    )
