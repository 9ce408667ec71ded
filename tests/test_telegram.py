"""Tests for Telegram delivery and the inbound command channel."""

import json

import httpx
import pytest

from conftest import FakeNotifier, FakeSource
from sessionbridge.completion.coordinator import CompletionCoordinator
from sessionbridge.completion.state import CompletionSettings
from sessionbridge.telegram.commands import NO_SESSION_TEXT, TelegramCommandPoller
from sessionbridge.telegram.notifier import TelegramApi, TelegramNotifier, chunk_text

CHAT_ID = 4242


class Recorder:
    """MockTransport handler that replays canned responses and records requests."""

    def __init__(self, *responses: httpx.Response):
        self.responses = list(responses)
        self.requests: list[tuple[str, dict]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.url.path.rsplit("/", 1)[-1], json.loads(request.content)))
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


def ok(result=None) -> httpx.Response:
    return httpx.Response(200, json={"ok": True, "result": result if result is not None else {"message_id": 1}})


def make_api(recorder: Recorder) -> TelegramApi:
    return TelegramApi("123:abc", transport=httpx.MockTransport(recorder), backoff_base=0.0)


class TestChunkText:
    def test_short_text(self):
        assert chunk_text("hello") == ["hello"]

    def test_splits_on_lines(self):
        text = "\n".join(f"line {i:03d}" for i in range(100))
        chunks = chunk_text(text, limit=100)
        assert all(len(c) <= 100 for c in chunks)
        assert "\n".join(chunks) == text

    def test_splits_long_line(self):
        chunks = chunk_text("x" * 250, limit=100)
        assert [len(c) for c in chunks] == [100, 100, 50]


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_sends_markdown(self):
        recorder = Recorder(ok())
        api = make_api(recorder)
        notifier = TelegramNotifier(api, CHAT_ID)

        assert await notifier.send("*done*")

        method, payload = recorder.requests[0]
        assert method == "sendMessage"
        assert payload == {"chat_id": CHAT_ID, "text": "*done*", "parse_mode": "Markdown"}
        await api.close()

    @pytest.mark.asyncio
    async def test_falls_back_to_plain_text(self):
        recorder = Recorder(httpx.Response(400, json={"ok": False, "description": "can't parse entities"}), ok())
        api = make_api(recorder)

        assert await TelegramNotifier(api, CHAT_ID).send("bad *markup")

        assert len(recorder.requests) == 2
        assert "parse_mode" not in recorder.requests[1][1]
        await api.close()

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        recorder = Recorder(httpx.Response(502), httpx.Response(503), ok())
        api = make_api(recorder)

        assert await TelegramNotifier(api, CHAT_ID).send("hi")
        assert len(recorder.requests) == 3
        await api.close()

    @pytest.mark.asyncio
    async def test_honors_retry_after(self):
        recorder = Recorder(
            httpx.Response(429, json={"ok": False, "parameters": {"retry_after": 0}}),
            ok(),
        )
        api = make_api(recorder)

        assert await TelegramNotifier(api, CHAT_ID).send("hi")
        assert len(recorder.requests) == 2
        await api.close()

    @pytest.mark.asyncio
    async def test_gives_up(self):
        recorder = Recorder(httpx.Response(500))
        api = make_api(recorder)

        assert not await TelegramNotifier(api, CHAT_ID).send("hi")
        assert len(recorder.requests) == 3
        await api.close()

    @pytest.mark.asyncio
    async def test_network_error_is_failure(self):
        def unreachable(request):
            raise httpx.ConnectError("down", request=request)

        api = TelegramApi("123:abc", transport=httpx.MockTransport(unreachable), backoff_base=0.0)
        assert not await TelegramNotifier(api, CHAT_ID).send("hi")
        await api.close()


class FakeDispatcher:
    def __init__(self, result: bool = True):
        self.result = result
        self.prompts: list[tuple[str, str]] = []

    async def prompt(self, session_id: str, text: str) -> bool:
        self.prompts.append((session_id, text))
        return self.result


@pytest.fixture
def replies():
    return FakeNotifier()


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def coordinator(replies):
    return CompletionCoordinator(FakeSource(), replies, settings=CompletionSettings())


@pytest.fixture
def poller(replies, dispatcher, coordinator):
    saved: list[int] = []
    poller = TelegramCommandPoller(
        api=None,
        notifier=replies,
        dispatcher=dispatcher,
        coordinator=coordinator,
        chat_id=CHAT_ID,
        persist_offset=lambda offset: saved.append(offset) or True,
    )
    poller.saved = saved
    return poller


def update(text: str, chat_id: int = CHAT_ID, reply_text: str | None = None, update_id: int = 1) -> dict:
    message = {"message_id": 10, "chat": {"id": chat_id}, "text": text}
    if reply_text is not None:
        message["reply_to_message"] = {"text": reply_text}
    return {"update_id": update_id, "message": message}


class TestCommandPoller:
    @pytest.mark.asyncio
    async def test_reply_targets_notified_session(self, poller, dispatcher, coordinator, replies):
        await poller.handle_update(update("run the tests", reply_text="✅ done\nSession ID: `ses_77`"))

        assert dispatcher.prompts == [("ses_77", "run the tests")]
        assert coordinator.get_state("ses_77").busy_until > 0
        assert replies.sent[0].startswith("✅ Command sent: run the tests")

    @pytest.mark.asyncio
    async def test_plain_message_uses_current_session(self, poller, dispatcher, coordinator):
        coordinator.current_session_id = "ses_cur"
        await poller.handle_update(update("continue"))
        assert dispatcher.prompts == [("ses_cur", "continue")]

    @pytest.mark.asyncio
    async def test_no_session(self, poller, dispatcher, replies):
        await poller.handle_update(update("continue"))
        assert dispatcher.prompts == []
        assert replies.sent == [NO_SESSION_TEXT]

    @pytest.mark.asyncio
    async def test_other_chats_ignored(self, poller, dispatcher, replies):
        await poller.handle_update(update("hi", chat_id=1))
        assert dispatcher.prompts == []
        assert replies.sent == []

    @pytest.mark.asyncio
    async def test_dispatch_failure_reported(self, poller, dispatcher, coordinator, replies):
        dispatcher.result = False
        coordinator.current_session_id = "ses_cur"
        await poller.handle_update(update("continue"))
        assert coordinator.get_state("ses_cur") is None
        assert "Could not send" in replies.sent[0]

    @pytest.mark.asyncio
    async def test_status_command(self, poller, replies):
        await poller.handle_update(update("/status ses_5"))
        assert "Session `ses_5`" in replies.sent[0]
        assert "QUIET (unconfirmed)" in replies.sent[0]

    @pytest.mark.asyncio
    async def test_status_failure_is_described(self, poller, coordinator, replies):
        async def broken(session_id):
            raise RuntimeError("backend down")

        coordinator.evaluate = broken
        await poller.handle_update(update("/status ses_5"))
        assert replies.sent == ["Status unavailable for `ses_5`: backend down"]

    @pytest.mark.asyncio
    async def test_unknown_slash_command_ignored(self, poller, dispatcher, replies):
        await poller.handle_update(update("/start"))
        assert dispatcher.prompts == []
        assert replies.sent == []

    @pytest.mark.asyncio
    async def test_poll_once_advances_and_persists_offset(self, replies, dispatcher, coordinator):
        recorder = Recorder(ok([update("/help", update_id=41), update("/start", update_id=42)]))
        api = make_api(recorder)
        saved: list[int] = []
        poller = TelegramCommandPoller(
            api, replies, dispatcher, coordinator, CHAT_ID,
            last_update_id=40, persist_offset=lambda offset: saved.append(offset) or True,
        )

        assert await poller.poll_once()

        assert recorder.requests[0][1]["offset"] == 41
        assert poller.last_update_id == 42
        assert saved == [42]
        assert "/status" in replies.sent[0]
        await api.close()

    @pytest.mark.asyncio
    async def test_poll_once_unreachable(self, replies, dispatcher, coordinator):
        recorder = Recorder(httpx.Response(401, json={"ok": False}))
        api = make_api(recorder)
        poller = TelegramCommandPoller(api, replies, dispatcher, coordinator, CHAT_ID,
                                       persist_offset=lambda offset: True)

        assert not await poller.poll_once()
        await api.close()
