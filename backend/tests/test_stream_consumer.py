"""Client-side consumption of the chat stream with a mocked transport."""

import json

import httpx
import pytest

from edubot.client.reveal import EMPTY_RESPONSE, TranscriptMessage
from edubot.client.session import ChatSession
from edubot.client.stream_consumer import ChatStreamConsumer, ChatStreamError, StreamHandlers


def _frames(*payloads) -> bytes:
    encoded = (p if isinstance(p, bytes) else json.dumps(p, ensure_ascii=False).encode() for p in payloads)
    return b"".join(b"data: " + data + b"\n\n" for data in encoded)


def _client(reads: list[bytes], status_code: int = 200, seen: list | None = None) -> httpx.AsyncClient:
    async def body():
        for read in reads:
            yield read

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, headers={"content-type": "text/event-stream"}, content=body())

    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")


class Recorder:
    def __init__(self):
        self.chunks: list[str] = []
        self.finished: list[tuple[str, str | None]] = []
        self.errors: list[Exception] = []

    def handlers(self) -> StreamHandlers:
        return StreamHandlers(
            on_chunk=self.chunks.append,
            on_finish=lambda text, thread_id: self.finished.append((text, thread_id)),
            on_error=self.errors.append,
        )


async def test_chunks_then_done():
    body = _frames({"chunk": "Hello "}, {"chunk": "wörld"}, {"threadId": "t-1", "done": True})
    seen: list[httpx.Request] = []
    recorder = Recorder()

    # Three reads, the middle boundary inside the multi-byte "ö"
    cut = body.index("ö".encode()) + 1
    async with _client([body[:10], body[10:cut], body[cut:]], seen=seen) as http:
        result = await ChatStreamConsumer(http, token="jwt").send("hi", handlers=recorder.handlers())

    assert result.text == "Hello wörld"
    assert result.thread_id == "t-1"
    assert result.completed
    assert recorder.chunks == ["Hello ", "wörld"]
    assert recorder.finished == [("Hello wörld", "t-1")]
    assert recorder.errors == []

    request = seen[0]
    assert request.url.path == "/chat/stream"
    assert request.headers["authorization"] == "Bearer jwt"
    assert json.loads(request.content) == {"message": "hi"}


async def test_existing_thread_id_is_sent_and_kept():
    seen: list[httpx.Request] = []
    async with _client([_frames({"chunk": "ok"}, b"[DONE]")], seen=seen) as http:
        result = await ChatStreamConsumer(http).send("again", thread_id="t-9")

    assert json.loads(seen[0].content) == {"message": "again", "threadId": "t-9"}
    assert result.thread_id == "t-9"
    assert result.text == "ok"


async def test_server_declared_text_is_preferred():
    body = _frames({"chunk": "Hel"}, {"threadId": "t-1", "done": True, "text": "Hello there"})
    recorder = Recorder()
    async with _client([body]) as http:
        result = await ChatStreamConsumer(http).send("hi", handlers=recorder.handlers())

    assert result.text == "Hello there"
    assert recorder.finished == [("Hello there", "t-1")]


async def test_error_event_is_reported_not_raised():
    body = _frames({"chunk": "Par"}, {"error": "Chat service unavailable"})
    recorder = Recorder()
    async with _client([body]) as http:
        result = await ChatStreamConsumer(http).send("hi", handlers=recorder.handlers())

    assert not result.completed
    assert result.text == ""
    assert result.error == "Chat service unavailable"
    assert [str(e) for e in recorder.errors] == ["Chat service unavailable"]
    assert recorder.finished == []


async def test_failed_start_raises():
    recorder = Recorder()
    async with _client([b'{"detail": "busy"}'], status_code=409) as http:
        with pytest.raises(ChatStreamError) as excinfo:
            await ChatStreamConsumer(http).send("hi", handlers=recorder.handlers())

    assert excinfo.value.status_code == 409
    assert recorder.errors == [excinfo.value]


async def test_transport_error_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    recorder = Recorder()
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test") as http:
        with pytest.raises(ChatStreamError):
            await ChatStreamConsumer(http).send("hi", handlers=recorder.handlers())

    assert len(recorder.errors) == 1


async def test_stream_without_terminal_event_raises():
    async with _client([_frames({"chunk": "cut off"})]) as http:
        with pytest.raises(ChatStreamError):
            await ChatStreamConsumer(http).send("hi")


async def test_malformed_frame_fails_the_turn():
    reads = [b'data: {"chunk": "Hel\n\n', b'data: {not json}\n\n', _frames({"threadId": "t1", "done": True})]
    recorder = Recorder()
    async with _client(reads) as http:
        with pytest.raises(ChatStreamError) as excinfo:
            await ChatStreamConsumer(http).send("hi", handlers=recorder.handlers())

    assert str(excinfo.value) == "Malformed stream frame"
    assert recorder.errors == [excinfo.value]
    assert recorder.finished == []


async def test_async_handlers_are_awaited():
    received: list[str] = []

    async def on_chunk(text):
        received.append(text)

    async with _client([_frames({"chunk": "a"}, {"chunk": "b"}, b"[DONE]")]) as http:
        await ChatStreamConsumer(http).send("hi", handlers=StreamHandlers(on_chunk=on_chunk))

    assert received == ["a", "b"]


async def test_session_commits_reply_and_reports_new_thread():
    created: list[str] = []
    reads = [_frames({"chunk": "Your GPA "}, {"chunk": "is 3.55."}, {"threadId": "t-1", "done": True})]

    async with _client(reads) as http:
        session = ChatSession(ChatStreamConsumer(http), on_thread_created=created.append, reveal_interval=0)
        await session.send("What is my GPA?")

    assert session.thread_id == "t-1"
    assert created == ["t-1"]
    assert session.messages == [
        TranscriptMessage("user", "What is my GPA?"),
        TranscriptMessage("assistant", "Your GPA is 3.55."),
    ]


async def test_session_does_not_report_known_thread():
    created: list[str] = []
    async with _client([_frames({"chunk": "ok"}, {"threadId": "t-1", "done": True})]) as http:
        session = ChatSession(
            ChatStreamConsumer(http), thread_id="t-1", on_thread_created=created.append, reveal_interval=0
        )
        await session.send("again")

    assert created == []


async def test_session_empty_reply_uses_fallback():
    async with _client([_frames({"threadId": "t-1", "done": True})]) as http:
        session = ChatSession(ChatStreamConsumer(http), reveal_interval=0)
        await session.send("hi")

    assert session.messages[-1] == TranscriptMessage("assistant", EMPTY_RESPONSE)


async def test_session_error_event_becomes_assistant_message():
    async with _client([_frames({"error": "Chat service unavailable"})]) as http:
        session = ChatSession(ChatStreamConsumer(http), reveal_interval=0)
        result = await session.send("hi")

    assert not result.completed
    assert session.messages[-1].content == "Sorry, I encountered an error: Chat service unavailable"


async def test_session_failed_start_raises_and_records_error():
    async with _client([b""], status_code=503) as http:
        session = ChatSession(ChatStreamConsumer(http), reveal_interval=0)
        with pytest.raises(ChatStreamError):
            await session.send("hi")

    assert session.messages[-1].content == "Sorry, I encountered an error: Failed to start chat stream"
    assert not session.transcript.active


async def test_session_malformed_frame_is_not_committed_as_reply():
    reads = [b'data: {not json}\n\n', _frames({"threadId": "t-1", "done": True})]
    async with _client(reads) as http:
        session = ChatSession(ChatStreamConsumer(http), reveal_interval=0)
        with pytest.raises(ChatStreamError):
            await session.send("hi")

    assert session.thread_id is None
    assert session.messages[-1].content == "Sorry, I encountered an error: Malformed stream frame"
    assert EMPTY_RESPONSE not in [m.content for m in session.messages]
