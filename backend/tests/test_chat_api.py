"""Chat endpoints over ASGI."""

from datetime import timedelta
from uuid import UUID

from edubot.api.deps import create_access_token
from edubot.client.sse_parser import ChunkEvent, DoneEvent, ErrorEvent, StreamEventParser
from edubot.errors import UpstreamUnavailable
from edubot.main import app


def _events(body: bytes):
    parser = StreamEventParser()
    return parser.feed(body) + parser.flush()


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_stream_creates_thread_and_persists_turn(client, records, auth_headers):
    headers = auth_headers(records.student)

    response = await client.post("/chat/stream", json={"message": "How am I doing?"}, headers=headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-store"
    assert response.headers["x-accel-buffering"] == "no"

    events = _events(response.content)
    assert events[:2] == [ChunkEvent("Your GPA "), ChunkEvent("is 3.55.")]
    assert isinstance(events[2], DoneEvent)
    thread_id = events[2].thread_id
    assert UUID(thread_id)

    history = await client.get("/chat/history", params={"threadId": thread_id}, headers=headers)
    assert history.status_code == 200
    assert [(m["role"], m["content"]) for m in history.json()["history"]] == [
        ("user", "How am I doing?"),
        ("assistant", "Your GPA is 3.55."),
    ]

    threads = await client.get("/chat/threads", headers=headers)
    assert [(t["id"], t["title"]) for t in threads.json()["threads"]] == [(thread_id, "Study Plan Help")]


async def test_stream_continues_existing_thread(client, records, auth_headers):
    headers = auth_headers(records.student)
    first = await client.post("/chat", json={"message": "Hi"}, headers=headers)
    thread_id = first.json()["threadId"]

    response = await client.post(
        "/chat/stream", json={"message": "And my final?", "threadId": thread_id}, headers=headers
    )

    events = _events(response.content)
    assert events[-1] == DoneEvent(thread_id=thread_id)
    history = await client.get("/chat/history", params={"threadId": thread_id}, headers=headers)
    assert len(history.json()["history"]) == 4


async def test_stream_error_is_sent_in_band(client, records, bridge, auth_headers):
    bridge.deltas = []
    bridge.stream_error = UpstreamUnavailable()

    response = await client.post(
        "/chat/stream", json={"message": "Hello"}, headers=auth_headers(records.student)
    )

    assert response.status_code == 200
    assert _events(response.content) == [ErrorEvent("Chat service unavailable")]


async def test_stream_unknown_thread_fails_before_streaming(client, records, auth_headers):
    response = await client.post(
        "/chat/stream",
        json={"message": "Hello", "threadId": "00000000-0000-0000-0000-000000000000"},
        headers=auth_headers(records.student),
    )

    assert response.status_code == 404
    assert response.json() == {"detail": "Thread not found"}


async def test_concurrent_turn_on_same_thread_is_rejected(client, records, auth_headers):
    headers = auth_headers(records.student)
    first = await client.post("/chat", json={"message": "Hi"}, headers=headers)
    thread_id = first.json()["threadId"]

    locks = app.state.turn_locks
    locks.acquire(UUID(thread_id))
    try:
        streamed = await client.post(
            "/chat/stream", json={"message": "Again", "threadId": thread_id}, headers=headers
        )
        synchronous = await client.post(
            "/chat", json={"message": "Again", "threadId": thread_id}, headers=headers
        )
    finally:
        locks.release(UUID(thread_id))

    assert streamed.status_code == 409
    assert synchronous.status_code == 409


async def test_sync_chat(client, records, auth_headers):
    response = await client.post(
        "/chat", json={"message": "What is my GPA?"}, headers=auth_headers(records.student)
    )

    assert response.status_code == 200
    body = response.json()
    assert body["response"] == "Your GPA is 3.55."
    assert UUID(body["threadId"])


async def test_sync_chat_upstream_failure(client, records, bridge, auth_headers):
    headers = auth_headers(records.student)
    bridge.complete_error = UpstreamUnavailable()

    response = await client.post("/chat", json={"message": "What is my GPA?"}, headers=headers)

    assert response.status_code == 503
    assert response.json() == {"detail": "Chat service unavailable"}

    # The user message was stored before the provider call
    threads = (await client.get("/chat/threads", headers=headers)).json()["threads"]
    history = await client.get("/chat/history", params={"threadId": threads[0]["id"]}, headers=headers)
    assert [m["role"] for m in history.json()["history"]] == ["user"]


async def test_history_requires_thread_id(client, records, auth_headers):
    response = await client.get("/chat/history", headers=auth_headers(records.student))

    assert response.status_code == 400
    assert response.json() == {"detail": "threadId is required"}


async def test_history_of_another_users_thread(client, records, auth_headers):
    first = await client.post("/chat", json={"message": "Hi"}, headers=auth_headers(records.student))

    response = await client.get(
        "/chat/history",
        params={"threadId": first.json()["threadId"]},
        headers=auth_headers(records.lecturer),
    )

    assert response.status_code == 404


async def test_blank_message_is_rejected(client, records, auth_headers):
    response = await client.post("/chat/stream", json={"message": "   "}, headers=auth_headers(records.student))
    assert response.status_code == 422


async def test_requires_authentication(client):
    response = await client.get("/chat/threads")
    assert response.status_code == 401


async def test_invalid_token(client):
    response = await client.get("/chat/threads", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


async def test_expired_token(client, records):
    token = create_access_token(records.student.id, expires_in=timedelta(seconds=-1))
    response = await client.get("/chat/threads", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


async def test_cookie_token(client, records):
    client.cookies.set("access_token", create_access_token(records.student.id))
    response = await client.get("/chat/threads")
    assert response.status_code == 200
    assert response.json() == {"threads": []}
