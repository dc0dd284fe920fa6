"""Thread and message persistence."""

import uuid

import pytest

from edubot.db.models import ChatRole
from edubot.errors import NotFoundError, UpstreamUnavailable, ValidationError
from edubot.services.conversation_store import DEFAULT_TITLE, ConversationStore


async def test_new_thread_gets_generated_title(db, records, bridge):
    store = ConversationStore(bridge)
    bridge.title = 'Title: "Midterm Results Review".'

    thread = await store.ensure_thread(db, records.student.id, "How did I do on my midterm?")

    assert thread.title == "Midterm Results Review"
    assert thread.user_id == records.student.id


@pytest.mark.parametrize("error", [UpstreamUnavailable(), RuntimeError("boom")])
async def test_title_failure_falls_back_to_default(db, records, bridge, error):
    store = ConversationStore(bridge)
    bridge.title_error = error

    thread = await store.ensure_thread(db, records.student.id, "hello")

    assert thread.title == DEFAULT_TITLE


async def test_blank_title_falls_back_to_default(bridge):
    bridge.title = '""'
    assert await ConversationStore(bridge).generate_title("hello") == DEFAULT_TITLE


async def test_existing_thread_is_resolved(db, records, bridge):
    store = ConversationStore(bridge)
    created = await store.ensure_thread(db, records.student.id, "hello")

    resolved = await store.ensure_thread(db, records.student.id, "again", created.id)

    assert resolved.id == created.id


async def test_unknown_thread_is_not_found(db, records, bridge):
    store = ConversationStore(bridge)
    with pytest.raises(NotFoundError):
        await store.ensure_thread(db, records.student.id, "hello", uuid.uuid4())


async def test_other_users_thread_is_not_found(db, records, bridge):
    store = ConversationStore(bridge)
    thread = await store.ensure_thread(db, records.student.id, "hello")

    with pytest.raises(NotFoundError):
        await store.get_thread(db, records.lecturer.id, thread.id)


async def test_messages_are_listed_in_creation_order(db, records, bridge):
    store = ConversationStore(bridge)
    thread = await store.ensure_thread(db, records.student.id, "hello")

    for i in range(6):
        role = ChatRole.USER.value if i % 2 == 0 else ChatRole.ASSISTANT.value
        await store.append_message(db, thread.id, role, f"message {i}")

    messages = await store.list_messages(db, thread.id)

    assert [m.content for m in messages] == [f"message {i}" for i in range(6)]
    assert all(m.role in {"user", "assistant"} for m in messages)
    created = [m.created_at for m in messages]
    assert created == sorted(created)


async def test_append_rejects_unknown_role(db, records, bridge):
    store = ConversationStore(bridge)
    thread = await store.ensure_thread(db, records.student.id, "hello")

    with pytest.raises(ValidationError):
        await store.append_message(db, thread.id, "system", "nope")


async def test_append_to_missing_thread(db, bridge):
    with pytest.raises(NotFoundError):
        await ConversationStore(bridge).append_message(db, uuid.uuid4(), "user", "hello")


async def test_threads_sorted_by_most_recent_activity(db, records, bridge):
    store = ConversationStore(bridge)
    first = await store.ensure_thread(db, records.student.id, "first")
    second = await store.ensure_thread(db, records.student.id, "second")

    await store.append_message(db, first.id, "user", "bump")

    threads = await store.list_threads(db, records.student.id)
    assert [t.id for t in threads] == [first.id, second.id]
    assert await store.list_threads(db, records.lecturer.id) == []
