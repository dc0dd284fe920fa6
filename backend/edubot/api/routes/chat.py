"""API routes for chat threads, with a streaming (SSE) and a synchronous send."""

import logging
from uuid import UUID

from fastapi import APIRouter, Query
from sse_starlette.sse import EventSourceResponse
from starlette.background import BackgroundTask

from edubot.api.deps import Chat, CurrentUser, DbSession, Locks, SessionFactory
from edubot.errors import ValidationError
from edubot.schemas.chat import (
    ChatHistoryResponse,
    ChatMessageResponse,
    ChatReply,
    ChatRequest,
    ChatThreadListResponse,
    ChatThreadResponse,
)
from edubot.streaming.turn_stream import FRAME_SEPARATOR, TurnStream

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


# =============================================================================
# CHAT STREAMING
# =============================================================================


@router.post("/stream")
async def stream_chat_message(
    request: ChatRequest,
    db: DbSession,
    user: CurrentUser,
    chat: Chat,
    session_factory: SessionFactory,
    locks: Locks,
):
    """
    Send a chat message and stream the response using Server-Sent Events (SSE).

    Frames (each ``data: <json>`` plus a blank line):
    - ``{"chunk": "..."}``: text delta from the assistant
    - ``{"threadId": "...", "done": true}``: streaming complete
    - ``{"error": "..."}``: generation failed

    Thread lookup and the per-thread turn lock are checked before the stream
    opens, so those failures come back as normal HTTP errors.
    """
    thread = await chat.store.ensure_thread(db, user.id, request.message, request.thread_id)
    locks.acquire(thread.id)

    turn = TurnStream(chat, session_factory, locks, user, thread.id, request.message)
    logger.info("Streaming turn on thread %s for user %s", thread.id, user.id)
    return EventSourceResponse(
        turn.events(),
        sep=FRAME_SEPARATOR,
        background=BackgroundTask(turn.aclose),
    )


@router.post("", response_model=ChatReply)
async def send_chat_message(
    request: ChatRequest,
    db: DbSession,
    user: CurrentUser,
    chat: Chat,
    locks: Locks,
) -> ChatReply:
    """Send a chat message and wait for the full response."""
    thread = await chat.store.ensure_thread(db, user.id, request.message, request.thread_id)
    locks.acquire(thread.id)
    try:
        content = await chat.generate(db, user, thread, request.message)
    finally:
        locks.release(thread.id)
    return ChatReply(response=content, thread_id=thread.id)


# =============================================================================
# THREADS & HISTORY
# =============================================================================


@router.get("/threads", response_model=ChatThreadListResponse)
async def list_threads(
    db: DbSession,
    user: CurrentUser,
    chat: Chat,
) -> ChatThreadListResponse:
    """List the caller's threads, most recently updated first."""
    threads = await chat.store.list_threads(db, user.id)
    return ChatThreadListResponse(
        threads=[ChatThreadResponse.model_validate(t) for t in threads]
    )


@router.get("/history", response_model=ChatHistoryResponse)
async def get_history(
    db: DbSession,
    user: CurrentUser,
    chat: Chat,
    thread_id: UUID | None = Query(None, alias="threadId"),
) -> ChatHistoryResponse:
    """All messages of one of the caller's threads, oldest first."""
    if thread_id is None:
        raise ValidationError("threadId is required")
    thread = await chat.store.get_thread(db, user.id, thread_id)
    messages = await chat.store.list_messages(db, thread.id)
    return ChatHistoryResponse(
        history=[ChatMessageResponse.model_validate(m) for m in messages]
    )
