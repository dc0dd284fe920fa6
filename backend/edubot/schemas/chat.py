"""Pydantic schemas for chat operations."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from edubot.schemas.base import ORMSchema, RowID, RowTimestamps


# Request schemas
class ChatRequest(BaseModel):
    """Request to send a chat message, optionally continuing a thread."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    message: str = Field(..., min_length=1, max_length=10000)
    thread_id: UUID | None = Field(None, alias="threadId")


# Response schemas
class ChatReply(BaseModel):
    """Synchronous chat response."""

    model_config = ConfigDict(populate_by_name=True)

    response: str
    thread_id: UUID = Field(..., alias="threadId")


class ChatMessageResponse(ORMSchema, RowID):
    """Chat message response."""

    thread_id: UUID
    role: str
    content: str
    created_at: datetime


class ChatThreadResponse(ORMSchema, RowID, RowTimestamps):
    """Chat thread response."""

    user_id: UUID
    title: str


class ChatThreadListResponse(BaseModel):
    """Caller's threads, most recently updated first."""

    threads: list[ChatThreadResponse]


class ChatHistoryResponse(BaseModel):
    """Messages of one thread in chronological order."""

    history: list[ChatMessageResponse]
