"""Pydantic schemas for API request/response validation."""

from edubot.schemas.chat import (
    ChatHistoryResponse,
    ChatMessageResponse,
    ChatReply,
    ChatRequest,
    ChatThreadListResponse,
    ChatThreadResponse,
)
from edubot.schemas.grades import GpaResponse, GradeCreate, GradeRead

__all__ = [
    # Chat
    "ChatRequest",
    "ChatReply",
    "ChatMessageResponse",
    "ChatThreadResponse",
    "ChatThreadListResponse",
    "ChatHistoryResponse",
    # Grades
    "GradeCreate",
    "GradeRead",
    "GpaResponse",
]
