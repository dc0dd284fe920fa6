"""Durable chat thread and message storage."""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from edubot.config import get_settings
from edubot.db.models import ChatMessage, ChatRole, ChatThread, utcnow
from edubot.errors import NotFoundError, UpstreamUnavailable, ValidationError
from edubot.services.llm_client import CompletionBridge
from edubot.services.prompting import TITLE_PROMPT, clean_title

logger = logging.getLogger(__name__)
settings = get_settings()

DEFAULT_TITLE = "New Chat"
_ROLES = {role.value for role in ChatRole}


class ConversationStore:
    """Threads are owned by one user; messages are append-only."""

    def __init__(self, bridge: CompletionBridge):
        self.bridge = bridge

    async def generate_title(self, message: str) -> str:
        """
        Ask the model for a title of at most five words.

        Never raises: any failure falls back to the default title.
        """
        try:
            raw = await self.bridge.complete(
                TITLE_PROMPT,
                message,
                max_tokens=settings.llm_title_max_tokens,
                temperature=0.5,
            )
        except UpstreamUnavailable:
            logger.warning("Title generation unavailable, using default title")
            return DEFAULT_TITLE
        except Exception:
            logger.exception("Title generation failed, using default title")
            return DEFAULT_TITLE
        return clean_title(raw) or DEFAULT_TITLE

    async def get_thread(self, db: AsyncSession, owner_id: UUID, thread_id: UUID) -> ChatThread:
        """Fetch a thread owned by ``owner_id`` or raise NotFoundError."""
        stmt = select(ChatThread).where(ChatThread.id == thread_id, ChatThread.user_id == owner_id)
        thread = (await db.execute(stmt)).scalar_one_or_none()
        if thread is None:
            raise NotFoundError("Thread not found")
        return thread

    async def ensure_thread(
        self,
        db: AsyncSession,
        owner_id: UUID,
        seed_message: str,
        thread_id: UUID | None = None,
    ) -> ChatThread:
        """Resolve an existing thread, or create one titled from ``seed_message``."""
        if thread_id is not None:
            return await self.get_thread(db, owner_id, thread_id)

        thread = ChatThread(user_id=owner_id, title=await self.generate_title(seed_message))
        db.add(thread)
        await db.commit()
        await db.refresh(thread)
        logger.info("Created thread %s for user %s", thread.id, owner_id)
        return thread

    async def append_message(
        self, db: AsyncSession, thread_id: UUID, role: str, content: str
    ) -> ChatMessage:
        """Append a message and bump the thread's ``updated_at``."""
        if role not in _ROLES:
            raise ValidationError(f"Unknown message role: {role}")
        thread = await db.get(ChatThread, thread_id)
        if thread is None:
            raise NotFoundError("Thread not found")

        message = ChatMessage(thread_id=thread_id, role=role, content=content)
        thread.updated_at = utcnow()
        db.add(message)
        await db.commit()
        await db.refresh(message)
        return message

    async def list_threads(self, db: AsyncSession, owner_id: UUID) -> list[ChatThread]:
        stmt = (
            select(ChatThread)
            .where(ChatThread.user_id == owner_id)
            .order_by(ChatThread.updated_at.desc())
        )
        return list((await db.execute(stmt)).scalars())

    async def list_messages(self, db: AsyncSession, thread_id: UUID) -> list[ChatMessage]:
        stmt = (
            select(ChatMessage)
            .where(ChatMessage.thread_id == thread_id)
            .order_by(ChatMessage.created_at.asc())
        )
        return list((await db.execute(stmt)).scalars())
