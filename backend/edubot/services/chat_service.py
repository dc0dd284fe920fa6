"""Chat service: prompt building and the synchronous (non-streamed) turn."""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from edubot.config import get_settings
from edubot.db.models import ChatRole, ChatThread, User
from edubot.services.context_builder import ContextBuilder, context_builder
from edubot.services.conversation_store import ConversationStore
from edubot.services.llm_client import CompletionBridge
from edubot.services.prompting import build_system_prompt, render_history

logger = logging.getLogger(__name__)
settings = get_settings()


class ChatService:
    """Ties the conversation store, context builder and completion bridge together."""

    def __init__(self, bridge: CompletionBridge, context: ContextBuilder | None = None):
        self.bridge = bridge
        self.store = ConversationStore(bridge)
        self.context = context or context_builder

    async def build_prompt(self, db: AsyncSession, user: User, thread_id: UUID) -> str:
        """
        Build the system prompt for the next turn on a thread.

        The snapshot is rebuilt from the database every time, and the stored
        transcript is replayed up to the configured window.
        """
        messages = await self.store.list_messages(db, thread_id)
        history = render_history(messages, settings.chat_history_max_messages)
        snapshot = await self.context.build(db, user)
        return build_system_prompt(snapshot, history)

    async def generate(
        self,
        db: AsyncSession,
        user: User,
        thread: ChatThread,
        message: str,
    ) -> str:
        """
        Run one non-streamed turn: persist the message, complete, persist the reply.

        Raises:
            UpstreamUnavailable: the provider failed or returned nothing. The
                user message stays persisted.
        """
        await self.store.append_message(db, thread.id, ChatRole.USER.value, message)
        system_prompt = await self.build_prompt(db, user, thread.id)

        content = await self.bridge.complete(system_prompt, message)
        await self.store.append_message(db, thread.id, ChatRole.ASSISTANT.value, content)
        logger.info("Completed turn on thread %s (%d chars)", thread.id, len(content))
        return content
