"""Domain services: conversations, academic context, grades and the LLM bridge."""

from edubot.services.chat_service import ChatService
from edubot.services.context_builder import context_builder
from edubot.services.conversation_store import ConversationStore
from edubot.services.grades_service import grades_service
from edubot.services.llm_client import completion_bridge

__all__ = ["ChatService", "ConversationStore", "context_builder", "grades_service", "completion_bridge"]
