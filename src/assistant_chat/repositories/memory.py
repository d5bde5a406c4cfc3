"""In-memory repository implementation."""

import asyncio
from typing import Dict, List, Optional
from uuid import UUID

import structlog

from ..domain.models import Conversation
from .base import Repository

logger = structlog.get_logger()


class InMemoryRepository(Repository):
    """Process-local conversation store, used for tests and local runs."""

    def __init__(self) -> None:
        self._conversations: Dict[UUID, Conversation] = {}
        self._lock = asyncio.Lock()
        logger.info("repository_initialized", backend="memory")

    async def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        """Retrieve a conversation by ID."""
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                logger.warning("conversation_not_found", conversation_id=str(conversation_id))
                return None
            return conversation.model_copy()

    async def list_conversations(self) -> List[Conversation]:
        """List all conversations, newest first."""
        async with self._lock:
            conversations = sorted(
                self._conversations.values(),
                key=lambda c: c.created_on,
                reverse=True
            )
            return [c.model_copy() for c in conversations]

    async def save_conversation(self, conversation: Conversation) -> Conversation:
        """Insert or replace a conversation."""
        async with self._lock:
            self._conversations[conversation.id] = conversation.model_copy()
            logger.info(
                "conversation_saved",
                conversation_id=str(conversation.id),
                has_title=conversation.title is not None
            )
            return conversation

    async def delete_conversation(self, conversation_id: UUID) -> bool:
        """Delete a conversation. Returns False if it did not exist."""
        async with self._lock:
            removed = self._conversations.pop(conversation_id, None)
            if removed is None:
                return False
            logger.info("conversation_deleted", conversation_id=str(conversation_id))
            return True
