"""Base repository interface."""

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from ..domain.models import Conversation


class Repository(ABC):
    """Abstract conversation store."""

    async def ensure_created(self) -> None:
        """Prepare the underlying storage (collections, indexes)."""

    async def close(self) -> None:
        """Release any client resources."""

    @abstractmethod
    async def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        """Retrieve a conversation by ID."""
        pass

    @abstractmethod
    async def list_conversations(self) -> List[Conversation]:
        """List all conversations, newest first."""
        pass

    @abstractmethod
    async def save_conversation(self, conversation: Conversation) -> Conversation:
        """Insert or replace a conversation."""
        pass

    @abstractmethod
    async def delete_conversation(self, conversation_id: UUID) -> bool:
        """Delete a conversation. Returns False if it did not exist."""
        pass
