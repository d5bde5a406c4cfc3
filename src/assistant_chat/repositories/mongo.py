"""MongoDB repository implementation.

Conversations live in a single collection, one document per conversation,
keyed by the conversation id. Documents use the same camelCase field names
as the wire format: ``{_id, id, threadId, assistantId, createdOn, title}``.
"""

from datetime import timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import DESCENDING

from ..domain.models import Conversation
from .base import Repository

logger = structlog.get_logger()

CONVERSATIONS_COLLECTION = "conversations"


def to_document(conversation: Conversation) -> Dict[str, Any]:
    """Map a conversation to its stored document."""
    document = conversation.model_dump(by_alias=True, mode="python")
    document["id"] = str(conversation.id)
    document["_id"] = document["id"]
    return document


def from_document(document: Dict[str, Any]) -> Conversation:
    """Map a stored document back to a conversation."""
    data = {key: value for key, value in document.items() if key != "_id"}
    created_on = data.get("createdOn")
    if created_on is not None and created_on.tzinfo is None:
        # BSON dates carry no zone; they are always stored as UTC
        data["createdOn"] = created_on.replace(tzinfo=timezone.utc)
    return Conversation.model_validate(data)


class MongoRepository(Repository):
    """Conversation store backed by MongoDB through motor."""

    def __init__(self, client: AsyncIOMotorClient, database_name: str) -> None:
        self._client = client
        self._collection: AsyncIOMotorCollection = client[database_name][CONVERSATIONS_COLLECTION]
        logger.info("repository_initialized", backend="mongo", database=database_name)

    @classmethod
    def from_url(cls, url: str, database_name: str) -> "MongoRepository":
        return cls(AsyncIOMotorClient(url, tz_aware=True), database_name)

    async def ensure_created(self) -> None:
        await self._collection.create_index([("createdOn", DESCENDING)])
        logger.info("repository_indexes_created", collection=CONVERSATIONS_COLLECTION)

    async def close(self) -> None:
        self._client.close()

    async def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        document = await self._collection.find_one({"_id": str(conversation_id)})
        if document is None:
            logger.warning("conversation_not_found", conversation_id=str(conversation_id))
            return None
        return from_document(document)

    async def list_conversations(self) -> List[Conversation]:
        cursor = self._collection.find({}).sort("createdOn", DESCENDING)
        return [from_document(document) async for document in cursor]

    async def save_conversation(self, conversation: Conversation) -> Conversation:
        document = to_document(conversation)
        await self._collection.replace_one({"_id": document["_id"]}, document, upsert=True)
        logger.info(
            "conversation_saved",
            conversation_id=str(conversation.id),
            has_title=conversation.title is not None
        )
        return conversation

    async def delete_conversation(self, conversation_id: UUID) -> bool:
        result = await self._collection.delete_one({"_id": str(conversation_id)})
        if result.deleted_count:
            logger.info("conversation_deleted", conversation_id=str(conversation_id))
        return result.deleted_count > 0
