"""Per-conversation serialization of turns."""

import asyncio
import contextlib
from typing import AsyncIterator, Dict
from uuid import UUID

import structlog

logger = structlog.get_logger()


class ConversationLocks:
    """One lock per conversation id, plus a global cap on concurrent turns.

    Locks are created on first use and dropped once no turn holds or waits
    for them, so idle conversations cost nothing.
    """

    def __init__(self, max_concurrent: int = 10) -> None:
        self.max_concurrent = max_concurrent
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self._locks: Dict[UUID, asyncio.Lock] = {}
        self._waiters: Dict[UUID, int] = {}
        logger.info("conversation_locks_initialized", max_concurrent=max_concurrent)

    @contextlib.asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one of the global turn slots."""
        async with self.semaphore:
            yield

    @contextlib.asynccontextmanager
    async def hold(self, conversation_id: UUID) -> AsyncIterator[None]:
        """Hold the lock for one conversation."""
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._waiters[conversation_id] = self._waiters.get(conversation_id, 0) + 1
        if lock.locked():
            logger.info("conversation_turn_waiting", conversation_id=str(conversation_id))
        try:
            async with lock:
                yield
        finally:
            self._waiters[conversation_id] -= 1
            if self._waiters[conversation_id] == 0:
                del self._waiters[conversation_id]
                del self._locks[conversation_id]

    def active(self) -> int:
        """Number of conversations with a running or waiting turn."""
        return len(self._locks)
