"""Assistant backend interface.

The backend hosts threads (ordered message logs) and runs (executions of an
assistant against a thread). Runs are consumed as ordered streams of
:data:`~assistant_chat.domain.models.RunEvent`.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Sequence

from ..domain.models import Message, RunEvent, ToolOutput


class AssistantBackend(ABC):
    """Hosted assistant service used by the orchestrator."""

    @abstractmethod
    async def create_thread(self, text: str, file_ids: Sequence[str]) -> str:
        """Create a thread seeded with a user message. Returns the thread id."""

    @abstractmethod
    async def add_message(self, thread_id: str, text: str, file_ids: Sequence[str]) -> None:
        """Append a user message to an existing thread."""

    @abstractmethod
    def stream_run(self, thread_id: str, assistant_id: str) -> AsyncIterator[RunEvent]:
        """Start a run and stream its events."""

    @abstractmethod
    def submit_tool_outputs(
        self, thread_id: str, run_id: str, outputs: Sequence[ToolOutput]
    ) -> AsyncIterator[RunEvent]:
        """Submit tool outputs to a waiting run and stream the resumed run's events."""

    @abstractmethod
    async def list_messages(self, thread_id: str) -> List[Message]:
        """Read the whole thread history, oldest first."""

    @abstractmethod
    async def delete_thread(self, thread_id: str) -> bool:
        """Delete a thread. Returns False if the backend refused."""

    @abstractmethod
    async def complete(self, model: str, prompt: str) -> str:
        """Single non-streaming completion, used for conversation titles."""

    @abstractmethod
    async def upload_file(self, filename: str, content: bytes) -> str:
        """Upload a file for assistant use. Returns the backend file id."""

    async def close(self) -> None:
        """Release client resources."""
