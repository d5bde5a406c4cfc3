"""Domain models for the chat application."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys, as the browser client expects."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Conversation(CamelModel):
    """Conversation record owned by the conversation store."""

    id: UUID = Field(default_factory=uuid4)
    thread_id: str
    assistant_id: str
    created_on: datetime = Field(default_factory=utc_now)
    title: Optional[str] = None


class Message(CamelModel):
    """A message read back from the assistant thread history."""

    role: Role
    text: str = ""


class MessageUpdate(CamelModel):
    """Streaming view of the assistant message for the current turn.

    The text only ever grows; every delta is appended, never rewritten.
    """

    role: Role = Role.ASSISTANT
    text: str = ""
    created_on: datetime = Field(default_factory=utc_now)

    def append(self, delta: str) -> None:
        self.text += delta


class RunStatus(str, Enum):
    """Run states reported by the assistant backend."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    INCOMPLETE = "incomplete"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_RUN_STATUSES


TERMINAL_RUN_STATUSES = frozenset(
    {
        RunStatus.COMPLETED,
        RunStatus.FAILED,
        RunStatus.CANCELLED,
        RunStatus.EXPIRED,
        RunStatus.INCOMPLETE,
    }
)


class ToolCall(BaseModel):
    """A tool invocation requested by a run."""

    id: str
    name: str
    arguments: str = "{}"


class ToolOutput(CamelModel):
    """Result of one tool invocation, submitted back against the same run."""

    tool_call_id: str
    output: str = ""


# Run events. The orchestrator dispatches on these three variants only.

class RunStatusEvent(BaseModel):
    kind: Literal["run_status"] = "run_status"
    run_id: str
    status: RunStatus
    tool_calls: List[ToolCall] = Field(default_factory=list)


class MessageCreatedEvent(BaseModel):
    kind: Literal["message_created"] = "message_created"
    message_id: str
    created_on: datetime = Field(default_factory=utc_now)


class MessageDeltaEvent(BaseModel):
    kind: Literal["message_delta"] = "message_delta"
    text: str


RunEvent = Union[RunStatusEvent, MessageCreatedEvent, MessageDeltaEvent]
