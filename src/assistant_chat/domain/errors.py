"""Application error types."""

from uuid import UUID


class AssistantChatError(Exception):
    """Base class for errors raised by the chat service."""


class ConfigurationError(AssistantChatError):
    """Required configuration is missing or invalid."""


class ConversationNotFound(AssistantChatError):
    """No conversation record exists for the given id."""

    def __init__(self, conversation_id: UUID):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class ToolLoopLimitExceeded(AssistantChatError):
    """A run kept requesting tool outputs past the allowed number of rounds."""

    def __init__(self, run_id: str, max_rounds: int):
        super().__init__(f"Run {run_id} exceeded {max_rounds} tool output rounds")
        self.run_id = run_id
        self.max_rounds = max_rounds


class NoFilesToUpload(AssistantChatError):
    """An upload request carried no files."""


class BackendError(AssistantChatError):
    """The assistant backend reported an error while streaming a run."""
