"""Run orchestration for one send-message interaction.

A turn appends the user's message to the conversation thread (creating the
thread and the conversation record first if needed), starts a streaming run
and drains its events in order:

- message deltas are appended to the turn's :class:`MessageUpdate` and pushed
  to the client one by one,
- a run status of ``requires_action`` resolves the requested tool calls
  through the :class:`ToolRegistry`,
- once a stream is drained, pending tool outputs are submitted against the
  same run, and the stream that resumes the run is drained the same way.

The loop stops when a drained stream leaves no outputs to submit. Submissions
are capped at ``max_tool_rounds`` per turn. When the run completed and the
conversation has no title yet, a title is generated and stored.
"""

from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

import structlog

from ..domain.errors import ConversationNotFound, NoFilesToUpload, ToolLoopLimitExceeded
from ..domain.models import (
    Conversation,
    Message,
    MessageCreatedEvent,
    MessageDeltaEvent,
    MessageUpdate,
    Role,
    RunEvent,
    RunStatus,
    RunStatusEvent,
    ToolOutput,
)
from ..repositories.base import Repository
from .backend import AssistantBackend
from .locks import ConversationLocks
from .metrics import DELTAS, TITLE_FAILURES, TOOL_ROUNDS, TURNS
from .tools import ToolRegistry

logger = structlog.get_logger()

PushUpdate = Callable[[MessageUpdate], Awaitable[None]]

DEFAULT_MAX_TOOL_ROUNDS = 10

TITLE_PROMPT = (
    "Write a short title, at most six words, for a chat conversation that starts "
    "with the exchange below. Reply with the title only, without quotes or "
    "trailing punctuation.\n\n"
    "User: {user_message}\n"
    "Assistant: {assistant_message}"
)


@dataclass
class TurnState:
    """What the orchestrator knows about the run driving the current turn."""

    update: MessageUpdate = field(default_factory=MessageUpdate)
    run_id: Optional[str] = None
    status: Optional[RunStatus] = None
    pending_outputs: List[ToolOutput] = field(default_factory=list)
    tool_rounds: int = 0

    @property
    def completed(self) -> bool:
        return self.status is RunStatus.COMPLETED


class RunOrchestrator:
    """Drives turns against the assistant backend and keeps conversations stored."""

    def __init__(
        self,
        repository: Repository,
        backend: AssistantBackend,
        tools: ToolRegistry,
        assistant_id: str,
        summary_model: str,
        locks: Optional[ConversationLocks] = None,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
    ) -> None:
        self.repository = repository
        self.backend = backend
        self.tools = tools
        self.assistant_id = assistant_id
        self.summary_model = summary_model
        self.locks = locks or ConversationLocks()
        self.max_tool_rounds = max_tool_rounds

    async def send_message(
        self,
        conversation_id: Optional[UUID],
        text: str,
        file_ids: Sequence[str] = (),
        push: Optional[PushUpdate] = None,
    ) -> Optional[Conversation]:
        """Run one full assistant turn for a user message.

        Blank messages are ignored and return None. An absent or unknown
        conversation id starts a new conversation, which is stored before
        the run begins.
        """
        if not text or not text.strip():
            logger.info("empty_message_ignored", conversation_id=str(conversation_id))
            return None
        file_ids = list(file_ids)

        # Conversation lock first, then a global slot: queued turns must not
        # occupy slots while they wait.
        if conversation_id is not None:
            async with self.locks.hold(conversation_id):
                conversation = await self.repository.get_conversation(conversation_id)
                if conversation is not None:
                    async with self.locks.slot():
                        await self.backend.add_message(conversation.thread_id, text, file_ids)
                        return await self._run_turn(conversation, text, push)

        new_id = uuid4()
        async with self.locks.hold(new_id):
            async with self.locks.slot():
                conversation = await self._start_conversation(new_id, text, file_ids)
                return await self._run_turn(conversation, text, push)

    async def list_conversations(self) -> List[Conversation]:
        return await self.repository.list_conversations()

    async def get_conversation_messages(self, conversation_id: UUID) -> List[Message]:
        conversation = await self.repository.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        return await self.backend.list_messages(conversation.thread_id)

    async def delete_conversation(self, conversation_id: UUID) -> bool:
        """Delete the backend thread, then the record.

        The record is kept when the backend refuses, so the delete can be
        retried. The two deletions are not atomic.
        """
        async with self.locks.hold(conversation_id):
            conversation = await self.repository.get_conversation(conversation_id)
            if conversation is None:
                return False
            if not await self.backend.delete_thread(conversation.thread_id):
                logger.warning(
                    "conversation_delete_aborted",
                    conversation_id=str(conversation_id),
                    thread_id=conversation.thread_id
                )
                return False
            return await self.repository.delete_conversation(conversation_id)

    async def upload_files(self, files: Sequence[Tuple[str, bytes]]) -> Dict[str, str]:
        """Upload files for assistant use. Returns filename to file id."""
        if not files:
            raise NoFilesToUpload("No files to upload")
        results: Dict[str, str] = {}
        for filename, content in files:
            results[filename] = await self.backend.upload_file(filename, content)
        return results

    async def _start_conversation(self, conversation_id: UUID, text: str, file_ids: List[str]) -> Conversation:
        thread_id = await self.backend.create_thread(text, file_ids)
        conversation = Conversation(id=conversation_id, thread_id=thread_id, assistant_id=self.assistant_id)
        await self.repository.save_conversation(conversation)
        logger.info(
            "conversation_created",
            conversation_id=str(conversation.id),
            thread_id=thread_id
        )
        return conversation

    async def _run_turn(
        self, conversation: Conversation, text: str, push: Optional[PushUpdate]
    ) -> Conversation:
        TURNS.inc()
        turn = TurnState()
        await self._drive_run(conversation, turn, push)

        logger.info(
            "turn_finished",
            conversation_id=str(conversation.id),
            run_id=turn.run_id,
            status=turn.status.value if turn.status else None,
            tool_rounds=turn.tool_rounds,
            response_length=len(turn.update.text)
        )

        if turn.completed and conversation.title is None:
            conversation.title = await self._generate_title(text, turn.update.text)
            await self.repository.save_conversation(conversation)
        return conversation

    async def _drive_run(
        self, conversation: Conversation, turn: TurnState, push: Optional[PushUpdate]
    ) -> None:
        stream = self.backend.stream_run(conversation.thread_id, conversation.assistant_id)
        while True:
            await self._drain(stream, turn, push)
            if not turn.pending_outputs:
                break
            if turn.tool_rounds >= self.max_tool_rounds:
                logger.error(
                    "tool_loop_limit_exceeded",
                    conversation_id=str(conversation.id),
                    run_id=turn.run_id,
                    max_tool_rounds=self.max_tool_rounds
                )
                raise ToolLoopLimitExceeded(turn.run_id or "", self.max_tool_rounds)

            outputs, turn.pending_outputs = turn.pending_outputs, []
            turn.tool_rounds += 1
            TOOL_ROUNDS.inc()
            logger.info(
                "tool_outputs_submitted",
                conversation_id=str(conversation.id),
                run_id=turn.run_id,
                outputs=len(outputs),
                round=turn.tool_rounds
            )
            stream = self.backend.submit_tool_outputs(conversation.thread_id, turn.run_id, outputs)

        if turn.status is None or not turn.status.is_terminal:
            logger.warning(
                "run_stream_ended_without_terminal_status",
                conversation_id=str(conversation.id),
                run_id=turn.run_id,
                status=turn.status.value if turn.status else None
            )

    async def _drain(
        self, stream: AsyncIterator[RunEvent], turn: TurnState, push: Optional[PushUpdate]
    ) -> None:
        async for event in stream:
            if isinstance(event, MessageDeltaEvent):
                turn.update.append(event.text)
                DELTAS.inc()
                if push is not None:
                    await push(turn.update.model_copy())
            elif isinstance(event, MessageCreatedEvent):
                turn.update.role = Role.ASSISTANT
                turn.update.created_on = event.created_on
            elif isinstance(event, RunStatusEvent):
                turn.run_id = event.run_id
                turn.status = event.status
                if event.status is RunStatus.REQUIRES_ACTION:
                    for tool_call in event.tool_calls:
                        output = await self.tools.invoke(tool_call)
                        if output is not None:
                            turn.pending_outputs.append(output)
            else:
                raise TypeError(f"Unexpected run event: {event!r}")

    async def _generate_title(self, user_message: str, assistant_message: str) -> Optional[str]:
        prompt = TITLE_PROMPT.format(
            user_message=user_message.strip(),
            assistant_message=assistant_message.strip()
        )
        try:
            title = await self.backend.complete(self.summary_model, prompt)
        except Exception as e:
            logger.warning("title_generation_failed", model=self.summary_model, error=str(e))
            TITLE_FAILURES.inc()
            return None
        title = title.strip().strip("\"'").strip()
        return title or None
