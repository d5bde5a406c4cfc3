"""Assistant backend over the OpenAI Assistants API (OpenAI or Azure OpenAI)."""

from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import openai
import structlog
from openai import AsyncAzureOpenAI, AsyncOpenAI

from ..domain.errors import BackendError
from ..domain.models import (
    Message,
    MessageCreatedEvent,
    MessageDeltaEvent,
    Role,
    RunEvent,
    RunStatus,
    RunStatusEvent,
    ToolCall,
    ToolOutput,
)
from .backend import AssistantBackend

logger = structlog.get_logger()

ATTACHMENT_TOOLS = [{"type": "file_search"}]


def translate_stream_event(event: Any) -> Optional[RunEvent]:
    """Map one SDK stream event to a run event.

    Returns None for events the orchestrator does not consume (run steps,
    message completion, empty deltas, unknown statuses).
    """
    name: str = event.event
    data = event.data

    if name == "error":
        raise BackendError(getattr(data, "message", None) or "Assistant run stream failed")

    if name.startswith("thread.run.step."):
        return None

    if name.startswith("thread.run."):
        try:
            status = RunStatus(data.status)
        except ValueError:
            logger.warning("unknown_run_status", run_id=data.id, status=data.status)
            return None

        tool_calls: List[ToolCall] = []
        required_action = getattr(data, "required_action", None)
        if status is RunStatus.REQUIRES_ACTION and required_action is not None:
            for call in required_action.submit_tool_outputs.tool_calls:
                tool_calls.append(
                    ToolCall(
                        id=call.id,
                        name=call.function.name,
                        arguments=call.function.arguments or "{}",
                    )
                )
        return RunStatusEvent(run_id=data.id, status=status, tool_calls=tool_calls)

    if name == "thread.message.created":
        return MessageCreatedEvent(
            message_id=data.id,
            created_on=datetime.fromtimestamp(data.created_at, timezone.utc),
        )

    if name == "thread.message.delta":
        text = "".join(
            part.text.value
            for part in (data.delta.content or [])
            if part.type == "text" and part.text is not None and part.text.value
        )
        return MessageDeltaEvent(text=text) if text else None

    return None


def flatten_message(message: Any) -> Message:
    """Concatenate the text parts of a thread message."""
    text = "".join(
        part.text.value for part in message.content if part.type == "text"
    )
    return Message(role=Role(message.role), text=text)


def build_attachments(file_ids: Sequence[str]) -> List[Dict[str, Any]]:
    return [{"file_id": file_id, "tools": ATTACHMENT_TOOLS} for file_id in file_ids]


class OpenAIAssistantBackend(AssistantBackend):
    """Threads, runs, files and completions through the ``openai`` SDK."""

    def __init__(self, client: AsyncOpenAI):
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> "OpenAIAssistantBackend":
        """Build the SDK client: Azure OpenAI when an API version is set, OpenAI otherwise."""
        if settings.assistant_api_version:
            client = AsyncAzureOpenAI(
                azure_endpoint=settings.assistant_api_endpoint,
                api_key=settings.assistant_api_key,
                api_version=settings.assistant_api_version,
            )
            flavor = "azure"
        else:
            client = AsyncOpenAI(
                base_url=settings.assistant_api_endpoint,
                api_key=settings.assistant_api_key,
            )
            flavor = "openai"
        logger.info("assistant_backend_init", flavor=flavor, endpoint=settings.assistant_api_endpoint)
        return cls(client)

    async def close(self) -> None:
        await self._client.close()

    async def create_thread(self, text: str, file_ids: Sequence[str]) -> str:
        message: Dict[str, Any] = {"role": "user", "content": text}
        if file_ids:
            message["attachments"] = build_attachments(file_ids)
        thread = await self._client.beta.threads.create(messages=[message])
        logger.info("thread_created", thread_id=thread.id, attachments=len(file_ids))
        return thread.id

    async def add_message(self, thread_id: str, text: str, file_ids: Sequence[str]) -> None:
        kwargs: Dict[str, Any] = {}
        if file_ids:
            kwargs["attachments"] = build_attachments(file_ids)
        await self._client.beta.threads.messages.create(
            thread_id=thread_id, role="user", content=text, **kwargs
        )
        logger.info("thread_message_added", thread_id=thread_id, attachments=len(file_ids))

    async def stream_run(self, thread_id: str, assistant_id: str) -> AsyncIterator[RunEvent]:
        stream = await self._client.beta.threads.runs.create(
            thread_id=thread_id, assistant_id=assistant_id, stream=True
        )
        async with stream:
            async for raw_event in stream:
                event = translate_stream_event(raw_event)
                if event is not None:
                    yield event

    async def submit_tool_outputs(
        self, thread_id: str, run_id: str, outputs: Sequence[ToolOutput]
    ) -> AsyncIterator[RunEvent]:
        stream = await self._client.beta.threads.runs.submit_tool_outputs(
            run_id=run_id,
            thread_id=thread_id,
            tool_outputs=[
                {"tool_call_id": output.tool_call_id, "output": output.output}
                for output in outputs
            ],
            stream=True,
        )
        async with stream:
            async for raw_event in stream:
                event = translate_stream_event(raw_event)
                if event is not None:
                    yield event

    async def list_messages(self, thread_id: str) -> List[Message]:
        messages = []
        async for message in self._client.beta.threads.messages.list(thread_id=thread_id, order="asc"):
            messages.append(flatten_message(message))
        return messages

    async def delete_thread(self, thread_id: str) -> bool:
        try:
            result = await self._client.beta.threads.delete(thread_id)
        except openai.APIError as e:
            logger.error("thread_delete_failed", thread_id=thread_id, error=str(e))
            return False
        if not result.deleted:
            logger.warning("thread_delete_refused", thread_id=thread_id)
        return result.deleted

    async def complete(self, model: str, prompt: str) -> str:
        response = await self._client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
        )
        return response.choices[0].message.content or ""

    async def upload_file(self, filename: str, content: bytes) -> str:
        uploaded = await self._client.files.create(file=(filename, content), purpose="assistants")
        logger.info("file_uploaded", filename=filename, file_id=uploaded.id, size=len(content))
        return uploaded.id
