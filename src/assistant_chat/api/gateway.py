"""
Realtime Gateway

WebSocket hub at ``/chatHub``. Clients invoke orchestrator operations with
JSON frames and receive completions plus ``ReceiveMessageUpdate`` pushes:

    -> {"type": "invocation", "invocationId": "1", "target": "SendMessage",
        "arguments": [null, "Hello", []]}
    <- {"type": "invocation", "target": "ReceiveMessageUpdate", "arguments": [{...}]}
    <- {"type": "completion", "invocationId": "1", "result": {...}}

Every invocation runs as its own task so a streaming turn never blocks the
receive loop. Message updates go only to the connection that sent the
message. When the client goes away, sends become no-ops while running turns
finish server side.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, WebSocket
from pydantic import ValidationError
from structlog import get_logger

from ..domain.models import CamelModel, MessageUpdate
from ..services.metrics import INVOCATIONS
from ..services.orchestrator import RunOrchestrator
from .dependencies import get_orchestrator

logger = get_logger()

router = APIRouter(tags=["realtime"])

RECEIVE_MESSAGE_UPDATE = "ReceiveMessageUpdate"

# Invocations keep running after their connection closes; hold references
# until they finish.
_running_invocations: Set[asyncio.Task] = set()


class HubInvocation(CamelModel):
    """Client to server call frame"""
    type: str = "invocation"
    invocation_id: Optional[str] = None
    target: str
    arguments: List[Any] = []


class HubError(Exception):
    """An invocation could not be dispatched"""


def parse_conversation_id(value: Any) -> Optional[UUID]:
    """Lenient parse used by SendMessage: anything unusable means a new conversation"""
    if value is None or value == "":
        return None
    try:
        return UUID(str(value))
    except ValueError:
        logger.warning("conversation_id_invalid", conversation_id=str(value))
        return None


def require_conversation_id(value: Any) -> UUID:
    try:
        return UUID(str(value))
    except ValueError:
        raise HubError(f"Invalid conversation id: {value}") from None


class Connection:
    """One client socket with serialized writes"""

    def __init__(self, websocket: WebSocket):
        self.connection_id = uuid4().hex
        self.websocket = websocket
        self.closed = False
        self._send_lock = asyncio.Lock()

    async def send(self, payload: Dict[str, Any]) -> None:
        if self.closed:
            return
        async with self._send_lock:
            try:
                await self.websocket.send_json(payload)
            except Exception as e:
                self.closed = True
                logger.info("connection_send_dropped", connection_id=self.connection_id, error=str(e))

    async def push_update(self, update: MessageUpdate) -> None:
        await self.send({
            "type": "invocation",
            "target": RECEIVE_MESSAGE_UPDATE,
            "arguments": [update.model_dump(mode="json", by_alias=True)],
        })

    async def complete(self, invocation_id: Optional[str], result: Any = None, error: Optional[str] = None) -> None:
        if invocation_id is None:
            return
        payload: Dict[str, Any] = {"type": "completion", "invocationId": invocation_id}
        if error is not None:
            payload["error"] = error
        else:
            payload["result"] = result
        await self.send(payload)


class ChatHub:
    """Remote-callable orchestrator operations for one connection"""

    def __init__(self, orchestrator: RunOrchestrator, connection: Connection):
        self.orchestrator = orchestrator
        self.connection = connection
        self._targets: Dict[str, Callable[..., Awaitable[Any]]] = {
            "SendMessage": self.send_message,
            "GetConversations": self.get_conversations,
            "GetConversationMessages": self.get_conversation_messages,
            "DeleteConversation": self.delete_conversation,
        }

    async def send_message(self, conversation_id: Any = None, message: Optional[str] = None,
                           file_ids: Optional[List[str]] = None) -> Optional[Dict[str, Any]]:
        conversation = await self.orchestrator.send_message(
            parse_conversation_id(conversation_id),
            message or "",
            file_ids or [],
            push=self.connection.push_update,
        )
        if conversation is None:
            return None
        return conversation.model_dump(mode="json", by_alias=True)

    async def get_conversations(self) -> List[Dict[str, Any]]:
        conversations = await self.orchestrator.list_conversations()
        return [c.model_dump(mode="json", by_alias=True) for c in conversations]

    async def get_conversation_messages(self, conversation_id: Any) -> List[Dict[str, Any]]:
        messages = await self.orchestrator.get_conversation_messages(require_conversation_id(conversation_id))
        return [m.model_dump(mode="json", by_alias=True) for m in messages]

    async def delete_conversation(self, conversation_id: Any) -> bool:
        return await self.orchestrator.delete_conversation(require_conversation_id(conversation_id))

    async def dispatch(self, raw: str) -> None:
        """Parse one frame, run the target and send its completion"""
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("hub_frame_unparseable", connection_id=self.connection.connection_id)
            return
        if not isinstance(data, dict):
            logger.warning("hub_frame_unparseable", connection_id=self.connection.connection_id)
            return

        try:
            invocation = HubInvocation.model_validate(data)
        except ValidationError as e:
            logger.warning("hub_frame_invalid", connection_id=self.connection.connection_id, error=str(e))
            await self.connection.complete(data.get("invocationId"), error="Invalid invocation")
            return

        if invocation.type != "invocation":
            logger.debug("hub_frame_ignored", type=invocation.type)
            return

        handler = self._targets.get(invocation.target)
        if handler is None:
            INVOCATIONS.labels(target="unknown", outcome="error").inc()
            await self.connection.complete(
                invocation.invocation_id, error=f"Unknown method '{invocation.target}'"
            )
            return

        logger.info(
            "hub_invocation_started",
            connection_id=self.connection.connection_id,
            target=invocation.target,
            invocation_id=invocation.invocation_id
        )
        try:
            result = await handler(*invocation.arguments)
        except Exception as e:
            INVOCATIONS.labels(target=invocation.target, outcome="error").inc()
            logger.error(
                "hub_invocation_failed",
                connection_id=self.connection.connection_id,
                target=invocation.target,
                error=str(e)
            )
            await self.connection.complete(invocation.invocation_id, error=str(e))
            return

        INVOCATIONS.labels(target=invocation.target, outcome="ok").inc()
        await self.connection.complete(invocation.invocation_id, result=result)


@router.websocket("/chatHub")
async def chat_hub(websocket: WebSocket, orchestrator: RunOrchestrator = Depends(get_orchestrator)):
    """Accepts a client and dispatches its invocations until it disconnects"""
    await websocket.accept()
    connection = Connection(websocket)
    hub = ChatHub(orchestrator, connection)
    logger.info("connection_opened", connection_id=connection.connection_id)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info("connection_closed", connection_id=connection.connection_id, code=message.get("code"))
                break
            raw = message.get("text")
            if raw is None:
                # Binary frames are not part of the protocol
                logger.warning("hub_frame_unparseable", connection_id=connection.connection_id, frame="binary")
                continue
            task = asyncio.create_task(hub.dispatch(raw))
            _running_invocations.add(task)
            task.add_done_callback(_running_invocations.discard)
    finally:
        connection.closed = True
