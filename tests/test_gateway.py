"""Test suite for the realtime hub."""

import asyncio
import time
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from assistant_chat.api.gateway import Connection
from assistant_chat.domain.models import MessageUpdate, ToolCall
from fakes import resumed_reply, text_reply, tool_request


def invocation(invocation_id, target, *arguments):
    return {"type": "invocation", "invocationId": invocation_id, "target": target, "arguments": list(arguments)}


def receive_until_completion(ws, invocation_id):
    """Collect frames up to and including the completion for one invocation."""
    frames = []
    while True:
        frame = ws.receive_json()
        frames.append(frame)
        if frame.get("type") == "completion" and frame.get("invocationId") == invocation_id:
            return frames


def test_send_message_streams_updates_then_completes(app, backend):
    """Test the push and completion frames of a SendMessage call."""
    backend.script(text_reply("Hi", " there"))

    with TestClient(app) as client:
        with client.websocket_connect("/chatHub") as ws:
            ws.send_json(invocation("1", "SendMessage", None, "Hello", []))
            frames = receive_until_completion(ws, "1")

    pushes, completion = frames[:-1], frames[-1]
    assert [p["target"] for p in pushes] == ["ReceiveMessageUpdate", "ReceiveMessageUpdate"]
    updates = [p["arguments"][0] for p in pushes]
    assert [u["text"] for u in updates] == ["Hi", "Hi there"]
    assert all(u["role"] == "assistant" for u in updates)
    assert "createdOn" in updates[0]

    conversation = completion["result"]
    assert conversation["title"] == "Friendly greeting"
    assert conversation["assistantId"] == "asst_test"
    assert conversation["threadId"] in backend.threads
    assert "createdOn" in conversation


def test_conversation_round_trip(app, backend):
    """Test listing, reading and deleting over the hub."""
    backend.script(text_reply("Hi"), text_reply("Again"))

    with TestClient(app) as client:
        with client.websocket_connect("/chatHub") as ws:
            ws.send_json(invocation("1", "SendMessage", None, "Hello", []))
            conversation = receive_until_completion(ws, "1")[-1]["result"]

            ws.send_json(invocation("2", "SendMessage", conversation["id"], "More", []))
            assert receive_until_completion(ws, "2")[-1]["result"]["id"] == conversation["id"]

            ws.send_json(invocation("3", "GetConversations"))
            listed = receive_until_completion(ws, "3")[-1]["result"]
            assert [c["id"] for c in listed] == [conversation["id"]]

            ws.send_json(invocation("4", "GetConversationMessages", conversation["id"]))
            messages = receive_until_completion(ws, "4")[-1]["result"]
            assert messages == [
                {"role": "user", "text": "Hello"},
                {"role": "assistant", "text": "Hi"},
                {"role": "user", "text": "More"},
                {"role": "assistant", "text": "Again"},
            ]

            ws.send_json(invocation("5", "DeleteConversation", conversation["id"]))
            assert receive_until_completion(ws, "5")[-1]["result"] is True

            ws.send_json(invocation("6", "GetConversations"))
            assert receive_until_completion(ws, "6")[-1]["result"] == []


def test_blank_message_completes_with_null(app, backend):
    """Test that a blank message returns null without pushes."""
    with TestClient(app) as client:
        with client.websocket_connect("/chatHub") as ws:
            ws.send_json(invocation("1", "SendMessage", None, "   ", []))
            frames = receive_until_completion(ws, "1")

    assert frames == [{"type": "completion", "invocationId": "1", "result": None}]
    assert backend.threads == {}


def test_tool_call_over_hub(app, backend):
    """Test a turn that goes through one tool round."""
    call = ToolCall(id="call_1", name="get_weather_forecast", arguments='{"location": "Oslo"}')
    backend.script(tool_request(call), resumed_reply("Sunny"))

    with TestClient(app) as client:
        with client.websocket_connect("/chatHub") as ws:
            ws.send_json(invocation("1", "SendMessage", None, "Weather?", []))
            frames = receive_until_completion(ws, "1")

    assert frames[-1]["result"]["title"] == "Friendly greeting"
    assert len(backend.submissions) == 1


def test_delete_failure_returns_false(app, backend):
    """Test that a refused thread delete is reported as false."""
    backend.script(text_reply("Hi"))
    backend.fail_delete = True

    with TestClient(app) as client:
        with client.websocket_connect("/chatHub") as ws:
            ws.send_json(invocation("1", "SendMessage", None, "Hello", []))
            conversation = receive_until_completion(ws, "1")[-1]["result"]

            ws.send_json(invocation("2", "DeleteConversation", conversation["id"]))
            assert receive_until_completion(ws, "2")[-1]["result"] is False

            ws.send_json(invocation("3", "GetConversations"))
            assert len(receive_until_completion(ws, "3")[-1]["result"]) == 1


def test_errors_are_reported_as_completions(app):
    """Test unknown targets, bad ids and malformed frames."""
    with TestClient(app) as client:
        with client.websocket_connect("/chatHub") as ws:
            ws.send_json(invocation("1", "Shutdown"))
            assert receive_until_completion(ws, "1")[-1]["error"] == "Unknown method 'Shutdown'"

            ws.send_json(invocation("2", "GetConversationMessages", "not-a-uuid"))
            assert "Invalid conversation id" in receive_until_completion(ws, "2")[-1]["error"]

            ws.send_json(invocation("3", "GetConversationMessages", str(uuid4())))
            assert "not found" in receive_until_completion(ws, "3")[-1]["error"]

            ws.send_json({"type": "invocation", "invocationId": "4", "arguments": []})
            assert receive_until_completion(ws, "4")[-1]["error"] == "Invalid invocation"

            ws.send_text("this is not json")
            ws.send_json(invocation("5", "GetConversations"))
            assert receive_until_completion(ws, "5")[-1]["result"] == []


def test_updates_only_reach_the_sender(app, backend):
    """Test that a second connection receives no pushes for another's turn."""
    backend.script(text_reply("Hi", " there"))

    with TestClient(app) as client:
        with client.websocket_connect("/chatHub") as sender, client.websocket_connect("/chatHub") as other:
            sender.send_json(invocation("1", "SendMessage", None, "Hello", []))
            receive_until_completion(sender, "1")

            other.send_json(invocation("1", "GetConversations"))
            frames = receive_until_completion(other, "1")

    assert len(frames) == 1
    assert frames[0]["type"] == "completion"


def test_binary_frames_are_ignored(app):
    """Test that a binary frame does not end the connection."""
    with TestClient(app) as client:
        with client.websocket_connect("/chatHub") as ws:
            ws.send_bytes(b"\x00\x01")
            ws.send_json(invocation("1", "GetConversations"))
            assert receive_until_completion(ws, "1")[-1]["result"] == []


def test_turn_finishes_after_client_disconnects(app, backend, repository):
    """Test that a turn outlives its connection and still stores the title."""
    release = asyncio.Event()
    script = text_reply("Hi", " there")
    script.insert(4, release)
    backend.script(script)

    with TestClient(app) as client:
        with client.websocket_connect("/chatHub") as ws:
            ws.send_json(invocation("1", "SendMessage", None, "Hello", []))
            first = ws.receive_json()
            assert first["arguments"][0]["text"] == "Hi"

        client.portal.call(release.set)

        deadline = time.monotonic() + 2
        stored = []
        while time.monotonic() < deadline:
            stored = client.portal.call(repository.list_conversations)
            if stored and stored[0].title is not None:
                break
            time.sleep(0.01)

    assert len(stored) == 1
    assert stored[0].title == "Friendly greeting"
    assert backend.threads[stored[0].thread_id][-1].text == "Hi there"


class BrokenSocket:
    """A websocket whose peer has gone away."""

    def __init__(self):
        self.attempts = 0

    async def send_json(self, payload):
        self.attempts += 1
        raise RuntimeError("Cannot call send once a close message has been sent")


@pytest.mark.asyncio
async def test_failed_send_closes_connection_quietly():
    """Test that a send to a gone client is dropped and later sends are skipped."""
    socket = BrokenSocket()
    connection = Connection(socket)

    await connection.push_update(MessageUpdate(text="Hi"))
    assert connection.closed is True

    await connection.push_update(MessageUpdate(text="Hi there"))
    await connection.complete("1", result=None)
    assert socket.attempts == 1
