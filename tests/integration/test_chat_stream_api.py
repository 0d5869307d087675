"""Integration tests for the streaming chat API endpoint.

This module tests the SSE streaming chat endpoint including:
- Streaming text, reasoning and tool chunks from a ready session
- Messages sent while the session is still starting
- Start failures, closed sessions and rejected prompts
"""

import asyncio

import pytest
from httpx import AsyncClient

from agent_sessions.host.types import ApprovalResult, PromptResult, StartSessionResult


def update(kind: str, /, **fields) -> dict:
    return {
        "type": "session_update",
        "data": {"sessionId": "agent-1", "update": {"sessionUpdate": kind, **fields}},
    }


def agent_text(text: str) -> dict:
    return update("agent_message_chunk", content={"type": "text", "text": text})


@pytest.mark.asyncio
async def test_stream_chat_basic(async_client: AsyncClient, open_session, fake_host, sse_events):
    """Test a basic streamed response."""
    await open_session()
    fake_host.prompt_events = [
        agent_text("Hello"),
        agent_text(" there"),
        {"type": "prompt_complete", "stopReason": "end_turn"},
    ]

    response = await async_client.post(
        "/api/v1/chat/conv-1/stream",
        json={"message": "Hi!", "message_id": "msg-1"},
    )

    assert response.status_code == 200
    events = sse_events(response.text)
    assert [e["event"] for e in events] == [
        "text-start",
        "text-delta",
        "text-delta",
        "text-end",
        "finish",
        "done",
    ]
    deltas = [e["data"]["delta"] for e in events if e["event"] == "text-delta"]
    assert "".join(deltas) == "Hello there"
    assert events[-1]["data"] == {"conversation_id": "conv-1", "message_id": "msg-1"}

    assert fake_host.prompts == [("session-1", "Hi!")]
    assert fake_host.saved[0][1]["id"] == "msg-1"


@pytest.mark.asyncio
async def test_stream_chat_tool_call(async_client: AsyncClient, open_session, fake_host, sse_events):
    """Test that tool calls and reasoning are streamed."""
    await open_session()
    fake_host.prompt_events = [
        update("agent_thought_chunk", content={"type": "text", "text": "Let me look"}),
        update("tool_call", toolCallId="t1", kind="read", rawInput={"path": "README.md"}),
        update("tool_call_update", toolCallId="t1", status="completed", rawOutput="# Readme"),
        agent_text("Done"),
        {"type": "prompt_complete"},
    ]

    response = await async_client.post("/api/v1/chat/conv-1/stream", json={"message": "Read it"})

    events = sse_events(response.text)
    names = [e["event"] for e in events]
    assert names[:2] == ["reasoning-start", "reasoning-delta"]
    tool_input = next(e for e in events if e["event"] == "tool-input-available")
    assert tool_input["data"]["toolName"] == "read"
    assert tool_input["data"]["input"] == {"path": "README.md"}
    tool_output = next(e for e in events if e["event"] == "tool-output-available")
    assert tool_output["data"]["output"] == "# Readme"
    assert names[-1] == "done"


@pytest.mark.asyncio
async def test_stream_chat_generates_message_id(
    async_client: AsyncClient, open_session, fake_host, sse_events
):
    await open_session()
    fake_host.prompt_events = [{"type": "prompt_complete"}]

    response = await async_client.post("/api/v1/chat/conv-1/stream", json={"message": "Hi"})

    done = sse_events(response.text)[-1]
    assert done["event"] == "done"
    assert len(done["data"]["message_id"]) == 10


@pytest.mark.asyncio
async def test_stream_chat_while_starting(
    async_client: AsyncClient, fake_host, sse_events, wait_until, message_waiting
):
    """Test that a message sent during start is delivered once ready."""
    fake_host.hold_starts = True
    fake_host.prompt_events = [agent_text("Ready now"), {"type": "prompt_complete"}]
    await async_client.post(
        "/api/v1/sessions",
        json={"conversation_id": "conv-1", "provider_id": "claude-code", "working_directory": "/w"},
    )
    await fake_host.wait_for_pending_starts(1)

    stream = asyncio.create_task(
        async_client.post("/api/v1/chat/conv-1/stream", json={"message": "Hi"})
    )
    await wait_until(message_waiting)
    assert fake_host.prompts == []

    fake_host.pending_starts[0].set_result(fake_host.success_result())
    response = await asyncio.wait_for(stream, timeout=5)

    events = sse_events(response.text)
    deltas = [e["data"]["delta"] for e in events if e["event"] == "text-delta"]
    assert deltas == ["Ready now"]
    assert fake_host.prompts == [("session-1", "Hi")]


@pytest.mark.asyncio
async def test_stream_chat_start_failure(
    async_client: AsyncClient, open_session, fake_host, sse_events
):
    """Test that a failed start is reported as an error event."""
    fake_host.start_results = [StartSessionResult(success=False, error="agent binary not found")]
    await open_session()

    response = await async_client.post("/api/v1/chat/conv-1/stream", json={"message": "Hi"})

    assert response.status_code == 200
    events = sse_events(response.text)
    assert len(events) == 1
    assert events[0]["event"] == "error"
    assert events[0]["data"]["code"] == "session_start_failed"
    assert events[0]["data"]["message"] == "agent binary not found"


@pytest.mark.asyncio
async def test_stream_chat_rejected_prompt(
    async_client: AsyncClient, open_session, fake_host, sse_events
):
    """Test that a prompt rejected by the host ends the stream with an error chunk."""
    await open_session()
    fake_host.prompt_result = PromptResult(success=False, error="Session busy")

    response = await async_client.post("/api/v1/chat/conv-1/stream", json={"message": "Hi"})

    events = sse_events(response.text)
    assert events[0] == {"event": "error", "data": {"type": "error", "errorText": "Session busy"}}
    assert events[-1]["event"] == "done"


@pytest.mark.asyncio
async def test_stream_chat_session_not_found(async_client: AsyncClient):
    response = await async_client.post("/api/v1/chat/missing/stream", json={"message": "Hi"})

    assert response.status_code == 404
    assert response.json()["detail"]["error"]["code"] == "session_not_found"


@pytest.mark.asyncio
async def test_stream_chat_busy(
    async_client: AsyncClient, fake_host, sse_events, wait_until, message_waiting
):
    """Test that a second message while one is waiting is rejected."""
    fake_host.hold_starts = True
    await async_client.post(
        "/api/v1/sessions",
        json={"conversation_id": "conv-1", "provider_id": "claude-code", "working_directory": "/w"},
    )
    await fake_host.wait_for_pending_starts(1)
    first = asyncio.create_task(
        async_client.post("/api/v1/chat/conv-1/stream", json={"message": "one"})
    )
    await wait_until(message_waiting)

    second = await async_client.post("/api/v1/chat/conv-1/stream", json={"message": "two"})

    assert second.status_code == 409
    assert second.json()["detail"]["error"]["code"] == "transport_busy"

    fake_host.pending_starts[0].set_result(StartSessionResult(success=False, error="nope"))
    events = sse_events((await asyncio.wait_for(first, timeout=5)).text)
    assert events[0]["data"]["code"] == "session_start_failed"


@pytest.mark.asyncio
async def test_stream_chat_after_close_while_waiting(
    async_client: AsyncClient, fake_host, sse_events, wait_until, message_waiting
):
    """Test that closing the session rejects a waiting message."""
    fake_host.hold_starts = True
    await async_client.post(
        "/api/v1/sessions",
        json={"conversation_id": "conv-1", "provider_id": "claude-code", "working_directory": "/w"},
    )
    await fake_host.wait_for_pending_starts(1)
    stream = asyncio.create_task(
        async_client.post("/api/v1/chat/conv-1/stream", json={"message": "Hi"})
    )
    await wait_until(message_waiting)

    await async_client.delete("/api/v1/sessions/conv-1")
    response = await asyncio.wait_for(stream, timeout=5)

    events = sse_events(response.text)
    assert events[0]["event"] == "error"
    assert events[0]["data"]["code"] == "session_disposed"
    fake_host.pending_starts[0].set_result(fake_host.success_result())


@pytest.mark.asyncio
async def test_stream_chat_permission_request(
    async_client: AsyncClient, open_session, fake_host, sse_events
):
    """Test that permission requests are streamed as approval chunks."""
    await open_session()
    fake_host.prompt_events = [
        {"type": "permission_request", "toolCallId": "toolu_01"},
        {"type": "prompt_complete", "stopReason": "end_turn"},
    ]

    response = await async_client.post("/api/v1/chat/conv-1/stream", json={"message": "Hi"})

    events = sse_events(response.text)
    assert events[0]["event"] == "tool-approval-request"
    assert events[0]["data"]["toolCallId"] == "toolu_01"


@pytest.mark.asyncio
async def test_approve_tool_call(async_client: AsyncClient, open_session, fake_host):
    """Test answering a permission request."""
    await open_session()

    response = await async_client.post(
        "/api/v1/chat/conv-1/approve", json={"tool_call_id": "toolu_01", "approved": True}
    )

    assert response.status_code == 200
    assert response.json() == {
        "conversation_id": "conv-1",
        "tool_call_id": "toolu_01",
        "approved": True,
    }
    assert fake_host.approvals == [("session-1", "toolu_01", True)]


@pytest.mark.asyncio
async def test_approve_rejected_by_host(async_client: AsyncClient, open_session, fake_host):
    await open_session()
    fake_host.approval_result = ApprovalResult(
        success=False, error="No pending permission for this toolCallId"
    )

    response = await async_client.post(
        "/api/v1/chat/conv-1/approve", json={"tool_call_id": "toolu_01", "approved": False}
    )

    assert response.status_code == 409
    error = response.json()["detail"]["error"]
    assert error["code"] == "approval_failed"
    assert error["message"] == "No pending permission for this toolCallId"


@pytest.mark.asyncio
async def test_approve_before_session_ready(async_client: AsyncClient, fake_host):
    """Test that an answer for a session still starting is rejected."""
    fake_host.hold_starts = True
    await async_client.post(
        "/api/v1/sessions",
        json={"conversation_id": "conv-1", "provider_id": "claude-code", "working_directory": "/w"},
    )
    await fake_host.wait_for_pending_starts(1)

    response = await async_client.post(
        "/api/v1/chat/conv-1/approve", json={"tool_call_id": "toolu_01", "approved": True}
    )

    assert response.status_code == 409
    assert response.json()["detail"]["error"]["message"] == "Session is not ready"
    assert fake_host.approvals == []
    fake_host.pending_starts[0].set_result(StartSessionResult(success=False))


@pytest.mark.asyncio
async def test_approve_session_not_found(async_client: AsyncClient):
    response = await async_client.post(
        "/api/v1/chat/missing/approve", json={"tool_call_id": "toolu_01", "approved": True}
    )

    assert response.status_code == 404
    assert response.json()["detail"]["error"]["code"] == "session_not_found"
