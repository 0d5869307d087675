"""Pytest configuration for integration tests.

This module provides integration-test-specific fixtures and helpers for
driving the session and chat endpoints against the in-memory host.
"""

import asyncio
import json

import pytest
import pytest_asyncio
from httpx import AsyncClient


def parse_sse_events(text: str) -> list[dict]:
    """Parse a buffered Server-Sent Events body into event/data pairs."""
    events = []
    # Normalize line endings and split by double newline
    normalized_text = text.replace("\r\n", "\n")
    for block in normalized_text.strip().split("\n\n"):
        if not block.strip():
            continue
        event_type = None
        event_data = None
        for part in block.split("\n"):
            if part.startswith("event:"):
                event_type = part.split(":", 1)[1].strip()
            elif part.startswith("data:"):
                event_data = part.split(":", 1)[1].strip()
        if event_type and event_data:
            events.append({"event": event_type, "data": json.loads(event_data)})
    return events


@pytest.fixture
def sse_events():
    """Provide the SSE body parser to tests."""
    return parse_sse_events


@pytest.fixture(autouse=True)
def fast_state_stream(monkeypatch):
    """Shorten the idle poll of session state streams."""
    monkeypatch.setattr("agent_sessions.routers.sessions.STATE_STREAM_POLL_SECONDS", 0.05)


@pytest_asyncio.fixture
async def open_session(async_client: AsyncClient):
    """Open a session and wait until it leaves the initializing state.

    Returns:
        An async function taking a conversation id and returning the
        session state JSON.
    """

    async def _open(conversation_id: str = "conv-1", **overrides) -> dict:
        body = {
            "conversation_id": conversation_id,
            "provider_id": "claude-code",
            "working_directory": "/work",
            **overrides,
        }
        response = await async_client.post("/api/v1/sessions", json=body)
        assert response.status_code == 202
        for _ in range(200):
            state = (await async_client.get(f"/api/v1/sessions/{conversation_id}")).json()
            if state["status"] != "initializing":
                return state
            await asyncio.sleep(0.01)
        raise AssertionError(f"session {conversation_id} never left initializing")

    return _open


@pytest.fixture
def wait_until():
    """Provide a helper that polls a predicate until it holds."""

    async def _wait(predicate, timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.01)

    return _wait


@pytest.fixture
def message_waiting(test_app):
    """Return a predicate telling whether a conversation has a buffered send."""

    def _waiting(conversation_id: str = "conv-1") -> bool:
        registry = test_app.state.session_registry
        return conversation_id in registry and registry.get(conversation_id).transport.has_pending

    return _waiting
