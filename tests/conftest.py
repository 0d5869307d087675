"""Pytest configuration and shared fixtures for agent-sessions tests.

This module provides common fixtures used across all test modules,
including an in-memory host runtime, test app creation and async client
setup.
"""

import asyncio
import itertools
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from agent_sessions import create_app
from agent_sessions.config import AgentSessionsSettings
from agent_sessions.host.types import (
    ApprovalResult,
    LoadMessagesResult,
    PromptResult,
    StartSessionRequest,
    StartSessionResult,
)


class FakeHost:
    """In-memory host runtime with controllable start calls.

    By default start_session succeeds immediately with a fresh session key.
    Set ``hold_starts`` to park start calls until the test resolves them
    through ``pending_starts``. Events in ``prompt_events`` are pushed to
    update subscribers whenever a prompt is accepted.
    """

    def __init__(self) -> None:
        self.load_result: LoadMessagesResult | Exception = LoadMessagesResult(
            success=True, messages=[]
        )
        self.start_results: list[StartSessionResult | Exception] = []
        self.history_events: list[dict[str, Any]] = []
        self.hold_starts = False
        self.pending_starts: list[asyncio.Future] = []
        self.start_calls: list[StartSessionRequest] = []

        self.detached: list[str] = []
        self.killed: list[str] = []
        self.release_error: Exception | None = None

        self.status_callbacks: dict[str, list] = {}
        self.update_callbacks: dict[str, list] = {}

        self.prompt_result = PromptResult(success=True)
        self.prompt_events: list[dict[str, Any]] = []
        self.prompts: list[tuple[str, str]] = []
        self.cancelled: list[str] = []
        self.approval_result = ApprovalResult(success=True)
        self.approvals: list[tuple[str, str, bool]] = []
        self.saved: list[tuple[str, dict[str, Any]]] = []
        self.connected = True

        self._keys = itertools.count(1)

    def success_result(self, **overrides: Any) -> StartSessionResult:
        """Build a successful start result with a fresh session key."""
        n = next(self._keys)
        values: dict[str, Any] = {
            "success": True,
            "session_key": f"session-{n}",
            "agent_session_id": f"agent-{n}",
            "resumed": False,
            "history_events": list(self.history_events),
        }
        values.update(overrides)
        return StartSessionResult(**values)

    async def wait_for_pending_starts(self, count: int) -> None:
        """Let the event loop run until ``count`` start calls are parked."""
        for _ in range(100):
            if len(self.pending_starts) >= count:
                return
            await asyncio.sleep(0)
        raise AssertionError(f"expected {count} pending start calls")

    async def check_connection(self) -> bool:
        return self.connected

    async def load_messages(self, conversation_id: str) -> LoadMessagesResult:
        if isinstance(self.load_result, Exception):
            raise self.load_result
        return self.load_result

    async def start_session(self, request: StartSessionRequest) -> StartSessionResult:
        self.start_calls.append(request)
        if self.hold_starts:
            future = asyncio.get_running_loop().create_future()
            self.pending_starts.append(future)
            return await future
        if self.start_results:
            result = self.start_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return self.success_result()

    async def detach_session(self, session_key: str) -> None:
        self.detached.append(session_key)
        if self.release_error is not None:
            raise self.release_error

    async def kill_session(self, session_key: str) -> None:
        self.killed.append(session_key)
        if self.release_error is not None:
            raise self.release_error

    def _subscribe(self, registry: dict[str, list], session_key: str, callback):
        registry.setdefault(session_key, []).append(callback)

        def unsubscribe() -> None:
            if callback in registry.get(session_key, []):
                registry[session_key].remove(callback)

        return unsubscribe

    def subscribe_status(self, session_key: str, callback):
        return self._subscribe(self.status_callbacks, session_key, callback)

    def subscribe_updates(self, session_key: str, callback):
        return self._subscribe(self.update_callbacks, session_key, callback)

    def push_status(self, session_key: str, status: str) -> None:
        for callback in list(self.status_callbacks.get(session_key, [])):
            callback(status)

    def push_update(self, session_key: str, event: dict[str, Any]) -> None:
        for callback in list(self.update_callbacks.get(session_key, [])):
            callback(event)

    def status_subscription_count(self) -> int:
        return sum(len(callbacks) for callbacks in self.status_callbacks.values())

    def update_subscription_count(self) -> int:
        return sum(len(callbacks) for callbacks in self.update_callbacks.values())

    async def prompt(self, session_key: str, message: str) -> PromptResult:
        self.prompts.append((session_key, message))
        if self.prompt_result.success:
            for event in self.prompt_events:
                self.push_update(session_key, event)
        return self.prompt_result

    async def cancel(self, session_key: str) -> None:
        self.cancelled.append(session_key)

    async def approve(
        self, session_key: str, tool_call_id: str, approved: bool
    ) -> ApprovalResult:
        self.approvals.append((session_key, tool_call_id, approved))
        return self.approval_result

    async def save_message(self, conversation_id: str, message: dict[str, Any]) -> None:
        self.saved.append((conversation_id, message))


@pytest.fixture
def fake_host() -> FakeHost:
    """Create an in-memory host runtime."""
    return FakeHost()


@pytest.fixture
def test_settings():
    """Create test settings.

    Returns:
        AgentSessionsSettings: Settings instance configured for testing.
    """
    return AgentSessionsSettings(
        host="127.0.0.1",
        port=8000,
        runtime_url="http://runtime.test",
        log_level="DEBUG",
        cors_origins=["*"],
    )


@pytest.fixture
def test_app(test_settings, fake_host):
    """Create a FastAPI test application backed by the fake host.

    Args:
        test_settings: Test settings fixture.
        fake_host: In-memory host runtime fixture.

    Returns:
        FastAPI: Configured test application.
    """
    return create_app(settings=test_settings, host_runtime=fake_host)


@pytest_asyncio.fixture
async def async_client(test_app):
    """Create an async HTTP client for testing FastAPI endpoints.

    Args:
        test_app: Test application fixture.

    Yields:
        AsyncClient: Async HTTP client for making test requests.
    """
    # Trigger the lifespan startup manually for tests
    async with test_app.router.lifespan_context(test_app):
        transport = ASGITransport(app=test_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
