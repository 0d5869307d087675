"""Async HTTP client for the host agent runtime.

This module provides an httpx-based implementation of the host runtime
boundary. Request/response calls map to JSON endpoints; the status and
session-update push channels are Server-Sent Event streams consumed by
background tasks until unsubscribed. The client is designed to be created
once at startup and reused.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Callable

import httpx

from agent_sessions.errors import HostRuntimeError
from agent_sessions.host.types import (
    ApprovalResult,
    LoadMessagesResult,
    PromptResult,
    StartSessionRequest,
    StartSessionResult,
    StatusCallback,
    Unsubscribe,
    UpdateCallback,
)

logger = logging.getLogger(__name__)


async def _iter_sse_data(response: httpx.Response) -> AsyncIterator[str]:
    """Yield the data field of each Server-Sent Event in a response."""
    data_lines: list[str] = []
    async for line in response.aiter_lines():
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip())
    if data_lines:
        yield "\n".join(data_lines)


def _decode_status(data: str) -> str:
    try:
        decoded = json.loads(data)
    except ValueError:
        return data
    if isinstance(decoded, dict):
        return str(decoded.get("status", ""))
    return str(decoded)


class HttpHostRuntime:
    """Async client for a host runtime exposed over HTTP.

    Attributes:
        base_url: The host runtime URL (e.g., "http://127.0.0.1:8765")
        _client: The underlying httpx.AsyncClient instance
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the host runtime client.

        Args:
            base_url: The host runtime URL
            timeout: Per-request timeout in seconds
            client: Optional preconfigured httpx client (used by tests)
        """
        self.base_url = base_url
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._subscriptions: set[asyncio.Task] = set()
        logger.info(f"HttpHostRuntime initialized with base URL: {base_url}")

    async def _request(
        self, method: str, path: str, json_body: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json_body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise HostRuntimeError(f"{method} {path} failed: {e}") from e

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise HostRuntimeError(f"{method} {path} returned invalid JSON") from e

    async def check_connection(self) -> bool:
        """Check if the host runtime is reachable.

        Returns:
            bool: True if connection is successful, False otherwise
        """
        try:
            await self._request("GET", "/api/health")
            logger.debug("Host runtime connection check: successful")
            return True
        except HostRuntimeError as e:
            logger.warning(f"Host runtime connection check failed: {e}")
            return False

    async def load_messages(self, conversation_id: str) -> LoadMessagesResult:
        """Load persisted messages for a conversation.

        Raises:
            HostRuntimeError: If the request fails
        """
        data = await self._request("GET", f"/api/conversations/{conversation_id}/messages")
        result = LoadMessagesResult.from_dict(data)
        logger.debug(
            f"Loaded {len(result.messages)} persisted messages for {conversation_id}"
        )
        return result

    async def save_message(self, conversation_id: str, message: dict[str, Any]) -> None:
        """Persist a message to a conversation.

        Raises:
            HostRuntimeError: If the request fails
        """
        await self._request(
            "POST", f"/api/conversations/{conversation_id}/messages", message
        )

    async def start_session(self, request: StartSessionRequest) -> StartSessionResult:
        """Start or resume an agent session.

        Transport failures are reported as an unsuccessful result rather
        than raised, matching how the host reports its own failures.
        """
        try:
            data = await self._request("POST", "/api/sessions", request.to_payload())
        except HostRuntimeError as e:
            logger.warning(f"Start session request failed: {e}")
            return StartSessionResult(success=False, error=str(e))
        return StartSessionResult.from_dict(data)

    async def detach_session(self, session_key: str) -> None:
        """Release a session, leaving the agent-side session resumable."""
        await self._request("POST", f"/api/sessions/{session_key}/detach")

    async def kill_session(self, session_key: str) -> None:
        """Terminate a session and its agent process."""
        await self._request("POST", f"/api/sessions/{session_key}/kill")

    async def prompt(self, session_key: str, message: str) -> PromptResult:
        """Submit a user prompt to a running session."""
        try:
            data = await self._request(
                "POST", f"/api/sessions/{session_key}/prompt", {"message": message}
            )
        except HostRuntimeError as e:
            return PromptResult(success=False, error=str(e))
        return PromptResult(success=bool(data.get("success")), error=data.get("error"))

    async def cancel(self, session_key: str) -> None:
        """Cancel the prompt currently running in a session."""
        await self._request("POST", f"/api/sessions/{session_key}/cancel")

    async def approve(
        self, session_key: str, tool_call_id: str, approved: bool
    ) -> ApprovalResult:
        """Answer a pending permission request for a tool call."""
        try:
            data = await self._request(
                "POST",
                f"/api/sessions/{session_key}/approve",
                {"toolCallId": tool_call_id, "approved": approved},
            )
        except HostRuntimeError as e:
            logger.warning(f"Approval for {tool_call_id} failed: {e}")
            return ApprovalResult(success=False, error=str(e))
        return ApprovalResult(success=bool(data.get("success")), error=data.get("error"))

    def _subscribe(
        self, path: str, on_data: Callable[[str], None]
    ) -> Unsubscribe:
        async def consume() -> None:
            try:
                async with self._client.stream("GET", path, timeout=None) as response:
                    response.raise_for_status()
                    async for data in _iter_sse_data(response):
                        on_data(data)
            except asyncio.CancelledError:
                raise
            except httpx.HTTPError as e:
                logger.warning(f"Push channel {path} closed: {e}")
            except Exception as e:
                logger.error(f"Push channel {path} failed: {e}")

        task = asyncio.create_task(consume())
        self._subscriptions.add(task)
        task.add_done_callback(self._subscriptions.discard)

        def unsubscribe() -> None:
            task.cancel()

        return unsubscribe

    def subscribe_status(self, session_key: str, callback: StatusCallback) -> Unsubscribe:
        """Subscribe to status pushes for a session.

        Must be called from within a running event loop.
        """
        return self._subscribe(
            f"/api/sessions/{session_key}/status",
            lambda data: callback(_decode_status(data)),
        )

    def subscribe_updates(self, session_key: str, callback: UpdateCallback) -> Unsubscribe:
        """Subscribe to session update events for a session.

        Must be called from within a running event loop.
        """

        def on_data(data: str) -> None:
            try:
                event = json.loads(data)
            except ValueError:
                logger.warning(f"Ignoring malformed update event for {session_key}")
                return
            if isinstance(event, dict):
                callback(event)

        return self._subscribe(f"/api/sessions/{session_key}/updates", on_data)

    async def close(self) -> None:
        """Cancel all push channels and close the HTTP client."""
        for task in list(self._subscriptions):
            task.cancel()
        if self._subscriptions:
            await asyncio.gather(*self._subscriptions, return_exceptions=True)
        await self._client.aclose()
        logger.debug("HttpHostRuntime closed")
