"""Real chat transport backed by the host runtime.

HostTransport submits the user's message as a prompt and turns the
session's update events into UI stream chunks until the prompt completes.
"""

import asyncio
import itertools
import logging
from typing import Any, AsyncIterator

from agent_sessions.host.types import (
    ApprovalResult,
    HostRuntime,
    PromptResult,
    Unsubscribe,
)
from agent_sessions.messages.history import (
    TERMINAL_TOOL_STATUSES,
    extract_tool_content,
    parse_history_event,
)
from agent_sessions.messages.types import Message, message_to_dict

logger = logging.getLogger(__name__)

_part_ids = itertools.count()


def _next_part_id() -> str:
    return f"part-{next(_part_ids)}"


class ChunkMapper:
    """Maps session updates to UI stream chunks.

    Tracks the open text and reasoning streams so consecutive deltas land
    in one part instead of one part per chunk.
    """

    def __init__(self) -> None:
        self.active_text_id: str | None = None
        self.active_reasoning_id: str | None = None

    def _end_text(self) -> list[dict[str, Any]]:
        if self.active_text_id is None:
            return []
        chunk = {"type": "text-end", "id": self.active_text_id}
        self.active_text_id = None
        return [chunk]

    def _end_reasoning(self) -> list[dict[str, Any]]:
        if self.active_reasoning_id is None:
            return []
        chunk = {"type": "reasoning-end", "id": self.active_reasoning_id}
        self.active_reasoning_id = None
        return [chunk]

    def end_all(self) -> list[dict[str, Any]]:
        """Close every open stream."""
        return self._end_text() + self._end_reasoning()

    def _text(self, text: str) -> list[dict[str, Any]]:
        chunks = self._end_reasoning()
        if self.active_text_id is None:
            self.active_text_id = _next_part_id()
            chunks.append({"type": "text-start", "id": self.active_text_id})
        chunks.append({"type": "text-delta", "id": self.active_text_id, "delta": text})
        return chunks

    def _reasoning(self, text: str) -> list[dict[str, Any]]:
        chunks = self._end_text()
        if self.active_reasoning_id is None:
            self.active_reasoning_id = _next_part_id()
            chunks.append({"type": "reasoning-start", "id": self.active_reasoning_id})
        chunks.append(
            {"type": "reasoning-delta", "id": self.active_reasoning_id, "delta": text}
        )
        return chunks

    def map(self, data: dict[str, Any]) -> list[dict[str, Any]]:
        """Map one session notification to zero or more chunks."""
        update = data.get("update") if isinstance(data, dict) else None
        if not isinstance(update, dict):
            return []
        kind = update.get("sessionUpdate")
        content = update.get("content")

        if kind == "agent_message_start":
            return [{"type": "start"}, {"type": "start-step"}]
        if kind == "agent_message_end":
            return self.end_all() + [{"type": "finish-step"}]

        if kind == "agent_message_chunk" and isinstance(content, dict):
            content_type = content.get("type")
            if content_type == "text" and content.get("text"):
                return self._text(content["text"])
            if content_type == "thinking" and content.get("text"):
                return self._reasoning(content["text"])
            if content_type in ("tool_use", "tool_call"):
                return self.end_all() + [
                    {
                        "type": "tool-input-available",
                        "toolCallId": content.get("toolCallId")
                        or content.get("id")
                        or _next_part_id(),
                        "toolName": content.get("toolName")
                        or content.get("name")
                        or "unknown",
                        "input": content.get("args") or content.get("input") or {},
                    }
                ]
            if content_type == "tool_result":
                output = content.get("result", content.get("content"))
                if output is None:
                    return []
                return [
                    {
                        "type": "tool-output-available",
                        "toolCallId": content.get("toolCallId")
                        or content.get("id")
                        or _next_part_id(),
                        "output": output,
                    }
                ]
            return []

        event = parse_history_event(update)
        if event is None:
            return []
        if kind == "agent_thought_chunk" and event.text:
            return self._reasoning(event.text)
        if kind == "tool_call":
            return self.end_all() + [
                {
                    "type": "tool-input-available",
                    "toolCallId": event.tool_call_id or _next_part_id(),
                    "toolName": event.tool_name,
                    "input": event.tool_input,
                }
            ]
        if (
            kind == "tool_call_update"
            and event.tool_call_id
            and event.status in TERMINAL_TOOL_STATUSES
        ):
            output = event.raw_output
            if output is None:
                output = extract_tool_content(event.content)
            if output is None:
                output = "Tool execution failed" if event.status == "failed" else ""
            return [
                {
                    "type": "tool-output-available",
                    "toolCallId": event.tool_call_id,
                    "output": output,
                }
            ]
        return []


class HostTransport:
    """Chat transport for one running host session.

    Attributes:
        session_key: The host session this transport sends to
        conversation_id: Conversation the user messages are persisted to
        session_state: Latest side-channel event per update kind
    """

    def __init__(self, host: HostRuntime, session_key: str, conversation_id: str) -> None:
        self.host = host
        self.session_key = session_key
        self.conversation_id = conversation_id
        self.session_state: dict[str, dict[str, Any]] = {}
        self._streams: set[asyncio.Queue] = set()
        self._closed = False

    async def _persist_user_message(self, message: Message) -> None:
        try:
            await self.host.save_message(
                self.conversation_id,
                {**message_to_dict(message), "sender": "user", "content": message.text()},
            )
        except Exception as e:
            logger.warning(f"Failed to persist user message {message.id}: {e}")

    async def send(self, message: Message) -> AsyncIterator[dict[str, Any]]:
        """Submit a user message and return the response chunk stream."""
        if self._closed:
            return self._error_stream("Session disposed")
        await self._persist_user_message(message)

        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        unsubscribe = self.host.subscribe_updates(self.session_key, queue.put_nowait)
        self._streams.add(queue)

        try:
            result = await self.host.prompt(self.session_key, message.text())
        except asyncio.CancelledError:
            unsubscribe()
            self._streams.discard(queue)
            raise
        except Exception as e:
            logger.error(f"Prompt failed for session {self.session_key}: {e}")
            result = PromptResult(success=False, error=f"Failed to send prompt: {e}")

        if not result.success:
            unsubscribe()
            self._streams.discard(queue)
            logger.warning(f"Prompt rejected for session {self.session_key}: {result.error}")
            return self._error_stream(result.error or "Failed to send prompt")

        return self._stream(queue, unsubscribe)

    async def approve(self, tool_call_id: str, approved: bool) -> ApprovalResult:
        """Answer a permission request raised during a prompt."""
        if self._closed:
            return ApprovalResult(success=False, error="Session disposed")
        logger.info(
            f"Permission for {tool_call_id} on session {self.session_key}: "
            f"{'approved' if approved else 'denied'}"
        )
        return await self.host.approve(self.session_key, tool_call_id, approved)

    @staticmethod
    async def _error_stream(error: str) -> AsyncIterator[dict[str, Any]]:
        yield {"type": "error", "errorText": error}

    async def _stream(
        self, queue: asyncio.Queue, unsubscribe: Unsubscribe
    ) -> AsyncIterator[dict[str, Any]]:
        mapper = ChunkMapper()
        finished = False
        try:
            while True:
                event = await queue.get()
                event_type = event.get("type")

                if event_type == "session_update":
                    for chunk in mapper.map(event.get("data") or {}):
                        yield chunk
                elif event_type == "permission_request":
                    yield {
                        "type": "tool-approval-request",
                        "approvalId": event.get("toolCallId"),
                        "toolCallId": event.get("toolCallId"),
                    }
                elif event_type == "prompt_complete":
                    finished = True
                    for chunk in mapper.end_all():
                        yield chunk
                    yield {"type": "finish", "finishReason": "stop"}
                    return
                elif event_type == "session_error":
                    finished = True
                    for chunk in mapper.end_all():
                        yield chunk
                    yield {"type": "error", "errorText": event.get("error") or "Session error"}
                    return
        finally:
            unsubscribe()
            self._streams.discard(queue)
            if not finished and not self._closed:
                # Consumer stopped reading before the prompt completed.
                try:
                    await self.host.cancel(self.session_key)
                except Exception as e:
                    logger.warning(f"Failed to cancel prompt for {self.session_key}: {e}")

    def close(self) -> None:
        """End every open response stream with a disposal error."""
        self._closed = True
        for queue in list(self._streams):
            queue.put_nowait({"type": "session_error", "error": "Session disposed"})

    def replay_side_channel_events(self, events: list[dict[str, Any]]) -> None:
        """Remember the latest side-channel state replayed at resume."""
        for raw in events:
            event = parse_history_event(raw)
            if event is not None:
                self.session_state[event.kind] = raw
        logger.debug(
            f"Replayed {len(events)} side-channel events for session {self.session_key}"
        )
