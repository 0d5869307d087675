"""Conversation reconstruction from replayed protocol events.

When a session is resumed the host re-emits the agent's prior dialogue as
a flat, ordered stream of session updates. The stream carries no message
boundaries, so this module infers them from role transitions:

- user_message_chunk opens (or continues) a user message
- agent_message_chunk / agent_thought_chunk / tool_call open (or continue)
  an assistant message
- tool_call_update completes a tool call in the open message

Everything here is pure: the same events always give the same messages.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from agent_sessions.messages.types import (
    Message,
    Part,
    ReasoningPart,
    Role,
    TextPart,
    ToolInvocationPart,
)

logger = logging.getLogger(__name__)

USER_MESSAGE_CHUNK = "user_message_chunk"
AGENT_MESSAGE_CHUNK = "agent_message_chunk"
AGENT_THOUGHT_CHUNK = "agent_thought_chunk"
TOOL_CALL = "tool_call"
TOOL_CALL_UPDATE = "tool_call_update"

MESSAGE_KINDS = frozenset(
    {
        USER_MESSAGE_CHUNK,
        AGENT_MESSAGE_CHUNK,
        AGENT_THOUGHT_CHUNK,
        TOOL_CALL,
        TOOL_CALL_UPDATE,
    }
)

TERMINAL_TOOL_STATUSES = frozenset({"completed", "failed"})

FAILED_TOOL_OUTPUT = "Tool execution failed"


@dataclass
class HistoryEvent:
    """A single replayed session update.

    Attributes:
        kind: The update kind (e.g. "agent_message_chunk")
        text: Text content for message/thought chunks, if any
        tool_call_id: Tool call identifier for tool events
        title: Human-readable tool call title
        tool_kind: Tool category reported by the agent (used as tool name)
        status: Tool call status for updates ("completed", "failed", ...)
        raw_input: Raw tool input
        raw_output: Raw tool output
        content: Tool call content items
        raw: The original event payload
    """

    kind: str
    text: str | None = None
    tool_call_id: str | None = None
    title: str | None = None
    tool_kind: str | None = None
    status: str | None = None
    raw_input: Any = None
    raw_output: Any = None
    content: Any = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def tool_name(self) -> str:
        """Tool name: the reported kind, else the first word of the title."""
        if self.tool_kind:
            return self.tool_kind
        words = self.title.split() if self.title else []
        return words[0] if words else "tool"

    @property
    def tool_input(self) -> Any:
        return self.raw_input if self.raw_input is not None else {"title": self.title}


def _update_payload(raw: dict[str, Any]) -> dict[str, Any] | None:
    """Locate the session update inside a host event envelope.

    Accepts the full envelope ``{"type": "session_update", "data": {"update": ...}}``,
    a bare notification ``{"update": ...}`` or the update itself.
    """
    if "type" in raw and raw.get("type") != "session_update":
        return None
    if isinstance(raw.get("data"), dict):
        raw = raw["data"]
    update = raw.get("update", raw)
    if not isinstance(update, dict):
        return None
    return update


def parse_history_event(raw: dict[str, Any]) -> HistoryEvent | None:
    """Parse a raw host event into a HistoryEvent.

    Args:
        raw: Event as delivered by the host

    Returns:
        HistoryEvent, or None if the event is not a session update
    """
    update = _update_payload(raw)
    if update is None:
        return None

    kind = update.get("sessionUpdate")
    if not kind:
        return None

    text = None
    content = update.get("content")
    if kind in (USER_MESSAGE_CHUNK, AGENT_MESSAGE_CHUNK, AGENT_THOUGHT_CHUNK):
        if isinstance(content, dict) and content.get("type") == "text":
            text = content.get("text") or None
        content = None

    return HistoryEvent(
        kind=kind,
        text=text,
        tool_call_id=update.get("toolCallId"),
        title=update.get("title"),
        tool_kind=update.get("kind"),
        status=update.get("status"),
        raw_input=update.get("rawInput"),
        raw_output=update.get("rawOutput"),
        content=content,
        raw=raw,
    )


def extract_tool_content(content: Any) -> str | None:
    """Extract displayable text from a list of tool call content items.

    Text content blocks, diffs and terminal output are joined by newlines.

    Returns:
        The joined text, or None if nothing displayable was found
    """
    if not isinstance(content, list):
        return None

    texts: list[str] = []
    for item in content:
        if not isinstance(item, dict):
            continue
        item_type = item.get("type")
        if item_type == "content":
            block = item.get("content")
            if isinstance(block, dict) and block.get("type") == "text" and block.get("text"):
                texts.append(block["text"])
        elif item_type == "diff" and item.get("diff"):
            texts.append(item["diff"])
        elif item_type == "terminal" and item.get("output"):
            texts.append(item["output"])

    return "\n".join(texts) if texts else None


def _coerce(events: Iterable[HistoryEvent | dict[str, Any]]) -> Iterable[HistoryEvent]:
    for event in events:
        if isinstance(event, HistoryEvent):
            yield event
            continue
        parsed = parse_history_event(event)
        if parsed is not None:
            yield parsed


class _MessageBuilder:
    """Accumulates parts for the message currently being reconstructed."""

    def __init__(self) -> None:
        self.messages: list[Message] = []
        self.role: Role | None = None
        self.parts: list[Part] = []
        self.text = ""
        self.reasoning = ""

    def flush_text(self) -> None:
        if self.text:
            self.parts.append(TextPart(text=self.text))
            self.text = ""

    def flush_reasoning(self) -> None:
        if self.reasoning:
            self.parts.append(ReasoningPart(text=self.reasoning))
            self.reasoning = ""

    def flush_message(self) -> None:
        self.flush_text()
        self.flush_reasoning()
        if self.role is not None and self.parts:
            self.messages.append(
                Message(
                    id=f"history-{len(self.messages)}",
                    role=self.role,
                    parts=self.parts,
                )
            )
        self.parts = []
        self.role = None

    def ensure_role(self, role: Role) -> None:
        if self.role != role:
            self.flush_message()
            self.role = role

    def find_tool_part(self, tool_call_id: str) -> ToolInvocationPart | None:
        for part in self.parts:
            if isinstance(part, ToolInvocationPart) and part.tool_call_id == tool_call_id:
                return part
        return None


def reconstruct(events: Iterable[HistoryEvent | dict[str, Any]]) -> list[Message]:
    """Rebuild the message timeline from replayed history events.

    Args:
        events: Ordered history events, parsed or as raw host payloads

    Returns:
        Ordered list of messages with alternating roles
    """
    builder = _MessageBuilder()

    for index, event in enumerate(_coerce(events)):
        kind = event.kind

        if kind == USER_MESSAGE_CHUNK:
            if event.text:
                builder.ensure_role("user")
                builder.text += event.text

        elif kind == AGENT_MESSAGE_CHUNK:
            if event.text:
                builder.ensure_role("assistant")
                builder.flush_reasoning()
                builder.text += event.text

        elif kind == AGENT_THOUGHT_CHUNK:
            if event.text:
                builder.ensure_role("assistant")
                builder.flush_text()
                builder.reasoning += event.text

        elif kind == TOOL_CALL:
            builder.ensure_role("assistant")
            builder.flush_text()
            builder.flush_reasoning()
            tool_call_id = event.tool_call_id or f"tool-{len(builder.messages)}-{index}"
            builder.parts.append(
                ToolInvocationPart(
                    tool_call_id=tool_call_id,
                    tool_name=event.tool_name,
                    input=event.tool_input,
                )
            )

        elif kind == TOOL_CALL_UPDATE:
            if not event.tool_call_id or event.status not in TERMINAL_TOOL_STATUSES:
                continue
            part = builder.find_tool_part(event.tool_call_id)
            if part is None:
                logger.debug(f"Dropping update for unknown tool call {event.tool_call_id}")
                continue
            output = event.raw_output
            if output is None:
                output = extract_tool_content(event.content)
            if output is None:
                output = FAILED_TOOL_OUTPUT if event.status == "failed" else ""
            part.complete(output)

    builder.flush_message()
    return builder.messages


def side_channel_events(events: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Select replayed events that carry session state rather than dialogue.

    Examples are available_commands_update and current_mode_update.
    """
    selected = []
    for raw in events:
        parsed = parse_history_event(raw)
        if parsed is not None and parsed.kind not in MESSAGE_KINDS:
            selected.append(raw)
    return selected
