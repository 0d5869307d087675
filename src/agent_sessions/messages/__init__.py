"""Message model and conversation reconstruction.

This package provides the message types shown by the chat UI, the replay
reconstruction engine, and the persisted-message restore path.
"""

from agent_sessions.messages.history import (
    HistoryEvent,
    extract_tool_content,
    parse_history_event,
    reconstruct,
    side_channel_events,
)
from agent_sessions.messages.stored import parse_stored_parts, restore_messages
from agent_sessions.messages.types import (
    Message,
    Part,
    ReasoningPart,
    Role,
    TextPart,
    ToolInvocationPart,
    ToolState,
    message_to_dict,
)

__all__ = [
    # Message types
    "Message",
    "Part",
    "TextPart",
    "ReasoningPart",
    "ToolInvocationPart",
    "Role",
    "ToolState",
    "message_to_dict",
    # Reconstruction
    "HistoryEvent",
    "parse_history_event",
    "reconstruct",
    "extract_tool_content",
    "side_channel_events",
    # Persisted messages
    "parse_stored_parts",
    "restore_messages",
]
