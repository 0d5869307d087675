"""Restore persisted conversation messages.

Persisted rows look like ``{"id", "sender", "content", "parts"}`` where
``parts`` is a JSON string. Rows written by older versions use a
``tool-invocation`` part with ``args``/``result``; newer rows use
``tool-<ToolName>`` parts. Both map onto ToolInvocationPart.
"""

import json
import logging
from typing import Any

from agent_sessions.messages.types import (
    Message,
    Part,
    ReasoningPart,
    TextPart,
    ToolInvocationPart,
)

logger = logging.getLogger(__name__)


def _tool_part_from_legacy(part: dict[str, Any], index: int) -> ToolInvocationPart:
    tool_name = part.get("toolName") or "unknown"
    return ToolInvocationPart(
        tool_call_id=part.get("toolCallId") or f"tool-{index}",
        tool_name=tool_name,
        state="output-available" if part.get("state") == "result" else "input-available",
        input=part.get("args") or {},
        output=part.get("result"),
    )


def _tool_part_from_typed(part: dict[str, Any], index: int) -> ToolInvocationPart:
    tool_name = part.get("toolName") or part["type"][len("tool-") :] or "unknown"
    state = part.get("state")
    return ToolInvocationPart(
        tool_call_id=part.get("toolCallId") or f"tool-{index}",
        tool_name=tool_name,
        state="output-available" if state == "output-available" else "input-available",
        input=part.get("input"),
        output=part.get("output"),
    )


def convert_stored_parts(parts: list[Any]) -> list[Part]:
    """Convert stored part dictionaries into message parts.

    Parts of unknown type are skipped.
    """
    result: list[Part] = []

    for index, part in enumerate(parts):
        if not isinstance(part, dict):
            continue
        part_type = part.get("type")

        if part_type == "text":
            result.append(TextPart(text=part.get("text") or ""))
        elif part_type == "reasoning":
            result.append(ReasoningPart(text=part.get("text") or ""))
        elif part_type == "tool-invocation":
            result.append(_tool_part_from_legacy(part, index))
        elif isinstance(part_type, str) and part_type.startswith("tool-"):
            result.append(_tool_part_from_typed(part, index))
        else:
            logger.debug(f"Skipping stored part of unknown type: {part_type!r}")

    return result


def parse_stored_parts(row: dict[str, Any]) -> list[Part]:
    """Parse a row's parts, falling back to its plain text content.

    Missing or unparseable parts never raise; the row's ``content`` is used
    as a single text part instead.
    """
    fallback: list[Part] = [TextPart(text=row.get("content") or "")]
    raw_parts = row.get("parts")
    if not raw_parts:
        return fallback

    try:
        decoded = json.loads(raw_parts) if isinstance(raw_parts, str) else raw_parts
    except (TypeError, ValueError) as e:
        logger.debug(f"Unparseable parts for message {row.get('id')}: {e}")
        return fallback

    if not isinstance(decoded, list):
        return fallback
    return convert_stored_parts(decoded)


def restore_messages(rows: list[dict[str, Any]]) -> list[Message]:
    """Convert persisted message rows to messages in stored order."""
    return [
        Message(
            id=str(row.get("id", "")),
            role="user" if row.get("sender") == "user" else "assistant",
            parts=parse_stored_parts(row),
        )
        for row in rows
    ]
