"""Data types for conversation messages.

This module defines the message model shared by the history reconstruction
engine, the persisted-message restore path, and the transports.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

Role = Literal["user", "assistant"]
ToolState = Literal["input-available", "output-available"]


@dataclass
class TextPart:
    """Free text produced by the user or the agent."""

    text: str = ""
    type: Literal["text"] = "text"


@dataclass
class ReasoningPart:
    """Agent reasoning, rendered separately from running text."""

    text: str = ""
    type: Literal["reasoning"] = "reasoning"


@dataclass
class ToolInvocationPart:
    """A tool call made by the agent.

    The part moves from ``input-available`` to ``output-available`` at most
    once, identified by ``tool_call_id``.
    """

    tool_call_id: str
    tool_name: str
    state: ToolState = "input-available"
    input: Any = None
    output: Any = None
    type: Literal["tool-invocation"] = "tool-invocation"

    def complete(self, output: Any) -> bool:
        """Mark the invocation as finished.

        Returns:
            True if the state changed, False if it was already complete
        """
        if self.state == "output-available":
            return False
        self.state = "output-available"
        self.output = output
        return True


Part = TextPart | ReasoningPart | ToolInvocationPart


@dataclass
class Message:
    """One conversation turn."""

    id: str
    role: Role
    parts: list[Part] = field(default_factory=list)

    def text(self) -> str:
        """Concatenated content of all text parts."""
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))


def message_to_dict(message: Message) -> dict[str, Any]:
    """Convert a message to a JSON-serializable dictionary."""
    return asdict(message)
