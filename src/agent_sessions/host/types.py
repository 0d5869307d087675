"""Type definitions for the host runtime boundary.

The host runtime owns the agent subprocesses and the message store. This
module describes the narrow call/event contract the session controller and
transports consume, so tests and embedders can provide their own host.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

StatusCallback = Callable[[str], None]
UpdateCallback = Callable[[dict[str, Any]], None]
Unsubscribe = Callable[[], None]


@dataclass
class StartSessionRequest:
    """Parameters for starting or resuming an agent session."""

    conversation_id: str
    provider_id: str
    working_directory: str
    project_path: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Build the wire payload for the host runtime."""
        payload: dict[str, Any] = {
            "conversationId": self.conversation_id,
            "providerId": self.provider_id,
            "cwd": self.working_directory,
        }
        if self.project_path is not None:
            payload["projectPath"] = self.project_path
        return payload


@dataclass
class StartSessionResult:
    """Outcome of a start-session call.

    Attributes:
        success: Whether the host created or resumed a session
        session_key: Host-assigned key, unique per start
        agent_session_id: Identifier understood by the agent protocol
        resumed: Whether a pre-existing agent-side session was attached
        modes: Opaque mode descriptor, passed through unmodified
        models: Opaque model descriptor, passed through unmodified
        history_events: Replayed protocol events, in order
        error: Host error message on failure
    """

    success: bool
    session_key: str | None = None
    agent_session_id: str | None = None
    resumed: bool | None = None
    modes: Any = None
    models: Any = None
    history_events: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "StartSessionResult":
        """Create a result from the host's JSON response."""
        return StartSessionResult(
            success=bool(data.get("success")),
            session_key=data.get("sessionKey"),
            agent_session_id=data.get("acpSessionId") or data.get("agentSessionId"),
            resumed=data.get("resumed"),
            modes=data.get("modes"),
            models=data.get("models"),
            history_events=list(data.get("historyEvents") or []),
            error=data.get("error"),
        )


@dataclass
class LoadMessagesResult:
    """Outcome of loading persisted messages for a conversation."""

    success: bool
    messages: list[dict[str, Any]] = field(default_factory=list)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "LoadMessagesResult":
        """Create a result from the host's JSON response."""
        return LoadMessagesResult(
            success=bool(data.get("success")),
            messages=list(data.get("messages") or []),
        )


@dataclass
class PromptResult:
    """Outcome of submitting a prompt to a running session."""

    success: bool
    error: str | None = None


@dataclass
class ApprovalResult:
    """Outcome of answering a permission request."""

    success: bool
    error: str | None = None


class HostRuntime(Protocol):
    """The host-side agent runtime, as seen by this package."""

    async def load_messages(self, conversation_id: str) -> LoadMessagesResult: ...

    async def start_session(self, request: StartSessionRequest) -> StartSessionResult: ...

    async def detach_session(self, session_key: str) -> None: ...

    async def kill_session(self, session_key: str) -> None: ...

    def subscribe_status(self, session_key: str, callback: StatusCallback) -> Unsubscribe: ...

    def subscribe_updates(self, session_key: str, callback: UpdateCallback) -> Unsubscribe: ...

    async def prompt(self, session_key: str, message: str) -> PromptResult: ...

    async def cancel(self, session_key: str) -> None: ...

    async def approve(
        self, session_key: str, tool_call_id: str, approved: bool
    ) -> ApprovalResult: ...

    async def save_message(self, conversation_id: str, message: dict[str, Any]) -> None: ...
