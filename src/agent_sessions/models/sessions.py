"""Pydantic models for session API requests and responses."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class OpenSessionRequest(BaseModel):
    """Request body for opening a session for a conversation."""

    conversation_id: str = Field(..., description="Conversation to open a session for")
    provider_id: str = Field(..., description="Agent provider to start")
    working_directory: str = Field(..., description="Directory the agent works in")
    project_path: str | None = Field(
        None, description="Optional project root passed to the host runtime"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "conversation_id": "conv-1",
                    "provider_id": "claude",
                    "working_directory": "/home/me/project",
                    "project_path": None,
                }
            ]
        }
    )


class SessionStateResponse(BaseModel):
    """Observable state of a conversation's session."""

    conversation_id: str = Field(description="Conversation identifier")
    provider_id: str = Field(description="Agent provider")
    working_directory: str = Field(description="Directory the agent works in")
    status: str = Field(
        description="initializing, ready, error, or a status pushed by the host"
    )
    error: str | None = Field(default=None, description="Start failure message")
    session_key: str | None = Field(default=None, description="Host session key")
    agent_session_id: str | None = Field(
        default=None, description="Agent protocol session identifier"
    )
    resumed: bool | None = Field(
        default=None, description="Whether an existing agent session was resumed"
    )
    modes: Any = Field(default=None, description="Modes reported by the host")
    models: Any = Field(default=None, description="Models reported by the host")
    generation: int = Field(default=0, description="Restart generation")
    transport_state: str = Field(
        default="unbound", description="State of the chat transport (unbound, bound, failed)"
    )
    message_count: int = Field(default=0, description="Number of initial messages")


class MessageResponse(BaseModel):
    """A reconstructed or restored conversation message."""

    id: str = Field(description="Message identifier")
    role: str = Field(description="user or assistant")
    parts: list[dict[str, Any]] = Field(
        default_factory=list, description="Ordered message parts"
    )


class MessagesResponse(BaseModel):
    """Initial messages for a conversation's chat view."""

    conversation_id: str = Field(description="Conversation identifier")
    messages: list[MessageResponse] = Field(default_factory=list)
