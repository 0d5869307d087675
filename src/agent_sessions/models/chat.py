"""Pydantic models for chat API requests and streamed events.

This module defines the request schema for the streaming chat endpoint and
the payloads of its terminal Server-Sent Events.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Request body for POST /api/v1/chat/{conversation_id}/stream."""

    message: str = Field(description="The user message to send")
    message_id: str | None = Field(
        default=None,
        description="Client-side identifier for the message. Generated if omitted.",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"message": "Read the README and summarize it", "message_id": None},
            ]
        }
    )


class ErrorEvent(BaseModel):
    """Error event sent when a send fails or the session goes away."""

    code: str = Field(description="Error code")
    message: str = Field(description="Human-readable error message")
    details: dict[str, Any] = Field(default_factory=dict)


class DoneEvent(BaseModel):
    """Final event of a chat stream."""

    conversation_id: str = Field(description="Conversation identifier")
    message_id: str = Field(description="Identifier of the user message sent")


class ApprovalRequest(BaseModel):
    """Request body for POST /api/v1/chat/{conversation_id}/approve."""

    tool_call_id: str = Field(description="Tool call the permission request belongs to")
    approved: bool = Field(description="Whether the tool call may run")

    model_config = ConfigDict(
        json_schema_extra={"examples": [{"tool_call_id": "toolu_01", "approved": True}]}
    )


class ApprovalResponse(BaseModel):
    """Response model for an answered permission request."""

    conversation_id: str = Field(description="Conversation identifier")
    tool_call_id: str = Field(description="Tool call the answer was sent for")
    approved: bool = Field(description="The answer sent to the agent")
