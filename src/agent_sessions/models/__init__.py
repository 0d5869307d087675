"""Pydantic models for API request and response schemas.

This package contains all Pydantic models used for validating and
serializing API requests and responses across all endpoints.
"""

from agent_sessions.models.sessions import (
    MessageResponse,
    MessagesResponse,
    OpenSessionRequest,
    SessionStateResponse,
)

__all__ = [
    "MessageResponse",
    "MessagesResponse",
    "OpenSessionRequest",
    "SessionStateResponse",
]
