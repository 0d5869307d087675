"""Agent session lifecycle management.

This package provides the per-conversation session controller and the
registry that keeps one controller per open conversation.
"""

from agent_sessions.sessions.controller import (
    SessionController,
    SessionState,
    resolve_initial_messages,
)
from agent_sessions.sessions.registry import SessionRegistry

__all__ = [
    "SessionController",
    "SessionRegistry",
    "SessionState",
    "resolve_initial_messages",
]
