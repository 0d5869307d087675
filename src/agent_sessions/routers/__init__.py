"""FastAPI routers for API endpoints.

This package contains all route handlers organized by resource type.
Each router module defines endpoints for a specific domain (health, sessions, chat).
"""

from agent_sessions.routers import chat, health, sessions

__all__ = [
    "chat",
    "health",
    "sessions",
]
