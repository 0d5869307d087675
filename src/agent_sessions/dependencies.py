"""Dependency injection providers for FastAPI endpoints.

This module provides FastAPI dependency functions that are used across
multiple routers to inject common dependencies like settings and the
session registry.
"""

from functools import lru_cache

from fastapi import HTTPException, Request

from agent_sessions.config import AgentSessionsSettings
from agent_sessions.sessions import SessionRegistry


@lru_cache
def get_settings() -> AgentSessionsSettings:
    """Get the application settings instance.

    This function is cached so that the same settings instance is reused
    across all requests. Settings are loaded from environment variables
    with the AGENT_SESSIONS_ prefix.

    Returns:
        AgentSessionsSettings: The application configuration settings.
    """
    return AgentSessionsSettings()


def get_session_registry(request: Request) -> SessionRegistry:
    """Get the session registry from app state.

    Args:
        request: The FastAPI request object.

    Returns:
        SessionRegistry: The registry created during application startup.

    Raises:
        HTTPException: If the registry is not initialized (503 Service Unavailable).
    """
    registry = getattr(request.app.state, "session_registry", None)
    if registry is None:
        raise HTTPException(
            status_code=503,
            detail="Session registry not initialized",
        )
    return registry
