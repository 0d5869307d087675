"""FastAPI application factory and lifespan management.

This module contains the create_app() factory function that creates and configures
the FastAPI application instance, including lifespan management for startup/shutdown
and router registration.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agent_sessions.config import AgentSessionsSettings
from agent_sessions.host import HostRuntime, HttpHostRuntime
from agent_sessions.routers import chat, health, sessions
from agent_sessions.sessions import SessionRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan context manager for FastAPI application.

    The host runtime client and the session registry are created once at
    startup and stored in app.state for reuse across all requests. On
    shutdown every open session is detached before the client is closed.

    Args:
        app: The FastAPI application instance.

    Yields:
        None: Control is yielded while the app is running.
    """
    settings: AgentSessionsSettings = app.state.settings

    if getattr(app.state, "host_runtime", None) is None:
        app.state.host_runtime = HttpHostRuntime(
            base_url=settings.runtime_url,
            timeout=settings.runtime_request_timeout,
        )
        logger.info(f"Initialized host runtime client for {settings.runtime_url}")

    app.state.session_registry = SessionRegistry(
        host=app.state.host_runtime,
        start_timeout=settings.start_timeout,
    )

    check_connection = getattr(app.state.host_runtime, "check_connection", None)
    if check_connection is not None:
        if await check_connection():
            logger.info("Successfully connected to host runtime")
        else:
            logger.warning("Could not connect to host runtime - check if it is running")

    yield

    await app.state.session_registry.aclose()
    close = getattr(app.state.host_runtime, "close", None)
    if close is not None:
        await close()
        logger.info("Host runtime client closed")


def create_app(
    settings: AgentSessionsSettings | None = None,
    host_runtime: HostRuntime | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional AgentSessionsSettings instance. If not provided,
                  settings will be loaded from environment variables.
        host_runtime: Optional host runtime to use instead of the HTTP client.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        from agent_sessions.dependencies import get_settings

        settings = get_settings()

    app = FastAPI(
        title="agent-sessions",
        description="Lifecycle controller for conversational coding-agent sessions",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.host_runtime = host_runtime

    # Note: FastAPI's type hints for add_middleware are overly strict
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(sessions.router)
    app.include_router(chat.router)

    return app
