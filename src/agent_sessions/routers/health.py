"""Health check endpoint router."""

import logging

from fastapi import APIRouter, Request

from agent_sessions.models.health import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint.

    Returns the current health status and version of agent-sessions.
    Also checks connectivity to the host runtime when the runtime supports it.

    Args:
        request: The FastAPI request object.

    Returns:
        HealthResponse: Health status and version information.
    """
    runtime_connected = None
    host_runtime = getattr(request.app.state, "host_runtime", None)
    check_connection = getattr(host_runtime, "check_connection", None)

    if check_connection is not None:
        try:
            runtime_connected = await check_connection()
            logger.debug(f"Host runtime connectivity check: {runtime_connected}")
        except Exception as e:
            logger.warning(f"Host runtime connectivity check failed: {e}")
            runtime_connected = False

    registry = getattr(request.app.state, "session_registry", None)

    return HealthResponse(
        status="ok",
        version="0.1.0",
        runtime_connected=runtime_connected,
        open_sessions=len(registry) if registry is not None else 0,
    )
