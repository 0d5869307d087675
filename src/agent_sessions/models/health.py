"""Health check response model."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for the health check endpoint.

    Attributes:
        status: Health status indicator ("ok" or "error").
        version: The version of agent-sessions.
        runtime_connected: Whether the host runtime is reachable.
        open_sessions: Number of conversations with an open session controller.
    """

    status: str = Field(..., description="Health status of the service")
    version: str = Field(..., description="Version of agent-sessions")
    runtime_connected: bool | None = Field(
        default=None,
        description="Whether the host runtime is reachable",
    )
    open_sessions: int = Field(
        default=0,
        description="Number of open session controllers",
    )
