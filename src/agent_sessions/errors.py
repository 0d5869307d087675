"""Exceptions raised by the session lifecycle controller, transports and host client."""


class AgentSessionError(Exception):
    """Base class for agent session errors."""


class StartFailure(AgentSessionError):
    """The host declined or could not create/resume a session."""

    def __init__(self, message: str = "Failed to start agent session") -> None:
        super().__init__(message)


class DisposalFailure(AgentSessionError):
    """A send was pending when its session was torn down or replaced."""

    def __init__(self, message: str = "Session disposed") -> None:
        super().__init__(message)


class TransportBusyError(AgentSessionError):
    """A send was issued while another one is still buffered."""


class HostRuntimeError(AgentSessionError):
    """A call to the host runtime failed at the transport level."""
