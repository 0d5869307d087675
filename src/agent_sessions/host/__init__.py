"""Host runtime boundary.

This package defines the contract with the host-side agent runtime and an
async HTTP client implementing it.
"""

from agent_sessions.host.client import HttpHostRuntime
from agent_sessions.host.types import (
    ApprovalResult,
    HostRuntime,
    LoadMessagesResult,
    PromptResult,
    StartSessionRequest,
    StartSessionResult,
)

__all__ = [
    "ApprovalResult",
    "HostRuntime",
    "HttpHostRuntime",
    "LoadMessagesResult",
    "PromptResult",
    "StartSessionRequest",
    "StartSessionResult",
]
