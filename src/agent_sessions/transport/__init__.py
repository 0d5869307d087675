"""Chat transports.

This package provides the lazy placeholder transport handed to the chat UI
before a session exists, and the host-backed transport it binds to.
"""

from agent_sessions.transport.host import ChunkMapper, HostTransport
from agent_sessions.transport.lazy import ChatTransport, LazyTransport

__all__ = ["ChatTransport", "ChunkMapper", "HostTransport", "LazyTransport"]
