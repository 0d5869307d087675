"""agent-sessions: Lifecycle controller for conversational coding-agent sessions.

This package starts, resumes, restarts and tears down agent sessions bound
to a working directory, reconstructs their conversation history, and hands
the chat UI a transport before the session connection exists.
"""

from agent_sessions.app import create_app

__version__ = "0.1.0"

__all__ = ["create_app", "__version__"]
