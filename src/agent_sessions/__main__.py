"""CLI entry point for agent-sessions.

This module provides the command-line interface for starting the server.
It can be invoked as `agent-sessions` (via the script entry point) or
`python -m agent_sessions`.
"""

import argparse
import logging
import sys

import uvicorn

from agent_sessions import __version__, create_app
from agent_sessions.config import AgentSessionsSettings


def main() -> None:
    """Main entry point for the agent-sessions CLI.

    Parses command-line arguments and starts the uvicorn server with the
    FastAPI application.
    """
    parser = argparse.ArgumentParser(
        prog="agent-sessions",
        description="Lifecycle controller for conversational coding-agent sessions",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"agent-sessions {__version__}",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind the server to (default: 127.0.0.1, can be set via AGENT_SESSIONS_HOST)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind the server to (default: 8000, can be set via AGENT_SESSIONS_PORT)",
    )

    parser.add_argument(
        "--runtime-url",
        type=str,
        default=None,
        help="Host runtime URL (default: http://127.0.0.1:8765, can be set via AGENT_SESSIONS_RUNTIME_URL)",
    )

    parser.add_argument(
        "--start-timeout",
        type=float,
        default=None,
        help="Seconds to wait for a session to start before reporting an error (default: no limit)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO, can be set via AGENT_SESSIONS_LOG_LEVEL)",
    )

    args = parser.parse_args()

    # Build settings, CLI args override environment variables
    settings_kwargs = {}
    if args.host is not None:
        settings_kwargs["host"] = args.host
    if args.port is not None:
        settings_kwargs["port"] = args.port
    if args.runtime_url is not None:
        settings_kwargs["runtime_url"] = args.runtime_url
    if args.start_timeout is not None:
        settings_kwargs["start_timeout"] = args.start_timeout
    if args.log_level is not None:
        settings_kwargs["log_level"] = args.log_level

    settings = AgentSessionsSettings(**settings_kwargs)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = create_app(settings=settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    sys.exit(main())
