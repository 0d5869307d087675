"""SessionRegistry for the controllers of open conversations.

This module provides the SessionRegistry class which handles:
- Opening a controller for a conversation and starting it in the background
- Replacing a controller when the provider or working directory changes
- Looking up, restarting and closing controllers
- Tearing everything down on shutdown
"""

import asyncio
import logging

from agent_sessions.host.types import HostRuntime
from agent_sessions.sessions.controller import SessionController

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Keeps at most one SessionController per conversation."""

    def __init__(self, host: HostRuntime, start_timeout: float | None = None):
        """Initialize the SessionRegistry.

        Args:
            host: Host runtime shared by all controllers
            start_timeout: Optional start deadline applied to new controllers
        """
        self.host = host
        self.start_timeout = start_timeout
        self._controllers: dict[str, SessionController] = {}

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._controllers

    def __len__(self) -> int:
        return len(self._controllers)

    def open(
        self,
        conversation_id: str,
        provider_id: str,
        working_directory: str,
        project_path: str | None = None,
    ) -> SessionController:
        """Get or create the controller for a conversation and start it.

        An existing controller is reused when provider and working directory
        match; otherwise it is torn down and replaced.

        Returns:
            The controller, whose start() is running in the background
        """
        existing = self._controllers.get(conversation_id)
        if existing is not None:
            if (
                existing.provider_id == provider_id
                and existing.working_directory == working_directory
                and existing.project_path == project_path
            ):
                logger.debug(f"Reusing session controller for {conversation_id}")
                return existing
            logger.info(
                f"Replacing session controller for {conversation_id} "
                f"(provider {existing.provider_id} -> {provider_id})"
            )
            existing.teardown()

        controller = SessionController(
            host=self.host,
            conversation_id=conversation_id,
            provider_id=provider_id,
            working_directory=working_directory,
            project_path=project_path,
            start_timeout=self.start_timeout,
        )
        self._controllers[conversation_id] = controller
        controller.open()
        logger.info(f"Opened session controller for {conversation_id}")
        return controller

    def get(self, conversation_id: str) -> SessionController:
        """Get the controller for a conversation.

        Raises:
            KeyError: If no controller is open for the conversation
        """
        try:
            return self._controllers[conversation_id]
        except KeyError:
            raise KeyError(f"No session open for conversation {conversation_id}") from None

    def restart(self, conversation_id: str) -> SessionController:
        """Restart the session of a conversation.

        Raises:
            KeyError: If no controller is open for the conversation
        """
        controller = self.get(conversation_id)
        controller.restart()
        return controller

    def close(self, conversation_id: str) -> None:
        """Tear down and forget the controller for a conversation.

        Raises:
            KeyError: If no controller is open for the conversation
        """
        controller = self._controllers.pop(conversation_id, None)
        if controller is None:
            raise KeyError(f"No session open for conversation {conversation_id}")
        controller.teardown()
        logger.info(f"Closed session controller for {conversation_id}")

    async def aclose(self) -> None:
        """Tear down every controller and wait for their cleanup calls."""
        controllers = list(self._controllers.values())
        self._controllers.clear()
        for controller in controllers:
            controller.teardown()
        await asyncio.gather(
            *(controller.wait_for_cleanup() for controller in controllers),
            return_exceptions=True,
        )
        logger.info(f"Closed {len(controllers)} session controllers")
