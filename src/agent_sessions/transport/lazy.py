"""Placeholder transport usable before the session connection exists.

The chat UI needs a transport as soon as it mounts, but the real one can
only be built after the host has started the session. LazyTransport is
handed out immediately and moves through a small state machine:

    unbound --bind_real--> bound
    unbound --fail-------> failed
    bound   --fail-------> failed
    failed  --bind_real--> bound

While unbound it buffers at most one send.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Literal, Protocol

from agent_sessions.errors import TransportBusyError
from agent_sessions.messages.types import Message

logger = logging.getLogger(__name__)

TransportState = Literal["unbound", "bound", "failed"]


class ChatTransport(Protocol):
    """A transport that sends a user message and streams the response."""

    async def send(self, message: Message) -> AsyncIterator[dict[str, Any]]: ...


class LazyTransport:
    """Transport placeholder that forwards to a real transport once bound."""

    def __init__(self) -> None:
        self._real: ChatTransport | None = None
        self._error: BaseException | None = None
        self._pending: asyncio.Future | None = None

    @property
    def state(self) -> TransportState:
        if self._real is not None:
            return "bound"
        if self._error is not None:
            return "failed"
        return "unbound"

    @property
    def has_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    @property
    def error(self) -> BaseException | None:
        return self._error

    async def send(self, message: Message) -> AsyncIterator[dict[str, Any]]:
        """Send a message, waiting for the real transport if necessary.

        Raises:
            TransportBusyError: If another send is already buffered
            Exception: The error given to fail(), if the transport fails
                before or while this send is buffered
        """
        if self._real is not None:
            return await self._real.send(message)
        if self._error is not None:
            raise self._error
        if self.has_pending:
            raise TransportBusyError("A message is already waiting for the session")

        waiter: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending = waiter
        logger.debug("Buffering send until the session transport is bound")
        try:
            real = await waiter
        finally:
            if self._pending is waiter:
                self._pending = None
        return await real.send(message)

    def bind_real(self, transport: ChatTransport) -> None:
        """Bind the real transport and release any buffered send."""
        self._real = transport
        self._error = None
        waiter, self._pending = self._pending, None
        if waiter is not None and not waiter.done():
            waiter.set_result(transport)

    def fail(self, error: BaseException) -> None:
        """Reject any buffered send and fail subsequent sends fast."""
        self._real = None
        self._error = error
        waiter, self._pending = self._pending, None
        if waiter is not None and not waiter.done():
            waiter.set_exception(error)

    def replay_side_channel_events(self, events: list[dict[str, Any]]) -> None:
        """Hand replayed side-channel events to the bound transport."""
        replay = getattr(self._real, "replay_side_channel_events", None)
        if replay is not None:
            replay(events)
