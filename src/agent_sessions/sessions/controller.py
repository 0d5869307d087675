"""Session lifecycle controller.

This module provides the SessionController class which handles:
- Starting or resuming an agent session while loading persisted messages
- Resolving the initial message list from replay or persisted history
- Binding the lazy transport once the session is ready
- Tracking status pushes for the current session
- Restarting and tearing down sessions under concurrent re-entry

All methods must be called from the event loop that runs the controller.
Every continuation in start() re-checks its generation on resumption, so a
restart() or teardown() issued while a host call is in flight wins.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from agent_sessions.errors import DisposalFailure, StartFailure
from agent_sessions.host.types import (
    ApprovalResult,
    HostRuntime,
    LoadMessagesResult,
    StartSessionRequest,
    StartSessionResult,
    Unsubscribe,
)
from agent_sessions.messages.history import reconstruct, side_channel_events
from agent_sessions.messages.stored import restore_messages
from agent_sessions.messages.types import Message
from agent_sessions.transport.host import HostTransport
from agent_sessions.transport.lazy import ChatTransport, LazyTransport

logger = logging.getLogger(__name__)

StateListener = Callable[["SessionState"], None]
TransportFactory = Callable[[HostRuntime, str, str], ChatTransport]


@dataclass
class SessionState:
    """Observable state of a controller's current session.

    Attributes:
        status: "initializing", "ready", "error" or any status pushed by the host
        error: The start failure, when status is "error"
        session_key: Host session key, None until the host confirms it
        agent_session_id: Agent protocol session identifier
        resumed: Whether the host attached to an existing agent session
        modes: Opaque mode descriptor from the host
        models: Opaque model descriptor from the host
        initial_messages: Messages to seed the chat UI with
        generation: Restart generation this state belongs to
    """

    status: str = "initializing"
    error: StartFailure | None = None
    session_key: str | None = None
    agent_session_id: str | None = None
    resumed: bool | None = None
    modes: Any = None
    models: Any = None
    initial_messages: list[Message] = field(default_factory=list)
    generation: int = 0


def resolve_initial_messages(
    messages_result: LoadMessagesResult, session_result: StartSessionResult
) -> list[Message]:
    """Pick the initial message list for a freshly started session.

    Replayed history wins because only it reconstructs the user's own
    messages in order; persisted messages are the fallback when the replay
    yields nothing.
    """
    if session_result.history_events:
        replayed = reconstruct(session_result.history_events)
        if replayed:
            return replayed
    if messages_result.success and messages_result.messages:
        return restore_messages(messages_result.messages)
    return []


class SessionController:
    """Owns the agent session for one (conversation, provider, directory).

    Attributes:
        host: The host runtime
        conversation_id: Conversation this controller serves
        provider_id: Agent provider to start
        working_directory: Directory the agent works in
        project_path: Optional project root passed to the host
        start_timeout: Optional deadline in seconds for start()
    """

    def __init__(
        self,
        host: HostRuntime,
        conversation_id: str,
        provider_id: str,
        working_directory: str,
        project_path: str | None = None,
        start_timeout: float | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self.host = host
        self.conversation_id = conversation_id
        self.provider_id = provider_id
        self.working_directory = working_directory
        self.project_path = project_path
        self.start_timeout = start_timeout
        self._transport_factory = transport_factory or HostTransport

        self._generation = 0
        self._started_generation: int | None = None
        self._disposed = False
        self._state = SessionState()
        self._transport = LazyTransport()
        self._real_transport: ChatTransport | None = None
        self._unsubscribe_status: Unsubscribe | None = None
        self._start_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._listeners: list[StateListener] = []

    # --- Observable state ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def status(self) -> str:
        return self._state.status

    @property
    def transport(self) -> LazyTransport:
        """The transport for the current generation."""
        return self._transport

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def disposed(self) -> bool:
        return self._disposed

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback invoked with a state snapshot on every change.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _set_state(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        snapshot = self._state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"State listener failed for {self.conversation_id}: {e}")

    def _is_stale(self, generation: int) -> bool:
        return self._disposed or generation != self._generation

    # --- Start ---

    def open(self) -> asyncio.Task:
        """Start the current generation in the background.

        Returns immediately so callers can use transport right away.

        Returns:
            The task running start(); reused if already running
        """
        if self._start_task is not None and not self._start_task.done():
            return self._start_task
        self._start_task = asyncio.create_task(self.start())
        return self._start_task

    async def _load_messages(self) -> LoadMessagesResult:
        try:
            return await self.host.load_messages(self.conversation_id)
        except Exception as e:
            logger.debug(f"Loading persisted messages failed for {self.conversation_id}: {e}")
            return LoadMessagesResult(success=False)

    async def _start_session(self, request: StartSessionRequest) -> StartSessionResult:
        try:
            return await self.host.start_session(request)
        except Exception as e:
            logger.warning(f"Start session call raised for {self.conversation_id}: {e}")
            return StartSessionResult(success=False, error=str(e))

    async def start(self) -> None:
        """Start or resume the session for the current generation.

        Loads persisted messages and starts the session concurrently, and
        applies neither result until both have settled. A start failure is
        reported through state and the transport, never raised.
        """
        generation = self._generation
        if self._disposed:
            logger.debug(f"Ignoring start for disposed controller {self.conversation_id}")
            return
        if self._started_generation == generation:
            logger.debug(f"Generation {generation} already started for {self.conversation_id}")
            return
        self._started_generation = generation
        transport = self._transport

        request = StartSessionRequest(
            conversation_id=self.conversation_id,
            provider_id=self.provider_id,
            working_directory=self.working_directory,
            project_path=self.project_path,
        )
        logger.debug(
            f"Init started for {self.conversation_id} "
            f"(provider={self.provider_id}, cwd={self.working_directory}, generation={generation})"
        )

        calls = asyncio.gather(self._load_messages(), self._start_session(request))
        if self.start_timeout is None:
            messages_result, session_result = await calls
        else:
            try:
                messages_result, session_result = await asyncio.wait_for(
                    asyncio.shield(calls), self.start_timeout
                )
            except asyncio.TimeoutError:
                calls.add_done_callback(self._release_late_start)
                if self._is_stale(generation):
                    return
                error = StartFailure(f"Session start timed out after {self.start_timeout}s")
                self._fail_start(error, transport, [])
                return

        if self._is_stale(generation):
            logger.debug(
                f"Discarding stale start result for {self.conversation_id} (generation {generation})"
            )
            if session_result.success and session_result.session_key:
                self._spawn_release(session_result.session_key, kill=False)
            return

        logger.debug(
            f"Parallel init completed for {self.conversation_id}: "
            f"messages_loaded={messages_result.success}, "
            f"session_success={session_result.success}, "
            f"history_events={len(session_result.history_events)}, "
            f"resumed={session_result.resumed}"
        )

        initial_messages = resolve_initial_messages(messages_result, session_result)

        if not session_result.success or not session_result.session_key:
            error = StartFailure(session_result.error or "Failed to start agent session")
            self._fail_start(error, transport, initial_messages)
            return

        self._bind_session(
            generation,
            transport,
            session_result.session_key,
            session_result,
            initial_messages,
        )

    def _fail_start(
        self, error: StartFailure, transport: LazyTransport, initial_messages: list[Message]
    ) -> None:
        logger.warning(
            f"Session creation failed for {self.conversation_id} "
            f"(provider={self.provider_id}): {error}"
        )
        changes: dict[str, Any] = {"status": "error", "error": error}
        if initial_messages:
            changes["initial_messages"] = initial_messages
        self._set_state(**changes)
        transport.fail(error)

    def _bind_session(
        self,
        generation: int,
        transport: LazyTransport,
        key: str,
        result: StartSessionResult,
        initial_messages: list[Message],
    ) -> None:
        if result.resumed:
            logger.info(f"Session {key} resumed for {self.conversation_id}")
        else:
            logger.warning(
                f"Session {key} not resumed for {self.conversation_id}; "
                "agent starts without prior context"
            )

        changes: dict[str, Any] = {
            "status": "ready",
            "error": None,
            "session_key": key,
            "agent_session_id": result.agent_session_id,
            "resumed": bool(result.resumed),
            "modes": result.modes,
            "models": result.models,
        }
        if initial_messages:
            changes["initial_messages"] = initial_messages

        self._real_transport = self._transport_factory(self.host, key, self.conversation_id)
        self._set_state(**changes)
        transport.bind_real(self._real_transport)

        side_events = side_channel_events(result.history_events)
        if side_events:
            asyncio.get_running_loop().call_soon(
                self._replay_side_channel, generation, transport, side_events
            )

        self._release_status_subscription()
        try:
            self._unsubscribe_status = self.host.subscribe_status(
                key, lambda status: self._on_status(key, status)
            )
        except Exception as e:
            logger.warning(f"Status subscription failed for session {key}: {e}")

        logger.info(f"Session {key} ready for {self.conversation_id}")

    def _replay_side_channel(
        self, generation: int, transport: LazyTransport, events: list[dict[str, Any]]
    ) -> None:
        if self._is_stale(generation):
            return
        transport.replay_side_channel_events(events)

    def _on_status(self, session_key: str, status: str) -> None:
        if self._disposed or self._state.session_key != session_key:
            logger.debug(f"Discarding status {status!r} for stale session {session_key}")
            return
        logger.debug(f"Status changed for session {session_key}: {status}")
        self._set_state(status=status)

    async def approve(self, tool_call_id: str, approved: bool) -> ApprovalResult:
        """Answer a permission request on the current session.

        Fails without calling the host when no session is bound.
        """
        approve = getattr(self._real_transport, "approve", None)
        if approve is None:
            return ApprovalResult(success=False, error="Session is not ready")
        return await approve(tool_call_id, approved)

    # --- Restart and teardown ---

    def restart(self) -> asyncio.Task:
        """Kill the current session and start a fresh generation.

        Returns:
            The task running the new generation's start()

        Raises:
            DisposalFailure: If the controller was torn down
        """
        if self._disposed:
            raise DisposalFailure("Cannot restart a disposed session controller")

        logger.info(
            f"Restart requested for {self.conversation_id} (session {self._state.session_key})"
        )
        self._generation += 1
        self._release_status_subscription()
        self._close_real_transport()

        session_key = self._state.session_key
        if session_key:
            self._spawn_release(session_key, kill=True)

        self._transport.fail(DisposalFailure())
        self._transport = LazyTransport()
        self._set_state(
            status="initializing",
            error=None,
            session_key=None,
            agent_session_id=None,
            generation=self._generation,
        )
        self._start_task = None
        return self.open()

    def teardown(self) -> None:
        """Dispose of the controller, leaving the agent session resumable.

        Safe to call more than once; only the first call has an effect.
        """
        if self._disposed:
            return
        self._disposed = True
        self._generation += 1
        logger.debug(f"Teardown for {self.conversation_id} (session {self._state.session_key})")

        self._release_status_subscription()
        self._transport.fail(DisposalFailure())
        self._close_real_transport()

        session_key = self._state.session_key
        if session_key:
            self._spawn_release(session_key, kill=False)
        self._state = replace(self._state, session_key=None)
        self._listeners.clear()

    async def aclose(self) -> None:
        """Tear down and wait for the resulting cleanup calls to finish."""
        self.teardown()
        await self.wait_for_cleanup()

    async def wait_for_cleanup(self) -> None:
        """Wait for all pending detach/kill calls issued so far."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _release_status_subscription(self) -> None:
        unsubscribe, self._unsubscribe_status = self._unsubscribe_status, None
        if unsubscribe is None:
            return
        try:
            unsubscribe()
        except Exception as e:
            logger.warning(f"Failed to unsubscribe status for {self.conversation_id}: {e}")

    def _close_real_transport(self) -> None:
        real, self._real_transport = self._real_transport, None
        close = getattr(real, "close", None)
        if close is not None:
            close()

    def _spawn_release(self, session_key: str, kill: bool) -> None:
        task = asyncio.create_task(self._release(session_key, kill))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _release(self, session_key: str, kill: bool) -> None:
        action = "kill" if kill else "detach"
        try:
            if kill:
                await self.host.kill_session(session_key)
            else:
                await self.host.detach_session(session_key)
            logger.debug(f"Session {session_key} {action} completed")
        except Exception as e:
            logger.warning(f"Session {session_key} {action} failed: {e}")

    def _release_late_start(self, calls: asyncio.Future) -> None:
        if calls.cancelled() or calls.exception() is not None:
            return
        _, session_result = calls.result()
        if session_result.success and session_result.session_key:
            logger.debug(f"Detaching session {session_result.session_key} that started after timeout")
            self._spawn_release(session_result.session_key, kill=False)
