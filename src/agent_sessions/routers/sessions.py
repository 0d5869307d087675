"""Sessions router for agent session lifecycle operations.

This module provides REST API endpoints for:
- Opening a session for a conversation (non-blocking)
- Reading the session state and initial messages
- Restarting a session
- Closing a session
- Streaming state changes via SSE
"""

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sse_starlette.sse import EventSourceResponse

from agent_sessions.dependencies import get_session_registry
from agent_sessions.messages import message_to_dict
from agent_sessions.models.sessions import (
    MessageResponse,
    MessagesResponse,
    OpenSessionRequest,
    SessionStateResponse,
)
from agent_sessions.sessions import SessionController, SessionRegistry, SessionState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])

# Interval at which idle state streams check whether their session was closed
STATE_STREAM_POLL_SECONDS = 15.0


def _not_found(conversation_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": {
                "code": "session_not_found",
                "message": f"No session open for conversation {conversation_id}",
                "details": {"conversation_id": conversation_id},
            }
        },
    )


def _get_controller(registry: SessionRegistry, conversation_id: str) -> SessionController:
    try:
        return registry.get(conversation_id)
    except KeyError:
        raise _not_found(conversation_id)


def state_response(
    controller: SessionController, state: SessionState | None = None
) -> SessionStateResponse:
    """Build the API view of a controller's state."""
    state = state or controller.state
    return SessionStateResponse(
        conversation_id=controller.conversation_id,
        provider_id=controller.provider_id,
        working_directory=controller.working_directory,
        status=state.status,
        error=str(state.error) if state.error else None,
        session_key=state.session_key,
        agent_session_id=state.agent_session_id,
        resumed=state.resumed,
        modes=state.modes,
        models=state.models,
        generation=state.generation,
        transport_state=controller.transport.state,
        message_count=len(state.initial_messages),
    )


@router.post(
    "",
    response_model=SessionStateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Open a session for a conversation",
)
async def open_session(
    request: OpenSessionRequest,
    registry: Annotated[SessionRegistry, Depends(get_session_registry)],
) -> SessionStateResponse:
    """Open (or reuse) the session controller for a conversation.

    The session starts in the background; the response reflects the state
    at the time of the call, normally "initializing". Messages can be sent
    right away and are delivered once the session is ready.

    Args:
        request: Conversation, provider and working directory
        registry: Injected SessionRegistry

    Returns:
        Current session state
    """
    controller = registry.open(
        conversation_id=request.conversation_id,
        provider_id=request.provider_id,
        working_directory=request.working_directory,
        project_path=request.project_path,
    )
    return state_response(controller)


@router.get("/{conversation_id}", response_model=SessionStateResponse)
async def get_session(
    conversation_id: str,
    registry: Annotated[SessionRegistry, Depends(get_session_registry)],
) -> SessionStateResponse:
    """Get the current state of a conversation's session.

    Raises:
        HTTPException: 404 if no session is open for the conversation
    """
    return state_response(_get_controller(registry, conversation_id))


@router.get("/{conversation_id}/messages", response_model=MessagesResponse)
async def get_initial_messages(
    conversation_id: str,
    registry: Annotated[SessionRegistry, Depends(get_session_registry)],
) -> MessagesResponse:
    """Get the initial messages resolved for a conversation.

    Raises:
        HTTPException: 404 if no session is open for the conversation
    """
    controller = _get_controller(registry, conversation_id)
    messages = [
        MessageResponse(**message_to_dict(message))
        for message in controller.state.initial_messages
    ]
    return MessagesResponse(conversation_id=conversation_id, messages=messages)


@router.post("/{conversation_id}/restart", response_model=SessionStateResponse)
async def restart_session(
    conversation_id: str,
    registry: Annotated[SessionRegistry, Depends(get_session_registry)],
) -> SessionStateResponse:
    """Kill the conversation's session and start a fresh one.

    Raises:
        HTTPException: 404 if no session is open for the conversation
    """
    try:
        controller = registry.restart(conversation_id)
    except KeyError:
        raise _not_found(conversation_id)
    return state_response(controller)


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(
    conversation_id: str,
    registry: Annotated[SessionRegistry, Depends(get_session_registry)],
) -> Response:
    """Close a conversation's session, leaving the agent session resumable.

    Raises:
        HTTPException: 404 if no session is open for the conversation
    """
    try:
        registry.close(conversation_id)
    except KeyError:
        raise _not_found(conversation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{conversation_id}/events")
async def stream_session_state(
    conversation_id: str,
    request: Request,
    registry: Annotated[SessionRegistry, Depends(get_session_registry)],
) -> EventSourceResponse:
    """Stream session state changes via Server-Sent Events (SSE).

    The current state is sent first, followed by one "state" event per
    change. The stream ends when the session is closed.

    SSE Events:
        - state: A SessionStateResponse snapshot
        - closed: The session was closed

    Raises:
        HTTPException: 404 if no session is open for the conversation
    """
    controller = _get_controller(registry, conversation_id)
    queue: asyncio.Queue[SessionState] = asyncio.Queue()
    remove_listener = controller.add_listener(queue.put_nowait)

    async def event_generator():
        """Generate SSE events from controller state changes."""
        try:
            yield {
                "event": "state",
                "data": state_response(controller).model_dump_json(),
            }
            while True:
                if await request.is_disconnected():
                    logger.debug(f"State stream client disconnected for {conversation_id}")
                    break
                try:
                    state = await asyncio.wait_for(
                        queue.get(), timeout=STATE_STREAM_POLL_SECONDS
                    )
                except asyncio.TimeoutError:
                    if controller.disposed:
                        yield {"event": "closed", "data": "{}"}
                        break
                    continue
                yield {
                    "event": "state",
                    "data": state_response(controller, state).model_dump_json(),
                }
        finally:
            remove_listener()

    return EventSourceResponse(event_generator())
