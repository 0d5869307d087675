"""Chat API endpoints.

This module provides the streaming chat endpoint. Messages are sent through
the conversation's lazy transport, so a message posted while the session is
still starting is delivered as soon as the session is ready.
"""

import json
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sse_starlette.sse import EventSourceResponse

from agent_sessions.dependencies import get_session_registry
from agent_sessions.errors import DisposalFailure, StartFailure, TransportBusyError
from agent_sessions.messages import Message, TextPart
from agent_sessions.models.chat import (
    ApprovalRequest,
    ApprovalResponse,
    ChatRequest,
    DoneEvent,
    ErrorEvent,
)
from agent_sessions.sessions import SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


def _error_event(code: str, message: str, conversation_id: str) -> dict[str, str]:
    event = ErrorEvent(
        code=code,
        message=message,
        details={"conversation_id": conversation_id},
    )
    return {"event": "error", "data": event.model_dump_json()}


@router.post("/{conversation_id}/stream")
async def chat_streaming(
    conversation_id: str,
    request_body: ChatRequest,
    request: Request,
    registry: Annotated[SessionRegistry, Depends(get_session_registry)],
) -> EventSourceResponse:
    """Send a user message and stream the agent's response via SSE.

    Args:
        conversation_id: The conversation to send to
        request_body: Chat request containing the message
        request: FastAPI request object
        registry: Injected SessionRegistry

    Returns:
        EventSourceResponse with SSE events

    SSE Events:
        - one event per response chunk, named after the chunk type
          (text-delta, reasoning-delta, tool-input-available, finish, ...)
        - error: If the session failed to start, was closed, or the stream broke
        - done: Stream is complete

    Raises:
        HTTPException: 404 if no session is open, 409 if a message is
            already waiting for the session
    """
    try:
        controller = registry.get(conversation_id)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": {
                    "code": "session_not_found",
                    "message": f"No session open for conversation {conversation_id}",
                    "details": {"conversation_id": conversation_id},
                }
            },
        )

    transport = controller.transport
    if transport.has_pending:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": {
                    "code": "transport_busy",
                    "message": "A message is already waiting for the session",
                    "details": {"conversation_id": conversation_id},
                }
            },
        )

    message = Message(
        id=request_body.message_id or uuid.uuid4().hex[:10],
        role="user",
        parts=[TextPart(text=request_body.message)],
    )
    logger.info(f"Sending message {message.id} to conversation {conversation_id}")

    async def event_generator():
        """Generate SSE events from the transport's response stream."""
        try:
            stream = await transport.send(message)
        except StartFailure as e:
            yield _error_event("session_start_failed", str(e), conversation_id)
            return
        except DisposalFailure as e:
            yield _error_event("session_disposed", str(e), conversation_id)
            return
        except TransportBusyError as e:
            yield _error_event("transport_busy", str(e), conversation_id)
            return
        except Exception as e:
            logger.error(f"Failed to send message to {conversation_id}: {e}")
            yield _error_event(
                "transport_error", f"Failed to send message: {e}", conversation_id
            )
            return

        try:
            async for chunk in stream:
                if await request.is_disconnected():
                    logger.warning(
                        f"Client disconnected during streaming for {conversation_id}"
                    )
                    break
                yield {"event": chunk.get("type", "chunk"), "data": json.dumps(chunk)}
        except Exception as e:
            logger.error(f"Error during streaming for {conversation_id}: {e}")
            yield _error_event(
                "transport_error", f"Failed to stream response: {e}", conversation_id
            )
            return
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        done_event = DoneEvent(conversation_id=conversation_id, message_id=message.id)
        yield {"event": "done", "data": done_event.model_dump_json()}

    return EventSourceResponse(event_generator())


@router.post("/{conversation_id}/approve", response_model=ApprovalResponse)
async def approve_tool_call(
    conversation_id: str,
    request_body: ApprovalRequest,
    registry: Annotated[SessionRegistry, Depends(get_session_registry)],
) -> ApprovalResponse:
    """Answer a tool-approval-request chunk from a running stream.

    Raises:
        HTTPException: 404 if no session is open, 409 if the session or the
            host could not take the answer
    """
    try:
        controller = registry.get(conversation_id)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": {
                    "code": "session_not_found",
                    "message": f"No session open for conversation {conversation_id}",
                    "details": {"conversation_id": conversation_id},
                }
            },
        )

    result = await controller.approve(request_body.tool_call_id, request_body.approved)
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": {
                    "code": "approval_failed",
                    "message": result.error or "Failed to answer permission request",
                    "details": {
                        "conversation_id": conversation_id,
                        "tool_call_id": request_body.tool_call_id,
                    },
                }
            },
        )

    return ApprovalResponse(
        conversation_id=conversation_id,
        tool_call_id=request_body.tool_call_id,
        approved=request_body.approved,
    )
