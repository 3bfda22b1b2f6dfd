"""Session management endpoints for the page builder."""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException, Request, status

from ..errors import TurnInProgressError
from ..models import schemas
from ..services.orchestration import OrchestrationService

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _service(request: Request) -> OrchestrationService:
    return request.app.state.orchestration


@router.post("", response_model=schemas.EnsureSessionResponse)
async def ensure_session(payload: schemas.EnsureSessionRequest, request: Request) -> schemas.EnsureSessionResponse:
    """Create a session, or return the given id unchanged if it already exists."""

    session_id = _service(request).ensure_session(payload.session_id)
    return schemas.EnsureSessionResponse(session_id=session_id)


@router.get("/{session_id}", response_model=schemas.SessionResponse)
async def get_session(session_id: str, request: Request) -> schemas.SessionResponse:
    snapshot = _service(request).session(session_id)
    return schemas.SessionResponse(
        session_id=snapshot.session_id,
        messages=[schemas.MessageResponse.from_message(message) for message in snapshot.messages],
        document=schemas.DocumentResponse.from_document(snapshot.document),
    )


@router.get("/{session_id}/messages", response_model=List[schemas.MessageResponse])
async def list_messages(session_id: str, request: Request) -> List[schemas.MessageResponse]:
    return [schemas.MessageResponse.from_message(message) for message in _service(request).messages(session_id)]


@router.get("/{session_id}/document", response_model=schemas.DocumentResponse)
async def get_document(session_id: str, request: Request) -> schemas.DocumentResponse:
    return schemas.DocumentResponse.from_document(_service(request).document(session_id))


@router.post("/{session_id}/messages", response_model=schemas.MessageResponse)
async def send_message(
    session_id: str, payload: schemas.SendMessageRequest, request: Request
) -> schemas.MessageResponse:
    """Record the user's message and start the agent turn without waiting for it.

    Progress and the final answer are delivered over the realtime event stream.
    """

    try:
        message = _service(request).send_message(session_id, payload.input)
    except TurnInProgressError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return schemas.MessageResponse.from_message(message)
