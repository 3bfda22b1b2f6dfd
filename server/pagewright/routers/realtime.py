"""Realtime event stream for session subscribers."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..services.event_bus import TopicKind
from ..services.orchestration import OrchestrationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/realtime", tags=["realtime"])

# Friendly names accepted in the ``kinds`` query parameter.
KIND_ALIASES = {
    "message_delta": TopicKind.MESSAGE_DELTA,
    "tool_event": TopicKind.TOOL_EVENT,
    "document_updated": TopicKind.DOCUMENT_UPDATED,
    "model_message_completed": TopicKind.MODEL_MESSAGE_COMPLETED,
    "turn_failed": TopicKind.TURN_FAILED,
}

CLOSE_BAD_REQUEST = 4400
CLOSE_TOO_SLOW = 4408


def parse_kinds(raw: Optional[str]) -> list[TopicKind]:
    """Parse a comma separated ``kinds`` value; empty means every kind."""

    if not raw:
        return list(TopicKind)
    kinds: list[TopicKind] = []
    for name in raw.split(","):
        name = name.strip().lower()
        if not name:
            continue
        if name not in KIND_ALIASES:
            raise ValueError(f"Unknown event kind: {name}")
        kinds.append(KIND_ALIASES[name])
    return kinds or list(TopicKind)


@router.websocket("/sessions/{session_id}/events")
async def session_events(websocket: WebSocket, session_id: str, kinds: Optional[str] = None) -> None:
    """Push every subsequent event of the session to the client as JSON.

    The subscription is registered before the handshake completes, so nothing
    published after the client is connected can be missed.
    """

    service: OrchestrationService = websocket.app.state.orchestration
    try:
        selected = parse_kinds(kinds)
    except ValueError as exc:
        await websocket.close(code=CLOSE_BAD_REQUEST, reason=str(exc))
        return

    subscription = service.subscribe(session_id, selected)
    await websocket.accept()
    logger.info(f"[Session {session_id}] Subscriber connected for {[kind.value for kind in selected]}")

    # Stop pushing as soon as the client goes away, even if no event is pending.
    receiver = asyncio.create_task(_wait_for_disconnect(websocket, subscription.close))
    try:
        async for event in subscription:
            await websocket.send_text(event.model_dump_json())
        if subscription.overflowed:
            await websocket.close(code=CLOSE_TOO_SLOW)
    except WebSocketDisconnect:
        pass
    finally:
        subscription.close()
        receiver.cancel()
        logger.info(f"[Session {session_id}] Subscriber disconnected")


async def _wait_for_disconnect(websocket: WebSocket, on_disconnect) -> None:
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        on_disconnect()
