"""Pydantic payloads pushed to session subscribers."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Union

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ToolEventType(str, Enum):
    """Lifecycle stage of a single tool invocation."""

    STARTED = "STARTED"
    PROGRESS = "PROGRESS"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


class MessageDelta(BaseModel):
    """Incremental model output for the session's current turn."""

    kind: Literal["message_delta"] = "message_delta"
    session_id: str
    content_delta: str


class ToolCallEvent(BaseModel):
    """Tool lifecycle notification; all stages of one invocation share ``id``."""

    kind: Literal["tool_event"] = "tool_event"
    id: str
    session_id: str
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    type: ToolEventType
    timestamp: datetime = Field(default_factory=_utcnow)


class DocumentNodeAdded(BaseModel):
    """A fragment committed to the session document."""

    kind: Literal["document_updated"] = "document_updated"
    id: str
    session_id: str
    html: str
    index: int


class ModelMessageCompleted(BaseModel):
    """Turn-completion marker: the MODEL message is recorded and can be fetched."""

    kind: Literal["model_message_completed"] = "model_message_completed"
    session_id: str
    message_id: str
    done: bool = True


class TurnFailed(BaseModel):
    """Terminal notification for a turn that ended without a model answer."""

    kind: Literal["turn_failed"] = "turn_failed"
    session_id: str
    reason: Literal["iteration_limit", "agent_error"]
    error: str


SessionEvent = Union[MessageDelta, ToolCallEvent, DocumentNodeAdded, ModelMessageCompleted, TurnFailed]
