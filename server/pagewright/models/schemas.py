"""Pydantic models describing request and response payloads."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from pagewright.models.domain import Document, Message, Role


class EnsureSessionRequest(BaseModel):
    """Incoming payload for creating or resuming a session."""

    session_id: Optional[str] = Field(default=None, description="Existing session id to resume")


class EnsureSessionResponse(BaseModel):
    """Identifier of the created or resumed session."""

    session_id: str = Field(..., description="Identifier for the builder session")


class SendMessageRequest(BaseModel):
    """A natural-language instruction for the builder agent."""

    input: str = Field(..., min_length=1, description="User instruction driving the next turn")


class MessageResponse(BaseModel):
    """A conversation entry as returned to clients."""

    id: str
    session_id: str
    role: Role
    content: str
    created_at: datetime

    @classmethod
    def from_message(cls, message: Message) -> "MessageResponse":
        return cls(
            id=message.id,
            session_id=message.session_id,
            role=message.role,
            content=message.content,
            created_at=message.created_at,
        )


class DocumentResponse(BaseModel):
    """Current HTML body of a session document."""

    session_id: str
    body_html: str

    @classmethod
    def from_document(cls, document: Document) -> "DocumentResponse":
        return cls(session_id=document.session_id, body_html=document.body_html)


class SessionResponse(BaseModel):
    """Composite view of a session."""

    session_id: str
    messages: List[MessageResponse]
    document: DocumentResponse
