"""Simple in-memory store for page builder sessions."""
from __future__ import annotations

import dataclasses
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

from pagewright.models.domain import (
    AppendResult,
    Document,
    Message,
    Role,
    SessionState,
    count_opening_tags,
)


class SessionStore:
    """Manage per-session conversation history and the accumulated document.

    One instance is created at application start and handed to every component that
    needs it. Unknown session ids are created on first access. None of the methods
    suspend, so each call is atomic with respect to other coroutines on the loop.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, SessionState] = {}

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def ensure(self, session_id: Optional[str] = None) -> str:
        """Return ``session_id`` if known, otherwise create the session and return its id."""
        sid = str(uuid.uuid4()) if session_id is None else session_id
        self._state(sid)
        return sid

    def append_message(
        self,
        session_id: str,
        role: Role,
        content: str,
        *,
        message_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Message:
        """Append a message to the session conversation and return the stored copy."""
        state = self._state(session_id)
        message = Message(
            id=message_id or str(uuid.uuid4()),
            session_id=session_id,
            role=Role(role),
            content=content,
            created_at=created_at or datetime.now(timezone.utc),
        )
        state.messages.append(message)
        return message

    def list_messages(self, session_id: str) -> list[Message]:
        """Return the conversation in append order."""
        return list(self._state(session_id).messages)

    def get_document(self, session_id: str) -> Document:
        """Return a snapshot of the session document."""
        return dataclasses.replace(self._state(session_id).document)

    def append_to_body(self, session_id: str, html: str) -> AppendResult:
        """Concatenate a complete element fragment to the document body.

        The returned index is the number of opening tags already present before the
        append, so the first node of an empty document gets index 0.
        """
        document = self._state(session_id).document
        index = document.node_count
        document.body_html = f"{document.body_html}{html}"
        document.node_count += count_opening_tags(html)
        return AppendResult(index=index)

    def _state(self, session_id: str) -> SessionState:
        state = self._sessions.get(session_id)
        if state is None:
            state = SessionState(session_id=session_id, document=Document(session_id=session_id))
            self._sessions[session_id] = state
        return state
