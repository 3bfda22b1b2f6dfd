"""Session domain models kept in process memory."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


# Opening and self-closing tags. Closing tags, comments and doctypes do not count.
OPENING_TAG_RE = re.compile(r"<[A-Za-z][^>]*>")


def count_opening_tags(markup: str) -> int:
    """Return how many opening tags appear in ``markup``."""

    return len(OPENING_TAG_RE.findall(markup))


class Role(str, Enum):
    """Author of a conversation message."""

    USER = "USER"
    MODEL = "MODEL"


@dataclass(frozen=True)
class Message:
    """A conversation entry. Never modified once appended."""

    id: str
    session_id: str
    role: Role
    content: str
    created_at: datetime


@dataclass
class Document:
    """Append-only HTML body owned by a single session."""

    session_id: str
    body_html: str = ""
    # Maintained count of opening tags in body_html, used to derive node indexes.
    node_count: int = 0


@dataclass
class SessionState:
    """Everything the store tracks for one session."""

    session_id: str
    document: Document
    messages: list[Message] = field(default_factory=list)


@dataclass(frozen=True)
class AppendResult:
    """Outcome of appending a fragment to a document body."""

    index: int
