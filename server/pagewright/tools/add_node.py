"""The ``add_node`` tool: append one HTML element to a session document."""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator

from pagewright.models.events import DocumentNodeAdded, ToolCallEvent, ToolEventType
from pagewright.services.event_bus import EventBus, TopicKey
from pagewright.services.session_store import SessionStore

logger = logging.getLogger(__name__)

ADD_NODE_TOOL_NAME = "add_node"
ADD_NODE_DESCRIPTION = (
    "Append an HTML element to the end of the <body> of the current document. "
    "Use for adding UI elements. Accepts tag, optional text, and attributes."
)
PREVIEW_LENGTH = 80

_FORBIDDEN_ATTRIBUTE_CHARS = set(" \t\n\r\f\"'>/=<")


class AddNodeArgs(BaseModel):
    """Arguments accepted by ``add_node``."""

    tag: str = Field(
        ...,
        min_length=1,
        pattern=r"^[A-Za-z][A-Za-z0-9:-]*$",
        description="HTML tag name to append, e.g., 'div'",
    )
    text: Optional[str] = Field(default=None, description="Optional textContent for the element")
    attributes: Optional[Dict[str, str]] = Field(
        default=None, description="HTML attributes as key-value pairs"
    )

    @field_validator("attributes")
    @classmethod
    def _check_attribute_names(cls, value: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        if value:
            for name in value:
                if not name or _FORBIDDEN_ATTRIBUTE_CHARS.intersection(name):
                    raise ValueError(f"invalid attribute name: {name!r}")
        return value


@dataclass(frozen=True)
class AddNodeResult:
    id: str
    html: str
    index: int


def _escape_quotes(value: str) -> str:
    return value.replace('"', "&quot;")


def render_node(args: AddNodeArgs) -> str:
    """Render a complete element.

    Attribute values only get ``"`` escaped. Text content is inserted verbatim, so
    markup inside ``text`` reaches the document unescaped.
    """
    attrs = " ".join(
        f'{name}="{_escape_quotes(value)}"' for name, value in (args.attributes or {}).items()
    )
    opening = f"<{args.tag} {attrs}>" if attrs else f"<{args.tag}>"
    return f"{opening}{args.text or ''}</{args.tag}>"


class AddNodeTool:
    """Session-bound ``add_node`` implementation.

    Each invocation publishes STARTED, PROGRESS, the document delta and COMPLETED in
    that order under one id. ``lock`` keeps invocations for the session one at a time.
    """

    name = ADD_NODE_TOOL_NAME

    def __init__(
        self,
        session_id: str,
        store: SessionStore,
        bus: EventBus,
        lock: Optional[asyncio.Lock] = None,
    ) -> None:
        self.session_id = session_id
        self._store = store
        self._bus = bus
        self._lock = lock or asyncio.Lock()

    async def __call__(self, args: AddNodeArgs) -> AddNodeResult:
        async with self._lock:
            return await self._append(args)

    async def _append(self, args: AddNodeArgs) -> AddNodeResult:
        call_id = str(uuid.uuid4())
        await self._tool_event(call_id, ToolEventType.STARTED, args.model_dump(exclude_none=True))
        try:
            html = render_node(args)
            await self._tool_event(call_id, ToolEventType.PROGRESS, {"html_preview": html[:PREVIEW_LENGTH]})

            index = self._store.append_to_body(self.session_id, html).index
            await self._bus.publish(
                TopicKey.document_updated(self.session_id),
                DocumentNodeAdded(id=call_id, session_id=self.session_id, html=html, index=index),
            )

            await self._tool_event(call_id, ToolEventType.COMPLETED, {"index": index})
        except Exception as exc:
            logger.exception(f"[Session {self.session_id}] {self.name} failed")
            await self._tool_event(call_id, ToolEventType.ERROR, {"error": str(exc)})
            raise

        logger.info(f"[Session {self.session_id}] Appended node #{index}: {html[:50]}")
        return AddNodeResult(id=call_id, html=html, index=index)

    async def _tool_event(self, call_id: str, event_type: ToolEventType, args: dict) -> None:
        await self._bus.publish(
            TopicKey.tool_event(self.session_id),
            ToolCallEvent(id=call_id, session_id=self.session_id, name=self.name, args=args, type=event_type),
        )
