"""Boundary facade used by the transport layer."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Set

from pagewright.ai_agents.base import AgentConfig
from pagewright.errors import IterationLimitExceeded
from pagewright.models.domain import Document, Message
from pagewright.services.event_bus import EventBus, Subscription, TopicKey, TopicKind
from pagewright.services.session_store import SessionStore
from pagewright.services.turn_orchestrator import TurnOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class SessionSnapshot:
    session_id: str
    messages: list[Message]
    document: Document


class OrchestrationService:
    """Session queries, fire-and-forget message handling and event subscriptions."""

    def __init__(self, store: SessionStore, bus: EventBus, orchestrator: TurnOrchestrator) -> None:
        self.store = store
        self.bus = bus
        self.orchestrator = orchestrator
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config: AgentConfig, *, max_pending: int = 1000) -> "OrchestrationService":
        """Wire a store, a bus and an orchestrator for ``config``."""

        store = SessionStore()
        bus = EventBus(max_pending=max_pending)
        return cls(store, bus, TurnOrchestrator(store, bus, config))

    def ensure_session(self, session_id: Optional[str] = None) -> str:
        return self.store.ensure(session_id)

    def send_message(self, session_id: str, text: str) -> Message:
        """Record the user's message and start the turn in the background.

        Returns as soon as the message is stored; the caller follows the turn through
        subscriptions. Raises ``RuntimeError`` without touching the session when no
        event loop is running.
        """

        loop = asyncio.get_running_loop()
        message = self.orchestrator.start_turn(session_id, text)
        logger.info(f"[Session {session_id}] Initiating agent turn for: {text[:100]}")
        turn = self.orchestrator.execute_turn(session_id, message)
        try:
            task = loop.create_task(turn, name=f"turn-{session_id}")
        except Exception:
            turn.close()
            self.orchestrator.release(session_id)
            raise
        self._tasks.add(task)
        task.add_done_callback(lambda finished: self._turn_finished(session_id, finished))
        return message

    def _turn_finished(self, session_id: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"[Session {session_id}] Agent turn was cancelled")
            return
        exc = task.exception()
        if exc is None:
            return
        if isinstance(exc, IterationLimitExceeded):
            logger.warning(f"[Session {session_id}] Agent turn hit the iteration limit: {exc}")
        else:
            logger.error(f"[Session {session_id}] Agent turn failed: {exc}", exc_info=exc)

    def document(self, session_id: str) -> Document:
        return self.store.get_document(session_id)

    def messages(self, session_id: str) -> list[Message]:
        return self.store.list_messages(session_id)

    def session(self, session_id: str) -> SessionSnapshot:
        self.store.ensure(session_id)
        return SessionSnapshot(
            session_id=session_id,
            messages=self.store.list_messages(session_id),
            document=self.store.get_document(session_id),
        )

    def subscribe(self, session_id: str, kinds: Optional[Iterable[TopicKind]] = None) -> Subscription:
        """Subscribe to the given event kinds for a session (all kinds by default)."""

        selected = list(kinds) if kinds else list(TopicKind)
        keys = [TopicKey(kind, session_id) for kind in selected]
        return self.bus.subscribe(*keys)

    @property
    def pending_turns(self) -> int:
        return len(self._tasks)

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Give in-flight turns a chance to finish, then cancel the rest."""

        if not self._tasks:
            return
        pending = set(self._tasks)
        logger.info("Waiting for %d agent turn(s) before shutdown", len(pending))
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
