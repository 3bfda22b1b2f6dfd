"""Drive one agent turn per user message and relay its progress to subscribers."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from pagewright.ai_agents.base import AgentConfig, AgentResult, AgentRunner, StreamingHooks
from pagewright.ai_agents.factory import create_agent_runner
from pagewright.errors import IterationLimitExceeded, TurnInProgressError
from pagewright.models.domain import Message, Role
from pagewright.models.events import MessageDelta, ModelMessageCompleted, TurnFailed
from pagewright.services.event_bus import EventBus, TopicKey
from pagewright.services.session_store import SessionStore
from pagewright.tools.registry import build_session_toolset

logger = logging.getLogger(__name__)


@dataclass
class _TurnStats:
    tokens: int = 0
    characters: int = 0


class TurnOrchestrator:
    """Coordinates the store, the agent runner and the event bus for each turn.

    At most one turn runs per session: ``start_turn`` rejects a second request while
    one is in flight. Turns for different sessions run concurrently and share only
    the event bus.
    """

    def __init__(
        self,
        store: SessionStore,
        bus: EventBus,
        config: AgentConfig,
        *,
        runner: Optional[AgentRunner] = None,
        system_prompt: Optional[str] = None,
    ) -> None:
        self._store = store
        self._bus = bus
        self.config = config
        # Built once so a bad strategy fails here rather than on the first turn.
        self.runner = runner or create_agent_runner(config, system_prompt)
        self._active: Set[str] = set()
        self._tool_locks: Dict[str, asyncio.Lock] = {}

    def is_active(self, session_id: str) -> bool:
        return session_id in self._active

    def release(self, session_id: str) -> None:
        """Mark the session idle again; a no-op when no turn holds it."""
        self._active.discard(session_id)

    def start_turn(self, session_id: str, user_input: str) -> Message:
        """Claim the session and record the user message that opens the turn."""
        if session_id in self._active:
            raise TurnInProgressError(session_id)
        self._active.add(session_id)
        try:
            return self._store.append_message(session_id, Role.USER, user_input)
        except Exception:
            self.release(session_id)
            raise

    async def execute_turn(self, session_id: str, user_message: Message) -> AgentResult:
        """Run the agent for a turn opened by ``start_turn``.

        On success the MODEL message is recorded and the completion marker published
        last. On failure nothing is recorded, ``TurnFailed`` is published and the
        exception propagates. Document changes made before a failure are kept.
        """
        try:
            return await self._execute(session_id, user_message)
        finally:
            self.release(session_id)

    async def run_turn(self, session_id: str, user_input: str) -> AgentResult:
        message = self.start_turn(session_id, user_input)
        return await self.execute_turn(session_id, message)

    async def _execute(self, session_id: str, user_message: Message) -> AgentResult:
        messages = self._store.list_messages(session_id)
        history = messages
        for position, message in enumerate(messages):
            if message.id == user_message.id:
                history = messages[:position]
                break

        toolset = build_session_toolset(session_id, self._store, self._bus, lock=self._tool_lock(session_id))
        stats = _TurnStats()
        hooks = self._hooks(session_id, stats)

        logger.info(
            f"[Session {session_id}] Executing {self.runner.strategy.value} agent "
            f"(history length: {len(history)})"
        )
        try:
            result = await self.runner.run(user_message.content, history, hooks, toolset)
        except IterationLimitExceeded as exc:
            await self._publish_failure(session_id, "iteration_limit", exc)
            raise
        except Exception as exc:
            await self._publish_failure(session_id, "agent_error", exc)
            raise

        model_message = self._store.append_message(session_id, Role.MODEL, result.final_text)
        await self._bus.publish(
            TopicKey.model_message_completed(session_id),
            ModelMessageCompleted(session_id=session_id, message_id=model_message.id),
        )
        logger.info(
            f"[Session {session_id}] Turn completed ({stats.tokens} tokens, "
            f"{len(result.tool_calls)} tool calls): {result.final_text[:100]}"
        )
        return result

    def _hooks(self, session_id: str, stats: _TurnStats) -> StreamingHooks:
        topic = TopicKey.message_delta(session_id)

        async def on_token(token: str) -> None:
            stats.tokens += 1
            stats.characters += len(token)
            logger.debug(f"[Session {session_id}] Token #{stats.tokens}: {token!r}")
            await self._bus.publish(topic, MessageDelta(session_id=session_id, content_delta=token))

        async def on_tool_call(name: str, args: Any) -> None:
            logger.info(f"[Session {session_id}] Tool called: {name} {args}")

        async def on_complete() -> None:
            logger.info(f"[Session {session_id}] Model streaming finished ({stats.characters} chars)")

        return StreamingHooks(on_token=on_token, on_tool_call=on_tool_call, on_complete=on_complete)

    def _tool_lock(self, session_id: str) -> asyncio.Lock:
        lock = self._tool_locks.get(session_id)
        if lock is None:
            lock = self._tool_locks[session_id] = asyncio.Lock()
        return lock

    async def _publish_failure(self, session_id: str, reason: str, exc: BaseException) -> None:
        await self._bus.publish(
            TopicKey.turn_failed(session_id),
            TurnFailed(session_id=session_id, reason=reason, error=str(exc)),
        )
