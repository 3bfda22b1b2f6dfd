"""Shared fakes for the test suite."""
from __future__ import annotations

import asyncio
from typing import Any, Optional, Sequence

from pagewright.ai_agents.base import AgentConfig, AgentResult, AgentRunner, AgentStrategy, StreamingHooks
from pagewright.models.domain import Message
from pagewright.services.event_bus import Subscription
from pagewright.tools.registry import SessionToolset


class ScriptedRunner(AgentRunner):
    """AgentRunner that replays a fixed script instead of calling a model.

    Steps: ``("token", text)``, ``("tool", name, args)``, ``("pause",)`` to yield to
    the loop, ``("sleep", seconds)``, ``("raise", exc)``.
    """

    strategy = AgentStrategy.LOOP

    def __init__(self, steps: Sequence[tuple], final_text: Optional[str] = None) -> None:
        super().__init__(AgentConfig(strategy=AgentStrategy.LOOP), "test prompt")
        self.steps = list(steps)
        self.final_text = final_text
        self.calls: list[dict[str, Any]] = []
        self.outcomes: list[Any] = []

    async def run(
        self,
        user_input: str,
        history: Sequence[Message],
        hooks: StreamingHooks,
        toolset: SessionToolset,
    ) -> AgentResult:
        self.calls.append({"user_input": user_input, "history": list(history), "session_id": toolset.session_id})
        produced: list[str] = []
        for step in self.steps:
            action = step[0]
            if action == "token":
                produced.append(step[1])
                await hooks.token(step[1])
            elif action == "tool":
                await hooks.tool_started(step[1], step[2])
                self.outcomes.append(await toolset.invoke(step[1], step[2]))
            elif action == "pause":
                await asyncio.sleep(0)
            elif action == "sleep":
                await asyncio.sleep(step[1])
            elif action == "raise":
                raise step[1]
        await hooks.complete()
        final_text = self.final_text if self.final_text is not None else "".join(produced)
        return AgentResult(final_text=final_text, tool_calls=toolset.summaries())


async def take(subscription: Subscription, count: int, timeout: float = 1.0) -> list[Any]:
    """Wait for the next ``count`` events."""
    return [await asyncio.wait_for(subscription.__anext__(), timeout) for _ in range(count)]


async def drain(subscription: Subscription) -> list[Any]:
    """Return every event already delivered, without waiting for more."""
    events = []
    while subscription.pending:
        events.append(await subscription.__anext__())
    return events
