"""Contract shared by the interchangeable agent strategies."""
from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence

from pagewright.errors import AgentRunnerError, UnknownStrategyError
from pagewright.models.domain import Message
from pagewright.tools.registry import SessionToolset, ToolCallSummary

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 25


class AgentStrategy(str, Enum):
    """Agent implementations selectable through configuration."""

    LOOP = "loop"
    GRAPH = "graph"

    @classmethod
    def parse(cls, value: "str | AgentStrategy") -> "AgentStrategy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownStrategyError(str(value)) from None


@dataclass(frozen=True)
class AgentConfig:
    """Static agent configuration fixed when the orchestrator is built."""

    strategy: AgentStrategy = AgentStrategy.GRAPH
    model: str = "gpt-4o-mini"
    temperature: float = 0.0
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    # Falls back to the OPENAI_API_KEY environment variable inside the SDKs when unset.
    api_key: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_settings(cls, settings: Any) -> "AgentConfig":
        return cls(
            strategy=AgentStrategy.parse(settings.agent_strategy),
            model=settings.openai_model,
            temperature=settings.openai_temperature,
            max_iterations=settings.agent_max_iterations,
            api_key=settings.openai_api_key,
        )


@dataclass
class AgentResult:
    final_text: str
    tool_calls: list[ToolCallSummary] = field(default_factory=list)


@dataclass
class StreamingHooks:
    """Callbacks a runner reports progress through.

    Runners call ``token``, ``tool_started`` and ``complete`` rather than the raw
    callables; those wrappers drop tokens that arrive after completion and make
    completion fire only once.
    """

    on_token: Callable[[str], Awaitable[None]]
    on_tool_call: Optional[Callable[[str, Any], Awaitable[None]]] = None
    on_complete: Optional[Callable[[], Awaitable[None]]] = None
    completed: bool = field(default=False, init=False)

    async def token(self, text: str) -> None:
        if not text:
            return
        if self.completed:
            logger.warning("Dropping token produced after completion: %r", text[:40])
            return
        await self.on_token(text)

    async def tool_started(self, name: str, args: Any) -> None:
        if self.on_tool_call is not None:
            await self.on_tool_call(name, args)

    async def complete(self) -> None:
        if self.completed:
            return
        self.completed = True
        if self.on_complete is not None:
            await self.on_complete()


class AgentPhase(str, Enum):
    PLANNING = "planning"
    TOOL_CALL = "tool_call"
    ANSWERING = "answering"
    DONE = "done"
    ERROR = "error"


_TRANSITIONS = {
    AgentPhase.PLANNING: {AgentPhase.TOOL_CALL, AgentPhase.ANSWERING, AgentPhase.ERROR},
    AgentPhase.TOOL_CALL: {AgentPhase.TOOL_CALL, AgentPhase.PLANNING, AgentPhase.ERROR},
    AgentPhase.ANSWERING: {AgentPhase.DONE, AgentPhase.ERROR},
    AgentPhase.DONE: set(),
    AgentPhase.ERROR: set(),
}


class PhaseTracker:
    """Tracks PLANNING -> (TOOL_CALL -> PLANNING)* -> ANSWERING -> DONE for one turn."""

    def __init__(self, label: str = "agent") -> None:
        self.label = label
        self.phase = AgentPhase.PLANNING
        self.history: list[AgentPhase] = [AgentPhase.PLANNING]
        self.planning_rounds = 0

    def enter(self, phase: AgentPhase) -> None:
        if phase is self.phase and phase is not AgentPhase.TOOL_CALL:
            return
        if phase not in _TRANSITIONS[self.phase]:
            raise AgentRunnerError(f"Illegal agent transition {self.phase.value} -> {phase.value}")
        logger.debug("%s phase: %s -> %s", self.label, self.phase.value, phase.value)
        self.phase = phase
        self.history.append(phase)

    def begin_round(self) -> int:
        """Enter PLANNING for a new model call and return the round number (1-based)."""
        self.enter(AgentPhase.PLANNING)
        self.planning_rounds += 1
        return self.planning_rounds

    def fail(self) -> None:
        if self.phase not in (AgentPhase.DONE, AgentPhase.ERROR):
            self.enter(AgentPhase.ERROR)

    def finish(self) -> None:
        self.enter(AgentPhase.ANSWERING)
        self.enter(AgentPhase.DONE)


class AgentRunner(abc.ABC):
    """Drives exactly one conversational turn."""

    strategy: AgentStrategy

    def __init__(self, config: AgentConfig, system_prompt: str) -> None:
        self.config = config
        self.system_prompt = system_prompt

    @abc.abstractmethod
    async def run(
        self,
        user_input: str,
        history: Sequence[Message],
        hooks: StreamingHooks,
        toolset: SessionToolset,
    ) -> AgentResult:
        """Stream tokens and invoke tools until the engine produces a final answer.

        Raises ``IterationLimitExceeded`` when the engine is still asking for tools
        after ``config.max_iterations`` model calls and ``AgentRunnerError`` for any
        other engine failure. Tool failures do not raise; they are fed back to the
        engine as failed tool results.
        """
