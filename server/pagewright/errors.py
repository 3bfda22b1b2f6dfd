"""Exception taxonomy shared by the store, the agents and the transport layer."""
from __future__ import annotations

from typing import Optional


class PagewrightError(Exception):
    """Base class for errors raised by the page builder core."""


class UnknownStrategyError(PagewrightError, ValueError):
    """Raised at construction time when the configured agent strategy is unknown."""

    def __init__(self, strategy: str) -> None:
        self.strategy = strategy
        super().__init__(f"Unknown agent strategy: {strategy!r}")


class TurnInProgressError(PagewrightError):
    """Raised when a second turn is requested while one is running for the session."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"A turn is already running for session {session_id}")


class AgentRunnerError(PagewrightError):
    """The reasoning engine failed while driving a turn."""


class IterationLimitExceeded(AgentRunnerError):
    """The turn used up its reasoning/tool-call rounds without a final answer."""

    def __init__(self, max_iterations: int, detail: Optional[str] = None) -> None:
        self.max_iterations = max_iterations
        message = f"Agent exceeded the iteration limit of {max_iterations}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ToolValidationError(PagewrightError):
    """Tool arguments were rejected before the tool body ran."""

    def __init__(self, tool_name: str, detail: str) -> None:
        self.tool_name = tool_name
        self.detail = detail
        super().__init__(f"Invalid arguments for {tool_name}: {detail}")
