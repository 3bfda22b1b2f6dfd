"""Per-session tool set shared by every agent strategy.

Agents never call tool bodies directly. They go through ``SessionToolset.invoke``,
which validates the raw arguments against the tool's declared pydantic model, runs
the body and turns any failure into a result the reasoning engine can read and
recover from.
"""
from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ValidationError

from pagewright.errors import ToolValidationError
from pagewright.services.event_bus import EventBus
from pagewright.services.session_store import SessionStore
from pagewright.tools.add_node import ADD_NODE_DESCRIPTION, ADD_NODE_TOOL_NAME, AddNodeArgs, AddNodeTool

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Any], Awaitable[Mapping[str, Any]]]


@dataclass(frozen=True)
class ToolSpec:
    """Static description of a tool plus the coroutine that executes it."""

    name: str
    description: str
    args_model: type[BaseModel]
    handler: ToolHandler

    def parameters_schema(self) -> dict[str, Any]:
        return self.args_model.model_json_schema()

    def openai_tool(self) -> dict[str, Any]:
        """Chat Completions style function declaration."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema(),
            },
        }


@dataclass
class ToolCallSummary:
    name: str
    args: Any
    result: str
    ok: bool


@dataclass(frozen=True)
class ToolOutcome:
    """What gets reported back to the reasoning engine for one tool call."""

    ok: bool
    content: str


@dataclass
class SessionToolset:
    """Tools bound to one session, with a record of every call made in the turn."""

    session_id: str
    specs: Sequence[ToolSpec]
    calls: list[ToolCallSummary] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        return [spec.name for spec in self.specs]

    def get(self, name: str) -> Optional[ToolSpec]:
        for spec in self.specs:
            if spec.name == name:
                return spec
        return None

    def openai_tools(self) -> list[dict[str, Any]]:
        return [spec.openai_tool() for spec in self.specs]

    def summaries(self) -> list[ToolCallSummary]:
        return [dataclasses.replace(call) for call in self.calls]

    async def invoke(self, name: str, raw_args: Union[str, Mapping[str, Any], None]) -> ToolOutcome:
        """Validate and run a tool call, reporting failures instead of raising them."""
        spec = self.get(name)
        if spec is None:
            outcome = self._failure(f"Unknown tool: {name}. Available tools: {', '.join(self.names)}")
        else:
            try:
                args = self._validate(spec, raw_args)
            except ToolValidationError as exc:
                logger.warning(f"[Session {self.session_id}] Rejected {name} call: {exc}")
                outcome = self._failure(str(exc))
            else:
                outcome = await self._execute(spec, args)

        self.calls.append(
            ToolCallSummary(name=name, args=raw_args, result=outcome.content, ok=outcome.ok)
        )
        return outcome

    def _validate(self, spec: ToolSpec, raw_args: Union[str, Mapping[str, Any], None]) -> BaseModel:
        payload: Any = raw_args if raw_args is not None else {}
        if isinstance(payload, str):
            try:
                payload = json.loads(payload) if payload.strip() else {}
            except json.JSONDecodeError as exc:
                raise ToolValidationError(spec.name, f"arguments are not valid JSON ({exc.msg})") from exc
        try:
            return spec.args_model.model_validate(payload)
        except ValidationError as exc:
            details = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'arguments'}: {error['msg']}"
                for error in exc.errors()
            )
            raise ToolValidationError(spec.name, details) from exc

    async def _execute(self, spec: ToolSpec, args: BaseModel) -> ToolOutcome:
        try:
            result = await spec.handler(args)
        except Exception as exc:
            logger.warning(f"[Session {self.session_id}] Tool {spec.name} raised: {exc}")
            return self._failure(f"{spec.name} failed: {exc}")
        return ToolOutcome(ok=True, content=json.dumps({"ok": True, **result}))

    @staticmethod
    def _failure(message: str) -> ToolOutcome:
        return ToolOutcome(ok=False, content=json.dumps({"ok": False, "error": message}))


def build_session_toolset(
    session_id: str,
    store: SessionStore,
    bus: EventBus,
    lock: Optional[asyncio.Lock] = None,
) -> SessionToolset:
    """Return the tools available to an agent acting on ``session_id``."""
    add_node = AddNodeTool(session_id, store, bus, lock=lock)

    async def _add_node(args: AddNodeArgs) -> Mapping[str, Any]:
        result = await add_node(args)
        return {"index": result.index}

    return SessionToolset(
        session_id=session_id,
        specs=[
            ToolSpec(
                name=ADD_NODE_TOOL_NAME,
                description=ADD_NODE_DESCRIPTION,
                args_model=AddNodeArgs,
                handler=_add_node,
            )
        ],
    )
