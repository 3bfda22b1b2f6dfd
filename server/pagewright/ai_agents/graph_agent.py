"""Two-node LangGraph agent: a reasoning node and a tool execution node."""
from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
    message_chunk_to_message,
)
from langchain_openai import ChatOpenAI
from langgraph.errors import GraphRecursionError
from langgraph.graph import END, START, MessagesState, StateGraph

from pagewright.ai_agents.base import (
    AgentConfig,
    AgentPhase,
    AgentResult,
    AgentRunner,
    AgentStrategy,
    PhaseTracker,
    StreamingHooks,
)
from pagewright.errors import AgentRunnerError, IterationLimitExceeded
from pagewright.models.domain import Message, Role
from pagewright.tools.registry import SessionToolset

logger = logging.getLogger(__name__)


def chunk_to_text(chunk: Any) -> str:
    """Extract the text part of a streamed message chunk."""
    content = getattr(chunk, "content", chunk)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                text = item.get("text")
                if isinstance(text, str):
                    parts.append(text)
            elif isinstance(item, str):
                parts.append(item)
        return "".join(parts)
    return ""


def to_langchain_messages(history: Sequence[Message], user_input: str) -> list[BaseMessage]:
    messages: list[BaseMessage] = [
        HumanMessage(content=message.content) if message.role is Role.USER else AIMessage(content=message.content)
        for message in history
    ]
    messages.append(HumanMessage(content=user_input))
    return messages


class GraphAgentRunner(AgentRunner):
    """Alternate between an ``agent`` node and a ``tools`` node until no tool calls remain.

    ``chat_model`` may be any LangChain chat model supporting ``bind_tools`` and
    ``astream``; by default a streaming ``ChatOpenAI`` is created on first use.
    """

    strategy = AgentStrategy.GRAPH

    def __init__(self, config: AgentConfig, system_prompt: str, chat_model: Optional[Any] = None) -> None:
        super().__init__(config, system_prompt)
        self._chat_model = chat_model

    def chat_model(self) -> Any:
        if self._chat_model is None:
            options: dict[str, Any] = {}
            if self.config.api_key:
                options["api_key"] = self.config.api_key
            self._chat_model = ChatOpenAI(
                model=self.config.model,
                temperature=self.config.temperature,
                streaming=True,
                **options,
            )
        return self._chat_model

    def build_graph(self, toolset: SessionToolset, hooks: StreamingHooks, tracker: PhaseTracker):
        model = self.chat_model().bind_tools(toolset.openai_tools())
        max_iterations = self.config.max_iterations

        async def call_model(state: MessagesState) -> dict[str, Any]:
            round_number = tracker.begin_round()
            if round_number > max_iterations:
                raise IterationLimitExceeded(max_iterations)
            messages = [SystemMessage(content=self.system_prompt), *state["messages"]]

            merged = None
            async for chunk in model.astream(messages):
                await hooks.token(chunk_to_text(chunk))
                merged = chunk if merged is None else merged + chunk
            if merged is None:
                raise AgentRunnerError("Model returned an empty response stream")
            return {"messages": [message_chunk_to_message(merged)]}

        async def run_tools(state: MessagesState) -> dict[str, Any]:
            last = state["messages"][-1]
            results: list[ToolMessage] = []
            # Calls whose arguments failed to parse keep the raw string, so the tool set
            # reports them back to the model like any other rejected call.
            calls = [*(getattr(last, "tool_calls", None) or []), *(getattr(last, "invalid_tool_calls", None) or [])]
            for call in calls:
                tracker.enter(AgentPhase.TOOL_CALL)
                name = call.get("name") or ""
                await hooks.tool_started(name, call.get("args"))
                outcome = await toolset.invoke(name, call.get("args"))
                results.append(
                    ToolMessage(
                        content=outcome.content,
                        tool_call_id=call.get("id") or "",
                        name=name,
                        status="success" if outcome.ok else "error",
                    )
                )
            return {"messages": results}

        def route(state: MessagesState) -> str:
            last = state["messages"][-1]
            if isinstance(last, AIMessage) and (last.tool_calls or last.invalid_tool_calls):
                return "tools"
            return END

        workflow = StateGraph(MessagesState)
        workflow.add_node("agent", call_model)
        workflow.add_node("tools", run_tools)
        workflow.add_edge(START, "agent")
        workflow.add_conditional_edges("agent", route, ["tools", END])
        workflow.add_edge("tools", "agent")
        return workflow.compile()

    async def run(
        self,
        user_input: str,
        history: Sequence[Message],
        hooks: StreamingHooks,
        toolset: SessionToolset,
    ) -> AgentResult:
        tracker = PhaseTracker(label=f"graph[{toolset.session_id}]")
        # Each round is an agent step plus a tools step; the agent node enforces the cap
        # itself, the recursion limit only has to stay out of its way.
        recursion_limit = 2 * self.config.max_iterations + 2

        try:
            graph = self.build_graph(toolset, hooks, tracker)
            state = await graph.ainvoke(
                {"messages": to_langchain_messages(history, user_input)},
                config={"recursion_limit": recursion_limit},
            )
        except IterationLimitExceeded:
            tracker.fail()
            raise
        except GraphRecursionError as exc:
            tracker.fail()
            raise IterationLimitExceeded(self.config.max_iterations, str(exc)) from exc
        except AgentRunnerError:
            tracker.fail()
            raise
        except Exception as exc:
            tracker.fail()
            raise AgentRunnerError(f"Agent graph failed: {exc}") from exc

        tracker.finish()
        await hooks.complete()

        final_text = ""
        for message in reversed(state["messages"]):
            if isinstance(message, AIMessage):
                final_text = chunk_to_text(message)
                break
        logger.info(
            f"[Session {toolset.session_id}] Graph finished after {tracker.planning_rounds} model call(s), "
            f"{len(toolset.calls)} tool call(s)"
        )
        return AgentResult(final_text=final_text, tool_calls=toolset.summaries())
