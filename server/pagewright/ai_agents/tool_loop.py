"""Linear tool-calling loop built on the openai-agents runtime."""
from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from agents import Agent, FunctionTool, ModelSettings, OpenAIResponsesModel, Runner
from agents.exceptions import MaxTurnsExceeded
from openai import AsyncOpenAI

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
from pagewright.tools.registry import SessionToolset, ToolSpec

logger = logging.getLogger(__name__)

TEXT_DELTA_EVENT = "response.output_text.delta"
RESPONSE_CREATED_EVENT = "response.created"


def to_input_items(history: Sequence[Message], user_input: str) -> list[dict[str, str]]:
    """Convert the session conversation into Responses API input items."""
    items = [
        {"role": "user" if message.role is Role.USER else "assistant", "content": message.content}
        for message in history
    ]
    items.append({"role": "user", "content": user_input})
    return items


class ToolLoopRunner(AgentRunner):
    """Ask the model for the next action, run it, repeat until a final answer appears.

    The loop itself is ``Runner.run_streamed``; ``max_turns`` bounds the number of
    model calls and raising past it is reported as ``IterationLimitExceeded``.
    """

    strategy = AgentStrategy.LOOP

    def __init__(self, config: AgentConfig, system_prompt: str) -> None:
        super().__init__(config, system_prompt)
        self._client: Optional[AsyncOpenAI] = None

    def model(self) -> "str | OpenAIResponsesModel":
        """Model name for the SDK default client, or a model bound to the configured key."""
        if not self.config.api_key:
            return self.config.model
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.config.api_key)
        return OpenAIResponsesModel(model=self.config.model, openai_client=self._client)

    def build_agent(self, toolset: SessionToolset, hooks: StreamingHooks, tracker: PhaseTracker) -> Agent:
        return Agent(
            name="Page Builder Agent",
            instructions=self.system_prompt,
            tools=[self._function_tool(spec, toolset, hooks, tracker) for spec in toolset.specs],
            model=self.model(),
            model_settings=ModelSettings(temperature=self.config.temperature),
        )

    def _function_tool(
        self,
        spec: ToolSpec,
        toolset: SessionToolset,
        hooks: StreamingHooks,
        tracker: PhaseTracker,
    ) -> FunctionTool:
        async def on_invoke_tool(_ctx: Any, raw_args: str) -> str:
            tracker.enter(AgentPhase.TOOL_CALL)
            await hooks.tool_started(spec.name, raw_args)
            outcome = await toolset.invoke(spec.name, raw_args)
            tracker.enter(AgentPhase.PLANNING)
            return outcome.content

        return FunctionTool(
            name=spec.name,
            description=spec.description,
            params_json_schema=spec.parameters_schema(),
            on_invoke_tool=on_invoke_tool,
            strict_json_schema=False,
        )

    async def run(
        self,
        user_input: str,
        history: Sequence[Message],
        hooks: StreamingHooks,
        toolset: SessionToolset,
    ) -> AgentResult:
        tracker = PhaseTracker(label=f"loop[{toolset.session_id}]")
        agent = self.build_agent(toolset, hooks, tracker)
        result = Runner.run_streamed(
            agent,
            input=to_input_items(history, user_input),
            max_turns=self.config.max_iterations,
        )

        try:
            async for event in result.stream_events():
                if event.type != "raw_response_event":
                    continue
                data_type = getattr(event.data, "type", None)
                if data_type == RESPONSE_CREATED_EVENT:
                    tracker.begin_round()
                elif data_type == TEXT_DELTA_EVENT:
                    await hooks.token(event.data.delta)
        except MaxTurnsExceeded as exc:
            tracker.fail()
            raise IterationLimitExceeded(self.config.max_iterations, str(exc)) from exc
        except AgentRunnerError:
            tracker.fail()
            raise
        except Exception as exc:
            tracker.fail()
            raise AgentRunnerError(f"Agent loop failed: {exc}") from exc

        tracker.finish()
        await hooks.complete()

        final_output = result.final_output
        final_text = final_output if isinstance(final_output, str) else str(final_output or "")
        logger.info(
            f"[Session {toolset.session_id}] Loop finished after {tracker.planning_rounds} model call(s), "
            f"{len(toolset.calls)} tool call(s)"
        )
        return AgentResult(final_text=final_text, tool_calls=toolset.summaries())
