"""Build the configured agent strategy."""
from __future__ import annotations

from typing import Optional

from pagewright.ai_agents.base import AgentConfig, AgentRunner, AgentStrategy
from pagewright.ai_agents.graph_agent import GraphAgentRunner
from pagewright.ai_agents.prompts import builder_system_prompt
from pagewright.ai_agents.tool_loop import ToolLoopRunner
from pagewright.errors import UnknownStrategyError


def create_agent_runner(config: AgentConfig, system_prompt: Optional[str] = None) -> AgentRunner:
    """Return the runner for ``config.strategy``; unknown strategies fail immediately."""
    prompt = system_prompt or builder_system_prompt()
    strategy = AgentStrategy.parse(config.strategy)
    if strategy is AgentStrategy.LOOP:
        return ToolLoopRunner(config, prompt)
    if strategy is AgentStrategy.GRAPH:
        return GraphAgentRunner(config, prompt)
    raise UnknownStrategyError(str(strategy))
