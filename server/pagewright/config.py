"""Configuration helpers for the page builder service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


@dataclass
class Settings:
    """Centralized environment-driven configuration.

    Values are read once when the module is imported. The agent knobs are turned into
    a static ``AgentConfig`` when the orchestrator is built and never change afterwards.
    """

    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    openai_temperature: float = float(os.getenv("OPENAI_TEMPERATURE", "0"))
    # "graph" (LangGraph two-node agent) or "loop" (openai-agents tool-calling loop)
    agent_strategy: str = os.getenv("AGENT_STRATEGY", "graph")
    agent_max_iterations: int = int(os.getenv("AGENT_MAX_ITERATIONS", "25"))
    subscriber_max_pending: int = int(os.getenv("SUBSCRIBER_MAX_PENDING", "1000"))
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def cors_origins(self) -> list[str]:
        """Return the comma separated CORS origins as a list."""

        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    return Settings()


settings = get_settings()
