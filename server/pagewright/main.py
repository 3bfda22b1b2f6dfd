"""FastAPI application entrypoint for the Pagewright page builder."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pagewright.ai_agents.base import AgentConfig
from pagewright.config import settings
from pagewright.routers import realtime, sessions
from pagewright.services.orchestration import OrchestrationService

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


def build_service() -> OrchestrationService:
    """Construct the process-wide services from settings; fails fast on bad config."""

    config = AgentConfig.from_settings(settings)
    logger.info(
        "Using %s agent strategy (model=%s, temperature=%s, max_iterations=%d)",
        config.strategy.value,
        config.model,
        config.temperature,
        config.max_iterations,
    )
    return OrchestrationService.from_config(config, max_pending=settings.subscriber_max_pending)


def create_app(service: Optional[OrchestrationService] = None) -> FastAPI:
    """Instantiate and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.orchestration = service or build_service()
        try:
            yield
        finally:
            await app.state.orchestration.shutdown()

    application = FastAPI(
        title="Pagewright",
        description="Builds HTML documents from chat instructions and streams every step.",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(sessions.router)
    application.include_router(realtime.router)

    @application.get("/")
    async def root() -> dict[str, str]:
        """Lightweight health endpoint for service discovery."""
        return {"service": "pagewright", "status": "ok"}

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
