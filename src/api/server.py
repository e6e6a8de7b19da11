"""API server: runs uvicorn inside the existing asyncio event loop."""

from __future__ import annotations

import uvicorn
from loguru import logger

from config.settings import settings
from src.api.registry import ServiceRegistry


async def run_api_server(registry: ServiceRegistry) -> None:
    """Serve the control API until cancelled.

    Uses ``uvicorn.Server.serve()`` so it can run as an asyncio task next to
    the scheduler loops.
    """
    from src.api.app import create_app

    app = create_app(registry)
    config = uvicorn.Config(
        app=app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="warning",
        loop="none",  # use the existing event loop
    )
    server = uvicorn.Server(config)
    logger.info(f"Control API starting on http://{settings.api_host}:{settings.api_port}")
    await server.serve()
