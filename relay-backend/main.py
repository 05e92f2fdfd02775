from __future__ import annotations

"""PNG Assistant relay - Main Application Entry Point
This is the FastAPI application factory for the character display relay.
Architecture Overview:
    - Browser viewers attach over WebSocket and receive audio, expression and chat pushes
    - Chat turns are relayed to the OpenClaw gateway over one persistent, authenticated socket
    - Feature-based modular architecture (see features/ directory)
Entry Points:
    - /health - Health check with gateway connection state
    - / (WebSocket) - Viewer broadcast channel
    - /api/chat - Relay a chat turn to the agent
    - /api/speak, /api/replay, /api/expression - Display control
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from core.utils.env import is_production
# Track startup time in non-production environments
start_time = time.time() if not is_production() else None

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from config.defaults import HOST, IMAGES_DIR, PORT, PUBLIC_DIR
from config.environment import ENVIRONMENT
from core.connections.viewer_registry import ViewerRegistry
from core.exceptions import ConfigurationError
from core.logging import setup_logging
from core.pydantic_schemas import error as api_error, ok as api_ok
from features.chat.routes import router as chat_router
from features.chat.service import ChatRelayService
from features.display.routes import router as display_router, websocket_router as viewer_websocket_router
from features.display.service import DisplayService
from features.gateway.chat_router import ChatEvent
from features.gateway.config import GatewayConfig, get_gateway_config
from features.gateway.service import GatewayService

setup_logging()

logger = logging.getLogger(__name__)


def attach_services(app: FastAPI, gateway_config: GatewayConfig) -> GatewayService:
    """Build the per-process services and store them on ``app.state``."""

    viewers = ViewerRegistry()
    gateway = GatewayService(gateway_config)

    def broadcast_chat_event(event: ChatEvent) -> None:
        viewers.publish(event.to_broadcast())

    gateway.router.subscribe(broadcast_chat_event)

    app.state.viewers = viewers
    app.state.gateway = gateway
    app.state.display = DisplayService(viewers)
    app.state.chat_relay = ChatRelayService(gateway, viewers.broadcast)
    return gateway


def create_app(gateway_config: Optional[GatewayConfig] = None) -> FastAPI:
    """Application factory returning a configured FastAPI instance."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Manage application lifespan - startup and shutdown events."""
        gateway = attach_services(app, gateway_config or get_gateway_config())
        await gateway.start()
        yield
        logger.info("Application shutting down...")
        await app.state.chat_relay.aclose()
        await gateway.stop()
        await app.state.viewers.aclose()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="PNG Assistant relay",
        description="Character display relay with an OpenClaw gateway client",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        """Return a structured API envelope for configuration errors."""

        payload = api_error(
            code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message=str(exc),
            data={"key": exc.key} if getattr(exc, "key", None) else None,
        )
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)

    @app.get("/health")
    async def health_check(request: Request) -> dict:
        gateway: Optional[GatewayService] = getattr(request.app.state, "gateway", None)
        viewers: Optional[ViewerRegistry] = getattr(request.app.state, "viewers", None)
        return api_ok(
            "healthy",
            data={
                "environment": ENVIRONMENT,
                "gateway": gateway.status() if gateway is not None else None,
                "viewers": viewers.count() if viewers is not None else 0,
            },
        )

    app.include_router(chat_router)
    app.include_router(display_router)
    # Registered before the static mount at "/" so the viewer socket wins
    app.include_router(viewer_websocket_router)

    if IMAGES_DIR.is_dir():
        app.mount("/images", StaticFiles(directory=str(IMAGES_DIR)), name="images")
    if PUBLIC_DIR.is_dir():
        app.mount("/", StaticFiles(directory=str(PUBLIC_DIR), html=True), name="public")
    else:
        logger.warning("Public directory %s not found; display page is not served", PUBLIC_DIR)

    timing_info = ""
    if start_time is not None:
        elapsed = time.time() - start_time
        timing_info = f" (loaded in {elapsed:.2f}s)"

    logger.info(f"Application created with chat, display and viewer routes{timing_info}")
    return app


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    import uvicorn

    uvicorn.run(app, host=HOST, port=PORT)
