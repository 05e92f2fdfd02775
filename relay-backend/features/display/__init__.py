"""Display feature: viewer WebSocket plus audio and expression control."""

from features.display.routes import router, websocket_router
from features.display.service import AudioClip, DisplayService

__all__ = ["AudioClip", "DisplayService", "router", "websocket_router"]
