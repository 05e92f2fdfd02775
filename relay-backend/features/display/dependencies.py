"""Dependency helpers for the display feature."""

from __future__ import annotations

from fastapi import Request, WebSocket

from core.connections.viewer_registry import ViewerRegistry
from features.display.service import DisplayService


def get_display_service(request: Request) -> DisplayService:
    return request.app.state.display


def get_viewer_registry(websocket: WebSocket) -> ViewerRegistry:
    return websocket.app.state.viewers
