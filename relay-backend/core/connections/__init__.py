"""Connection management for viewer WebSockets that receive server pushes."""

from core.connections.viewer_registry import ViewerRegistry

__all__ = ["ViewerRegistry"]
