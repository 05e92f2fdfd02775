"""Chat relay feature: browser chat turns forwarded to the gateway."""

from __future__ import annotations

__all__ = ["ChatRelayService", "router"]


def __getattr__(name: str):
    if name == "router":
        from features.chat.routes import router

        return router
    if name == "ChatRelayService":
        from features.chat.service import ChatRelayService

        return ChatRelayService
    raise AttributeError(name)
