"""Dependency helpers for the chat feature."""

from __future__ import annotations

from fastapi import Request

from features.chat.service import ChatRelayService


def get_chat_relay_service(request: Request) -> ChatRelayService:
    """FastAPI dependency returning the relay created in the lifespan."""

    return request.app.state.chat_relay
