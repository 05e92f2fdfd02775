"""Pydantic schemas for the chat relay endpoint."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatSendRequest(BaseModel):
    """Body of ``POST /api/chat``.

    ``text`` is optional at the schema level so a missing or blank value is
    reported as a 400 by the relay instead of a generic 422.
    """

    model_config = ConfigDict(populate_by_name=True)

    text: Optional[str] = Field(default=None, description="Chat turn to relay to the agent")
    idempotency_key: Optional[str] = Field(
        default=None,
        alias="idempotencyKey",
        description="Caller supplied key forwarded unchanged; generated when omitted",
    )


class ChatSendResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    idempotency_key: str = Field(..., alias="idempotencyKey")


__all__ = ["ChatSendRequest", "ChatSendResponse"]
