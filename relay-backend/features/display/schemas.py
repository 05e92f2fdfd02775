"""Pydantic schemas for the display control endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ExpressionRequest(BaseModel):
    expression: Optional[str] = Field(default=None, description='"normal" or "smile"')


class AudioClipResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mime_type: str = Field(..., alias="mimeType")
    size: int = Field(..., description="Size of the decoded audio in bytes")


__all__ = ["AudioClipResponse", "ExpressionRequest"]
