"""Response envelope returned by every HTTP endpoint of the relay."""

from __future__ import annotations

from typing import Any, Dict, Generic, Mapping, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


MessageType = Union[str, Mapping[str, Any]]


class ApiResponse(BaseModel, Generic[T]):
    """Envelope shared by the chat, display and status endpoints."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    code: int = Field(..., description="HTTP status code mirrored into the body")
    success: bool = Field(..., description="True for codes below 400")
    message: MessageType = Field(..., description="Summary or structured error payload")
    data: Optional[T] = Field(None, description="Endpoint specific payload")
    meta: Optional[Dict[str, Any]] = Field(default=None, description="Optional extra metadata")


def api_response(
    *,
    code: int = 200,
    message: MessageType,
    data: T | None = None,
    meta: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    """Return a serialisable API envelope."""

    envelope = ApiResponse[T](
        code=code,
        success=code < 400,
        message=message,
        data=data,
        meta=meta,
    )
    return envelope.model_dump(by_alias=True)


def ok(message: str, data: T | None = None, meta: Dict[str, Any] | None = None) -> Dict[str, Any]:
    """Shortcut for successful responses."""

    return api_response(code=200, message=message, data=data, meta=meta)


def error(
    code: int,
    message: MessageType,
    data: Any | None = None,
    meta: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    """Shortcut for error responses; ``code`` must be 400 or above."""

    if code < 400:
        raise ValueError("Error responses must use an error HTTP status code (>= 400)")
    return api_response(code=code, message=message, data=data, meta=meta)


__all__ = ["ApiResponse", "api_response", "ok", "error"]
