"""Wire frames exchanged with the OpenClaw gateway.

Three frame shapes share one JSON socket, discriminated by ``type``:
- ``event``: uncorrelated notification from the gateway
- ``req``: request issued by this client
- ``res``: response correlated to a request by ``id``
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .exceptions import MalformedFrame

PROTOCOL_VERSION = 3
CHALLENGE_EVENT = "connect.challenge"
HELLO_OK = "hello-ok"


class _Frame(BaseModel):
    model_config = ConfigDict(extra="allow")


class EventFrame(_Frame):
    type: Literal["event"]
    event: str
    payload: Any = None


class ResponseFrame(_Frame):
    type: Literal["res"]
    id: str
    ok: bool
    payload: Any = None
    error: Any = None


class RequestFrame(_Frame):
    type: Literal["req"] = "req"
    id: str
    method: str
    params: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        return self.model_dump_json(include={"type", "id", "method", "params"})


InboundFrame = Annotated[Union[EventFrame, ResponseFrame], Field(discriminator="type")]
_inbound_adapter: TypeAdapter = TypeAdapter(InboundFrame)


def parse_frame(raw: Union[str, bytes]) -> Union[EventFrame, ResponseFrame]:
    """Parse one inbound socket message.

    Raises:
        MalformedFrame: If the message is not JSON or matches no inbound shape
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedFrame(f"Invalid JSON from gateway: {exc}", raw) from exc

    if not isinstance(data, dict):
        raise MalformedFrame("Frame is not a JSON object", data)

    try:
        return _inbound_adapter.validate_python(data)
    except PydanticValidationError as exc:
        raise MalformedFrame(
            f"Unrecognized frame (type={data.get('type')!r}): {exc.error_count()} validation error(s)",
            data,
        ) from exc


def error_details(error: Any) -> tuple[str, str]:
    """Return ``(code, message)`` for the ``error`` field of a failed response."""
    if isinstance(error, dict):
        code = error.get("code")
        message = error.get("message")
        return (
            str(code) if code else "UNKNOWN",
            str(message) if message else "Unknown error",
        )
    if isinstance(error, str) and error:
        return "UNKNOWN", error
    return "UNKNOWN", "Unknown error"


def is_hello_ok(payload: Optional[Any]) -> bool:
    return isinstance(payload, dict) and payload.get("type") == HELLO_OK


__all__ = [
    "CHALLENGE_EVENT",
    "EventFrame",
    "HELLO_OK",
    "PROTOCOL_VERSION",
    "RequestFrame",
    "ResponseFrame",
    "error_details",
    "is_hello_ok",
    "parse_frame",
]
