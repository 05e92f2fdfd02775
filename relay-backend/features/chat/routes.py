"""REST API route relaying chat turns to the OpenClaw gateway."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from core.exceptions import ValidationError
from core.http.errors import format_service_error, format_unavailable_error, format_validation_error
from core.pydantic_schemas import ApiResponse, error as api_error, ok as api_ok
from features.chat.dependencies import get_chat_relay_service
from features.chat.schemas import ChatSendRequest, ChatSendResponse
from features.chat.service import ChatRelayService
from features.gateway.exceptions import GatewayError, NotConnected

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Chat"])


@router.post(
    "/chat",
    summary="Relay a chat turn to the agent",
    response_model=ApiResponse[ChatSendResponse],
)
async def send_chat_endpoint(
    payload: ChatSendRequest,
    service: ChatRelayService = Depends(get_chat_relay_service),
) -> JSONResponse:
    """Acknowledge immediately; the reply streams to viewers over WebSocket."""

    try:
        key = await service.send(payload.text, payload.idempotency_key)
    except ValidationError as exc:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=api_error(400, str(exc), data=format_validation_error(exc)),
        )
    except NotConnected as exc:
        logger.info("Rejecting chat turn while gateway is down: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=api_error(503, str(exc), data=format_unavailable_error(exc)),
        )
    except GatewayError as exc:
        logger.error("Failed to relay chat turn: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=api_error(502, str(exc), data=format_service_error(exc)),
        )

    response = ChatSendResponse(idempotency_key=key)
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=api_ok("Message sent", data=response.model_dump(by_alias=True)),
    )


__all__ = ["router"]
