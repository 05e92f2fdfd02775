"""Viewer WebSocket and display control routes."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse

from core.connections.viewer_registry import ViewerRegistry
from core.exceptions import NotFoundError, ValidationError
from core.http.errors import format_not_found_error, format_validation_error
from core.pydantic_schemas import ApiResponse, error as api_error, ok as api_ok
from features.display.dependencies import get_display_service, get_viewer_registry
from features.display.schemas import AudioClipResponse, ExpressionRequest
from features.display.service import DisplayService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Display"])
websocket_router = APIRouter(tags=["Display"])


@websocket_router.websocket("/")
async def viewer_websocket(
    websocket: WebSocket,
    viewers: ViewerRegistry = Depends(get_viewer_registry),
) -> None:
    """Keep a viewer attached until it disconnects; it only receives broadcasts."""

    await websocket.accept()
    await viewers.register(websocket)
    try:
        while True:
            message = await websocket.receive_text()
            logger.debug("Ignoring viewer message (%d chars)", len(message))
    except WebSocketDisconnect:
        pass
    finally:
        await viewers.unregister(websocket)


@router.post(
    "/speak",
    summary="Broadcast an audio clip to all viewers",
    response_model=ApiResponse[AudioClipResponse],
)
async def speak_endpoint(
    audio: Optional[UploadFile] = File(None, description="Audio file to play"),
    service: DisplayService = Depends(get_display_service),
) -> JSONResponse:
    if audio is None:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=api_error(
                400,
                'No audio file provided. Use multipart/form-data with field name "audio".',
            ),
        )

    try:
        data = await audio.read()
    finally:
        await audio.close()

    clip = await service.speak(data, audio.content_type, audio.filename)
    response = AudioClipResponse(mime_type=clip.mime_type, size=len(data))
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=api_ok("Audio broadcast", data=response.model_dump(by_alias=True)),
    )


@router.get("/replay", summary="Re-broadcast the last audio clip")
async def replay_endpoint(service: DisplayService = Depends(get_display_service)) -> JSONResponse:
    try:
        clip = await service.replay()
    except NotFoundError as exc:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=api_error(404, str(exc), data=format_not_found_error(exc)),
        )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=api_ok("Audio replayed", data={"mimeType": clip.mime_type}),
    )


@router.post("/expression", summary="Change the character's expression")
async def expression_endpoint(
    payload: Optional[ExpressionRequest] = None,
    service: DisplayService = Depends(get_display_service),
) -> JSONResponse:
    expression = payload.expression if payload is not None else None
    try:
        value = await service.set_expression(expression)
    except ValidationError as exc:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=api_error(400, str(exc), data=format_validation_error(exc)),
        )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=api_ok("Expression changed", data={"expression": value}),
    )


__all__ = ["router", "websocket_router"]
