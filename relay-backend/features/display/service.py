"""Display control: audio playback and facial expression for viewers."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Optional

from config.defaults import ALLOWED_EXPRESSIONS, DEFAULT_AUDIO_MIME_TYPE
from core.connections.viewer_registry import ViewerRegistry
from core.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioClip:
    """Base64 audio as broadcast to viewers."""

    data: str
    mime_type: str

    def to_broadcast(self) -> dict[str, str]:
        return {"type": "audio", "data": self.data, "mimeType": self.mime_type}


class DisplayService:
    """Pushes audio and expression changes to every connected viewer.

    The most recent clip is kept in memory so it can be replayed.
    """

    def __init__(self, viewers: ViewerRegistry):
        self._viewers = viewers
        self._last_audio: Optional[AudioClip] = None

    @property
    def last_audio(self) -> Optional[AudioClip]:
        return self._last_audio

    async def speak(self, data: bytes, mime_type: Optional[str], filename: Optional[str] = None) -> AudioClip:
        clip = AudioClip(
            data=base64.b64encode(data).decode("ascii"),
            mime_type=mime_type or DEFAULT_AUDIO_MIME_TYPE,
        )
        self._last_audio = clip
        delivered = await self._viewers.broadcast(clip.to_broadcast())
        logger.info(
            "Audio received: %s (%d bytes), mime: %s, viewers: %d",
            filename or "upload",
            len(data),
            clip.mime_type,
            delivered,
        )
        return clip

    async def replay(self) -> AudioClip:
        """Re-broadcast the last clip.

        Raises:
            NotFoundError: If no audio has been received yet
        """
        if self._last_audio is None:
            raise NotFoundError("No audio has been received yet.", resource="audio")
        await self._viewers.broadcast(self._last_audio.to_broadcast())
        logger.info("Replaying last audio")
        return self._last_audio

    async def set_expression(self, expression: Optional[str]) -> str:
        """Broadcast an expression change.

        Raises:
            ValidationError: If ``expression`` is not one of the allowed values
        """
        if expression not in ALLOWED_EXPRESSIONS:
            allowed = " or ".join(f'"{value}"' for value in ALLOWED_EXPRESSIONS)
            raise ValidationError(f"Invalid expression. Use {allowed}.", field="expression")
        await self._viewers.broadcast({"type": "expression", "value": expression})
        logger.info("Expression changed to: %s", expression)
        return expression


__all__ = ["AudioClip", "DisplayService"]
