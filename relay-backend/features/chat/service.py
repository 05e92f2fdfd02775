"""Relay of browser chat turns to the OpenClaw gateway.

The HTTP caller only gets an acknowledgement: the assistant's reply streams
back to the display viewers as chat.delta / chat.final / chat.error
broadcasts. A ``chat.send`` failure after acknowledgement is therefore
reported as a chat.error broadcast keyed by the idempotency key.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Mapping, Optional

from core.exceptions import ValidationError
from features.gateway.exceptions import GatewayError, NotConnected
from features.gateway.service import GatewayService

logger = logging.getLogger(__name__)

CHAT_SEND_METHOD = "chat.send"

Broadcast = Callable[[Mapping[str, Any]], Awaitable[Any]]


class ChatRelayService:
    """Sends chat turns through the gateway and tracks their outcome."""

    def __init__(self, gateway: GatewayService, broadcast: Broadcast, session_key: Optional[str] = None):
        self._gateway = gateway
        self._broadcast = broadcast
        self._session_key = session_key or gateway.config.session_key
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def send(self, text: Optional[str], idempotency_key: Optional[str] = None) -> str:
        """Relay ``text`` as one chat turn and return its idempotency key.

        Raises:
            ValidationError: If ``text`` is missing or blank
            NotConnected: If the gateway is not Ready; nothing is queued
        """
        message = (text or "").strip()
        if not message:
            raise ValidationError("text field is required and must be a non-empty string", field="text")

        if not self._gateway.is_ready:
            raise NotConnected("Gateway not connected - please wait and retry")

        key = idempotency_key or str(uuid.uuid4())
        future = await self._gateway.submit(
            CHAT_SEND_METHOD,
            {
                "sessionKey": self._session_key,
                "message": message,
                "deliver": False,
                "idempotencyKey": key,
            },
        )

        task = asyncio.create_task(self._await_outcome(key, future))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info("Sent chat message (idempotencyKey=%s)", key)
        return key

    async def _await_outcome(self, key: str, future: asyncio.Future) -> None:
        try:
            await future
        except GatewayError as exc:
            error = getattr(exc, "message", None) or str(exc)
            logger.error("chat.send failed (idempotencyKey=%s): %s", key, exc)
            await self._broadcast({"type": "chat.error", "runId": key, "error": error})
        else:
            logger.debug("chat.send accepted (idempotencyKey=%s)", key)

    async def aclose(self) -> None:
        """Cancel outcome watchers still waiting at shutdown."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


__all__ = ["CHAT_SEND_METHOD", "ChatRelayService"]
