"""In-memory registry of connected display viewers.

Every browser showing the character keeps one WebSocket open to the relay.
Chat, audio and expression updates are pushed to all of them at once; there
is no per-viewer addressing.

``publish`` never waits on a viewer: messages are queued and delivered in
order by a single writer task, so a gateway reader handing chat events to
the registry is never held up by a slow browser.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, List, Mapping, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)

DEFAULT_SEND_TIMEOUT = 5.0


class ViewerRegistry:
    """Registry of accepted viewer WebSockets with fan-out broadcast.

    A viewer whose send fails or exceeds ``send_timeout`` is treated as gone
    and removed, so one stale browser tab never blocks delivery to the others.
    """

    def __init__(self, send_timeout: float = DEFAULT_SEND_TIMEOUT) -> None:
        self._viewers: List[WebSocket] = []
        self._lock = asyncio.Lock()
        self._send_timeout = send_timeout
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._writer: Optional[asyncio.Task[None]] = None

    async def register(self, websocket: WebSocket) -> int:
        """Add an accepted viewer and return the new viewer count."""
        async with self._lock:
            if websocket not in self._viewers:
                self._viewers.append(websocket)
            count = len(self._viewers)
        logger.info("Viewer connected. Total: %d", count)
        return count

    async def unregister(self, websocket: WebSocket) -> bool:
        """Remove a viewer. Returns True if it was registered."""
        async with self._lock:
            if websocket not in self._viewers:
                return False
            self._viewers.remove(websocket)
            count = len(self._viewers)
        logger.info("Viewer disconnected. Total: %d", count)
        return True

    def count(self) -> int:
        return len(self._viewers)

    @property
    def backlog(self) -> int:
        return self._outbox.qsize()

    def publish(self, message: Mapping[str, Any]) -> None:
        """Queue ``message`` for every viewer and return immediately."""
        self._outbox.put_nowait(message)
        if self._writer is None or self._writer.done():
            self._writer = asyncio.get_running_loop().create_task(self._drain(), name="viewer-writer")

    async def _drain(self) -> None:
        while True:
            message = await self._outbox.get()
            try:
                await self.broadcast(message)
            except Exception:
                logger.exception("Viewer broadcast failed")
            finally:
                self._outbox.task_done()

    async def flush(self) -> None:
        """Wait until every published message has been delivered or dropped."""
        await self._outbox.join()

    async def aclose(self) -> None:
        writer, self._writer = self._writer, None
        if writer is not None and not writer.done():
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass

    async def broadcast(self, message: Mapping[str, Any]) -> int:
        """Send ``message`` as JSON text to every viewer.

        Returns the number of viewers that received it.
        """
        data = json.dumps(message, ensure_ascii=False)
        async with self._lock:
            targets = list(self._viewers)

        results = await asyncio.gather(*(self._send(websocket, data) for websocket in targets))
        stale = [websocket for websocket, sent in zip(targets, results) if not sent]

        if stale:
            async with self._lock:
                self._viewers = [ws for ws in self._viewers if ws not in stale]

        delivered = len(targets) - len(stale)
        logger.debug(
            "Broadcast %s to %d/%d viewers",
            message.get("type", "unknown"),
            delivered,
            len(targets),
        )
        return delivered

    async def _send(self, websocket: WebSocket, data: str) -> bool:
        try:
            await asyncio.wait_for(websocket.send_text(data), timeout=self._send_timeout)
        except asyncio.TimeoutError:
            logger.warning("Dropping viewer after send timed out (%.1fs)", self._send_timeout)
            return False
        except Exception as exc:
            logger.warning("Dropping viewer after failed send: %s", exc)
            return False
        return True


__all__ = ["DEFAULT_SEND_TIMEOUT", "ViewerRegistry"]
