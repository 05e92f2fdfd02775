"""Process-wide gateway client assembled for the FastAPI application.

The service is created in the application lifespan and stored on
``app.state.gateway``; routes reach it through :func:`get_gateway_service`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from fastapi import Request

from .chat_router import ChatEventRouter
from .config import GatewayConfig
from .connection import ConnectionState
from .scheduler import ReconnectScheduler

logger = logging.getLogger(__name__)


class GatewayService:
    """Owns the reconnect scheduler and the chat event router."""

    def __init__(
        self,
        config: GatewayConfig,
        *,
        router: Optional[ChatEventRouter] = None,
        scheduler: Optional[ReconnectScheduler] = None,
    ):
        self.config = config
        self.router = router or ChatEventRouter()
        self.scheduler = scheduler or ReconnectScheduler(
            config,
            on_notification=self.router.on_notification,
        )

    @property
    def state(self) -> ConnectionState:
        return self.scheduler.state

    @property
    def is_ready(self) -> bool:
        return self.scheduler.is_ready

    async def start(self) -> None:
        logger.info("Starting gateway client for %s", self.config.gateway_url)
        await self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()

    async def submit(self, method: str, params: Optional[dict[str, Any]] = None) -> asyncio.Future:
        return await self.scheduler.submit(method, params)

    async def request(
        self,
        method: str,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        return await self.scheduler.request(method, params, timeout=timeout)

    def status(self) -> dict[str, Any]:
        connection = self.scheduler.connection
        return {
            "state": self.state.value,
            "ready": self.is_ready,
            "attempts": self.scheduler.attempts,
            "pending": connection.pending_count if connection is not None else 0,
            "lastCloseReason": self.scheduler.last_close_reason,
        }


def get_gateway_service(request: Request) -> GatewayService:
    """FastAPI dependency returning the application's gateway service."""
    return request.app.state.gateway


__all__ = ["GatewayService", "get_gateway_service"]
