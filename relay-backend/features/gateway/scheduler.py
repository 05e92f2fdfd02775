"""Reconnect loop that keeps one gateway connection alive.

The scheduler is the only place a ``GatewayConnection`` is constructed.
It runs for the life of the process: connect, wait for full teardown, sleep
the backoff delay, repeat. The delay doubles after every closure up to a
cap and returns to the initial value whenever a connection reaches Ready.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from .config import GatewayConfig
from .connection import ConnectionState, GatewayConnection, NotificationCallback, ReadyCallback
from .exceptions import GatewayError, NotConnected
from .identity import DeviceIdentity, load_or_create

logger = logging.getLogger(__name__)


@dataclass
class BackoffState:
    """Exponential reconnect delay in seconds."""

    initial_delay: float = 1.0
    cap: float = 30.0
    current_delay: float = field(init=False)

    def __post_init__(self) -> None:
        self.current_delay = min(self.initial_delay, self.cap)

    def next_delay(self) -> float:
        """Return the delay to wait now and double the next one (capped)."""
        delay = self.current_delay
        self.current_delay = min(self.current_delay * 2, self.cap)
        return delay

    def reset(self) -> None:
        self.current_delay = min(self.initial_delay, self.cap)


ConnectionFactory = Callable[..., GatewayConnection]
IdentityLoader = Callable[[], DeviceIdentity]
Sleeper = Callable[[float], Awaitable[Any]]


class ReconnectScheduler:
    """Owns the active gateway connection and restarts it after every close.

    Reconnection is never abandoned; a new attempt starts only after the
    previous connection has reached Closed and rejected its pending requests.
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        on_notification: Optional[NotificationCallback] = None,
        on_ready: Optional[ReadyCallback] = None,
        connection_factory: Optional[ConnectionFactory] = None,
        identity_loader: Optional[IdentityLoader] = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self._config = config
        self._on_notification = on_notification
        self._on_ready = on_ready
        self._connection_factory = connection_factory or GatewayConnection
        self._identity_loader = identity_loader or (lambda: load_or_create(config.device_path))
        self._sleep = sleep

        self._backoff = BackoffState(config.backoff_initial, config.backoff_max)
        self._identity: Optional[DeviceIdentity] = None
        self._connection: Optional[GatewayConnection] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._stopping = False
        self._attempts = 0
        self._last_close_reason: Optional[str] = None

    @property
    def backoff(self) -> BackoffState:
        return self._backoff

    @property
    def connection(self) -> Optional[GatewayConnection]:
        return self._connection

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def last_close_reason(self) -> Optional[str]:
        return self._last_close_reason

    @property
    def state(self) -> ConnectionState:
        if self._connection is None:
            return ConnectionState.DISCONNECTED
        return self._connection.state

    @property
    def is_ready(self) -> bool:
        return self._connection is not None and self._connection.is_ready

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the reconnect loop in the background (idempotent)."""
        if self.running:
            return
        self._stopping = False
        self._task = asyncio.create_task(self._run(), name="gateway-reconnect")

    async def stop(self) -> None:
        """Stop reconnecting and close the active connection."""
        self._stopping = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._connection is not None:
            await self._connection.close("scheduler stopped")
        logger.info("Gateway reconnect loop stopped")

    async def submit(self, method: str, params: Optional[dict[str, Any]] = None) -> asyncio.Future:
        """Submit through the active connection; fails fast when not Ready."""
        if self._connection is None:
            raise NotConnected()
        return await self._connection.submit(method, params)

    async def request(
        self,
        method: str,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        if self._connection is None:
            raise NotConnected()
        return await self._connection.request(method, params, timeout=timeout)

    async def _run(self) -> None:
        while not self._stopping:
            try:
                await self.run_once()
            except Exception as exc:
                logger.exception("Gateway connection attempt %d crashed", self._attempts)
                self._last_close_reason = f"attempt crashed: {exc!r}"
                if self._connection is not None:
                    await self._connection.close(self._last_close_reason)
            if self._stopping:
                break
            delay = self._backoff.next_delay()
            logger.info("Reconnecting to gateway in %.1fs (attempt %d)", delay, self._attempts + 1)
            await self._sleep(delay)

    async def run_once(self) -> Optional[str]:
        """Run one connection from construction to Closed; return its close reason."""
        self._attempts += 1
        try:
            identity = self._load_identity()
        except Exception as exc:
            logger.error("Device identity unavailable, skipping attempt %d: %s", self._attempts, exc)
            self._last_close_reason = f"identity unavailable: {exc}"
            return self._last_close_reason

        connection = self._connection_factory(
            self._config,
            identity,
            on_notification=self._on_notification,
            on_ready=self._handle_ready,
        )
        self._connection = connection

        try:
            await connection.connect()
        except GatewayError as exc:
            logger.warning("Gateway connect attempt %d failed: %s", self._attempts, exc)

        self._last_close_reason = await connection.wait_closed()
        return self._last_close_reason

    def _load_identity(self) -> DeviceIdentity:
        if self._identity is None:
            self._identity = self._identity_loader()
        return self._identity

    async def _handle_ready(self, hello: dict[str, Any]) -> None:
        self._backoff.reset()
        if self._on_ready is None:
            return
        result = self._on_ready(hello)
        if inspect.isawaitable(result):
            await result


__all__ = ["BackoffState", "ReconnectScheduler"]
