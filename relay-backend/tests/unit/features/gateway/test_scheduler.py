"""Unit tests for reconnect backoff and the reconnect loop."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from functools import partial
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from features.gateway.connection import ConnectionState, GatewayConnection
from features.gateway.exceptions import ConnectionLost, NotConnected
from features.gateway.scheduler import BackoffState, ReconnectScheduler
from tests.helpers.gateway import FakeGatewaySocket, challenge, hello_ok, socket_factory, wait_until


class FakeConnection:
    """Connection double that closes as soon as it is connected."""

    instances: list["FakeConnection"] = []

    def __init__(self, config, identity, *, on_notification=None, on_ready=None, ready=False, fail=False):
        self.identity = identity
        self.on_notification = on_notification
        self.on_ready = on_ready
        self.ready = ready
        self.fail = fail
        self.state = ConnectionState.DISCONNECTED
        self.is_ready = False
        self.pending_count = 0
        self.closed_with: Optional[str] = None
        FakeConnection.instances.append(self)

    async def connect(self) -> None:
        self.state = ConnectionState.CONNECTING
        if self.fail:
            self.state = ConnectionState.CLOSED
            raise ConnectionLost("connect failed: refused")
        if self.ready:
            await self.on_ready({"type": "hello-ok"})

    async def wait_closed(self) -> str:
        self.state = ConnectionState.CLOSED
        return "connection closed"

    async def close(self, reason: str = "closed by client") -> None:
        self.closed_with = reason
        self.state = ConnectionState.CLOSED


class RecordingSleep:
    """Records requested delays and parks the loop after ``limit`` calls."""

    def __init__(self, limit: int):
        self.limit = limit
        self.delays: list[float] = []
        self._parked = asyncio.Event()

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if len(self.delays) >= self.limit:
            await self._parked.wait()


def _factory(plan: list[dict[str, Any]]):
    """Return a connection factory following ``plan`` one attempt at a time."""
    attempts = iter(plan)

    def build(config, identity, **kwargs):
        return FakeConnection(config, identity, **{**next(attempts, {}), **kwargs})

    return build


@pytest.fixture(autouse=True)
def _clear_instances():
    FakeConnection.instances.clear()
    yield
    FakeConnection.instances.clear()


class TestBackoffState:

    def test_doubles_until_cap(self):
        backoff = BackoffState(initial_delay=1.0, cap=30.0)

        delays = [backoff.next_delay() for _ in range(7)]

        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]

    def test_never_decreases_without_reset(self):
        backoff = BackoffState(initial_delay=0.5, cap=3.0)

        delays = [backoff.next_delay() for _ in range(10)]

        assert delays == sorted(delays)
        assert max(delays) == 3.0

    def test_reset_returns_to_initial(self):
        backoff = BackoffState(initial_delay=1.0, cap=30.0)
        for _ in range(4):
            backoff.next_delay()

        backoff.reset()

        assert backoff.next_delay() == 1.0

    def test_initial_above_cap_is_clamped(self):
        assert BackoffState(initial_delay=60.0, cap=30.0).next_delay() == 30.0


class TestReconnectScheduler:

    @pytest.mark.asyncio
    async def test_backoff_grows_across_closures(self, gateway_config, device_identity):
        sleep = RecordingSleep(limit=4)
        scheduler = ReconnectScheduler(
            gateway_config,
            connection_factory=_factory([]),
            identity_loader=lambda: device_identity,
            sleep=sleep,
        )

        await scheduler.start()
        await wait_until(lambda: len(sleep.delays) == 4)
        await scheduler.stop()

        assert sleep.delays == [1.0, 2.0, 4.0, 8.0]
        assert scheduler.attempts == 4
        assert scheduler.last_close_reason == "connection closed"

    @pytest.mark.asyncio
    async def test_backoff_capped(self, gateway_config, device_identity):
        config = replace(gateway_config, backoff_initial=1.0, backoff_max=4.0)
        sleep = RecordingSleep(limit=5)
        scheduler = ReconnectScheduler(
            config,
            connection_factory=_factory([]),
            identity_loader=lambda: device_identity,
            sleep=sleep,
        )

        await scheduler.start()
        await wait_until(lambda: len(sleep.delays) == 5)
        await scheduler.stop()

        assert sleep.delays == [1.0, 2.0, 4.0, 4.0, 4.0]

    @pytest.mark.asyncio
    async def test_ready_resets_backoff(self, gateway_config, device_identity):
        """Two failures, then a Ready connection, then failures again."""
        on_ready = AsyncMock()
        sleep = RecordingSleep(limit=5)
        scheduler = ReconnectScheduler(
            gateway_config,
            on_ready=on_ready,
            connection_factory=_factory([{}, {}, {"ready": True}, {}, {}]),
            identity_loader=lambda: device_identity,
            sleep=sleep,
        )

        await scheduler.start()
        await wait_until(lambda: len(sleep.delays) == 5)
        await scheduler.stop()

        assert sleep.delays == [1.0, 2.0, 1.0, 2.0, 4.0]
        on_ready.assert_awaited_once_with({"type": "hello-ok"})

    @pytest.mark.asyncio
    async def test_connect_errors_keep_retrying(self, gateway_config, device_identity):
        sleep = RecordingSleep(limit=3)
        scheduler = ReconnectScheduler(
            gateway_config,
            connection_factory=_factory([{"fail": True}] * 3),
            identity_loader=lambda: device_identity,
            sleep=sleep,
        )

        await scheduler.start()
        await wait_until(lambda: len(sleep.delays) == 3)
        await scheduler.stop()

        assert len(FakeConnection.instances) == 3

    @pytest.mark.asyncio
    async def test_unexpected_connect_errors_keep_retrying(self, gateway_config, device_identity):
        sleep = RecordingSleep(limit=3)
        scheduler = ReconnectScheduler(
            gateway_config,
            connection_factory=partial(GatewayConnection, connect_factory=AsyncMock(side_effect=ValueError("bad port"))),
            identity_loader=lambda: device_identity,
            sleep=sleep,
        )

        await scheduler.start()
        await wait_until(lambda: len(sleep.delays) == 3)

        assert scheduler.running
        assert scheduler.state is ConnectionState.CLOSED
        assert "bad port" in scheduler.last_close_reason
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_crashed_attempt_backs_off_and_retries(self, gateway_config, device_identity):
        sleep = RecordingSleep(limit=2)
        factory = MagicMock(side_effect=RuntimeError("factory broke"))
        scheduler = ReconnectScheduler(
            gateway_config,
            connection_factory=factory,
            identity_loader=lambda: device_identity,
            sleep=sleep,
        )

        await scheduler.start()
        await wait_until(lambda: len(sleep.delays) == 2)

        assert scheduler.running
        assert factory.call_count == 2
        assert sleep.delays == [gateway_config.backoff_initial, gateway_config.backoff_initial * 2]
        assert "factory broke" in scheduler.last_close_reason
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_identity_loaded_once(self, gateway_config, device_identity):
        loader = MagicMock(return_value=device_identity)
        scheduler = ReconnectScheduler(
            gateway_config,
            connection_factory=_factory([]),
            identity_loader=loader,
        )

        await scheduler.run_once()
        await scheduler.run_once()

        loader.assert_called_once_with()
        assert all(conn.identity is device_identity for conn in FakeConnection.instances)

    @pytest.mark.asyncio
    async def test_identity_failure_skips_attempt(self, gateway_config, device_identity):
        loader = MagicMock(side_effect=[PermissionError("read-only"), device_identity])
        scheduler = ReconnectScheduler(
            gateway_config,
            connection_factory=_factory([]),
            identity_loader=loader,
        )

        reason = await scheduler.run_once()

        assert reason.startswith("identity unavailable")
        assert FakeConnection.instances == []

        assert await scheduler.run_once() == "connection closed"
        assert len(FakeConnection.instances) == 1

    @pytest.mark.asyncio
    async def test_default_identity_loader_uses_device_path(self, gateway_config, tmp_path):
        scheduler = ReconnectScheduler(gateway_config, connection_factory=_factory([]))

        await scheduler.run_once()

        assert (tmp_path / "device.json").exists()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, gateway_config, device_identity):
        sleep = RecordingSleep(limit=1)
        scheduler = ReconnectScheduler(
            gateway_config,
            connection_factory=_factory([]),
            identity_loader=lambda: device_identity,
            sleep=sleep,
        )

        await scheduler.start()
        await scheduler.start()
        await wait_until(lambda: len(sleep.delays) == 1)

        assert len(FakeConnection.instances) == 1
        await scheduler.stop()
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_submit_without_connection(self, gateway_config):
        scheduler = ReconnectScheduler(gateway_config)

        assert scheduler.state is ConnectionState.DISCONNECTED
        with pytest.raises(NotConnected):
            await scheduler.submit("chat.send", {})
        with pytest.raises(NotConnected):
            await scheduler.request("chat.send", {})


class TestSchedulerWithRealConnection:

    @pytest.mark.asyncio
    async def test_reaches_ready_and_stops_cleanly(self, gateway_config, device_identity):
        socket = FakeGatewaySocket()
        on_notification = AsyncMock()
        scheduler = ReconnectScheduler(
            gateway_config,
            on_notification=on_notification,
            connection_factory=partial(GatewayConnection, connect_factory=socket_factory(socket)),
            identity_loader=lambda: device_identity,
        )

        await scheduler.start()
        await wait_until(lambda: scheduler.state is ConnectionState.AWAITING_CHALLENGE)
        socket.feed(challenge("n1"))
        await wait_until(lambda: socket.requests("connect"))
        socket.feed(hello_ok(socket.requests("connect")[0]["id"]))
        await wait_until(lambda: scheduler.is_ready)

        future = await scheduler.submit("chat.send", {"message": "hi"})
        await scheduler.stop()

        assert scheduler.state is ConnectionState.CLOSED
        assert socket.closed
        with pytest.raises(ConnectionLost):
            await future
