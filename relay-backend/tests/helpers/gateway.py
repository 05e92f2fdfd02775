"""In-memory stand-in for the gateway WebSocket."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Optional, Union

_CLOSED = object()


class FakeGatewaySocket:
    """Async-iterable socket fed by the test.

    ``feed`` queues an inbound frame, ``drop`` simulates the far end closing
    the connection. Outbound frames are decoded into ``sent``.
    """

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.close_code: Optional[int] = None
        self._inbound: asyncio.Queue = asyncio.Queue()

    def feed(self, frame: Union[dict[str, Any], str]) -> None:
        self._inbound.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self, code: int = 1006) -> None:
        self.close_code = code
        self._inbound.put_nowait(_CLOSED)

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionError("socket closed")
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            if self.close_code is None:
                self.close_code = 1000
            self._inbound.put_nowait(_CLOSED)

    def __aiter__(self) -> "FakeGatewaySocket":
        return self

    async def __anext__(self) -> str:
        item = await self._inbound.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def requests(self, method: str) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if frame.get("type") == "req" and frame.get("method") == method]


def socket_factory(socket: FakeGatewaySocket) -> Callable[..., Any]:
    """Return a ``connect_factory`` that hands out ``socket``."""

    calls: list[str] = []

    async def connect(url: str, **kwargs: Any) -> FakeGatewaySocket:
        calls.append(url)
        return socket

    connect.calls = calls  # type: ignore[attr-defined]
    return connect


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until ``predicate`` holds."""

    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(_poll(), timeout=timeout)


def challenge(nonce: str = "nonce-1") -> dict[str, Any]:
    return {"type": "event", "event": "connect.challenge", "payload": {"nonce": nonce, "ts": 1700000000000}}


def hello_ok(request_id: str) -> dict[str, Any]:
    return {
        "type": "res",
        "id": request_id,
        "ok": True,
        "payload": {"type": "hello-ok", "server": {"displayName": "test-gateway"}},
    }


def chat_event(state: str, run_id: str = "run-1", **fields: Any) -> dict[str, Any]:
    return {"type": "event", "event": "chat", "payload": {"state": state, "runId": run_id, **fields}}


class FakeGatewayService:
    """Gateway service double for the chat relay.

    ``submit`` records the call and returns a future the test settles.
    """

    def __init__(self, config: Any, ready: bool = True) -> None:
        self.config = config
        self.is_ready = ready
        self.submitted: list[tuple[str, dict[str, Any]]] = []
        self.futures: list[asyncio.Future] = []

    async def submit(self, method: str, params: Optional[dict[str, Any]] = None) -> asyncio.Future:
        self.submitted.append((method, params or {}))
        future = asyncio.get_running_loop().create_future()
        self.futures.append(future)
        return future
