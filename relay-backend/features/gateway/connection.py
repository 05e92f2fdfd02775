"""OpenClaw gateway connection state machine.

One ``GatewayConnection`` owns one socket for its whole life:

    Disconnected -> Connecting -> AwaitingChallenge -> Authenticating -> Ready
                        \\______________\\__________________\\______________\\-> Closed

A connection is never reopened; the reconnect scheduler builds a new one.
A single reader task consumes inbound frames, resolves the request registry
and forwards notifications. Outbound frames are serialized by a send lock.

Protocol version: 3
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Optional, Union

import websockets

from .config import GatewayConfig
from .exceptions import (
    ConnectionLost,
    GatewayError,
    HandshakeFailure,
    IllegalTransition,
    MalformedFrame,
    NotConnected,
    RequestRejected,
    RequestTimeout,
    SigningFailure,
)
from .identity import DeviceIdentity
from .protocol import (
    CHALLENGE_EVENT,
    PROTOCOL_VERSION,
    EventFrame,
    RequestFrame,
    ResponseFrame,
    error_details,
    is_hello_ok,
    parse_frame,
)
from .registry import RequestRegistry
from .signer import sign

logger = logging.getLogger(__name__)

NotificationCallback = Callable[[str, Any], Awaitable[Any]]
ReadyCallback = Callable[[dict[str, Any]], Union[None, Awaitable[None]]]
ConnectFactory = Callable[..., Awaitable[Any]]


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_CHALLENGE = "awaiting_challenge"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    CLOSED = "closed"


ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset({ConnectionState.AWAITING_CHALLENGE, ConnectionState.CLOSED}),
    ConnectionState.AWAITING_CHALLENGE: frozenset({ConnectionState.AUTHENTICATING, ConnectionState.CLOSED}),
    ConnectionState.AUTHENTICATING: frozenset({ConnectionState.READY, ConnectionState.CLOSED}),
    ConnectionState.READY: frozenset({ConnectionState.CLOSED}),
    ConnectionState.CLOSED: frozenset(),
}


class GatewayConnection:
    """Single authenticated socket to the OpenClaw gateway.

    Handles the challenge/connect handshake, request correlation and
    notification forwarding. Does NOT reconnect (see scheduler.py) and does
    NOT interpret chat payloads (see chat_router.py).
    """

    RETRYABLE_CODES = {"UNAVAILABLE", "AGENT_TIMEOUT"}

    def __init__(
        self,
        config: GatewayConfig,
        identity: DeviceIdentity,
        *,
        on_notification: Optional[NotificationCallback] = None,
        on_ready: Optional[ReadyCallback] = None,
        connect_factory: Optional[ConnectFactory] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the connection.

        Args:
            config: Gateway configuration (URL, token, client identity, timeouts)
            identity: Device identity used to sign the challenge
            on_notification: Async callback for notifications received while Ready
            on_ready: Callback invoked once with the hello-ok payload
            connect_factory: Socket opener, ``websockets.connect`` by default
            clock: Wall clock in seconds, used for the signing timestamp
        """
        self._config = config
        self._identity = identity
        self._on_notification = on_notification
        self._on_ready = on_ready
        self._connect_factory = connect_factory or websockets.connect
        self._clock = clock

        self._state = ConnectionState.DISCONNECTED
        self._registry = RequestRegistry()
        self._ws: Any = None
        self._send_lock = asyncio.Lock()
        self._ready = asyncio.Event()
        self._closed = asyncio.Event()

        self._reader_task: Optional[asyncio.Task[None]] = None
        self._handshake_task: Optional[asyncio.Task[None]] = None
        self._watchdog_task: Optional[asyncio.Task[None]] = None

        self._hello: Optional[dict[str, Any]] = None
        self._failure: Optional[GatewayError] = None
        self._close_reason: Optional[str] = None
        self._close_code: Optional[int] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ConnectionState.READY

    @property
    def hello(self) -> Optional[dict[str, Any]]:
        """hello-ok payload once Ready."""
        return self._hello

    @property
    def failure(self) -> Optional[GatewayError]:
        """Handshake error that closed this connection, if any."""
        return self._failure

    @property
    def close_reason(self) -> Optional[str]:
        return self._close_reason

    @property
    def close_code(self) -> Optional[int]:
        return self._close_code

    @property
    def pending_count(self) -> int:
        return len(self._registry)

    def _transition(self, new_state: ConnectionState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self._state]:
            raise IllegalTransition(f"Cannot move from {self._state.value} to {new_state.value}")
        logger.debug("Gateway state %s -> %s", self._state.value, new_state.value)
        self._state = new_state

    # Lifecycle

    async def connect(self) -> None:
        """Open the socket and start waiting for the challenge.

        Returns once the socket is open; the handshake completes in the
        background and is observable via ``on_ready`` or ``wait_ready()``.

        Raises:
            IllegalTransition: If called outside Disconnected
            ConnectionLost: If the socket cannot be opened
        """
        self._transition(ConnectionState.CONNECTING)
        logger.info("Connecting to OpenClaw gateway: %s", self._config.gateway_url)

        try:
            self._ws = await asyncio.wait_for(
                self._connect_factory(self._config.gateway_url, ping_interval=None),
                timeout=self._config.connect_timeout,
            )
        except asyncio.TimeoutError as exc:
            await self._teardown(f"connect timed out after {self._config.connect_timeout}s")
            raise ConnectionLost(self._close_reason or "connect timed out") from exc
        except asyncio.CancelledError:
            await self._teardown("connect cancelled")
            raise
        except (OSError, websockets.WebSocketException) as exc:
            await self._teardown(f"connect failed: {exc}")
            raise ConnectionLost(self._close_reason or "connect failed") from exc
        except Exception as exc:
            logger.exception("Unexpected error opening gateway socket")
            await self._teardown(f"connect failed: {exc!r}")
            raise ConnectionLost(self._close_reason or "connect failed") from exc

        if self._state is ConnectionState.CLOSED:
            await self._ws.close()
            raise ConnectionLost(self._close_reason or "closed while connecting")

        self._transition(ConnectionState.AWAITING_CHALLENGE)
        logger.info("Socket open, waiting for %s", CHALLENGE_EVENT)
        self._reader_task = asyncio.create_task(self._read_loop())
        self._watchdog_task = asyncio.create_task(self._handshake_watchdog())

    async def close(self, reason: str = "closed by client") -> None:
        """Close the connection, rejecting every pending request."""
        if self._state is ConnectionState.DISCONNECTED:
            logger.debug("close() on a connection that never connected")
            return
        await self._teardown(reason)
        await self._closed.wait()

    async def wait_closed(self) -> Optional[str]:
        """Wait until teardown has finished; return the close reason."""
        await self._closed.wait()
        return self._close_reason

    async def wait_ready(self) -> None:
        """Wait until Ready.

        Raises:
            HandshakeFailure: The handshake failed
            ConnectionLost: The connection closed first for another reason
        """
        if self._state is ConnectionState.READY:
            return
        if self._state is not ConnectionState.CLOSED:
            ready = asyncio.create_task(self._ready.wait())
            closed = asyncio.create_task(self._closed.wait())
            try:
                await asyncio.wait({ready, closed}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                ready.cancel()
                closed.cancel()
        if self._state is ConnectionState.READY:
            return
        if self._failure is not None:
            raise self._failure
        raise ConnectionLost(self._close_reason or "connection closed", self._close_code)

    # Requests

    async def submit(self, method: str, params: Optional[dict[str, Any]] = None) -> asyncio.Future:
        """Send a request and return the future of its response payload.

        The future fails with ``RequestRejected`` for an ok=false response and
        with ``ConnectionLost`` if the socket closes first.

        Raises:
            NotConnected: If the connection is not Ready
        """
        _, future = await self._submit(method, params)
        return future

    async def request(
        self,
        method: str,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Send a request and wait for its response payload.

        Args:
            method: RPC method name (e.g., "chat.send")
            params: Method parameters
            timeout: Deadline in seconds; falls back to the configured
                request timeout, and None waits indefinitely

        Raises:
            NotConnected: If the connection is not Ready
            RequestRejected: If the response has ok=false
            ConnectionLost: If the connection closes while pending
            RequestTimeout: If the deadline expires
        """
        request_id, future = await self._submit(method, params)
        deadline = timeout if timeout is not None else self._config.request_timeout
        try:
            if deadline is None:
                return await future
            return await asyncio.wait_for(future, timeout=deadline)
        except asyncio.CancelledError:
            self._registry.discard(request_id)
            raise
        except asyncio.TimeoutError as exc:
            self._registry.discard(request_id)
            logger.warning("Request %s id=%s... timed out after %ss", method, request_id[:8], deadline)
            raise RequestTimeout(method, deadline) from exc

    async def _submit(self, method: str, params: Optional[dict[str, Any]]) -> tuple[str, asyncio.Future]:
        if self._state is not ConnectionState.READY:
            raise NotConnected(f"Gateway not connected (state={self._state.value})")
        return await self._send_request(method, params or {})

    async def _send_request(self, method: str, params: dict[str, Any]) -> tuple[str, asyncio.Future]:
        request_id = str(uuid.uuid4())
        future = self._registry.register(request_id, method)
        frame = RequestFrame(id=request_id, method=method, params=params)
        try:
            async with self._send_lock:
                await self._ws.send(frame.to_json())
        except Exception as exc:
            self._registry.discard(request_id)
            raise ConnectionLost(f"send failed: {exc}") from exc
        logger.debug("Sent request: method=%s id=%s...", method, request_id[:8])
        return request_id, future

    # Handshake

    def build_connect_params(self, nonce: str, signed_at: Optional[int] = None) -> dict[str, Any]:
        """Build the params of the signed connect request for ``nonce``.

        Raises:
            SigningFailure: If the identity cannot sign
        """
        config = self._config
        signed_at = signed_at if signed_at is not None else int(self._clock() * 1000)
        token = config.gateway_token or None

        signed = sign(
            self._identity,
            nonce,
            signed_at,
            config.role,
            config.scopes,
            token,
            client_id=config.client_id,
            client_mode=config.client_mode,
        )

        return {
            "minProtocol": PROTOCOL_VERSION,
            "maxProtocol": PROTOCOL_VERSION,
            "client": {
                "id": config.client_id,
                "version": config.client_version,
                "platform": config.platform,
                "mode": config.client_mode,
            },
            "role": config.role,
            "scopes": list(config.scopes),
            "caps": [],
            "commands": [],
            "permissions": {},
            "auth": {"token": token} if token else {},
            "locale": config.locale,
            "userAgent": config.user_agent,
            "device": {
                "id": self._identity.id,
                "publicKey": self._identity.public_key_b64url,
                "signature": signed.signature,
                "signedAt": signed.signed_at,
                "nonce": nonce,
            },
        }

    async def _handle_challenge(self, payload: Any) -> None:
        if self._state is not ConnectionState.AWAITING_CHALLENGE:
            logger.debug("Ignoring %s in state %s", CHALLENGE_EVENT, self._state.value)
            return

        nonce = payload.get("nonce") if isinstance(payload, dict) else None
        if not isinstance(nonce, str) or not nonce.strip():
            logger.warning("Ignoring %s without a usable nonce", CHALLENGE_EVENT)
            return

        self._transition(ConnectionState.AUTHENTICATING)
        logger.info("Challenge received (nonce %s...), sending connect request", nonce[:8])

        try:
            params = self.build_connect_params(nonce)
            _, future = await self._send_request("connect", params)
        except SigningFailure as exc:
            await self._fail_handshake(exc)
            return
        except ConnectionLost as exc:
            await self._teardown(exc.reason)
            return

        self._handshake_task = asyncio.create_task(self._await_hello(future))

    async def _await_hello(self, future: asyncio.Future) -> None:
        try:
            payload = await future
        except RequestRejected as exc:
            await self._fail_handshake(HandshakeFailure(f"Handshake rejected: {exc.code} - {exc.message}"))
            return
        except ConnectionLost:
            return

        if not is_hello_ok(payload):
            await self._fail_handshake(HandshakeFailure(f"Unexpected connect response: {payload!r}"))
            return

        self._transition(ConnectionState.READY)
        self._hello = payload
        self._ready.set()
        if self._watchdog_task is not None and not self._watchdog_task.done():
            self._watchdog_task.cancel()

        server = payload.get("server") if isinstance(payload.get("server"), dict) else {}
        logger.info("hello-ok received; ready (server: %s)", server.get("displayName", "unknown"))

        if self._on_ready is not None:
            try:
                result = self._on_ready(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Error in on_ready callback")

    async def _handshake_watchdog(self) -> None:
        await asyncio.sleep(self._config.handshake_timeout)
        if self._state in (ConnectionState.AWAITING_CHALLENGE, ConnectionState.AUTHENTICATING):
            await self._fail_handshake(
                HandshakeFailure(f"Handshake not completed within {self._config.handshake_timeout}s")
            )

    async def _fail_handshake(self, error: GatewayError) -> None:
        self._failure = error
        logger.error("Gateway handshake failed: %s", error)
        await self._teardown(str(error))

    # Inbound

    async def _read_loop(self) -> None:
        reason = "connection closed"
        code: Optional[int] = None
        try:
            async for raw in self._ws:
                await self._dispatch(raw)
                if self._state is ConnectionState.CLOSED:
                    return
            code = getattr(self._ws, "close_code", None)
        except websockets.ConnectionClosed as exc:
            received = exc.rcvd
            code = received.code if received is not None else None
            reason = (received.reason if received is not None else "") or "connection closed"
        except Exception as exc:
            logger.exception("Unexpected error in gateway receive loop")
            reason = f"receive loop failed: {exc}"
        await self._teardown(reason, code)

    async def _dispatch(self, raw: Union[str, bytes]) -> None:
        try:
            frame = parse_frame(raw)
        except MalformedFrame as exc:
            logger.warning("Discarding malformed gateway frame: %s", exc.reason)
            return

        if isinstance(frame, ResponseFrame):
            self._handle_response(frame)
        else:
            await self._handle_event(frame)

    def _handle_response(self, frame: ResponseFrame) -> None:
        if frame.ok:
            self._registry.resolve(frame.id, frame.payload)
            return
        code, message = error_details(frame.error)
        logger.warning("Request %s... failed: %s - %s", frame.id[:8], code, message)
        self._registry.reject(frame.id, RequestRejected(code, message, code in self.RETRYABLE_CODES))

    async def _handle_event(self, frame: EventFrame) -> None:
        if frame.event == CHALLENGE_EVENT:
            await self._handle_challenge(frame.payload)
            return

        if self._state is not ConnectionState.READY:
            logger.debug("Dropping %s event received in state %s", frame.event, self._state.value)
            return

        if self._on_notification is None:
            return
        try:
            await self._on_notification(frame.event, frame.payload)
        except Exception:
            logger.exception("Error in notification callback for %s", frame.event)

    # Teardown

    async def _teardown(self, reason: str, code: Optional[int] = None) -> None:
        if self._state is ConnectionState.CLOSED:
            return
        previous = self._state
        self._transition(ConnectionState.CLOSED)
        self._close_reason = reason
        self._close_code = code

        log = logger.info if previous is ConnectionState.CONNECTING else logger.warning
        log("Gateway connection closed from %s (code %s): %s", previous.value, code, reason)

        current = asyncio.current_task()
        tasks = [
            task
            for task in (self._reader_task, self._handshake_task, self._watchdog_task)
            if task is not None and task is not current and not task.done()
        ]
        for task in tasks:
            task.cancel()

        self._registry.reject_all(ConnectionLost(reason, code))

        if self._ws is not None:
            try:
                await self._ws.close()
            except Exception as exc:
                logger.debug("Error closing gateway socket: %s", exc)

        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Gateway task failed during teardown")

        self._closed.set()


__all__ = ["ALLOWED_TRANSITIONS", "ConnectionState", "GatewayConnection"]
