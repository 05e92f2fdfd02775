"""OpenClaw gateway client.

Keeps one authenticated, reconnecting WebSocket to the OpenClaw gateway,
correlates requests with responses and turns streamed chat events into
viewer broadcasts.

Usage:
    service = GatewayService(get_gateway_config())
    service.router.subscribe(handler)
    await service.start()
    future = await service.submit("chat.send", params)
"""

from .chat_router import ChatEvent, ChatEventKind, ChatEventRouter
from .config import GatewayConfig, get_gateway_config, reset_config
from .connection import ConnectionState, GatewayConnection
from .exceptions import (
    ConnectionLost,
    GatewayError,
    HandshakeFailure,
    MalformedFrame,
    NotConnected,
    RequestRejected,
    RequestTimeout,
    SigningFailure,
)
from .identity import DeviceIdentity, load_or_create
from .registry import RequestRegistry
from .scheduler import BackoffState, ReconnectScheduler
from .service import GatewayService, get_gateway_service

__all__ = [
    "BackoffState",
    "ChatEvent",
    "ChatEventKind",
    "ChatEventRouter",
    "ConnectionLost",
    "ConnectionState",
    "DeviceIdentity",
    "GatewayConfig",
    "GatewayConnection",
    "GatewayError",
    "GatewayService",
    "HandshakeFailure",
    "MalformedFrame",
    "NotConnected",
    "ReconnectScheduler",
    "RequestRegistry",
    "RequestRejected",
    "RequestTimeout",
    "SigningFailure",
    "get_gateway_config",
    "get_gateway_service",
    "load_or_create",
    "reset_config",
]
