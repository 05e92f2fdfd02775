"""OpenClaw gateway configuration loading from environment variables.

Environment Variables:
- OPENCLAW_GATEWAY_WS_URL: WebSocket URL (default: ws://127.0.0.1:18789/ws)
- OPENCLAW_GATEWAY_TOKEN: Gateway auth token (optional, warned when unset)
- OPENCLAW_SESSION_KEY: Chat session key (default: agent:main:main)
- OPENCLAW_CLIENT_ID / OPENCLAW_CLIENT_MODE: Client identity enum pair
  (default: gateway-client / backend)
- OPENCLAW_CLIENT_VERSION: Client version (default: stage1)
- OPENCLAW_PLATFORM: Platform identifier (default: sys.platform)
- OPENCLAW_ROLE / OPENCLAW_SCOPES: Requested role and comma separated scopes
- OPENCLAW_LOCALE: Locale tag sent with connect (default: ja-JP)
- OPENCLAW_DEVICE_PATH: Device identity JSON (default: .openclaw-device.json)
- OPENCLAW_BACKOFF_INITIAL / OPENCLAW_BACKOFF_MAX: Reconnect delays in seconds
- OPENCLAW_CONNECT_TIMEOUT / OPENCLAW_HANDSHAKE_TIMEOUT: Seconds
- OPENCLAW_REQUEST_TIMEOUT: Per-request deadline in seconds (unset = none)
"""

from __future__ import annotations

import logging
import platform as _platform
import sys
from dataclasses import dataclass, field
from typing import Optional

from core.utils.env import get_env, get_env_float

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_URL = "ws://127.0.0.1:18789/ws"
DEFAULT_SESSION_KEY = "agent:main:main"
DEFAULT_SCOPES = ("operator.admin", "operator.approvals", "operator.pairing")


def _default_user_agent() -> str:
    return f"png-assistant/python-{_platform.python_version()}"


def _parse_scopes(raw: Optional[str]) -> list[str]:
    if raw is None or not raw.strip():
        return list(DEFAULT_SCOPES)
    return [scope.strip() for scope in raw.split(",") if scope.strip()]


@dataclass
class GatewayConfig:
    """OpenClaw gateway configuration."""

    gateway_url: str = DEFAULT_GATEWAY_URL
    gateway_token: str = ""
    session_key: str = DEFAULT_SESSION_KEY
    client_id: str = "gateway-client"
    client_mode: str = "backend"
    client_version: str = "stage1"
    platform: str = sys.platform
    role: str = "operator"
    scopes: list[str] = field(default_factory=lambda: list(DEFAULT_SCOPES))
    locale: str = "ja-JP"
    user_agent: str = field(default_factory=_default_user_agent)
    device_path: str = ".openclaw-device.json"
    backoff_initial: float = 1.0
    backoff_max: float = 30.0
    connect_timeout: float = 10.0
    handshake_timeout: float = 10.0
    request_timeout: Optional[float] = None

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        """Load configuration from environment variables."""
        return cls(
            gateway_url=get_env("OPENCLAW_GATEWAY_WS_URL", DEFAULT_GATEWAY_URL) or DEFAULT_GATEWAY_URL,
            gateway_token=get_env("OPENCLAW_GATEWAY_TOKEN", "") or "",
            session_key=get_env("OPENCLAW_SESSION_KEY", DEFAULT_SESSION_KEY) or DEFAULT_SESSION_KEY,
            client_id=get_env("OPENCLAW_CLIENT_ID", "gateway-client") or "gateway-client",
            client_mode=get_env("OPENCLAW_CLIENT_MODE", "backend") or "backend",
            client_version=get_env("OPENCLAW_CLIENT_VERSION", "stage1") or "stage1",
            platform=get_env("OPENCLAW_PLATFORM", sys.platform) or sys.platform,
            role=get_env("OPENCLAW_ROLE", "operator") or "operator",
            scopes=_parse_scopes(get_env("OPENCLAW_SCOPES")),
            locale=get_env("OPENCLAW_LOCALE", "ja-JP") or "ja-JP",
            device_path=get_env("OPENCLAW_DEVICE_PATH", ".openclaw-device.json") or ".openclaw-device.json",
            backoff_initial=get_env_float("OPENCLAW_BACKOFF_INITIAL", 1.0),
            backoff_max=get_env_float("OPENCLAW_BACKOFF_MAX", 30.0),
            connect_timeout=get_env_float("OPENCLAW_CONNECT_TIMEOUT", 10.0),
            handshake_timeout=get_env_float("OPENCLAW_HANDSHAKE_TIMEOUT", 10.0),
            request_timeout=get_env_float("OPENCLAW_REQUEST_TIMEOUT", None),
        )

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []
        if not self.gateway_url:
            errors.append("OPENCLAW_GATEWAY_WS_URL is required")
        elif not self.gateway_url.startswith(("ws://", "wss://")):
            errors.append("OPENCLAW_GATEWAY_WS_URL must use ws:// or wss://")
        if not self.scopes:
            errors.append("OPENCLAW_SCOPES must name at least one scope")
        if self.backoff_initial <= 0:
            errors.append("OPENCLAW_BACKOFF_INITIAL must be positive")
        if self.backoff_max < self.backoff_initial:
            errors.append("OPENCLAW_BACKOFF_MAX must not be below OPENCLAW_BACKOFF_INITIAL")
        if self.request_timeout is not None and self.request_timeout <= 0:
            errors.append("OPENCLAW_REQUEST_TIMEOUT must be positive when set")
        return errors


_config: Optional[GatewayConfig] = None


def get_gateway_config() -> GatewayConfig:
    """Get gateway configuration (cached singleton)."""
    global _config
    if _config is None:
        _config = GatewayConfig.from_env()
        errors = _config.validate()
        if errors:
            logger.error("Gateway config validation failed: %s", errors)
        else:
            logger.info(
                "Gateway configured: url=%s, client=%s/%s, session=%s",
                _config.gateway_url,
                _config.client_id,
                _config.client_mode,
                _config.session_key,
            )
        if not _config.gateway_token:
            logger.warning("OPENCLAW_GATEWAY_TOKEN is not set - connect may fail if auth is required")
    return _config


def reset_config() -> None:
    """Reset cached config (for testing)."""
    global _config
    _config = None
