"""Logging setup for the relay process.

Console output is always on; ``RELAY_LOG_DIR`` adds a daily rotated file.
The gateway client gets its own level (``RELAY_GATEWAY_LOG_LEVEL``) so the
handshake can be traced without turning on DEBUG for every request.
"""
from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path
from typing import Dict, List

from core.utils.env import get_env

_SERVICE_ROOT = str(Path(__file__).resolve().parents[1]) + os.sep
_BASE_RECORD_FACTORY = logging.getLogRecordFactory()
_record_factory_installed = False
_configured = False

_GATEWAY_LOGGER = "features.gateway"
_QUIET_LOGGERS = (
    "websockets",
    "websockets.client",
    "websockets.server",
    "httpcore",
    "httpx",
    "multipart",
    "python_multipart",
    "h11",
)


class _ViewerSocketNoiseFilter(logging.Filter):
    """Drop uvicorn's per-frame viewer socket chatter."""

    _NOISE = ("keepalive ping", "keepalive pong", "> PING", "< PONG")

    def filter(self, record: logging.LogRecord) -> bool:
        if "websockets" in record.pathname and record.levelno < logging.WARNING:
            return False
        message = record.getMessage()
        return not any(token in message for token in self._NOISE)


class _TokenRedactionFilter(logging.Filter):
    """Mask the gateway token if it ever reaches a log line."""

    def __init__(self, secret: str) -> None:
        super().__init__()
        self._secret = secret

    def filter(self, record: logging.LogRecord) -> bool:
        if self._secret and self._secret in record.getMessage():
            record.msg = record.getMessage().replace(self._secret, "***")
            record.args = None
        return True


def _level(value: str | None, default: str) -> str:
    value = (value or "").strip().upper()
    if value and isinstance(getattr(logging, value, None), int):
        return value
    return default


def _install_record_factory() -> None:
    """Expose ``shortpathname``: the source path relative to the service root."""

    global _record_factory_installed
    if _record_factory_installed:
        return

    def factory(*args, **kwargs):
        record = _BASE_RECORD_FACTORY(*args, **kwargs)
        pathname = record.pathname or ""
        record.shortpathname = pathname[len(_SERVICE_ROOT):] if pathname.startswith(_SERVICE_ROOT) else pathname
        return record

    logging.setLogRecordFactory(factory)
    _record_factory_installed = True


def _handlers(console_level: str, file_level: str) -> Dict[str, Dict[str, object]]:
    handlers: Dict[str, Dict[str, object]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": console_level,
            "formatter": "relay",
            "filters": ["redact"],
            "stream": "ext://sys.stdout",
        },
    }

    log_dir = (get_env("RELAY_LOG_DIR") or "").strip()
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.TimedRotatingFileHandler",
            "level": file_level,
            "formatter": "relay",
            "filters": ["redact"],
            "filename": str(Path(log_dir) / (get_env("RELAY_LOG_FILE") or "relay.log")),
            "when": "midnight",
            "backupCount": int(get_env("RELAY_LOG_RETENTION") or "7"),
            "encoding": "utf-8",
        }
    return handlers


def setup_logging(force: bool = False) -> None:
    """Configure the root, uvicorn and gateway loggers once per process."""

    global _configured
    if _configured and not force:
        return

    root_level = _level(get_env("RELAY_LOG_LEVEL"), "INFO")
    handlers = _handlers(
        _level(get_env("RELAY_LOG_CONSOLE_LEVEL"), root_level),
        _level(get_env("RELAY_LOG_FILE_LEVEL"), root_level),
    )
    handler_names: List[str] = list(handlers)

    timestamp = "%(asctime)s.%(msecs)03d" if (get_env("RELAY_LOG_TIME_MS") or "").lower() in {"1", "true", "yes", "on"} else "%(asctime)s"

    _install_record_factory()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "redact": {
                    "()": _TokenRedactionFilter,
                    "secret": get_env("OPENCLAW_GATEWAY_TOKEN") or "",
                },
            },
            "formatters": {
                "relay": {
                    "format": f"{timestamp} %(levelname)s [%(shortpathname)s:%(lineno)d] - %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "handlers": handlers,
            "root": {"level": root_level, "handlers": handler_names},
            "loggers": {
                _GATEWAY_LOGGER: {"level": _level(get_env("RELAY_GATEWAY_LOG_LEVEL"), root_level)},
                "uvicorn": {"level": "INFO", "handlers": handler_names, "propagate": False},
                "uvicorn.error": {"level": "INFO", "handlers": handler_names, "propagate": False},
                "uvicorn.access": {
                    "level": _level(get_env("RELAY_ACCESS_LOG_LEVEL"), "WARNING"),
                    "handlers": ["console"],
                    "propagate": False,
                },
            },
        }
    )
    logging.captureWarnings(True)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").addFilter(_ViewerSocketNoiseFilter())

    _configured = True


__all__ = ["setup_logging"]
