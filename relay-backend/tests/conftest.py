"""Test configuration helpers."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import pytest

# Explicitly opt-in to the async plugins we rely on. Some execution environments
# disable plugin auto-discovery via ``PYTEST_DISABLE_PLUGIN_AUTOLOAD`` which
# prevents ``pytest-asyncio`` and AnyIO's plugin from being loaded even if the
# packages are installed.
pytest_plugins = ("anyio", "pytest_asyncio")

# Ensure the service directory is importable so that ``import core`` and the
# other absolute imports used throughout the codebase succeed when tests are
# executed from arbitrary working directories.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("NODE_ENV", "test")

from features.gateway.config import GatewayConfig, reset_config  # noqa: E402
from features.gateway.identity import DeviceIdentity, generate_identity  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    """Default AnyIO backend used when tests do not override the fixture."""

    return "asyncio"


@pytest.fixture(scope="session", autouse=True)
def suppress_asyncio_debug_logging() -> None:
    """Prevent asyncio debug logs from writing to closed pytest capture streams."""

    logger = logging.getLogger("asyncio")
    if logger.getEffectiveLevel() < logging.INFO:
        logger.setLevel(logging.INFO)


@pytest.fixture(autouse=True)
def reset_gateway_config():
    """Drop the cached gateway config between tests."""

    reset_config()
    yield
    reset_config()


@pytest.fixture
def gateway_config(tmp_path: Path) -> GatewayConfig:
    """Gateway config with a token, short timeouts and a temp device file."""

    return GatewayConfig(
        gateway_url="ws://gateway.test:18789/ws",
        gateway_token="secret-token",
        platform="linux",
        user_agent="png-assistant/test",
        device_path=str(tmp_path / "device.json"),
        connect_timeout=1.0,
        handshake_timeout=5.0,
    )


@pytest.fixture(scope="session")
def device_identity() -> DeviceIdentity:
    return generate_identity()
