"""Global defaults for the relay's HTTP surface and display control."""

from __future__ import annotations

import os
from pathlib import Path

# Directory holding main.py; static assets are resolved relative to it
SERVICE_ROOT = Path(__file__).resolve().parents[1]

# HTTP server
HOST = os.getenv("RELAY_HOST", "0.0.0.0")
PORT = int(os.getenv("RELAY_PORT", os.getenv("PORT", "3000")))

# Static assets served to the display page
PUBLIC_DIR = Path(os.getenv("RELAY_PUBLIC_DIR", str(SERVICE_ROOT / "public")))
IMAGES_DIR = Path(os.getenv("RELAY_IMAGES_DIR", str(SERVICE_ROOT / "images")))

# Display control
ALLOWED_EXPRESSIONS = ("normal", "smile")
DEFAULT_AUDIO_MIME_TYPE = "audio/wav"

__all__ = [
    "ALLOWED_EXPRESSIONS",
    "DEFAULT_AUDIO_MIME_TYPE",
    "HOST",
    "IMAGES_DIR",
    "PORT",
    "PUBLIC_DIR",
    "SERVICE_ROOT",
]
