"""Utility helpers shared across core packages.

Kept limited to environment helpers so that importing ``core.utils`` never
pulls feature modules in during start-up.
"""

from .env import get_env, get_env_float, get_node_env, is_local, is_production

__all__ = [
    "get_env",
    "get_env_float",
    "get_node_env",
    "is_local",
    "is_production",
]
