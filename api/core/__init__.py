"""
Core module for the send2tg API.

Contains configuration and shared dependencies.
"""

from api.core.config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
