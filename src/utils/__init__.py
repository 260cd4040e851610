"""Utility modules for the classroom analytics cache."""

from .config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
