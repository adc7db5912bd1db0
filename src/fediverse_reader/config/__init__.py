"""Configuration package for Fediverse Reader.

Re-exports the settings symbols so that callers can write::

    from fediverse_reader.config import get_settings
"""

from __future__ import annotations

from fediverse_reader.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
