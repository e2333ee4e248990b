"""Core package initializer for SavePort.

Downstream code imports the pieces it needs directly:
    from saveport.core.settings import settings, load_settings, Settings, get_logger
    from saveport.core.errors import MalformedArchive, StoreOpenError
"""

from __future__ import annotations

__all__ = ["__doc__"]
