"""Save store: backend interfaces, in-memory backend, and the session."""

from __future__ import annotations

from .memory import MemoryBackend
from .session import ImportOutcome, ImportReport, SessionState, StoreSession, get_session

__all__ = [
    "ImportOutcome",
    "ImportReport",
    "MemoryBackend",
    "SessionState",
    "StoreSession",
    "get_session",
]
