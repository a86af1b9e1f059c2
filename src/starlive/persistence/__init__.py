"""
StarLive Persistence Module

Stores for live sessions. Nothing here outlives the process.
"""

from typing import List
from .base import SessionBackend
from .memory import SessionStore, get_session_store

# Global registry of active stores for cleanup management
_active_backends: List[SessionBackend] = []


def register_backend(backend: SessionBackend) -> None:
    if backend not in _active_backends:
        _active_backends.append(backend)


def start_all_cleanup() -> None:
    for backend in _active_backends:
        backend.start_cleanup()


def stop_all_cleanup() -> None:
    for backend in _active_backends:
        backend.stop_cleanup()


__all__ = [
    "SessionBackend",
    "SessionStore",
    "get_session_store",
    "register_backend",
    "start_all_cleanup",
    "stop_all_cleanup",
]
