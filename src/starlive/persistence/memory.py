"""
StarLive Persistence Layer - Memory Backend

In-memory session store. Sessions are lost when the process restarts,
matching the session-scoped lifetime of live state.
"""

import logging
import time
from typing import Dict, Optional, TYPE_CHECKING

from ..core.errors import SessionNotFoundError
from .base import SessionBackend

if TYPE_CHECKING:
    from ..app.session import LiveSession

logger = logging.getLogger(__name__)


class SessionStore(SessionBackend):
    """
    In-memory store of live sessions with sliding expiry.

    Every successful `load` extends the session's lifetime by its TTL.
    Expired sessions are closed (their subscriptions dropped and private
    cache discarded) when they are removed.
    """

    def __init__(self, default_ttl: Optional[int] = None, cleanup_interval: int = 300):
        super().__init__(cleanup_interval)
        self.default_ttl = default_ttl
        self._data: Dict[str, "LiveSession"] = {}
        self._ttl: Dict[str, Optional[int]] = {}
        self._expiry: Dict[str, float] = {}

    def save(self, session: "LiveSession", ttl: Optional[int] = None) -> None:
        key = session.id
        ttl = ttl if ttl is not None else self.default_ttl
        self._data[key] = session
        self._ttl[key] = ttl
        if ttl:
            self._expiry[key] = time.time() + ttl
        else:
            self._expiry.pop(key, None)

    def _expired(self, key: str) -> bool:
        return key in self._expiry and time.time() > self._expiry[key]

    def _drop(self, key: str) -> Optional["LiveSession"]:
        session = self._data.pop(key, None)
        self._ttl.pop(key, None)
        self._expiry.pop(key, None)
        if session is not None:
            session.close()
        return session

    def load(self, session_id: str) -> Optional["LiveSession"]:
        if self._expired(session_id):
            logger.debug("Session %s expired", session_id)
            self._drop(session_id)
            return None
        session = self._data.get(session_id)
        ttl = self._ttl.get(session_id)
        if session is not None and ttl:
            self._expiry[session_id] = time.time() + ttl
        return session

    def get(self, session_id: str) -> "LiveSession":
        session = self.load(session_id)
        if session is None:
            raise SessionNotFoundError(f"No live session {session_id!r}")
        return session

    def delete(self, session_id: str) -> bool:
        return self._drop(session_id) is not None

    def exists(self, session_id: str) -> bool:
        if self._expired(session_id):
            self._drop(session_id)
            return False
        return session_id in self._data

    def cleanup_expired(self) -> int:
        now = time.time()
        expired = [key for key, expiry in self._expiry.items() if now > expiry]
        for key in expired:
            self._drop(key)
        return len(expired)

    def __len__(self) -> int:
        return len(self._data)


_default_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Process-wide default store."""
    global _default_store
    if _default_store is None:
        _default_store = SessionStore()
    return _default_store
