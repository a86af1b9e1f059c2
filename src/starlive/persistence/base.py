"""
StarLive Persistence Layer - Base Classes

Abstract interface for live-session stores, with the periodic cleanup loop
shared by every implementation.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..app.session import LiveSession

logger = logging.getLogger(__name__)


class SessionBackend(ABC):
    """
    Abstract base class for session stores.

    Implementations keep live sessions by id with an optional time-to-live
    and drop expired ones on access or from the background cleanup task.
    """

    def __init__(self, cleanup_interval: int = 300):
        self._cleanup_task: Optional[asyncio.Task] = None
        self._cleanup_interval: int = cleanup_interval
        self._auto_cleanup: bool = True
        self._running: bool = False

    @abstractmethod
    def save(self, session: "LiveSession", ttl: Optional[int] = None) -> None:
        """Store `session` under its id, replacing any previous entry."""
        pass

    @abstractmethod
    def load(self, session_id: str) -> Optional["LiveSession"]:
        """The live session with `session_id`, or None if missing or expired."""
        pass

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        pass

    @abstractmethod
    def exists(self, session_id: str) -> bool:
        pass

    @abstractmethod
    def cleanup_expired(self) -> int:
        """
        Drop expired sessions.

        Returns:
            Number of sessions removed
        """
        pass

    def configure_cleanup(self, enabled: bool = True, interval: int = 300) -> None:
        self._auto_cleanup = enabled
        self._cleanup_interval = interval

        # Restart cleanup task if configuration changed and backend is running
        if self._running and self._cleanup_task:
            self.stop_cleanup()
            if enabled:
                self.start_cleanup()

    def start_cleanup(self) -> None:
        """Start the background cleanup task if auto_cleanup is enabled."""
        if not self._auto_cleanup or self._cleanup_task:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop running - cleanup will start when needed
            return
        self._cleanup_task = loop.create_task(self._cleanup_loop())
        self._running = True

    def stop_cleanup(self) -> None:
        if self._cleanup_task:
            self._cleanup_task.cancel()
            self._cleanup_task = None
        self._running = False

    async def _cleanup_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._cleanup_interval)
                cleaned = self.cleanup_expired()
                if cleaned > 0:
                    logger.info("%s: cleaned up %d expired session(s)", self.__class__.__name__, cleaned)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("%s: error during cleanup", self.__class__.__name__)
