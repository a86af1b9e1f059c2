"""
Unit of Work for a session turn.

Takes a snapshot of the session's state before a turn runs, collects the
messages the turn wants to publish and either commits (publishes them) or
rolls the session back to the snapshot.
"""

import logging
from typing import Any, Dict, List, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .bus import EventBus

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Snapshot / commit / rollback around one turn.

    Args:
        bus: Event bus for publishing collected messages; may be None.
    """

    def __init__(self, bus: "EventBus" = None):
        self.bus = bus
        self._events: List[Tuple[str, Any]] = []
        self._snapshot: Dict[str, Any] = {}
        self._committed = False

    def begin(self, **values: Any) -> "UnitOfWork":
        """Remember `values` so they can be restored on rollback; callers pass copies."""
        self._snapshot = dict(values)
        self._events.clear()
        self._committed = False
        return self

    def collect_event(self, topic: str, message: Any) -> None:
        self._events.append((topic, message))

    async def commit(self) -> None:
        self._committed = True
        await self._publish_events()

    async def _publish_events(self) -> None:
        events, self._events = self._events, []
        if self.bus is None:
            return
        for topic, message in events:
            await self.bus.publish(message, topic=topic)

    def rollback(self) -> Dict[str, Any]:
        """Drop collected events and return the snapshot taken by `begin`."""
        logger.debug("Rolling back turn, dropping %d event(s)", len(self._events))
        self._events.clear()
        self._committed = False
        return self._snapshot

    @property
    def is_committed(self) -> bool:
        return self._committed

    @property
    def pending_events(self) -> int:
        return len(self._events)
