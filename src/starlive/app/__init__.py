from .bus import EventBus, InProcessBus, ALL_TOPICS
from .uow import UnitOfWork
from .router import (
    COMPONENT_ACTION, DispatchResult, Frame, compose, dispatch, dispatch_event,
    resolve_path, run_hook, split_path, walk_instances,
)
from .session import InboundEvent, LiveSession, TurnResult, changed_between

__all__ = [
    "EventBus", "InProcessBus", "ALL_TOPICS", "UnitOfWork",
    "COMPONENT_ACTION", "DispatchResult", "Frame", "compose", "dispatch", "dispatch_event",
    "resolve_path", "run_hook", "split_path", "walk_instances",
    "InboundEvent", "LiveSession", "TurnResult", "changed_between",
]
