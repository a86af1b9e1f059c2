"""
Dependency-Tracked Memoizer

A `Turn` is the explicit per-turn context handed to a component's derivation
callback. It carries the component's state, its previously derived assigns,
the set of fields that changed in the triggering event and the session's
private cache. `assign_new` and `stream_new` only call their producer when a
declared dependency moved; otherwise the stored value is left untouched.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from .errors import PropWriteError

logger = logging.getLogger(__name__)

Dependency = Union[str, Callable[..., Any]]


@dataclass
class Derivation:
    """A dependency-gated computation of one assign."""
    key: str
    deps: Optional[Sequence[Dependency]]
    fun: Callable[..., Any]


@dataclass
class Stream:
    """A derived collection; rebuilt as a whole when its dependencies move."""
    name: str
    items: List[Any] = field(default_factory=list)
    reset: bool = True
    version: int = 0

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class SessionCache:
    """Per-session memory of probe results and subscription topics."""
    probes: Dict[Tuple[str, str, int], Any] = field(default_factory=dict)
    topics: Dict[Tuple[str, str], str] = field(default_factory=dict)
    handlers: Dict[Tuple[str, str], Callable] = field(default_factory=dict)

    def clear(self) -> None:
        self.probes.clear()
        self.topics.clear()
        self.handlers.clear()


_MISSING = object()


def call_producer(fun: Callable[..., Any], assigns: Dict[str, Any]) -> Any:
    """Call `fun` with the assigns mapping when it accepts an argument."""
    try:
        params = inspect.signature(fun).parameters
    except (TypeError, ValueError):
        return fun(assigns)
    positional = [p for p in params.values()
                  if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD, p.VAR_POSITIONAL)]
    return fun(assigns) if positional else fun()


class Turn:
    """
    Context of one derivation pass for one component instance.

    Args:
        state: Schema-controlled state of the instance (mutated in place).
        derived: Assigns produced by earlier derivation passes (mutated in place).
        changed: Names of fields that moved in the triggering event.
        cache: The session's private cache.
        scope: Instance path; keeps cache entries of sibling instances apart.
        fields: Declared field names; assigns to these land in `state`.
        bus: Topic bus used by `subscribe_new`.
        deliver: Default subscription handler, routing messages to this instance.
        props: Prop names of the instance; the instance itself may not write them.
        owner: Component name used in error messages.
    """

    def __init__(self, state: Optional[Dict[str, Any]] = None, derived: Optional[Dict[str, Any]] = None,
                 changed: Optional[Iterable[str]] = None, cache: Optional[SessionCache] = None,
                 scope: str = "", fields: Optional[Iterable[str]] = None, bus: Any = None,
                 deliver: Optional[Callable] = None, props: Optional[Iterable[str]] = None,
                 owner: str = ""):
        self.state = state if state is not None else {}
        self.derived = derived if derived is not None else {}
        self.changed: Set[str] = set(changed or ())
        self.cache = cache if cache is not None else SessionCache()
        self.scope = scope
        self.fields = set(fields) if fields is not None else set(self.state)
        self.bus = bus
        self.deliver = deliver
        self.props: Set[str] = set(props or ())
        self.owner = owner

    @property
    def assigns(self) -> Dict[str, Any]:
        return {**self.derived, **self.state}

    def get(self, key: str, default: Any = None) -> Any:
        if key in self.state:
            return self.state[key]
        return self.derived.get(key, default)

    def has(self, key: str) -> bool:
        return key in self.state or key in self.derived

    def assign(self, key: str, value: Any) -> "Turn":
        """Set an assign, recording it as changed only when the value differs."""
        if key in self.props:
            raise PropWriteError(self.owner or self.scope or "component", key)
        target = self.state if key in self.fields else self.derived
        if target.get(key, _MISSING) != value:
            self.changed.add(key)
        target[key] = value
        return self

    def update(self, values: Dict[str, Any]) -> "Turn":
        for key, value in values.items():
            self.assign(key, value)
        return self

    def is_changed(self, key: str) -> bool:
        return key in self.changed

    def dependency_changed(self, key: str, deps: Sequence[Dependency]) -> bool:
        """OR over `deps`, short-circuiting on the first moved dependency."""
        assigns = self.assigns
        for idx, dep in enumerate(deps):
            if callable(dep):
                if self._probe(key, idx, dep, assigns):
                    return True
            elif dep in self.changed:
                return True
        return False

    def _probe(self, key: str, idx: int, probe: Callable, assigns: Dict[str, Any]) -> bool:
        cache_key = (self.scope, key, idx)
        value = call_producer(probe, assigns)
        previous = self.cache.probes.get(cache_key, _MISSING)
        self.cache.probes[cache_key] = value
        return previous is _MISSING or previous != value

    def should_compute(self, key: str, deps: Optional[Sequence[Dependency]]) -> bool:
        if not self.has(key):
            if deps:
                # seed the probe cache so the next pass has something to compare against
                self.dependency_changed(key, deps)
            return True
        if deps is None:
            return False
        return self.dependency_changed(key, deps)

    def assign_new(self, key: str, deps: Optional[Sequence[Dependency]] = None,
                   fun: Optional[Callable[..., Any]] = None) -> "Turn":
        """
        Derive `key` from `fun` unless it already has a value and none of
        `deps` moved. Called as `assign_new(key, fun)` the value is computed
        once and kept for the lifetime of the session.
        """
        if fun is None and callable(deps):
            deps, fun = None, deps
        if not self.should_compute(key, deps):
            logger.debug("Keeping %s%s, dependencies unchanged", self._prefix, key)
            return self
        return self.assign(key, call_producer(fun, self.assigns))

    def stream_new(self, key: str, deps: Optional[Sequence[Dependency]] = None,
                   fun: Optional[Callable[..., Any]] = None) -> "Turn":
        """Like `assign_new` but the result is a `Stream` reset and refilled as a unit."""
        if fun is None and callable(deps):
            deps, fun = None, deps
        current = self.get(key)
        if not self.should_compute(key, deps):
            if isinstance(current, Stream):
                current.reset = False
            return self
        items = list(call_producer(fun, self.assigns) or [])
        version = current.version + 1 if isinstance(current, Stream) else 0
        self.derived[key] = Stream(name=key, items=items, reset=True, version=version)
        self.changed.add(key)
        return self

    def derive(self, *derivations: Derivation) -> "Turn":
        for d in derivations:
            self.assign_new(d.key, d.deps, d.fun)
        return self

    def subscribe_new(self, key: str, topic_fn: Callable[..., Optional[str]],
                      handler: Optional[Callable] = None) -> "Turn":
        """
        Keep a subscription on the topic derived by `topic_fn`.

        When the derived topic changes the previous subscription is dropped
        and `handler` (the turn's `deliver` by default) is registered on the
        new topic. A `None` topic unsubscribes.
        """
        handler = handler or self.deliver
        cache_key = (self.scope, key)
        topic = call_producer(topic_fn, self.assigns)
        last = self.cache.topics.get(cache_key)
        if topic == last:
            return self
        if self.bus is None:
            logger.warning("subscribe_new(%r) called without an event bus", key)
            return self
        previous_handler = self.cache.handlers.get(cache_key)
        if last is not None and previous_handler is not None:
            self.bus.unsubscribe(previous_handler, topic=last)
        if topic is None:
            self.cache.topics.pop(cache_key, None)
            self.cache.handlers.pop(cache_key, None)
        else:
            self.bus.subscribe(handler, topic=topic)
            self.cache.topics[cache_key] = topic
            self.cache.handlers[cache_key] = handler
        logger.debug("Subscription %s%s moved from %r to %r", self._prefix, key, last, topic)
        return self

    @property
    def _prefix(self) -> str:
        return f"{self.scope}:" if self.scope else ""
