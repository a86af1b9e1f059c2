"""
Live session driver.

A `LiveSession` owns one page's state tree and runs turns strictly one at a
time. Every turn is the same explicit pipeline:

    inbound params or event -> validation / handler -> derivation pass
    (`pre_render` with the memoizer) -> render -> annotation -> canonical URL

A turn that raises is rolled back to the state it started from. The error
is re-raised unless the configuration asks to recover, in which case it is
logged and the previous render is kept.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field

from ..codec.params import RawQuery, parse_changeset, parse_query
from ..codec.routes import canonical_path
from ..config import LiveConfig, get_config
from ..core.changeset import nested_schema, validate
from ..core.component import LiveComponent, component_for, maybe_await
from ..core.cursor import Cursor, Emitted, JSCommand
from ..core.fields import ComponentSchema, Persistence
from ..core.memo import SessionCache, Turn
from ..core.registry import SchemaRegistry, registry as default_registry
from ..render.annotator import path_string, wrap_page
from ..render.context import RenderContext
from ..render.rendered import Rendered
from .bus import EventBus
from .router import DispatchResult, compose, dispatch_event, resolve_path, run_hook, walk_instances
from .uow import UnitOfWork

logger = logging.getLogger(__name__)


class InboundEvent(BaseModel):
    """Event payload as sent by the client."""

    model_config = ConfigDict(populate_by_name=True)

    event: str
    params: Dict[str, Any] = Field(default_factory=dict)
    target_path: Optional[Union[str, List[Union[str, int]]]] = Field(default=None, alias="targetPath")


@dataclass
class TurnResult:
    """What one turn produced."""
    rendered: Optional[Rendered] = None
    url: Optional[str] = None
    diff: Optional[Dict[int, Any]] = None
    result: Any = None
    changed: Dict[str, Set[str]] = field(default_factory=dict)
    errors: List[Tuple[Tuple, str]] = field(default_factory=list)
    emitted: List[Emitted] = field(default_factory=list)
    js: List[JSCommand] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def html(self) -> str:
        return self.rendered.to_html() if self.rendered is not None else ""

    @property
    def ok(self) -> bool:
        return self.error is None


def changed_between(schema: ComponentSchema, old: Mapping[str, Any], new: Mapping[str, Any],
                    registry: SchemaRegistry = default_registry,
                    path: Tuple[Any, ...] = ()) -> Dict[str, Set[str]]:
    """Per instance path, the field names whose values differ between `old` and `new`."""
    result: Dict[str, Set[str]] = {}
    names = {spec.name for spec in schema.fields
             if spec.name not in old or old.get(spec.name) != new.get(spec.name)}
    if names:
        result[path_string(path)] = names
    for spec in schema.components:
        nested = registry.related(spec)
        if nested is None or spec.name not in names:
            continue
        before, after = old.get(spec.name), new.get(spec.name)
        if spec.is_many:
            before = before if isinstance(before, list) else []
            for index, item in enumerate(after if isinstance(after, list) else []):
                if not isinstance(item, dict):
                    continue
                prev = before[index] if index < len(before) and isinstance(before[index], dict) else {}
                result.update(changed_between(nested, prev, item, registry, path + (spec.name, index)))
        elif isinstance(after, dict):
            prev = before if isinstance(before, dict) else {}
            result.update(changed_between(nested, prev, after, registry, path + (spec.name,)))
    return result


def _merge_changed(target: Dict[str, Set[str]], other: Dict[str, Set[str]]) -> None:
    for key, names in other.items():
        target.setdefault(key, set()).update(names)


class LiveSession:
    """
    One live page: its state tree, derived assigns and private cache.

    Args:
        view: `LiveView` subclass, its schema or its registered name.
        session_id: Explicit id; a random one is generated otherwise.
        config: Configuration; the process-wide one by default.
        registry: Schema registry used to resolve nested components.
        bus: Topic bus for dynamic subscriptions and published messages.
    """

    def __init__(self, view: Union[Type[LiveComponent], ComponentSchema, str], *,
                 session_id: Optional[str] = None, config: Optional[LiveConfig] = None,
                 registry: Optional[SchemaRegistry] = None, bus: Optional[EventBus] = None):
        if isinstance(view, type) and issubclass(view, LiveComponent):
            registry = registry or view.__registry__
            schema = view.__schema__
        else:
            registry = registry or default_registry
            schema = registry[view] if isinstance(view, str) else view
        self.id = session_id or uuid.uuid4().hex
        self.schema = schema
        self.registry = registry
        self.config = config or get_config()
        self.bus = bus
        self.route = schema.route
        self.state: Dict[str, Any] = {}
        self.derived: Dict[str, Dict[str, Any]] = {}
        self.cache = SessionCache()
        self.rendered: Optional[Rendered] = None
        self.url: Optional[str] = None
        self.mounted = False
        self.updates: asyncio.Queue = asyncio.Queue()
        self._lock = asyncio.Lock()
        self._uow = UnitOfWork(bus)
        self._tasks: Set[asyncio.Task] = set()

    # -- public turns ------------------------------------------------------

    async def mount(self, query: RawQuery = None, path_params: Optional[Mapping[str, Any]] = None) -> TurnResult:
        """Build the initial state from the URL, run `mount` hooks depth first and render."""
        async def work():
            cs = parse_changeset(query, self.schema, {}, path_params, registry=self.registry)
            state = cs.apply_changes()
            acc = DispatchResult(state=state, errors=list(cs.errors))
            for path, _, _ in list(walk_instances(self.schema, state, registry=self.registry)):
                self._absorb(acc, await run_hook(self.schema, acc.state, path, "mount", registry=self.registry))
            self._absorb(acc, await run_hook(self.schema, acc.state, (), "handle_params", registry=self.registry))
            await self._report_errors(acc)
            self.state = acc.state
            self.mounted = True
            logger.info("Mounted session %s for %s", self.id, self.schema.name)
            changed = changed_between(self.schema, {}, self.state, self.registry)
            return await self._complete(changed, acc)

        return await self._turn(work)

    async def handle_params(self, query: RawQuery = None,
                            path_params: Optional[Mapping[str, Any]] = None) -> TurnResult:
        """
        In-place navigation: URL-tier fields are re-read from the query,
        session and server-only values are kept.
        """
        async def work():
            tree = self._url_tree(query, path_params)
            base = self._navigation_base(self.schema, self.state, tree)
            cs = validate(base, tree, self.schema, registry=self.registry)
            old = self.state
            acc = DispatchResult(state=cs.apply_changes(), errors=list(cs.errors))
            for path, _, _ in list(walk_instances(self.schema, acc.state, registry=self.registry)):
                if path:
                    self._absorb(acc, await run_hook(self.schema, acc.state, path, "mount", registry=self.registry))
            self._absorb(acc, await run_hook(self.schema, acc.state, (), "handle_params", registry=self.registry))
            await self._report_errors(acc)
            self.state = acc.state
            return await self._complete(changed_between(self.schema, old, self.state, self.registry), acc)

        return await self._turn(work)

    async def handle_event(self, event: Union[str, InboundEvent], params: Optional[Dict[str, Any]] = None,
                           target_path: Any = None) -> TurnResult:
        """Dispatch an inbound event to the root or to the nested instance at `target_path`."""
        if isinstance(event, InboundEvent):
            event, params, target_path = event.event, event.params, event.target_path

        async def work():
            old = self.state
            acc = await dispatch_event(self.schema, target_path, event, params or {}, old,
                                       registry=self.registry)
            self.state = acc.state
            return await self._complete(changed_between(self.schema, old, self.state, self.registry), acc)

        return await self._turn(work)

    async def handle_info(self, message: Any, target_path: Any = None) -> TurnResult:
        """Deliver a message (usually from a subscribed topic) to an instance's `handle_info`."""
        async def work():
            old = self.state
            acc = await run_hook(self.schema, old, target_path, "handle_info", message, registry=self.registry)
            self.state = acc.state
            return await self._complete(changed_between(self.schema, old, self.state, self.registry), acc)

        result = await self._turn(work)
        await self.updates.put(result)
        return result

    def close(self) -> None:
        """Drop subscriptions and discard the private cache."""
        if self.bus is not None:
            for (scope, key), topic in list(self.cache.topics.items()):
                handler = self.cache.handlers.get((scope, key))
                if handler is not None:
                    self.bus.unsubscribe(handler, topic=topic)
        for task in list(self._tasks):
            task.cancel()
        self.cache.clear()
        self.derived.clear()
        logger.info("Closed session %s", self.id)

    # -- pipeline ----------------------------------------------------------

    async def _turn(self, work) -> TurnResult:
        async with self._lock:
            self._uow.begin(
                state=self.state,
                derived={k: dict(v) for k, v in self.derived.items()},
                cache=SessionCache(dict(self.cache.probes), dict(self.cache.topics), dict(self.cache.handlers)),
                rendered=self.rendered,
                url=self.url,
            )
            try:
                result = await work()
            except Exception as exc:
                snapshot = self._uow.rollback()
                failed_cache = self.cache
                self.state = snapshot["state"]
                self.derived = snapshot["derived"]
                self.cache = snapshot["cache"]
                self._restore_subscriptions(failed_cache, self.cache)
                self.rendered = snapshot["rendered"]
                self.url = snapshot["url"]
                if not self.config.recover_derivation_errors:
                    raise
                logger.warning("Turn failed in session %s, keeping previous state: %s", self.id, exc,
                               exc_info=True)
                return TurnResult(rendered=self.rendered, url=self.url, error=exc)
            await self._uow.commit()
            return result

    async def _complete(self, changed: Dict[str, Set[str]], acc: DispatchResult) -> TurnResult:
        _merge_changed(changed, await self._derive(changed))
        for topic, message in acc.published:
            self._uow.collect_event(topic, message)
        page = self._render()
        diff = page.diff(self.rendered)
        self.rendered = page
        if self.route is not None:
            self.url = canonical_path(self.schema, self.state, self.route, self.registry)
        return TurnResult(rendered=page, url=self.url, diff=diff, result=acc.result, changed=changed,
                          errors=acc.errors, emitted=acc.emitted, js=acc.js)

    async def _derive(self, changed: Dict[str, Set[str]]) -> Dict[str, Set[str]]:
        """Run `pre_render` for every present instance, parents first."""
        moved: Dict[str, Set[str]] = {}
        present = set()
        for path, _, _ in list(walk_instances(self.schema, self.state, registry=self.registry)):
            frames = resolve_path(self.schema, self.state, path, self.registry)
            if frames is None:
                continue
            target = frames[-1]
            key = path_string(path)
            present.add(key)
            component = component_for(target.schema)
            if component is None:
                continue
            turn = Turn(
                state=dict(target.state),
                derived=self.derived.setdefault(key, {}),
                changed=changed.get(key, set()),
                cache=self.cache,
                scope=key,
                fields=target.schema.field_names,
                bus=self.bus,
                deliver=self._deliver_to(path),
                props=[f.name for f in target.schema.fields if f.is_prop],
                owner=target.schema.name,
            )
            await maybe_await(component.pre_render(turn))
            if turn.state != target.state:
                moved.setdefault(key, set()).update(
                    name for name in turn.state if turn.state.get(name) != target.state.get(name))
                self.state = compose(frames, turn.state)
        self._prune(present)
        return moved

    def _prune(self, present: Set[str]) -> None:
        for key in list(self.derived):
            if key not in present:
                del self.derived[key]
        for (scope, name), topic in list(self.cache.topics.items()):
            if scope in present:
                continue
            handler = self.cache.handlers.pop((scope, name), None)
            self.cache.topics.pop((scope, name), None)
            if self.bus is not None and handler is not None:
                self.bus.unsubscribe(handler, topic=topic)

    def _render(self) -> Rendered:
        ctx = RenderContext(self.schema, self.state, self.derived, (), self.registry,
                            prefix=self.config.attribute_prefix)
        inner = ctx.render()
        if self.route is None:
            return inner
        return wrap_page(inner, self.schema, self.state, self.route, prefix=self.config.attribute_prefix,
                         container_id=self.config.page_container_id)

    # -- helpers -----------------------------------------------------------

    def _deliver_to(self, path: Tuple[Any, ...]):
        def deliver(message: Any) -> None:
            # runs after the current turn releases the lock
            task = asyncio.get_running_loop().create_task(self.handle_info(message, target_path=path))
            self._tasks.add(task)
            task.add_done_callback(self._delivery_done)
        return deliver

    def _delivery_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("handle_info failed in session %s: %s", self.id, exc, exc_info=exc)
            self.updates.put_nowait(TurnResult(rendered=self.rendered, url=self.url, error=exc))

    def _restore_subscriptions(self, failed: SessionCache, restored: SessionCache) -> None:
        """Undo the bus changes of a rolled back turn so the bus matches `restored`."""
        if self.bus is None:
            return
        for key, topic in failed.topics.items():
            handler = failed.handlers.get(key)
            if handler is not None and (restored.topics.get(key), restored.handlers.get(key)) != (topic, handler):
                self.bus.unsubscribe(handler, topic=topic)
        for key, topic in restored.topics.items():
            handler = restored.handlers.get(key)
            if handler is not None and (failed.topics.get(key), failed.handlers.get(key)) != (topic, handler):
                self.bus.subscribe(handler, topic=topic)

    def _url_tree(self, query: RawQuery, path_params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        tree = parse_query(query)
        if path_params:
            tree.update(path_params)
        return tree

    def _navigation_base(self, schema: ComponentSchema, state: Mapping[str, Any],
                         tree: Mapping[str, Any]) -> Dict[str, Any]:
        """Current state without URL-tier values, which the new URL provides."""
        base: Dict[str, Any] = {}
        for spec in schema.fields:
            if spec.name not in state:
                continue
            value = state[spec.name]
            if spec.is_component and spec.persistence == Persistence.URL:
                nested = nested_schema(spec, self.registry)
                sub_tree = tree.get(spec.name)
                if nested is None or sub_tree is None:
                    continue
                if spec.is_many and isinstance(value, list):
                    base[spec.name] = [self._navigation_base(nested, item, {}) if isinstance(item, dict) else item
                                       for item in value]
                elif isinstance(value, dict) and isinstance(sub_tree, dict):
                    base[spec.name] = self._navigation_base(nested, value, sub_tree)
                continue
            if spec.persistence == Persistence.URL:
                continue
            base[spec.name] = value
        return base

    @staticmethod
    def _absorb(acc: DispatchResult, other: DispatchResult) -> None:
        acc.state = other.state
        _merge_changed(acc.changed, other.changed)
        acc.errors.extend(other.errors)
        acc.emitted.extend(other.emitted)
        acc.js.extend(other.js)
        acc.published.extend(other.published)
        if other.result is not None:
            acc.result = other.result

    async def _report_errors(self, acc: DispatchResult) -> None:
        """Validation errors of URL input go to the root's `handle_errors`."""
        if not acc.errors:
            return
        component = component_for(self.schema)
        if component is None:
            return
        cursor = Cursor(self.schema, acc.state, registry=self.registry)
        await maybe_await(component.handle_errors(cursor, list(acc.errors)))
        if cursor.changed:
            acc.state = cursor.state
