"""
Path-Addressed Event Router

Events carry a path of field names from the page down to the instance they
target, e.g. `["modal"]` or `["rows", 2, "editor"]`. The router descends
through component-typed fields, hands the target's handler a cursor scoped
to that subtree and composes the updated subtree back into its parents.
Sibling subtrees are never copied or touched.

A path that cannot be followed (unknown field, index out of range, an
instance that is currently absent) is a silent no-op: paths come from the
client and may be stale.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple, Union

from ..core.changeset import nested_schema
from ..core.component import component_for, maybe_await
from ..core.cursor import Cursor, Emitted, JSCommand
from ..core.fields import ComponentSchema, FieldSpec
from ..core.registry import SchemaRegistry, registry as default_registry
from ..render.annotator import path_string

logger = logging.getLogger(__name__)

COMPONENT_ACTION = "__component_action"

PathLike = Union[str, Sequence[Any], None]


@dataclass
class Frame:
    """One level of a resolved path."""
    schema: ComponentSchema
    state: Dict[str, Any]
    path: Tuple[Any, ...] = ()
    spec: Optional[FieldSpec] = None  # field of the parent holding this instance
    index: Optional[int] = None


@dataclass
class DispatchResult:
    result: Any = None
    state: Dict[str, Any] = field(default_factory=dict)
    handled: bool = False
    changed: Dict[str, Set[str]] = field(default_factory=dict)
    errors: List[Tuple[Tuple, str]] = field(default_factory=list)
    emitted: List[Emitted] = field(default_factory=list)
    js: List[JSCommand] = field(default_factory=list)
    published: List[Tuple[str, Any]] = field(default_factory=list)

    def mark_changed(self, path: Sequence[Any], names) -> None:
        if names:
            self.changed.setdefault(path_string(path), set()).update(names)


def split_path(path: PathLike) -> List[Any]:
    """`"rows/2/editor"` -> `["rows", "2", "editor"]`; empty or None is the root."""
    if path is None:
        return []
    if isinstance(path, str):
        return [seg for seg in path.split("/") if seg]
    return list(path)


def resolve_path(root_schema: ComponentSchema, root_state: Dict[str, Any], path: PathLike,
                 registry: SchemaRegistry = default_registry) -> Optional[List[Frame]]:
    """Frames from the root down to the addressed instance, or None when the path is dangling."""
    frames = [Frame(schema=root_schema, state=root_state)]
    segments = split_path(path)
    i = 0
    while i < len(segments):
        current = frames[-1]
        name = str(segments[i])
        spec = current.schema.field(name)
        if spec is None or not spec.is_component:
            return None
        nested = nested_schema(spec, registry)
        if nested is None:
            return None
        value = current.state.get(name)
        index = None
        frame_path = current.path + (name,)
        if spec.is_many:
            if i + 1 >= len(segments):
                return None
            try:
                index = int(segments[i + 1])
            except (TypeError, ValueError):
                return None
            if not isinstance(value, list) or not 0 <= index < len(value):
                return None
            value = value[index]
            frame_path = frame_path + (index,)
            i += 1
        if not isinstance(value, dict):
            return None
        frames.append(Frame(schema=nested, state=value, path=frame_path, spec=spec, index=index))
        i += 1
    return frames


def compose(frames: List[Frame], new_state: Dict[str, Any]) -> Dict[str, Any]:
    """Write `new_state` at the last frame and rebuild every ancestor above it."""
    state = new_state
    for child, parent in zip(reversed(frames[1:]), reversed(frames[:-1])):
        updated = dict(parent.state)
        if child.index is None:
            updated[child.spec.name] = state
        else:
            items = list(updated.get(child.spec.name) or [])
            items[child.index] = state
            updated[child.spec.name] = items
        state = updated
    return state


def _mark_ancestors(result: DispatchResult, frames: List[Frame]) -> None:
    for child, parent in zip(frames[1:], frames[:-1]):
        result.mark_changed(parent.path, {child.spec.name})


def walk_instances(schema: ComponentSchema, state: Dict[str, Any], path: Tuple[Any, ...] = (),
                   registry: SchemaRegistry = default_registry) -> Iterator[Tuple[Tuple[Any, ...], ComponentSchema, Dict[str, Any]]]:
    """Every present instance, parents before children."""
    yield path, schema, state
    for spec in schema.components:
        nested = registry.related(spec)
        value = state.get(spec.name)
        if nested is None or value is None:
            continue
        if spec.is_many:
            for index, item in enumerate(value if isinstance(value, list) else []):
                if isinstance(item, dict):
                    yield from walk_instances(nested, item, path + (spec.name, index), registry)
        elif isinstance(value, dict):
            yield from walk_instances(nested, value, path + (spec.name,), registry)


async def run_hook(root_schema: ComponentSchema, root_state: Dict[str, Any], path: PathLike,
                   hook: str, *args, registry: SchemaRegistry = default_registry) -> DispatchResult:
    """Call `hook(*args, cursor)` on the addressed instance and compose its changes."""
    frames = resolve_path(root_schema, root_state, path, registry)
    if frames is None:
        logger.debug("No instance at %r for %s", path, hook)
        return DispatchResult(state=root_state)
    target = frames[-1]
    component = component_for(target.schema)
    if component is None:
        return DispatchResult(state=root_state)
    cursor = Cursor(target.schema, target.state, target.path, registry=registry)
    value = await maybe_await(getattr(component, hook)(*args, cursor))
    return _finish(frames, cursor, value, root_state)


def _finish(frames: List[Frame], cursor: Cursor, value: Any, root_state: Dict[str, Any]) -> DispatchResult:
    result = DispatchResult(result=value, handled=True, errors=list(cursor.errors),
                            emitted=list(cursor.emitted), js=list(cursor.js),
                            published=list(cursor.published))
    if cursor.changed:
        result.state = compose(frames, cursor.state)
        result.mark_changed(cursor.path, cursor.changed)
        _mark_ancestors(result, frames)
    else:
        result.state = root_state
    return result


async def dispatch_event(root_schema: ComponentSchema, path: PathLike, event: str,
                         payload: Optional[Dict[str, Any]], root_state: Dict[str, Any], *,
                         registry: SchemaRegistry = default_registry) -> DispatchResult:
    """
    Dispatch `event` to the instance at `path` and bubble what it emits.

    `__component_action` assigns the payload directly into the target's own
    (non-prop) fields after validation. Other events go to the component's
    `handle_event`. Events the target emits travel to the nearest ancestor
    whose component field maps the event name, and are dispatched there
    under the mapped name; unmapped ones are returned in `emitted`.
    """
    payload = payload if isinstance(payload, dict) else {}
    frames = resolve_path(root_schema, root_state, path, registry)
    if frames is None:
        logger.debug("Dropping %r for unknown path %r", event, path)
        return DispatchResult(state=root_state)
    target = frames[-1]
    component = component_for(target.schema)
    cursor = Cursor(target.schema, target.state, target.path, registry=registry)

    if event == COMPONENT_ACTION:
        cursor.assign_params(payload)
        value = None
    elif component is None:
        logger.debug("Schema %s has no component class to handle %r", target.schema.name, event)
        return DispatchResult(state=root_state)
    else:
        value = await maybe_await(component.handle_event(event, payload, cursor))

    if cursor.errors and component is not None:
        await maybe_await(component.handle_errors(cursor, list(cursor.errors)))

    result = _finish(frames, cursor, value, root_state)
    pending, result.emitted = result.emitted, []
    for emitted in pending:
        await _bubble(root_schema, frames, emitted, result, registry)
    return result


async def _bubble(root_schema: ComponentSchema, frames: List[Frame], emitted: Emitted,
                  result: DispatchResult, registry: SchemaRegistry) -> None:
    # walk from the target's parent towards the root
    for depth in range(len(frames) - 1, 0, -1):
        holder = frames[depth].spec
        mapped = holder.events.get(emitted.name)
        if mapped is None:
            continue
        parent_path = frames[depth - 1].path
        payload = emitted.value if isinstance(emitted.value, dict) else {"value": emitted.value}
        nested = await dispatch_event(root_schema, parent_path, mapped, payload, result.state,
                                      registry=registry)
        result.state = nested.state
        for key, names in nested.changed.items():
            result.changed.setdefault(key, set()).update(names)
        result.errors.extend(nested.errors)
        result.emitted.extend(nested.emitted)
        result.js.extend(nested.js)
        result.published.extend(nested.published)
        return
    result.emitted.append(emitted)


async def dispatch(root_schema: ComponentSchema, path: PathLike, event: str,
                   payload: Optional[Dict[str, Any]], root_state: Dict[str, Any], *,
                   registry: SchemaRegistry = default_registry) -> Tuple[Any, Dict[str, Any]]:
    """`(handler result, updated root state)`; the state is returned unchanged for unknown paths."""
    result = await dispatch_event(root_schema, path, event, payload, root_state, registry=registry)
    return result.result, result.state
