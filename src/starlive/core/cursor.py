"""
Scoped state cursor handed to component hooks.

A cursor addresses one component instance. Writes go to a private copy of
that instance's subtree; the router composes the copy back into the parent
once the handler returns.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from .changeset import Changeset, validate, with_defaults
from .errors import PropWriteError
from .fields import ComponentSchema
from .registry import SchemaRegistry, registry as default_registry

logger = logging.getLogger(__name__)

_MISSING = object()

PathSegment = Any
Path = Tuple[PathSegment, ...]


@dataclass
class Emitted:
    """An event raised by a nested instance, travelling towards its ancestors."""
    name: str
    value: Any = None
    source: Path = ()


@dataclass
class JSCommand:
    """A client-side command recorded during a turn."""
    command: str
    args: Dict[str, Any] = field(default_factory=dict)
    target: Path = ()


class Cursor:
    """Read/write view of one component instance's state subtree."""

    def __init__(self, schema: ComponentSchema, state: Optional[Dict[str, Any]] = None,
                 path: Path = (), registry: SchemaRegistry = default_registry,
                 allow_props: bool = False):
        self.schema = schema
        self.state: Dict[str, Any] = dict(state or {})
        self.path = tuple(path)
        self.registry = registry
        self.allow_props = allow_props
        self.changed: Set[str] = set()
        self.errors: List[Tuple[Tuple, str]] = []
        self.emitted: List[Emitted] = []
        self.js: List[JSCommand] = []
        self.published: List[Tuple[str, Any]] = []

    def __getitem__(self, key: str) -> Any:
        return self.state[key]

    def __contains__(self, key: str) -> bool:
        return key in self.state

    def get(self, key: str, default: Any = None) -> Any:
        return self.state.get(key, default)

    @property
    def assigns(self) -> Dict[str, Any]:
        return dict(self.state)

    def _check_writable(self, key: str) -> None:
        spec = self.schema.field(key)
        if spec is not None and spec.is_prop and not self.allow_props:
            raise PropWriteError(self.schema.name, key)

    def assign(self, key: Optional[str] = None, value: Any = _MISSING, **values) -> "Cursor":
        """`cursor.assign("page", 2)` or `cursor.assign(page=2, filter="a")`."""
        if key is not None:
            if value is _MISSING:
                raise TypeError("assign() needs a value when a key is given")
            values = {key: value, **values}
        for name, val in values.items():
            self._check_writable(name)
            if self.state.get(name, _MISSING) != val:
                self.changed.add(name)
            self.state[name] = val
        return self

    def update(self, key: str, fun) -> "Cursor":
        return self.assign(key, fun(self.state.get(key)))

    def assign_params(self, params: Dict[str, Any], permitted: Optional[List[str]] = None) -> Changeset:
        """
        Validate `params` against the schema and apply the result.

        Props are never taken from the params. Errors are kept on the
        cursor and the best-effort state is applied either way.
        """
        names = [f.name for f in self.schema.fields
                 if (self.allow_props or not f.is_prop) and (permitted is None or f.name in permitted)]
        cs = validate(self.state, params, self.schema, registry=self.registry, permitted=names)
        new_state = cs.apply_changes()
        for name in cs.changed_fields():
            self.changed.add(name)
        self.state = new_state
        self.errors.extend(cs.errors)
        return cs

    def emit(self, name: str, value: Any = None) -> "Cursor":
        """Raise `name` towards the nearest ancestor that maps it."""
        self.emitted.append(Emitted(name=name, value=value, source=self.path))
        return self

    def push_js(self, command: str, **args) -> "Cursor":
        self.js.append(JSCommand(command=command, args=args, target=self.path))
        return self

    def publish(self, topic: str, message: Any) -> "Cursor":
        """Queue `message` for `topic`; it is published once the turn commits."""
        self.published.append((topic, message))
        return self

    def child(self, name: str, index: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """State of a nested instance, or None when it is not present."""
        value = self.state.get(name)
        if index is not None:
            if not isinstance(value, list) or not 0 <= index < len(value):
                return None
            value = value[index]
        return value if isinstance(value, dict) else None

    def assign_child(self, name: str, index: Optional[int] = None, **values) -> "Cursor":
        """Set props or state of a nested instance as its parent."""
        spec = self.schema.field(name)
        if spec is None or not spec.is_component:
            raise KeyError(f"{self.schema.name} has no component field {name!r}")
        nested = self.registry.related(spec)

        def merged(current):
            # a newly opened instance starts from its defaults
            value = {**(current if isinstance(current, dict) else {}), **values}
            return with_defaults(nested, value, self.registry) if nested is not None else value

        if index is None:
            return self.assign(name, merged(self.state.get(name)))
        items = list(self.state.get(name) or [])
        while len(items) <= index:
            items.append(None)
        items[index] = merged(items[index])
        return self.assign(name, items)

