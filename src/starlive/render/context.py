"""
Render context.

Explicit per-render context handed to a component's `render` as its
optional second argument. It renders nested instances in place, so a
parent writes `ctx.child("modal")` where the child's markup belongs.
"""

import inspect
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..core.component import component_for
from ..core.fields import ComponentSchema, Persistence
from ..core.registry import SchemaRegistry, registry as default_registry
from .annotator import DEFAULT_PREFIX, annotate_component, path_string
from .rendered import Rendered

logger = logging.getLogger(__name__)


def _accepts_context(render) -> bool:
    try:
        params = [p for p in inspect.signature(render).parameters.values()
                  if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)]
    except (TypeError, ValueError):
        return False
    return len(params) >= 2


class RenderContext:
    """Where in the tree a render happens and how to reach derived assigns."""

    def __init__(self, schema: ComponentSchema, state: Mapping[str, Any],
                 derived: Optional[Dict[str, Dict[str, Any]]] = None, path: Sequence[Any] = (),
                 registry: SchemaRegistry = default_registry, prefix: str = DEFAULT_PREFIX,
                 url_allowed: bool = True, session_allowed: bool = True):
        self.schema = schema
        self.state = state
        self.derived = derived if derived is not None else {}
        self.path = tuple(path)
        self.registry = registry
        self.prefix = prefix
        self.url_allowed = url_allowed
        self.session_allowed = session_allowed

    def assigns(self) -> Dict[str, Any]:
        return {**self.derived.get(path_string(self.path), {}), **self.state}

    def render(self) -> Rendered:
        """Render the instance this context points at."""
        component = component_for(self.schema)
        if component is None:
            logger.debug("No component class for schema %s", self.schema.name)
            return Rendered.empty()
        if _accepts_context(component.render):
            result = component.render(self.assigns(), self)
        else:
            result = component.render(self.assigns())
        return Rendered.from_value(result)

    def _nested(self, name: str, index: Optional[int] = None) -> Optional["RenderContext"]:
        spec = self.schema.field(name)
        if spec is None or not spec.is_component:
            logger.debug("%s has no component field %r", self.schema.name, name)
            return None
        nested = self.registry.related(spec)
        value = self.state.get(name)
        path = self.path + (name,)
        if index is not None:
            if not isinstance(value, list) or not 0 <= index < len(value):
                return None
            value = value[index]
            path = path + (index,)
        if nested is None or not isinstance(value, dict):
            return None
        return RenderContext(
            nested, value, self.derived, path, self.registry, self.prefix,
            url_allowed=self.url_allowed and spec.persistence == Persistence.URL,
            session_allowed=self.session_allowed and spec.persistence != Persistence.NONE,
        )

    def child(self, name: str, index: Optional[int] = None) -> Rendered:
        """Rendered and annotated nested instance, or an empty render when absent."""
        ctx = self._nested(name, index)
        if ctx is None:
            return Rendered.empty()
        return annotate_component(ctx.render(), ctx.schema, ctx.state, ctx.path, prefix=self.prefix,
                                  url_allowed=ctx.url_allowed, session_allowed=ctx.session_allowed)

    def children(self, name: str) -> List[Rendered]:
        value = self.state.get(name)
        if not isinstance(value, list):
            return []
        return [self.child(name, i) for i in range(len(value)) if isinstance(value[i], dict)]
