"""
Route patterns and URL projections of state.

A route pattern such as `/items/:category` names placeholders that are
filled from the page's top-level state; every other URL-tier value goes to
the query string. Nested component state is namespaced by the field name
that holds the instance, so two instances of the same component never
collide.
"""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote, unquote

from ..core.changeset import structural_schema
from ..core.fields import ComponentSchema, FieldSpec, Persistence
from ..core.registry import SchemaRegistry, registry as default_registry
from ..core.types import dump, to_scalar_str
from .params import URI_SAFE, encode_query

logger = logging.getLogger(__name__)

_VAR_RE = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)(?=/|$)")

URL_TIERS = (Persistence.URL,)
SESSION_TIERS = (Persistence.URL, Persistence.SESSION)


def route_vars(pattern: str) -> List[str]:
    return _VAR_RE.findall(pattern)


def to_starlette_path(pattern: str) -> str:
    """`/items/:category` -> `/items/{category}`"""
    return _VAR_RE.sub(lambda m: "{" + m.group(1) + "}", pattern)


def match_route(pattern: str, path: str) -> Optional[Dict[str, str]]:
    """Placeholder values when `path` matches `pattern`, otherwise None."""
    regex = "^" + _VAR_RE.sub(lambda m: f"(?P<{m.group(1)}>[^/]+)", re.escape(pattern)) + "/?$"
    match = re.match(regex, path)
    if match is None:
        return None
    return {k: unquote(v) for k, v in match.groupdict().items()}


def build_path(route_pattern: str, state_tree: Mapping[str, Any]) -> str:
    """
    Substitute placeholders and serialize the rest as a bracket query.

    >>> build_path("/items/:category", {"category": "books", "page": 2})
    '/items/books?page=2'
    """
    path = route_pattern
    remaining = {}
    placeholders = set(route_vars(route_pattern))
    for key, value in state_tree.items():
        if key in placeholders and value is not None and not isinstance(value, (dict, list)):
            path = re.sub(rf":{re.escape(key)}(?=/|$)", quote(to_scalar_str(value), safe=URI_SAFE), path)
        else:
            remaining[key] = value
    # unfilled placeholders become empty segments
    path = _VAR_RE.sub("", path)
    query = encode_query(remaining)
    return f"{path}?{query}" if query else path


_DUMPED_TYPES = frozenset({
    "map", "list", "json", "binary", "decimal", "uuid",
    "date", "time", "naive_datetime", "utc_datetime",
})


def project_leaf(value: Any, spec: FieldSpec) -> Any:
    if isinstance(spec.type, type) or spec.type in _DUMPED_TYPES:
        return dump(value, spec.type)
    return value


def _project_structural(spec: FieldSpec, value: Mapping[str, Any]) -> Dict[str, Any]:
    result = {}
    for sub in structural_schema(spec).fields:
        sub_value = value.get(sub.name)
        if sub_value is None:
            continue
        if sub.is_structural and isinstance(sub_value, dict):
            sub_value = _project_structural(sub, sub_value) or None
        else:
            sub_value = project_leaf(sub_value, sub)
        if sub_value is not None:
            result[sub.name] = sub_value
    return result


def project(schema: ComponentSchema, state: Mapping[str, Any], tiers=URL_TIERS, *,
            omit_defaults: bool = False, registry: SchemaRegistry = default_registry) -> Dict[str, Any]:
    """
    Persisted view of `state`: fields of the given tiers plus present nested instances.

    Leaf values are plain JSON scalars or canonical strings; structured
    values are dumped as JSON strings so they round-trip through the caster.
    """
    result: Dict[str, Any] = {}
    for spec in schema.fields:
        value = state.get(spec.name)
        if value is None:
            continue
        if spec.is_component:
            if spec.persistence not in tiers:
                continue
            nested = registry.related(spec)
            if nested is None:
                logger.debug("Skipping unresolved component field %s.%s", schema.name, spec.name)
                continue
            if spec.is_many:
                items = [project(nested, v, tiers, registry=registry) if isinstance(v, dict) else None
                         for v in value] if isinstance(value, list) else []
                if any(items):
                    result[spec.name] = items
            elif isinstance(value, dict):
                projected = project(nested, value, tiers, registry=registry)
                if projected:
                    result[spec.name] = projected
            continue
        if spec.persistence not in tiers:
            continue
        if omit_defaults and value == spec.default:
            continue
        if spec.is_structural and isinstance(value, dict):
            projected = _project_structural(spec, value)
            if projected:
                result[spec.name] = projected
            continue
        result[spec.name] = project_leaf(value, spec)
    return result


def url_state(schema: ComponentSchema, state: Mapping[str, Any],
              registry: SchemaRegistry = default_registry) -> Dict[str, Any]:
    """URL-tier projection; page-level values equal to their default are left out."""
    return project(schema, state, URL_TIERS, omit_defaults=True, registry=registry)


def session_state(schema: ComponentSchema, state: Mapping[str, Any],
                  registry: SchemaRegistry = default_registry) -> Dict[str, Any]:
    """URL and session tiers together, used to restore a reconnecting client."""
    return project(schema, state, SESSION_TIERS, omit_defaults=True, registry=registry)


def canonical_path(schema: ComponentSchema, state: Mapping[str, Any], route: Optional[str] = None,
                   registry: SchemaRegistry = default_registry) -> str:
    route = route or schema.route
    if route is None:
        raise ValueError(f"{schema.name} has no route pattern")
    tree = url_state(schema, state, registry)
    # placeholders are always filled, even with their default
    for name in route_vars(route):
        spec = schema.field(name)
        if name not in tree and spec is not None and state.get(name) is not None:
            tree[name] = project_leaf(state[name], spec)
    return build_path(route, tree)
