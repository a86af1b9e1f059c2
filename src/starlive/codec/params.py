"""
Bracket-notation query codec.

`encode_query({"modal": {"open": True}, "page": 2})` gives
`modal[open]=true&page=2`; `parse_query` is its inverse, with numeric-only
key sets turned back into lists. Query strings are fully client controlled,
so parsing drops malformed segments instead of raising.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qsl, quote

from ..core.changeset import Changeset, positional, validate
from ..core.fields import ComponentSchema
from ..core.registry import SchemaRegistry, registry as default_registry
from ..core.types import to_scalar_str

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")
_SEGMENT_RE = re.compile(r"\[([^\[\]]*)\]")

# left unescaped by encodeURIComponent on the client
URI_SAFE = "!'()*"

RawQuery = Union[str, bytes, Mapping[str, Any], Iterable[Tuple[str, str]], None]


def flatten(tree: Mapping[str, Any], prefix: str = "") -> List[Tuple[str, str]]:
    """Key/value pairs in bracket notation; None values are omitted."""
    pairs: List[Tuple[str, str]] = []
    for key, value in tree.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, Mapping):
            pairs.extend(flatten(value, name))
        elif isinstance(value, (list, tuple)):
            pairs.extend(flatten({str(i): v for i, v in enumerate(value)}, name))
        else:
            pairs.append((name, to_scalar_str(value)))
    return pairs


def encode_query(tree: Mapping[str, Any]) -> str:
    return "&".join(f"{quote(k, safe=URI_SAFE + '[]')}={quote(v, safe=URI_SAFE)}" for k, v in flatten(tree))


def _pairs(raw: RawQuery) -> List[Tuple[str, Any]]:
    if raw is None:
        return []
    if isinstance(raw, bytes):
        raw = raw.decode("latin-1")
    if isinstance(raw, str):
        return parse_qsl(raw.lstrip("?"), keep_blank_values=True)
    if hasattr(raw, "multi_items"):
        return list(raw.multi_items())
    if isinstance(raw, Mapping):
        return list(raw.items())
    return list(raw)


def _insert(tree: Dict[str, Any], keys: List[str], value: Any) -> bool:
    node = tree
    for i, key in enumerate(keys):
        last = i == len(keys) - 1
        if key == "":
            # `a[]=x` appends; only allowed as the final segment
            if not last:
                return False
            key = str(len(node))
        if last:
            if isinstance(node.get(key), dict):
                return False
            node[key] = value
            return True
        child = node.setdefault(key, {})
        if not isinstance(child, dict):
            return False
        node = child
    return True


def _listify(node: Any) -> Any:
    if not isinstance(node, dict):
        return node
    converted = {k: _listify(v) for k, v in node.items()}
    if converted and all(k.isdigit() for k in converted):
        # keep positions so that `items[1][open]=true` still addresses index 1
        return positional(converted)
    return converted


def parse_query(raw_query: RawQuery) -> Dict[str, Any]:
    """Rebuild the nested structure of a bracket-notation query string."""
    tree: Dict[str, Any] = {}
    for key, value in _pairs(raw_query):
        match = _KEY_RE.match(str(key))
        if not match:
            logger.debug("Dropping malformed query key %r", key)
            continue
        keys = [match.group(1)] + _SEGMENT_RE.findall(match.group(2))
        if not _insert(tree, keys, value):
            logger.debug("Dropping conflicting query key %r", key)
    return _listify(tree)


def parse_changeset(raw_query: RawQuery, schema: ComponentSchema,
                    current_state: Optional[Dict[str, Any]] = None,
                    path_params: Optional[Mapping[str, Any]] = None,
                    registry: SchemaRegistry = default_registry) -> Changeset:
    tree = parse_query(raw_query)
    if path_params:
        tree.update(path_params)
    return validate(current_state or {}, tree, schema, registry=registry)


def parse_params(raw_query: RawQuery, schema: ComponentSchema,
                 current_state: Optional[Dict[str, Any]] = None,
                 path_params: Optional[Mapping[str, Any]] = None,
                 registry: SchemaRegistry = default_registry) -> Dict[str, Any]:
    """
    Typed state tree from a query string (and matched path placeholders).

    Values are cast through the schema validator; anything that fails to
    cast falls back to the field default.
    """
    return parse_changeset(raw_query, schema, current_state, path_params, registry).apply_changes()
