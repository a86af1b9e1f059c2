"""
Reads stamped state back out of rendered markup.

This is the server-side counterpart of the client script: it collects the
page container's route and attributes plus every nested instance's
attributes, and rebuilds the primary (URL tier only) and combined (URL and
session tiers) URLs.
"""

import json
import logging
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Any, Dict, List, Optional, Tuple

from ..codec.routes import build_path
from .annotator import DEFAULT_PREFIX, PAGE_CONTAINER_ID

logger = logging.getLogger(__name__)


@dataclass
class Annotations:
    route: Optional[str] = None
    url: Dict[str, Any] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)


class _AnnotationParser(HTMLParser):
    def __init__(self, prefix: str, container_id: str):
        super().__init__(convert_charrefs=True)
        self.prefix = prefix
        self.container_id = container_id
        self.page: Optional[Dict[str, str]] = None
        self.instances: List[Tuple[str, Dict[str, str]]] = []

    def handle_starttag(self, tag, attrs):
        attrs = {k: (v if v is not None else "") for k, v in attrs}
        if attrs.get("id") == self.container_id and self.page is None:
            self.page = attrs
        elif f"{self.prefix}-path" in attrs:
            self.instances.append((attrs[f"{self.prefix}-path"], attrs))

    handle_startendtag = handle_starttag


def _decode(value: str) -> Any:
    try:
        return json.loads(value)
    except ValueError:
        logger.debug("Ignoring undecodable attribute value %r", value)
        return None


def _collect(attrs: Dict[str, str], prefix: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    url, data = {}, {}
    for name, raw in attrs.items():
        for namespace, target in (("url", url), ("data", data)):
            marker = f"{prefix}-{namespace}-"
            if name.startswith(marker):
                value = _decode(raw)
                if value is not None:
                    target[name[len(marker):]] = value
    return url, data


def _place(tree: Dict[str, Any], path: List[str], values: Dict[str, Any]) -> None:
    """Merge `values` at `path`; numeric segments index into lists."""
    node: Any = tree
    for i, seg in enumerate(path):
        last = i == len(path) - 1
        next_is_index = not last and path[i + 1].isdigit()
        if isinstance(node, list):
            idx = int(seg)
            while len(node) <= idx:
                node.append(None)
            if last:
                node[idx] = {**(node[idx] or {}), **values}
                return
            if node[idx] is None:
                node[idx] = [] if next_is_index else {}
            node = node[idx]
        else:
            if last:
                node[seg] = {**(node.get(seg) or {}), **values}
                return
            if node.get(seg) is None:
                node[seg] = [] if next_is_index else {}
            node = node[seg]


def read_annotations(markup: str, *, prefix: str = DEFAULT_PREFIX,
                     container_id: str = PAGE_CONTAINER_ID) -> Annotations:
    parser = _AnnotationParser(prefix, container_id)
    parser.feed(markup)
    parser.close()
    result = Annotations()
    if parser.page is not None:
        result.route = parser.page.get(f"{prefix}-route")
        result.url, result.data = _collect(parser.page, prefix)
    for path, attrs in parser.instances:
        url, data = _collect(attrs, prefix)
        segments = [s for s in path.split("/") if s]
        if not segments:
            continue
        if url:
            _place(result.url, segments, url)
        if data:
            _place(result.data, segments, data)
    return result


def _deep_merge(left: Dict[str, Any], right: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(left)
    for key, value in right.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        elif isinstance(merged.get(key), list) and isinstance(value, list):
            items = list(merged[key])
            for i, item in enumerate(value):
                if i >= len(items):
                    items.append(item)
                elif isinstance(items[i], dict) and isinstance(item, dict):
                    items[i] = _deep_merge(items[i], item)
                elif item is not None:
                    items[i] = item
            merged[key] = items
        else:
            merged[key] = value
    return merged


def canonical_urls(markup: str, *, prefix: str = DEFAULT_PREFIX,
                   container_id: str = PAGE_CONTAINER_ID) -> Tuple[Optional[str], Optional[str]]:
    """`(primary, combined)` URLs rebuilt from stamped markup; `(None, None)` without a page container."""
    annotations = read_annotations(markup, prefix=prefix, container_id=container_id)
    if annotations.route is None:
        return None, None
    primary = build_path(annotations.route, annotations.url)
    combined = build_path(annotations.route, _deep_merge(annotations.url, annotations.data))
    return primary, combined
