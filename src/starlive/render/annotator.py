"""
Render Annotator

Stamps the persisted state of a component onto its rendered root element
so the client can rebuild the canonical URL without a server round trip.

The attribute string always travels in its own dynamic slot. The static
skeleton is split once at the end of the root start tag and never contains
values, so the fingerprint of an annotated render depends only on the
fingerprint of the original render, not on the state that was stamped.
"""

import html
import json
import logging
from typing import Any, Dict, Mapping, Sequence, Tuple

from fastcore.xml import Safe

from ..codec.routes import project_leaf, route_vars
from ..core.fields import ComponentSchema, Persistence
from ..core.types import to_plain
from .rendered import Rendered, fingerprint_of

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "lv"
PAGE_CONTAINER_ID = "lv-page-params"


def encode_value(value: Any) -> str:
    """JSON, then HTML-escaped for use inside a double-quoted attribute."""
    return html.escape(json.dumps(to_plain(value), separators=(",", ":")), quote=True)


def path_string(path: Sequence[Any]) -> str:
    return "/".join(str(p) for p in path)


def state_attributes(schema: ComponentSchema, state: Mapping[str, Any], *,
                     prefix: str = DEFAULT_PREFIX, omit_defaults: bool = False,
                     url_allowed: bool = True, session_allowed: bool = True,
                     keep: Sequence[str] = ()) -> Dict[str, str]:
    """
    Attribute name to encoded value for the instance's own persisted fields.

    URL-tier fields go to `<prefix>-url-<name>`, session-tier fields to
    `<prefix>-data-<name>`. When the instance sits below a session-only
    component field, its URL-tier fields are demoted to the data namespace.
    """
    attrs: Dict[str, str] = {}
    for spec in schema.attributes:
        if spec.persistence == Persistence.NONE:
            continue
        value = state.get(spec.name)
        if value is None or (omit_defaults and value == spec.default and spec.name not in keep):
            continue
        if spec.persistence == Persistence.URL and url_allowed:
            namespace = "url"
        elif session_allowed:
            namespace = "data"
        else:
            continue
        leaf = project_leaf(value, spec) if not spec.is_structural else value
        attrs[f"{prefix}-{namespace}-{spec.name}"] = encode_value(leaf)
    return attrs


def attribute_string(attrs: Mapping[str, str]) -> str:
    return " ".join(f'{name}="{value}"' for name, value in attrs.items())


def _split_root_tag(rendered: Rendered) -> Tuple[int, int]:
    """Position (static index, offset) of the end of the first start tag, or (-1, -1)."""
    seen_open = False
    quote = None
    for idx, chunk in enumerate(rendered.static):
        for offset, ch in enumerate(chunk):
            if quote is not None:
                # inside a quoted attribute value
                if ch == quote:
                    quote = None
            elif ch == "<":
                seen_open = True
            elif ch in "\"'" and seen_open:
                quote = ch
            elif ch == ">" and seen_open:
                if offset > 0 and chunk[offset - 1] == "/":
                    offset -= 1
                return idx, offset
    return -1, -1


def inject(rendered: Rendered, attrs: str, mode: str = "component") -> Rendered:
    """
    Carry `attrs` into the root start tag through a new dynamic slot.

    Output without any element is wrapped in a `div` instead.
    """
    idx, offset = _split_root_tag(rendered)
    fingerprint = fingerprint_of(rendered.fingerprint, mode)
    if idx < 0:
        return Rendered(static=["<div ", ">", "</div>"], dynamic=[Safe(attrs), rendered],
                        fingerprint=fingerprint)
    chunk = rendered.static[idx]
    static = (rendered.static[:idx]
              + [chunk[:offset] + " ", chunk[offset:]]
              + rendered.static[idx + 1:])
    dynamic = rendered.dynamic[:idx] + [Safe(attrs)] + rendered.dynamic[idx:]
    return Rendered(static=static, dynamic=dynamic, fingerprint=fingerprint)


def annotate_component(rendered: Rendered, schema: ComponentSchema, state: Mapping[str, Any],
                       path: Sequence[Any] = (), *, prefix: str = DEFAULT_PREFIX,
                       url_allowed: bool = True, session_allowed: bool = True) -> Rendered:
    """Stamp a nested instance's persisted fields and its path onto its root element."""
    attrs = state_attributes(schema, state, prefix=prefix, url_allowed=url_allowed,
                             session_allowed=session_allowed)
    attrs = {f"{prefix}-path": html.escape(path_string(path), quote=True), **attrs}
    return inject(Rendered.from_value(rendered), attribute_string(attrs))


def wrap_page(rendered: Rendered, schema: ComponentSchema, state: Mapping[str, Any],
              route: str, *, prefix: str = DEFAULT_PREFIX,
              container_id: str = PAGE_CONTAINER_ID) -> Rendered:
    """
    Wrap page output in the params container.

    The container carries the route pattern and the page's own persisted
    fields; values equal to their default are left out, except route
    placeholders, matching the server-side canonical URL.
    """
    rendered = Rendered.from_value(rendered)
    attrs = {f"{prefix}-route": html.escape(route, quote=True),
             **state_attributes(schema, state, prefix=prefix, omit_defaults=True, keep=route_vars(route))}
    return Rendered(
        static=[f'<div id="{container_id}" ', ">", "</div>"],
        dynamic=[Safe(attribute_string(attrs)), rendered],
        fingerprint=fingerprint_of(rendered.fingerprint, "page", container_id),
    )
