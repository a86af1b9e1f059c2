"""
FastHTML Web Adapter

Mounts live views on a FastHTML app:

    from fasthtml.common import fast_app
    from starlive.adapters.fasthtml import configure_app, datastar_script

    app, rt = fast_app(hdrs=(datastar_script,))
    configure_app(app, rt)

Every registered view gets a GET route built from its route pattern. Events
are POSTed to `config.event_path`; Datastar requests are answered with an
SSE stream patching the page container and the `lvurl` signal, plain JSON
requests with a JSON body.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type, Union
from urllib.parse import urlencode, urlsplit

from datastar_py import ServerSentEventGenerator as SSE
from datastar_py.starlette import DatastarResponse, read_signals
from fasthtml.common import Div, Script, Title
from fastcore.xml import Safe
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..app.bus import EventBus, InProcessBus
from ..app.router import COMPONENT_ACTION
from ..app.session import InboundEvent, LiveSession, TurnResult
from ..codec.routes import match_route, to_starlette_path
from ..config import LiveConfig, get_config
from ..core.component import LiveComponent
from ..core.errors import SessionNotFoundError
from ..core.fields import ComponentSchema
from ..core.registry import SchemaRegistry, registry as default_registry
from ..core.types import to_plain, to_scalar_str
from ..persistence import SessionStore, register_backend
from ..render.annotator import path_string

logger = logging.getLogger(__name__)

datastar_script = Script(src="https://cdn.jsdelivr.net/gh/starfederation/datastar@v1.0.0-RC.1/bundles/datastar.js",
                         type="module")

SESSION_SIGNAL = "lvsession"
URL_SIGNAL = "lvurl"
_RESERVED = {"event", "target", "session", SESSION_SIGNAL, URL_SIGNAL}

CLIENT_SCRIPT = """
(() => {
  const PREFIX = %(prefix)s, CONTAINER = %(container)s, EVENTS = %(events)s;
  const URL_ATTR = PREFIX + "-url-";

  const read = (el) => {
    const out = {};
    for (const attr of el.attributes) {
      if (!attr.name.startsWith(URL_ATTR)) continue;
      try { out[attr.name.slice(URL_ATTR.length)] = JSON.parse(attr.value); } catch (e) {}
    }
    return out;
  };

  const place = (tree, segments, values) => {
    let node = tree;
    segments.forEach((seg, i) => {
      const last = i === segments.length - 1;
      if (last) { node[seg] = Object.assign(node[seg] || {}, values); return; }
      if (node[seg] == null) node[seg] = /^\\d+$/.test(segments[i + 1]) ? [] : {};
      node = node[seg];
    });
  };

  const flatten = (value, prefix, pairs) => {
    if (value == null) return pairs;
    if (Array.isArray(value)) {
      value.forEach((item, i) => flatten(item, prefix + "[" + i + "]", pairs));
    } else if (typeof value === "object") {
      for (const [k, v] of Object.entries(value)) flatten(v, prefix ? prefix + "[" + k + "]" : k, pairs);
    } else {
      pairs.push([prefix, String(value)]);
    }
    return pairs;
  };

  const canonical = () => {
    const page = document.getElementById(CONTAINER);
    if (!page) return null;
    const route = page.getAttribute(PREFIX + "-route");
    if (route == null) return null;
    const tree = read(page);
    for (const el of page.querySelectorAll("[" + PREFIX + "-path]")) {
      const values = read(el);
      const segments = el.getAttribute(PREFIX + "-path").split("/").filter(Boolean);
      if (segments.length && Object.keys(values).length) place(tree, segments, values);
    }
    const path = route.replace(/:([A-Za-z_][A-Za-z0-9_]*)(?=[/]|$)/g, (_, name) => {
      const value = tree[name];
      delete tree[name];
      return encodeURIComponent(value == null ? "" : String(value));
    });
    const query = flatten(tree, "", [])
      .map(([k, v]) => encodeURIComponent(k).replace(/%%5B/g, "[").replace(/%%5D/g, "]") + "=" + encodeURIComponent(v))
      .join("&");
    return query ? path + "?" + query : path;
  };

  const sync = () => {
    const url = canonical();
    if (url && url !== location.pathname + location.search) history.pushState({}, "", url);
  };

  new MutationObserver(sync).observe(document.documentElement, {subtree: true, childList: true, attributes: true});

  window.addEventListener("popstate", async () => {
    const root = document.querySelector("[data-lv-session]");
    if (!root) return;
    const response = await fetch(EVENTS, {
      method: "POST",
      headers: {"Content-Type": "application/json"},
      body: JSON.stringify({session: root.dataset.lvSession, navigate: location.pathname + location.search}),
    });
    if (!response.ok) return;
    const body = await response.json();
    const page = document.getElementById(CONTAINER);
    if (page && body.html) page.outerHTML = body.html;
  });

  sync();
})();
"""


def client_script(config: Optional[LiveConfig] = None) -> str:
    """Client agent that mirrors the canonical URL into the address bar."""
    config = config or get_config()
    return CLIENT_SCRIPT % {
        "prefix": json.dumps(config.attribute_prefix),
        "container": json.dumps(config.page_container_id),
        "events": json.dumps(config.event_path),
    }


def live_post(event: str, target: Union[str, Sequence[Any], None] = None, **params) -> str:
    """
    Datastar action expression posting `event` to the live event endpoint.

    `live_post("select", ctx.path, id=3)` ->
    `@post('/live/event?event=select&target=rows%2F2&id=3')`
    """
    query = {"event": event}
    if target:
        query["target"] = target if isinstance(target, str) else path_string(target)
    query.update({k: json.dumps(to_plain(v)) if isinstance(v, (dict, list)) else to_scalar_str(v)
                  for k, v in params.items()})
    return f"@post('{get_config().event_path}?{urlencode(query)}')"


def assign_state(target: Union[str, Sequence[Any], None] = None, **values) -> str:
    """Client shortcut assigning `values` into the instance at `target`."""
    return live_post(COMPONENT_ACTION, target, **values)


def _turn_payload(session: LiveSession, result: TurnResult) -> Dict[str, Any]:
    return to_plain({
        "session": session.id,
        "html": result.html,
        "url": result.url,
        "errors": [{"path": list(path), "message": msg} for path, msg in result.errors],
        "emitted": [{"name": e.name, "value": e.value, "source": list(e.source)} for e in result.emitted],
        "js": [{"command": c.command, "args": c.args, "target": list(c.target)} for c in result.js],
        "error": str(result.error) if result.error is not None else None,
    })


def _sse_events(result: TurnResult):
    yield SSE.patch_elements(result.html)
    if result.url is not None:
        yield SSE.patch_signals({URL_SIGNAL: result.url})
    for emitted in result.emitted:
        detail = json.dumps({"value": emitted.value, "source": list(emitted.source)}, default=str)
        yield SSE.execute_script(f"window.dispatchEvent(new CustomEvent({json.dumps('lv:' + emitted.name)}, "
                                 f"{{detail: {detail}}}))")
    for command in result.js:
        detail = json.dumps({"command": command.command, "args": command.args,
                             "target": list(command.target)}, default=str)
        yield SSE.execute_script(f"window.dispatchEvent(new CustomEvent('lv:js', {{detail: {detail}}}))")


class LiveEndpoints:
    """Request handlers shared by every mounted view."""

    def __init__(self, config: LiveConfig, store: SessionStore, registry: SchemaRegistry,
                 bus: EventBus):
        self.config = config
        self.store = store
        self.registry = registry
        self.bus = bus

    def page_handler(self, schema: ComponentSchema):
        async def page(req: Request):
            self.store.start_cleanup()
            session = LiveSession(schema, config=self.config, registry=self.registry, bus=self.bus)
            result = await session.mount(req.query_params, dict(req.path_params))
            self.store.save(session)
            logger.debug("Serving %s with session %s", schema.name, session.id)
            signals = json.dumps({SESSION_SIGNAL: session.id, URL_SIGNAL: result.url})
            return (Title(schema.name),
                    Div(Safe(result.html), data_signals=signals, data_lv_session=session.id),
                    Script(src=self.config.script_path))
        page.__name__ = f"live_{schema.name.lower()}"
        return page

    async def script(self, req: Request):
        return Response(client_script(self.config), media_type="application/javascript")

    async def event(self, req: Request):
        if "Datastar-Request" in req.headers:
            return await self._datastar_event(req)
        try:
            body = await req.json()
        except ValueError:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        session = self._session(body.get("session"))
        if session is None:
            return JSONResponse({"error": "Unknown session"}, status_code=404)
        if "navigate" in body:
            return await self._navigate(session, str(body["navigate"]))
        try:
            inbound = InboundEvent.model_validate(body)
        except ValueError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        result = await session.handle_event(inbound)
        return JSONResponse(_turn_payload(session, result))

    async def _datastar_event(self, req: Request):
        signals = await read_signals(req) or {}
        session = self._session(signals.get(SESSION_SIGNAL) or req.query_params.get("session"))
        if session is None:
            return Response("Unknown session", status_code=404)
        event = req.query_params.get("event")
        if not event:
            return Response("Missing event", status_code=400)
        params = {k: v for k, v in signals.items() if k not in _RESERVED}
        params.update({k: v for k, v in req.query_params.multi_items() if k not in _RESERVED})
        result = await session.handle_event(event, params, req.query_params.get("target"))
        return DatastarResponse(_sse_events(result))

    async def _navigate(self, session: LiveSession, url: str):
        parts = urlsplit(url)
        path_params = match_route(session.route, parts.path) if session.route else None
        if path_params is None:
            return JSONResponse({"error": f"{parts.path} does not match {session.route}"}, status_code=404)
        result = await session.handle_params(parts.query, path_params)
        return JSONResponse(_turn_payload(session, result))

    def _session(self, session_id: Optional[str]) -> Optional[LiveSession]:
        if not session_id:
            return None
        try:
            return self.store.get(str(session_id))
        except SessionNotFoundError:
            logger.info("Event for unknown or expired session %s", session_id)
            return None


def _schemas(views: Optional[Iterable[Union[Type[LiveComponent], ComponentSchema, str]]],
             registry: SchemaRegistry) -> List[ComponentSchema]:
    if views is None:
        return registry.views()
    schemas = []
    for view in views:
        if isinstance(view, type) and issubclass(view, LiveComponent):
            schemas.append(view.__schema__)
        elif isinstance(view, str):
            schemas.append(registry[view])
        else:
            schemas.append(view)
    return schemas


def configure_app(app, rt=None, views=None, config: Optional[LiveConfig] = None,
                  store: Optional[SessionStore] = None, registry: Optional[SchemaRegistry] = None,
                  bus: Optional[EventBus] = None):
    """
    Configure a FastHTML app with live views.

    Args:
        app: FastHTML app instance
        rt: FastHTML router (`app.route` when omitted)
        views: Views to mount; every registered view with a route by default
        config: Configuration; the process-wide one by default
        store: Session store; a new in-memory store by default
        registry: Schema registry the views live in
        bus: Topic bus shared by all sessions of this app

    Returns:
        The configured app instance
    """
    config = config or get_config()
    registry = registry or default_registry
    store = store or SessionStore(default_ttl=config.session_ttl, cleanup_interval=config.cleanup_interval)
    bus = bus or InProcessBus()
    register_backend(store)
    router = rt or app.route
    endpoints = LiveEndpoints(config, store, registry, bus)

    for schema in _schemas(views, registry):
        if not schema.route:
            logger.warning("Skipping %s: no route pattern", schema.name)
            continue
        router(to_starlette_path(schema.route), methods=["get"])(endpoints.page_handler(schema))
        logger.info("Mounted live view %s at %s", schema.name, schema.route)

    router(config.event_path, methods=["post"])(endpoints.event)
    router(config.script_path, methods=["get"])(endpoints.script)

    app.state.starlive = endpoints
    return app
