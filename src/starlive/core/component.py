"""
Component classes.

Subclassing `LiveComponent` (or `LiveView` for page-level components)
collects the class's field declarations into a `ComponentSchema` and
registers it with the schema registry. Event handlers are ordinary methods
marked with `@event`; the component instance itself holds no state, every
hook receives an explicit cursor or turn.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from .fields import ComponentSchema, FieldDecl, FieldSpec
from .registry import SchemaRegistry, registry as default_registry
from .types import cast, is_primitive

logger = logging.getLogger(__name__)


@dataclass
class EventInfo:
    """Metadata about an event handler stored by the @event decorator."""
    name: str
    method: str
    signature: inspect.Signature
    kwargs: dict = field(default_factory=dict)


def event(fn=None, *, name: Optional[str] = None, **kwargs):
    """
    Mark a component method as an event handler.

    The handler is looked up by `name` (the method name by default). Its
    parameters are bound from the event payload by name and cast by
    annotation; a parameter named `cursor` receives the scoped cursor and
    one named `params` the raw payload.
    """
    def decorator(func):
        func._event_info = EventInfo(
            name=name or func.__name__,
            method=func.__name__,
            signature=inspect.signature(func),
            kwargs=kwargs,
        )
        return func

    if fn is not None:
        return decorator(fn)
    return decorator


def bind_event_args(info: EventInfo, params: Dict[str, Any], cursor) -> Dict[str, Any]:
    """Resolve handler keyword arguments from the payload."""
    kwargs = {}
    for arg, p in info.signature.parameters.items():
        if arg == "self" or p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD):
            continue
        if arg == "cursor":
            kwargs[arg] = cursor
            continue
        if arg in ("params", "payload"):
            kwargs[arg] = params
            continue
        raw = params.get(arg) if isinstance(params, dict) else None
        if raw is None:
            if p.default is p.empty:
                kwargs[arg] = None
            continue
        anno = p.annotation
        if anno is p.empty or not is_primitive(anno):
            kwargs[arg] = raw
            continue
        value = cast(raw, anno)
        if value is None and p.default is not p.empty:
            continue
        kwargs[arg] = value
    return kwargs


async def maybe_await(result):
    if inspect.isawaitable(result):
        return await result
    return result


class LiveComponent:
    """
    Base class for stateful components.

    Declare fields as class attributes::

        class Modal(LiveComponent):
            item_id = prop(int)
            open = state(bool, default=False, url=True)

    Class keyword arguments: `name` overrides the registry key, `registry`
    selects a non-default schema registry and `abstract=True` skips
    registration for intermediate base classes.
    """

    __schema__: ClassVar[ComponentSchema]
    __schema_name__: ClassVar[str]
    __events__: ClassVar[Dict[str, EventInfo]]
    __registry__: ClassVar[SchemaRegistry] = default_registry
    route: ClassVar[Optional[str]] = None

    def __init_subclass__(cls, name: Optional[str] = None, registry: Optional[SchemaRegistry] = None,
                          abstract: bool = False, route: Optional[str] = None, **kwargs):
        super().__init_subclass__(**kwargs)
        if registry is not None:
            cls.__registry__ = registry
        if route is not None:
            cls.route = route
        cls.__schema_name__ = name or cls.__dict__.get("__schema_name__") or cls.__name__
        cls.__events__ = cls._discover_events()
        cls.__schema__ = ComponentSchema(
            name=cls.__schema_name__,
            fields=cls._collect_fields(),
            component_class=cls,
            route=cls.route,
        )
        cls._instance = None
        if abstract:
            return
        cls.__registry__.register(cls.__schema__)
        logger.debug("Registered component %s with %d fields", cls.__schema_name__, len(cls.__schema__.fields))

    @classmethod
    def _collect_fields(cls) -> List[FieldSpec]:
        specs: Dict[str, FieldSpec] = {}
        for base in reversed(cls.__mro__):
            annotations = inspect.get_annotations(base) if isinstance(base, type) else {}
            for attr, value in list(vars(base).items()):
                if isinstance(value, FieldDecl):
                    spec = value.build(attr, annotations.get(attr))
                    setattr(base, attr, spec)
                    specs[attr] = spec
                elif isinstance(value, FieldSpec):
                    specs[attr] = value
        return list(specs.values())

    @classmethod
    def _discover_events(cls) -> Dict[str, EventInfo]:
        events = {}
        for attr in dir(cls):
            method = getattr(cls, attr, None)
            info = getattr(method, "_event_info", None)
            if isinstance(info, EventInfo):
                events[info.name] = info
        return events

    @classmethod
    def instance(cls) -> "LiveComponent":
        if cls.__dict__.get("_instance") is None:
            cls._instance = cls()
        return cls._instance

    # -- hooks -------------------------------------------------------------

    def mount(self, cursor) -> Any:
        """Called once for each present instance when a page is mounted."""

    def handle_params(self, cursor) -> Any:
        """Called after URL params were validated into the state."""

    async def handle_event(self, event: str, params: Dict[str, Any], cursor) -> Any:
        info = self.__events__.get(event)
        if info is None:
            logger.debug("%s has no handler for event %r", self.__schema_name__, event)
            return None
        handler = getattr(self, info.method)
        return await maybe_await(handler(**bind_event_args(info, params, cursor)))

    def handle_info(self, message: Any, cursor) -> Any:
        """Receives messages published on subscribed topics."""

    def handle_errors(self, cursor, errors: List[Tuple[Tuple, str]]) -> Any:
        """Receives validation errors; the default only logs them."""
        logger.debug("%s validation errors: %s", self.__schema_name__, errors)

    def pre_render(self, turn) -> Any:
        """Derivation callback; use `turn.assign_new` / `turn.stream_new`."""

    def render(self, assigns: Dict[str, Any]) -> Any:
        raise NotImplementedError(f"{type(self).__name__} must implement render()")


class LiveView(LiveComponent, abstract=True):
    """Page-level component bound to a route pattern such as `/items/:category`."""


def component_for(schema: ComponentSchema) -> Optional[LiveComponent]:
    cls = schema.component_class
    if cls is None:
        return None
    return cls.instance()


