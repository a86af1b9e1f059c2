"""
Field declarations and component schemas.

A component author declares fields with `prop()`, `state()` and
`component()` / `components()` at class-definition time. The component base
class turns those declarations into `FieldSpec`s and an ordered
`ComponentSchema`, which the validator, codec, annotator and router read
from the schema registry.
"""

import copy
from dataclasses import dataclass, field as dc_field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .types import normalize_type


class FieldKind(str, Enum):
    PROP = "prop"            # supplied by the parent, read-only to the component
    STATE = "state"          # owned by the component
    COMPONENT = "component"  # value is the state tree of a nested component


class Persistence(str, Enum):
    URL = "url"          # query string, survives a full reload
    SESSION = "session"  # render attributes only, survives reconnects
    NONE = "none"        # server memory only


class Cardinality(str, Enum):
    ONE = "one"
    MANY = "many"


class FieldSpec(BaseModel):
    """A single declared field of a component schema."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    kind: FieldKind = FieldKind.STATE
    type: Any = "string"
    persistence: Persistence = Persistence.SESSION
    default: Any = None
    required: bool = False
    choices: Optional[Tuple[Any, ...]] = None
    cardinality: Cardinality = Cardinality.ONE
    events: Dict[str, str] = Field(default_factory=dict)

    @property
    def is_component(self) -> bool:
        return self.kind == FieldKind.COMPONENT

    @property
    def is_prop(self) -> bool:
        return self.kind == FieldKind.PROP

    @property
    def is_many(self) -> bool:
        return self.cardinality == Cardinality.MANY

    @property
    def is_structural(self) -> bool:
        """Plain nested mapping type without a component schema."""
        return isinstance(self.type, dict)

    @property
    def related_name(self) -> Optional[str]:
        """Registry key of the nested component schema, if any."""
        if not self.is_component:
            return None
        if isinstance(self.type, str):
            return self.type
        return getattr(self.type, "__schema_name__", None) or getattr(self.type, "__name__", None)

    def default_value(self) -> Any:
        return copy.deepcopy(self.default)


@dataclass
class FieldDecl:
    """Pending declaration; completed with the name and annotation by the component class."""
    kind: FieldKind
    options: Dict[str, Any] = dc_field(default_factory=dict)

    def build(self, name: str, annotation: Any = None) -> FieldSpec:
        opts = dict(self.options)
        if self.kind == FieldKind.COMPONENT:
            opts.setdefault("persistence", Persistence.URL)
            if opts.get("cardinality") == Cardinality.MANY:
                opts.setdefault("default", [])
        else:
            tp = opts.pop("type", None)
            if tp is None:
                tp = annotation if annotation is not None else "string"
            opts["type"] = tp if isinstance(tp, dict) else normalize_type(tp)
        if opts.get("choices") is not None:
            opts["choices"] = tuple(opts["choices"])
        return FieldSpec(name=name, kind=self.kind, **opts)


def _persistence(url: bool, persist: Any) -> Persistence:
    if persist is not None:
        return Persistence(persist)
    return Persistence.URL if url else Persistence.SESSION


def prop(type: Any = None, *, default: Any = None, required: bool = False,
         choices=None) -> FieldDecl:
    """Declare a field controlled by the parent component."""
    return FieldDecl(FieldKind.PROP, dict(type=type, default=default, required=required,
                                         choices=choices, persistence=Persistence.NONE))


def state(type: Any = None, *, default: Any = None, url: bool = False, persist: Any = None,
          required: bool = False, choices=None) -> FieldDecl:
    """
    Declare a field owned by the component.

    Args:
        type: Primitive name, Python type, Enum subclass or a nested
            `{name: type}` mapping. Defaults to the class annotation.
        default: Value applied when the field is absent.
        url: Persist into the query string (survives reloads). Otherwise
            the value is only stamped into render attributes.
        persist: Explicit tier ("url", "session" or "none"); overrides `url`.
        required: Report an error when the value is blank.
        choices: Allowed values; anything else is reported as an error.
    """
    return FieldDecl(FieldKind.STATE, dict(type=type, default=default, required=required,
                                          choices=choices, persistence=_persistence(url, persist)))


def component(related: Any, *, events: Optional[Dict[str, str]] = None,
              persist: Any = "url", required: bool = False) -> FieldDecl:
    """Declare a nested component instance; the field name is the instance id."""
    return FieldDecl(FieldKind.COMPONENT, dict(type=related, events=events or {},
                                              persistence=Persistence(persist), required=required,
                                              cardinality=Cardinality.ONE))


def components(related: Any, *, events: Optional[Dict[str, str]] = None,
               persist: Any = "url") -> FieldDecl:
    """Declare a list of nested component instances addressed by index."""
    return FieldDecl(FieldKind.COMPONENT, dict(type=related, events=events or {},
                                              persistence=Persistence(persist),
                                              cardinality=Cardinality.MANY))


class ComponentSchema(BaseModel):
    """Ordered field declarations of one component."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    fields: List[FieldSpec] = Field(default_factory=list)
    component_class: Any = None
    route: Optional[str] = None

    def field(self, name: str) -> Optional[FieldSpec]:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    def __contains__(self, name: str) -> bool:
        return self.field(name) is not None

    @property
    def attributes(self) -> List[FieldSpec]:
        return [f for f in self.fields if not f.is_component]

    @property
    def components(self) -> List[FieldSpec]:
        return [f for f in self.fields if f.is_component]

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def fields_in(self, *tiers: Persistence) -> List[FieldSpec]:
        return [f for f in self.attributes if f.persistence in tiers]

    def defaults(self) -> Dict[str, Any]:
        return {f.name: f.default_value() for f in self.fields}

    def related_names(self) -> List[str]:
        return [f.related_name for f in self.components if f.related_name]
