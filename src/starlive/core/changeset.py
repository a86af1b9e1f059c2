"""
Schema Validator (Changeset)

Casts raw params against a component schema, recursing into component-typed
fields and plain nested mappings, and records which fields actually moved.
A value that is present in the params but equal to the current value is not
a change. Required and choice violations are collected, never raised; the
caller decides whether to apply the best-effort result.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from .fields import ComponentSchema, FieldSpec
from .registry import SchemaRegistry, registry as default_registry
from .types import cast, normalize_type

logger = logging.getLogger(__name__)

ErrorPath = Tuple[Union[str, int], ...]

MAX_INDEX_GAP = 100


@dataclass
class Changeset:
    """Result of casting params against a schema."""
    data: Dict[str, Any]
    schema: ComponentSchema
    params: Dict[str, Any] = field(default_factory=dict)
    changes: Dict[str, Any] = field(default_factory=dict)
    errors: List[Tuple[ErrorPath, str]] = field(default_factory=list)
    action: Optional[str] = None
    registry: SchemaRegistry = field(default=default_registry, repr=False)

    @property
    def valid(self) -> bool:
        return not self.errors

    def changed(self, name: str) -> bool:
        """True if the top-level field `name` moved."""
        if name not in self.changes:
            return False
        value = self.changes[name]
        if isinstance(value, Changeset):
            return bool(value.changes)
        return True

    def changed_fields(self) -> Set[str]:
        return {name for name in self.changes if self.changed(name)}

    def get(self, name: str, default: Any = None) -> Any:
        """Current value of `name`, including pending changes."""
        if name in self.changes:
            value = self.changes[name]
            return value.apply_changes() if isinstance(value, Changeset) else _apply_value(value)
        return self.data.get(name, default)

    def add_error(self, path: Union[str, ErrorPath], message: str) -> "Changeset":
        if isinstance(path, str):
            path = (path,)
        self.errors.append((tuple(path), message))
        return self

    def errors_for(self, name: str) -> List[str]:
        return [msg for path, msg in self.errors if path and path[0] == name]

    def apply_changes(self) -> Dict[str, Any]:
        """Merge changes into the data and fill defaults for absent fields."""
        result = dict(self.data)
        for name, value in self.changes.items():
            result[name] = _apply_value(value)
        return with_defaults(self.schema, result, self.registry)

    def apply_action(self, action: str) -> Tuple[bool, Any]:
        """`(True, state)` when valid, otherwise `(False, changeset)`."""
        self.action = action
        if self.valid:
            return True, self.apply_changes()
        return False, self


def _apply_value(value: Any) -> Any:
    if isinstance(value, Changeset):
        return value.apply_changes()
    if isinstance(value, ManyChanges):
        return [item.apply_changes() if isinstance(item, Changeset) else item for item in value.items]
    return value


@dataclass
class ManyChanges:
    """Per-index changesets of a `many` component field; untouched slots hold their current value."""
    items: List[Any]


def structural_schema(spec: FieldSpec) -> ComponentSchema:
    """Schema for a plain nested mapping type such as `{"min": int, "max": int}`."""
    fields = []
    for name, tp in spec.type.items():
        if isinstance(tp, dict):
            fields.append(FieldSpec(name=name, type=tp))
        else:
            fields.append(FieldSpec(name=name, type=normalize_type(tp)))
    return ComponentSchema(name=spec.name, fields=fields)


def nested_schema(spec: FieldSpec, reg: SchemaRegistry) -> Optional[ComponentSchema]:
    if spec.is_component:
        return reg.related(spec)
    if spec.is_structural:
        return structural_schema(spec)
    return None


def positional(indexed: Dict[Any, Any]) -> List[Any]:
    """
    `{"0": a, "2": b}` -> `[a, None, b]`.

    Indices keep their position. An index more than `MAX_INDEX_GAP` past the
    end built so far is dropped together with every later one.
    """
    items: List[Any] = []
    for key in sorted(indexed, key=int):
        index = int(key)
        if index - len(items) > MAX_INDEX_GAP:
            logger.debug("Dropping list index %d, more than %d past the end", index, MAX_INDEX_GAP)
            break
        items.extend([None] * (index - len(items)))
        items.append(indexed[key])
    return items


def normalize_params(params: Any) -> Dict[str, Any]:
    if not isinstance(params, dict):
        return {}
    return {str(getattr(k, "value", k)): v for k, v in params.items()}


def validate(current_state: Optional[Dict[str, Any]], raw_params: Any, schema: ComponentSchema,
             *, registry: SchemaRegistry = default_registry,
             permitted: Optional[List[str]] = None) -> Changeset:
    """
    Cast `raw_params` against `schema` on top of `current_state`.

    Only fields named in `permitted` are considered (all declared fields by
    default). Returns a changeset; use `apply_changes()` for the validated
    state and `errors` for required/choice violations.
    """
    data = dict(current_state or {})
    params = normalize_params(raw_params)
    cs = Changeset(data=data, schema=schema, params=params, registry=registry)

    for spec in schema.fields:
        if permitted is not None and spec.name not in permitted:
            continue
        if spec.name not in params:
            continue
        raw = params[spec.name]
        current = data.get(spec.name)

        if spec.is_component and spec.is_many:
            _cast_many(cs, spec, raw, current)
        elif spec.is_component or spec.is_structural:
            _cast_nested(cs, spec, raw, current)
        else:
            casted = cast(raw, spec.type)
            if casted is None and raw is not None:
                logger.debug("Dropping uncastable value for %s.%s", schema.name, spec.name)
                casted = spec.default_value()
            if casted != current or spec.name not in data:
                cs.changes[spec.name] = casted

    _validate_constraints(cs)
    return cs


def _cast_nested(cs: Changeset, spec: FieldSpec, raw: Any, current: Any) -> None:
    if raw is None:
        if current is not None:
            cs.changes[spec.name] = None
        return
    if not isinstance(raw, dict):
        return
    nested = nested_schema(spec, cs.registry)
    if nested is None:
        logger.debug("Unresolved schema for %s.%s", cs.schema.name, spec.name)
        return
    base = current if isinstance(current, dict) else {}
    nested_cs = validate(base, raw, nested, registry=cs.registry)
    for path, message in nested_cs.errors:
        cs.errors.append(((spec.name,) + path, message))
    # a freshly opened instance is a change even when every value equals its default
    if nested_cs.changes or not isinstance(current, dict):
        cs.changes[spec.name] = nested_cs


def _cast_many(cs: Changeset, spec: FieldSpec, raw: Any, current: Any) -> None:
    if isinstance(raw, dict) and all(str(k).isdigit() for k in raw):
        raw = positional(raw)
    if not isinstance(raw, list):
        return
    nested = nested_schema(spec, cs.registry)
    if nested is None:
        return
    base_list = current if isinstance(current, list) else []
    items = []
    for idx, value in enumerate(raw):
        current_item = base_list[idx] if idx < len(base_list) else None
        if not isinstance(value, dict):
            # a gap keeps the slot as it is, None when nothing was there
            items.append(current_item)
            continue
        existing = current_item if isinstance(current_item, dict) else {}
        item_cs = validate(existing, value, nested, registry=cs.registry)
        for path, message in item_cs.errors:
            cs.errors.append(((spec.name, idx) + path, message))
        items.append(item_cs)
    many = ManyChanges(items)
    if _apply_value(many) != base_list:
        cs.changes[spec.name] = many


def _validate_constraints(cs: Changeset) -> None:
    for spec in cs.schema.fields:
        value = cs.get(spec.name)
        if spec.required and (value is None or value == ""):
            cs.add_error(spec.name, "can't be blank")
        if spec.choices is not None and value is not None and value not in spec.choices:
            cs.add_error(spec.name, "is invalid")


def validate_required(cs: Changeset, names: List[str]) -> Changeset:
    """Report blank values for `names` in addition to the schema's required fields."""
    for name in names:
        value = cs.get(name)
        if value is None or value == "":
            cs.add_error(name, "can't be blank")
    return cs


def validate_inclusion(cs: Changeset, name: str, allowed) -> Changeset:
    value = cs.get(name)
    if value is not None and value not in allowed:
        cs.add_error(name, "is invalid")
    return cs


def with_defaults(schema: ComponentSchema, state: Dict[str, Any],
                  reg: SchemaRegistry = default_registry) -> Dict[str, Any]:
    """Fill absent fields with their defaults, recursing into present nested instances."""
    result = dict(state)
    for spec in schema.fields:
        if spec.name not in result:
            result[spec.name] = spec.default_value()
            continue
        value = result[spec.name]
        nested = nested_schema(spec, reg) if (spec.is_component or spec.is_structural) else None
        if nested is None:
            continue
        if spec.is_many and isinstance(value, list):
            result[spec.name] = [with_defaults(nested, v, reg) if isinstance(v, dict) else v
                                 for v in value]
        elif isinstance(value, dict):
            result[spec.name] = with_defaults(nested, value, reg)
    return result


def changed_paths(cs: Changeset, prefix: ErrorPath = ()) -> Set[ErrorPath]:
    """Every leaf path that moved, e.g. `{("modal", "open"), ("page",)}`."""
    paths = set()
    for name, value in cs.changes.items():
        if isinstance(value, Changeset):
            nested = changed_paths(value, prefix + (name,))
            paths |= nested or {prefix + (name,)}
        elif isinstance(value, ManyChanges):
            paths.add(prefix + (name,))
        else:
            paths.add(prefix + (name,))
    return paths
