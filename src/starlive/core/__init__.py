from .errors import (
    StarLiveError, SchemaError, SchemaCycleError, UnknownSchemaError,
    PropWriteError, DependencyCycleError, SessionNotFoundError,
)
from .types import cast, dump, register_atoms, atoms, to_plain, normalize_type
from .fields import (
    FieldKind, Persistence, Cardinality, FieldSpec, ComponentSchema,
    prop, state, component, components,
)
from .registry import SchemaRegistry, registry
from .changeset import Changeset, validate, validate_required, validate_inclusion, with_defaults
from .memo import Turn, Stream, Derivation, SessionCache
from .graph import resolve_graph
from .cursor import Cursor, Emitted, JSCommand
from .component import LiveComponent, LiveView, EventInfo, event

__all__ = [
    "StarLiveError", "SchemaError", "SchemaCycleError", "UnknownSchemaError",
    "PropWriteError", "DependencyCycleError", "SessionNotFoundError",
    "cast", "dump", "register_atoms", "atoms", "to_plain", "normalize_type",
    "FieldKind", "Persistence", "Cardinality", "FieldSpec", "ComponentSchema",
    "prop", "state", "component", "components",
    "SchemaRegistry", "registry",
    "Changeset", "validate", "validate_required", "validate_inclusion", "with_defaults",
    "Turn", "Stream", "Derivation", "SessionCache", "resolve_graph",
    "Cursor", "Emitted", "JSCommand",
    "LiveComponent", "LiveView", "EventInfo", "event",
]
