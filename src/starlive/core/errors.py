"""
StarLive error hierarchy.

Untrusted input (URL query strings, round-tripped attributes, stale event
paths) never raises. These exceptions are reserved for configuration
mistakes that should fail at declaration time and for programming errors.
"""


class StarLiveError(Exception):
    """Base class for all StarLive errors."""


class SchemaError(StarLiveError):
    """Invalid component schema declaration."""


class SchemaCycleError(SchemaError):
    """A component declares itself, directly or transitively, as a component-typed field."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__("Cyclic component schema: " + " -> ".join(cycle))


class UnknownSchemaError(SchemaError):
    """A component-typed field references a schema that was never registered."""


class PropWriteError(StarLiveError):
    """A component tried to write one of its own props."""

    def __init__(self, component: str, field: str):
        self.component = component
        self.field = field
        super().__init__(f"{component}.{field} is a prop and can only be set by the parent")


class DependencyCycleError(StarLiveError):
    """The producers handed to resolve_graph depend on each other in a loop."""


class SessionNotFoundError(StarLiveError):
    """No live session exists for the given id."""
