"""
Schema registry

A plain mapping from component identifier to its schema. Component classes
register themselves when they are defined; the validator, codec and router
resolve component-typed fields through it instead of reflecting on classes.
"""

import logging
from typing import Dict, Iterator, List, Optional

from .errors import SchemaCycleError, UnknownSchemaError
from .fields import ComponentSchema, FieldSpec

logger = logging.getLogger(__name__)


class SchemaRegistry:
    """Registry of component schemas keyed by component name."""

    def __init__(self):
        self._schemas: Dict[str, ComponentSchema] = {}

    def register(self, schema: ComponentSchema) -> ComponentSchema:
        """
        Register `schema`, replacing any previous schema with the same name.

        Raises:
            SchemaCycleError: if the schema reaches itself through its
                component-typed fields. The registry is left unchanged.
        """
        self._check_cycles(schema)
        if schema.name in self._schemas:
            logger.debug("Re-registering component schema %s", schema.name)
        self._schemas[schema.name] = schema
        return schema

    def unregister(self, name: str) -> None:
        self._schemas.pop(name, None)

    def get(self, name: str) -> Optional[ComponentSchema]:
        return self._schemas.get(name)

    def __getitem__(self, name: str) -> ComponentSchema:
        try:
            return self._schemas[name]
        except KeyError:
            raise UnknownSchemaError(f"No component schema registered as {name!r}") from None

    def __contains__(self, name: str) -> bool:
        return name in self._schemas

    def __iter__(self) -> Iterator[ComponentSchema]:
        return iter(self._schemas.values())

    def __len__(self) -> int:
        return len(self._schemas)

    def related(self, spec: FieldSpec) -> Optional[ComponentSchema]:
        """Schema of a component-typed field, or None when unresolved."""
        name = spec.related_name
        return self._schemas.get(name) if name else None

    def views(self) -> List[ComponentSchema]:
        """Page-level schemas, i.e. the ones carrying a route pattern."""
        return [s for s in self._schemas.values() if s.route]

    def _check_cycles(self, schema: ComponentSchema) -> None:
        def lookup(name: str) -> Optional[ComponentSchema]:
            if name == schema.name:
                return schema
            return self._schemas.get(name)

        def visit(current: ComponentSchema, trail: List[str]) -> None:
            for name in current.related_names():
                if name == schema.name:
                    raise SchemaCycleError(trail + [name])
                if name in trail:
                    continue
                nested = lookup(name)
                if nested is not None:
                    visit(nested, trail + [name])

        visit(schema, [schema.name])


registry = SchemaRegistry()
