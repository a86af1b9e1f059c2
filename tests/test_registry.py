"""Schema registry and component declaration."""

import pytest

from starlive.core.component import LiveComponent, LiveView, event
from starlive.core.errors import SchemaCycleError, UnknownSchemaError
from starlive.core.fields import FieldKind, Persistence, component, prop, state
from starlive.core.registry import SchemaRegistry


class TestDeclaration:
    def test_fields_become_schema(self, schema_registry):
        class Card(LiveComponent, registry=schema_registry):
            title = prop(str)
            open = state(bool, default=False, url=True)
            note: str = state()

        schema = schema_registry["Card"]
        assert schema.field_names == ["title", "open", "note"]
        assert schema.field("title").kind == FieldKind.PROP
        assert schema.field("open").persistence == Persistence.URL
        assert schema.field("note").type == "string"
        assert schema.field("note").persistence == Persistence.SESSION

    def test_events_are_discovered(self, schema_registry):
        class Counter(LiveComponent, registry=schema_registry):
            count = state(int, default=0)

            @event
            def inc(self, cursor):
                cursor.update("count", lambda c: c + 1)

            @event(name="reset-all")
            def reset(self, cursor):
                cursor.assign(count=0)

        assert set(Counter.__events__) == {"inc", "reset-all"}

    def test_views_carry_routes(self, schema_registry):
        class Page(LiveView, route="/items/:category", registry=schema_registry):
            category = state(str, url=True)

        assert schema_registry.views() == [Page.__schema__]
        assert Page.__schema__.route == "/items/:category"

    def test_abstract_bases_are_not_registered(self, schema_registry):
        class Base(LiveComponent, abstract=True, registry=schema_registry):
            shared = state(int)

        class Concrete(Base, registry=schema_registry):
            own = state(str)

        assert "Base" not in schema_registry
        assert schema_registry["Concrete"].field_names == ["shared", "own"]


class TestRegistry:
    def test_unknown_schema(self, schema_registry):
        with pytest.raises(UnknownSchemaError):
            schema_registry["Missing"]
        assert schema_registry.get("Missing") is None

    def test_self_reference_is_rejected(self, schema_registry):
        with pytest.raises(SchemaCycleError):
            class Tree(LiveComponent, registry=schema_registry):
                child = component("Tree")
        assert "Tree" not in schema_registry

    def test_transitive_cycle_is_rejected(self, schema_registry):
        class A(LiveComponent, registry=schema_registry):
            b = component("B")

        with pytest.raises(SchemaCycleError) as info:
            class B(LiveComponent, registry=schema_registry):
                a = component(A)

        assert "B" in info.value.cycle
        assert "B" not in schema_registry
