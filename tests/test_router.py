"""Path-addressed event routing."""

import pytest

from starlive.app.router import (
    COMPONENT_ACTION, dispatch, dispatch_event, resolve_path, run_hook, split_path, walk_instances,
)
from starlive.core.component import LiveComponent, LiveView, event
from starlive.core.cursor import Emitted
from starlive.core.errors import PropWriteError
from starlive.core.fields import component, components, prop, state
from starlive.core.registry import SchemaRegistry

reg = SchemaRegistry()


class Editor(LiveComponent, registry=reg):
    item_id = prop(int)
    text = state(str, default="", url=True)

    @event
    def save(self, text: str, cursor):
        cursor.assign(text=text)
        cursor.emit("saved", {"text": text})

    @event
    def touch_prop(self, cursor):
        cursor.assign(item_id=99)

    @event
    def shout(self, cursor):
        cursor.emit("unmapped", 1)
        cursor.push_js("focus", selector="#editor")

    def mount(self, cursor):
        cursor.assign(text=cursor["text"] or "mounted")


class Row(LiveComponent, registry=reg):
    label = state(str, default="")
    saved_count = state(int, default=0)
    editor = component(Editor, events={"saved": "child_saved"})

    @event
    def child_saved(self, text: str, cursor):
        cursor.assign(label=text, saved_count=cursor["saved_count"] + 1)


class Board(LiveView, route="/board", registry=reg):
    title = state(str, default="")
    a = component(Row)
    b = component(Row)
    rows = components(Row)

    @event
    def rename(self, title: str, cursor):
        cursor.assign(title=title)
        return "renamed"


SCHEMA = Board.__schema__


@pytest.fixture
def root():
    return {
        "title": "",
        "a": {"label": "", "saved_count": 0, "editor": {"item_id": 1, "text": ""}},
        "b": {"label": "", "saved_count": 0, "editor": {"item_id": 2, "text": "keep"}},
        "rows": [
            {"label": "r0", "saved_count": 0, "editor": None},
            {"label": "r1", "saved_count": 0, "editor": {"item_id": 3, "text": ""}},
        ],
    }


class TestResolvePath:
    def test_split(self):
        assert split_path("rows/1/editor") == ["rows", "1", "editor"]
        assert split_path(None) == []
        assert split_path(["a"]) == ["a"]

    def test_many_consumes_index(self, root):
        frames = resolve_path(SCHEMA, root, "rows/1/editor", reg)
        assert [f.path for f in frames] == [(), ("rows", 1), ("rows", 1, "editor")]

    @pytest.mark.parametrize("path", [["nope"], ["title"], ["rows", 5], ["rows"], ["rows", "x"],
                                      ["rows", 0, "editor"]])
    def test_dangling_paths(self, root, path):
        assert resolve_path(SCHEMA, root, path, reg) is None

    def test_walk_is_parents_first(self, root):
        paths = [p for p, _, _ in walk_instances(SCHEMA, root, registry=reg)]
        assert paths == [(), ("a",), ("a", "editor"), ("b",), ("b", "editor"),
                         ("rows", 0), ("rows", 1), ("rows", 1, "editor")]


@pytest.mark.asyncio
class TestDispatch:
    async def test_root_event(self, root):
        result, new_state = await dispatch(SCHEMA, None, "rename", {"title": "Board"}, root, registry=reg)
        assert result == "renamed"
        assert new_state["title"] == "Board"
        assert root["title"] == ""

    async def test_nested_event_leaves_siblings_untouched(self, root):
        result = await dispatch_event(SCHEMA, ["a", "editor"], "save", {"text": "hi"}, root, registry=reg)
        assert result.state["a"]["editor"]["text"] == "hi"
        assert result.state["b"] is root["b"]
        assert result.state["rows"] is root["rows"]
        assert root["a"]["editor"]["text"] == ""

    async def test_emitted_event_bubbles_to_mapped_parent(self, root):
        result = await dispatch_event(SCHEMA, "a/editor", "save", {"text": "hi"}, root, registry=reg)
        assert result.state["a"]["label"] == "hi"
        assert result.state["a"]["saved_count"] == 1
        assert result.emitted == []
        assert result.changed == {
            "a/editor": {"text"},
            "a": {"editor", "label", "saved_count"},
            "": {"a"},
        }

    async def test_unmapped_emission_is_returned(self, root):
        result = await dispatch_event(SCHEMA, "a/editor", "shout", {}, root, registry=reg)
        assert result.emitted == [Emitted(name="unmapped", value=1, source=("a", "editor"))]
        assert result.js[0].command == "focus"
        assert result.js[0].args == {"selector": "#editor"}
        assert result.state is root

    async def test_many_instance(self, root):
        result = await dispatch_event(SCHEMA, "rows/1/editor", "save", {"text": "x"}, root, registry=reg)
        assert result.state["rows"][1]["label"] == "x"
        assert result.state["rows"][0] is root["rows"][0]

    @pytest.mark.parametrize("path", [["missing"], ["rows", 7], ["rows", 0, "editor"]])
    async def test_unknown_path_is_a_noop(self, root, path):
        result, new_state = await dispatch(SCHEMA, path, "save", {"text": "x"}, root, registry=reg)
        assert result is None
        assert new_state is root

    async def test_unknown_event_is_a_noop(self, root):
        result = await dispatch_event(SCHEMA, ["a"], "nothing", {}, root, registry=reg)
        assert result.state is root

    async def test_prop_write_raises(self, root):
        with pytest.raises(PropWriteError):
            await dispatch_event(SCHEMA, ["a", "editor"], "touch_prop", {}, root, registry=reg)


@pytest.mark.asyncio
class TestComponentAction:
    async def test_assigns_validated_values(self, root):
        result = await dispatch_event(SCHEMA, ["a"], COMPONENT_ACTION,
                                      {"label": "quick", "saved_count": "3"}, root, registry=reg)
        assert result.state["a"]["label"] == "quick"
        assert result.state["a"]["saved_count"] == 3

    async def test_props_are_not_assignable(self, root):
        result = await dispatch_event(SCHEMA, ["a", "editor"], COMPONENT_ACTION,
                                      {"item_id": "42", "text": "t"}, root, registry=reg)
        assert result.state["a"]["editor"] == {"item_id": 1, "text": "t"}


@pytest.mark.asyncio
class TestRunHook:
    async def test_hook_on_nested_instance(self, root):
        result = await run_hook(SCHEMA, root, ("rows", 1, "editor"), "mount", registry=reg)
        assert result.state["rows"][1]["editor"]["text"] == "mounted"
        assert result.changed["rows/1/editor"] == {"text"}

    async def test_hook_on_missing_instance(self, root):
        result = await run_hook(SCHEMA, root, ("rows", 0, "editor"), "mount", registry=reg)
        assert result.state is root
        assert not result.handled
