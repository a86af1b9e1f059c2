"""Rendered output, annotation and reading stamped state back."""

import pytest
from fastcore.xml import Div, Span

from starlive.core.component import LiveComponent, LiveView
from starlive.core.fields import component, state
from starlive.core.registry import SchemaRegistry
from starlive.render.annotator import annotate_component, encode_value, inject, state_attributes, wrap_page
from starlive.render.context import RenderContext
from starlive.render.reader import canonical_urls, read_annotations
from starlive.render.rendered import Rendered

reg = SchemaRegistry()


class Modal(LiveComponent, registry=reg):
    open = state(bool, default=False, url=True)
    tab = state(str, default="info")
    secret = state(str, persist="none")

    def render(self, assigns):
        return Rendered.template(['<div class="modal">', "</div>"], assigns["tab"])


class Page(LiveView, route="/items/:category", registry=reg):
    category = state(str, default="all", url=True)
    page = state(int, default=1, url=True)
    x = component(Modal)
    y = component(Modal)
    draft = component(Modal, persist="session")
    scratch = component(Modal, persist="none")

    def render(self, assigns, ctx):
        return Rendered.template(["<main><h1>", "</h1>", "", "", "", "</main>"], assigns["category"],
                                 ctx.child("x"), ctx.child("y"), ctx.child("draft"), ctx.child("scratch"))


def page_state(**overrides):
    base = {"category": "all", "page": 1, "x": None, "y": None, "draft": None, "scratch": None}
    base.update(overrides)
    return base


def render_page(state):
    ctx = RenderContext(Page.__schema__, state, registry=reg)
    return wrap_page(ctx.render(), Page.__schema__, state, Page.__schema__.route)


class TestRendered:
    def test_compose_splits_static_and_dynamic(self):
        r = Rendered.compose("<p>", "<b>", 5, "</p>")
        assert r.static == ["<p><b>", "</p>"]
        assert r.dynamic == [5]
        assert r.to_html() == "<p><b>5</p>"

    def test_dynamic_values_are_escaped(self):
        assert Rendered.compose("<p>", ["<a>", 1], "</p>").to_html() == "<p>&lt;a&gt;1</p>"
        assert "a&lt;b" in Rendered.compose("<p>", Span("a<b"), "</p>").to_html()

    def test_template_keeps_strings_dynamic(self):
        first = Rendered.template(["<h1>", "</h1>"], "a")
        second = Rendered.template(["<h1>", "</h1>"], "b")
        assert first.fingerprint == second.fingerprint
        assert second.diff(first) == {0: "b"}
        assert second.diff(second) == {}

    def test_diff_structural_change(self):
        assert Rendered.compose("<p>", 1).diff(Rendered.compose("<div>", 1)) is None

    def test_length_invariant(self):
        with pytest.raises(ValueError):
            Rendered(static=["a"], dynamic=[1])


class TestAnnotator:
    def test_fingerprint_stable_across_state(self):
        schema = Modal.__schema__
        first = annotate_component(Modal.instance().render({"tab": "info"}), schema,
                                   {"open": False, "tab": "info"}, ("x",))
        second = annotate_component(Modal.instance().render({"tab": "info"}), schema,
                                    {"open": True, "tab": "info"}, ("x",))
        assert first.fingerprint == second.fingerprint
        assert first.static == second.static
        assert second.diff(first) == {0: second.dynamic[0]}

    def test_attributes_in_root_tag(self):
        r = annotate_component(Modal.instance().render({"tab": "info"}), Modal.__schema__,
                               {"open": True, "tab": "info", "secret": "s"}, ("x",))
        assert r.to_html() == ('<div class="modal" lv-path="x" lv-url-open="true" '
                               'lv-data-tab="&quot;info&quot;">info</div>')

    def test_values_are_json_then_escaped(self):
        assert encode_value('a"b<') == "&quot;a\\&quot;b&lt;&quot;"
        assert encode_value({"k": [1, None]}) == "{&quot;k&quot;:[1,null]}"

    def test_text_without_element_is_wrapped(self):
        r = inject(Rendered.compose("plain ", "text"), 'lv-path="x"')
        assert r.to_html() == '<div lv-path="x">plain text</div>'

    def test_self_closing_root(self):
        r = inject(Rendered.from_value("<input/>"), 'lv-path="x"')
        assert r.to_html() == '<input lv-path="x"/>'

    def test_quoted_angle_brackets_stay_in_attributes(self):
        r = inject(Rendered.template(['<div data-x="a>b" title=\'c>d\'>', "</div>"], "body"), 'lv-path="x"')
        assert r.to_html() == '<div data-x="a>b" title=\'c>d\' lv-path="x">body</div>'
        r = inject(Rendered.template(['<a title="', ' > x">go</a>'], "t"), 'lv-path="x"')
        assert r.to_html() == '<a title="t > x" lv-path="x">go</a>'

    def test_omit_defaults_keeps_listed_fields(self):
        attrs = state_attributes(Page.__schema__, page_state(), omit_defaults=True, keep=["category"])
        assert attrs == {"lv-url-category": "&quot;all&quot;"}

    def test_ft_output_is_rendered(self):
        r = annotate_component(Div("hi", cls="c"), Modal.__schema__, {"open": False, "tab": "t"}, ("x",))
        assert r.to_html().startswith('<div class="c" lv-path="x"')


class TestPageRender:
    def test_page_container_carries_route(self):
        html = render_page(page_state(category="books")).to_html()
        assert html.startswith('<div id="lv-page-params" lv-route="/items/:category" '
                               'lv-url-category="&quot;books&quot;">')
        assert html.endswith("</main></div>")

    def test_absent_children_render_nothing(self):
        html = render_page(page_state()).to_html()
        assert "lv-path" not in html

    def test_page_fingerprint_stable(self):
        first = render_page(page_state(x={"open": False, "tab": "info"}))
        second = render_page(page_state(category="books", x={"open": True, "tab": "info"}))
        assert first.fingerprint == second.fingerprint

    def test_session_component_demotes_url_fields(self):
        html = render_page(page_state(draft={"open": True, "tab": "a"}, scratch={"open": True, "tab": "b"})).to_html()
        assert 'lv-path="draft" lv-data-open="true" lv-data-tab="&quot;a&quot;"' in html
        assert '<div class="modal" lv-path="scratch">b</div>' in html


class TestReader:
    def test_rebuilds_primary_and_combined_urls(self):
        html = render_page(page_state(category="books", x={"open": True, "tab": "info"})).to_html()
        primary, combined = canonical_urls(html)
        assert primary == "/items/books?x[open]=true"
        assert combined == "/items/books?x[open]=true&x[tab]=info"

    def test_sibling_instances_stay_apart(self):
        html = render_page(page_state(x={"open": True, "tab": "info"}, y={"open": False, "tab": "info"})).to_html()
        annotations = read_annotations(html)
        assert annotations.url == {"category": "all", "x": {"open": True}, "y": {"open": False}}

    def test_markup_without_container(self):
        assert canonical_urls("<p>nothing</p>") == (None, None)
