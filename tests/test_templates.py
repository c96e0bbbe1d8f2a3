"""Tests for the TemplateValue interpreter."""

import pytest

from services.execution import (
    MISSING,
    LiteralValue,
    Placeholder,
    TemplateList,
    TemplateMap,
    parse_template,
    render_query_params,
    render_template,
)


class TestParseTemplate:

    def test_placeholder(self):
        assert parse_template("{query}") == Placeholder("query")

    def test_embedded_braces_are_literal(self):
        assert parse_template("Hello {name}") == LiteralValue("Hello {name}")
        assert parse_template("{}") == LiteralValue("{}")

    def test_nested_structure(self):
        template = parse_template({"q": "{query}", "tags": ["{tag}", "fixed"], "limit": 10})
        assert template == TemplateMap((
            ("q", Placeholder("query")),
            ("tags", TemplateList((Placeholder("tag"), LiteralValue("fixed")))),
            ("limit", LiteralValue(10)),
        ))


class TestRenderTemplate:

    def test_substitutes_values_keeping_type(self):
        template = parse_template({"count": "{n}", "payload": "{data}"})
        assert render_template(template, {"n": 5, "data": {"a": [1]}}) == {"count": 5, "payload": {"a": [1]}}

    def test_missing_placeholder_is_omitted_from_maps(self):
        template = parse_template({"q": "{query}", "page": "{page}"})
        assert render_template(template, {"query": "cats"}) == {"q": "cats"}

    def test_missing_placeholder_is_null_in_lists(self):
        template = parse_template(["{a}", "{b}"])
        assert render_template(template, {"a": 1}) == [1, None]

    def test_missing_placeholder_at_top_level(self):
        assert render_template(parse_template("{absent}"), {}) is MISSING

    def test_dotted_placeholder_reads_nested_args(self):
        template = parse_template({"id": "{user.id}"})
        assert render_template(template, {"user": {"id": 42}}) == {"id": 42}

    def test_literal_key_with_dot_takes_precedence(self):
        template = parse_template("{user.id}")
        assert render_template(template, {"user.id": "flat", "user": {"id": "nested"}}) == "flat"

    def test_null_argument_is_kept(self):
        assert render_template(parse_template({"v": "{v}"}), {"v": None}) == {"v": None}


class TestRenderQueryParams:

    def test_stringifies_values(self):
        template = parse_template({"q": "{query}", "limit": 10, "exact": "{exact}"})
        params = render_query_params(template, {"query": "cats", "exact": True})
        assert params == {"q": "cats", "limit": "10", "exact": "true"}

    def test_drops_missing_and_null(self):
        template = parse_template({"q": "{query}", "page": "{page}"})
        assert render_query_params(template, {"page": None}) == {}

    def test_rejects_non_object(self):
        with pytest.raises(TypeError):
            render_query_params(parse_template(["{a}"]), {"a": 1})
