"""Tests for column default conversion."""

import pytest

from zero_models.codegen.core.schema import Column
from zero_models.codegen.languages.typescript.defaults import DefaultValueConverter


def column(type_, default, name="value"):
    return Column(name=name, type=type_, default=default)


class TestDefaultValueConverter:
    @pytest.fixture
    def converter(self):
        return DefaultValueConverter()

    @pytest.mark.parametrize("default", ["gen_random_uuid()", "now()", "CURRENT_TIMESTAMP", "-> { Time.current }"])
    def test_runtime_functions_have_no_literal(self, converter, default):
        assert converter.convert_default(column("string", default)) is None

    def test_strings_are_quoted_and_escaped(self, converter):
        assert converter.convert_default(column("string", "active")) == "'active'"
        assert converter.convert_default(column("text", "it's")) == "'it\\'s'"

    def test_numbers(self, converter):
        assert converter.convert_default(column("integer", "0")) == "0"
        assert converter.convert_default(column("decimal", 1.5)) == "1.5"

    def test_invalid_number_is_skipped(self, converter):
        """Unparseable numeric defaults are logged and dropped."""
        assert converter.convert_default(column("integer", "abc")) is None
        assert converter.convert_default(column("integer", True)) is None

    @pytest.mark.parametrize("raw, expected", [("t", "true"), ("1", "true"), (False, "false"), ("f", "false")])
    def test_booleans(self, converter, raw, expected):
        assert converter.convert_default(column("boolean", raw)) == expected

    def test_json(self, converter):
        assert converter.convert_default(column("jsonb", '{"a": [1, 2]}')) == '{"a":[1,2]}'
        assert converter.convert_default(column("json", {"b": True})) == '{"b":true}'
        assert converter.convert_default(column("jsonb", "not json")) == "{}"

    def test_dates(self, converter):
        assert converter.convert_default(column("date", "2024-01-31")) == "'2024-01-31'"
        assert converter.convert_default(column("datetime", "yesterday")) == "null"

    def test_defaults_object_is_sorted(self, converter):
        columns = [
            column("string", "active", name="status"),
            column("integer", "3", name="priority"),
            column("uuid", "gen_random_uuid()", name="id"),
            Column(name="title", type="string"),
        ]
        rendered = converter.generate_defaults_object("jobs", columns)
        assert rendered == "{\n  priority: 3,\n  status: 'active',\n}"

    def test_defaults_object_none_without_defaults(self, converter):
        assert converter.generate_defaults_object("jobs", [Column(name="title", type="string")]) is None
