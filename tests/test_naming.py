"""Tests for Rails-style inflection and identifier sanitization."""

import pytest

from zero_models.codegen.core.naming import (
    NameSanitizer,
    NamingCase,
    camelize,
    create_typescript_sanitizer,
    kebab_name_for_table,
    model_name_for_table,
    property_name,
    singularize,
    underscore,
)


class TestSingularize:
    @pytest.mark.parametrize(
        "plural, singular",
        [
            ("users", "user"),
            ("categories", "category"),
            ("addresses", "address"),
            ("statuses", "status"),
            ("people", "person"),
            ("indices", "index"),
            ("metadata", "metadata"),
        ],
    )
    def test_common_inflections(self, plural, singular):
        assert singularize(plural) == singular

    def test_only_last_segment_is_inflected(self):
        """Compound table names keep their leading words as-is."""
        assert singularize("job_people") == "job_person"
        assert singularize("activity_logs") == "activity_log"


class TestTableNames:
    def test_model_name(self):
        assert model_name_for_table("job_targets") == "JobTarget"
        assert model_name_for_table("users") == "User"

    def test_kebab_name(self):
        assert kebab_name_for_table("job_targets") == "job-target"
        assert kebab_name_for_table("client_people") == "client-person"

    def test_property_name(self):
        assert property_name("job_targets") == "jobTargets"
        assert property_name("user") == "user"

    def test_case_helpers(self):
        assert underscore("JobTarget") == "job_target"
        assert camelize("job_target", uppercase_first=False) == "jobTarget"


class TestNameSanitizer:
    def test_reserved_words_get_suffix(self):
        sanitizer = create_typescript_sanitizer()
        assert sanitizer.sanitize_name("class") == "class_"
        assert sanitizer.sanitize_name("default", suffix_on_conflict="Value") == "defaultValue"

    def test_leading_digit_is_prefixed(self):
        sanitizer = NameSanitizer()
        assert sanitizer.sanitize_name("2fa_enabled") == "_2faEnabled"

    def test_empty_name_falls_back(self):
        assert NameSanitizer().sanitize_name("!!!") == "field"

    def test_target_cases(self):
        sanitizer = NameSanitizer()
        assert sanitizer.sanitize_name("job target", NamingCase.SNAKE_CASE) == "job_target"
        assert sanitizer.sanitize_name("job_target", NamingCase.PASCAL_CASE) == "JobTarget"
        assert sanitizer.sanitize_name("job_target", NamingCase.KEBAB_CASE) == "job-target"
