"""Tests for the Jinja2 template renderer."""

from dataclasses import dataclass

import pytest

from zero_models.codegen.core.templates import (
    TemplateNotFoundError,
    TemplateRenderer,
    TemplateRenderingError,
    context_to_dict,
    create_template_renderer,
)


@pytest.fixture
def templates_dir(tmp_path):
    directory = tmp_path / "templates"
    directory.mkdir()
    (directory / "model.ts.j2").write_text(
        "export class {{ name | pascal_case }} {}\n// {{ table | kebab_case }}\n"
    )
    (directory / "note.j2").write_text("{{ text | comment }}\n")
    return directory


@dataclass
class ModelContext:
    name: str
    table: str


class TestTemplateRenderer:
    def test_missing_directory(self, tmp_path):
        with pytest.raises(ValueError, match="does not exist"):
            TemplateRenderer(tmp_path / "missing")

    def test_render_with_dataclass_context(self, templates_dir):
        renderer = TemplateRenderer(templates_dir)
        output = renderer.render("model.ts.j2", ModelContext(name="job_target", table="job_targets"))
        assert output == "export class JobTarget {}\n// job-targets\n"

    def test_render_with_mapping(self, templates_dir):
        renderer = TemplateRenderer(templates_dir)
        assert renderer.render("note.j2", {"text": "one\ntwo"}) == "// one\n// two\n"

    def test_undefined_variable_is_an_error(self, templates_dir):
        """StrictUndefined turns a missing variable into a rendering error."""
        renderer = TemplateRenderer(templates_dir)
        with pytest.raises(TemplateRenderingError) as excinfo:
            renderer.render("model.ts.j2", {"name": "job"})
        assert excinfo.value.template_name == "model.ts.j2"

    def test_missing_template_lists_suggestions(self, templates_dir):
        renderer = TemplateRenderer(templates_dir)
        with pytest.raises(TemplateNotFoundError) as excinfo:
            renderer.render("model.j2", {})
        message = str(excinfo.value)
        assert "Available templates:" in message
        assert "Did you mean:" in message
        assert "  - model.ts.j2" in message

    def test_required_variables(self, templates_dir):
        renderer = TemplateRenderer(templates_dir)
        assert renderer.required_variables("model.ts.j2") == {"name", "table"}

    def test_statistics_count_renders(self, templates_dir):
        renderer = TemplateRenderer(templates_dir)
        renderer.render("note.j2", {"text": "x"})
        renderer.render("note.j2", {"text": "y"})
        assert renderer.statistics()["renders"] == 2

    def test_trim_mode_setting(self, templates_dir):
        (templates_dir / "list.j2").write_text("{% for item in items %}\n{{ item }}\n{% endfor %}\n")
        trimmed = create_template_renderer(templates_dir, {"trim_mode": "-"})
        untrimmed = create_template_renderer(templates_dir, {"trim_mode": ""})
        assert trimmed.render("list.j2", {"items": ["a", "b"]}) == "a\nb\n"
        assert untrimmed.render("list.j2", {"items": ["a", "b"]}) == "\na\n\nb\n\n"

    def test_context_to_dict_rejects_other_types(self):
        with pytest.raises(TypeError):
            context_to_dict(["not", "a", "context"])
