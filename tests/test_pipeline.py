"""Tests for the stage pipeline and the pipeline-based orchestrator."""

import pytest

from zero_models.codegen.coordinator import generate
from zero_models.codegen.core.context import GenerationContext
from zero_models.codegen.core.files import FileManager
from zero_models.codegen.core.schema import Column, SchemaData, StaticIntrospector, Table
from zero_models.codegen.core.templates import TemplateRenderingError
from zero_models.codegen.languages.typescript.generator import TypeScriptModelGenerator
from zero_models.codegen.pipeline import (
    ErrorCategory,
    ErrorSeverity,
    FileWritingStage,
    GenerationPipeline,
    ModelGenerationStage,
    Pipeline,
    PipelineError,
    SchemaAnalysisStage,
    Stage,
    StageError,
    StageValidationError,
    ValidationStage,
)
from zero_models.codegen.pipeline.errors import categorize


class TagStage(Stage):
    """Records its tag in the context metadata."""

    def __init__(self, tag):
        self.tag = tag

    @property
    def name(self):
        return f"Tag{self.tag}"

    def process(self, context):
        order = list(context.metadata.get("order", ()))
        return context.with_metadata(order=[*order, self.tag])


class ExplodingStage(Stage):
    """Raises the configured error."""

    def __init__(self, error):
        self.error = error

    def process(self, context):
        raise self.error


class BadOutputStage(Stage):
    def process(self, context):
        return {"not": "a context"}


@pytest.fixture
def user_context(schema):
    return GenerationContext(table=schema.table("users"), schema=schema)


class TestPipeline:
    def test_runs_stages_in_order(self, user_context):
        pipeline = Pipeline([TagStage("a"), TagStage("b")])
        assert pipeline.execute(user_context).metadata["order"] == ["a", "b"]

    def test_composition_returns_new_pipelines(self):
        """The original pipeline is unchanged by with/without/replace."""
        base = Pipeline([TagStage("a")])
        extended = base.with_stage(TagStage("b")).with_stage(TagStage("first"), position=0)
        assert base.stage_names == ["Taga"]
        assert extended.stage_names == ["Tagfirst", "Taga", "Tagb"]
        assert extended.without_stage("Taga").stage_names == ["Tagfirst", "Tagb"]
        assert extended.replace_stage("Tagb", TagStage("c")).stage_names == ["Tagfirst", "Taga", "Tagc"]
        assert extended.has_stage(TagStage)

    def test_replace_missing_stage(self):
        with pytest.raises(PipelineError, match="No stage matching"):
            Pipeline([TagStage("a")]).replace_stage("Missing", TagStage("b"))

    def test_rejects_non_stages(self):
        with pytest.raises(PipelineError, match="not a valid stage"):
            Pipeline([object()])

    def test_errors_are_wrapped(self, user_context):
        pipeline = Pipeline([ExplodingStage(FileNotFoundError("template dir missing"))])
        with pytest.raises(StageError) as excinfo:
            pipeline.execute(user_context)
        error = excinfo.value
        assert error.stage_name == "ExplodingStage"
        assert error.table_name == "users"
        assert error.category == ErrorCategory.IO
        assert error.recoverable
        assert error.severity == ErrorSeverity.LOW
        assert pipeline.statistics()["stage_errors"] == {"ExplodingStage": 1}

    def test_invalid_output(self, user_context):
        with pytest.raises(StageValidationError, match="returned dict"):
            Pipeline([BadOutputStage()]).execute(user_context)

    def test_skipped_stages(self, schema):
        context = GenerationContext.for_run(schema)
        pipeline = Pipeline([SchemaAnalysisStage()])
        assert pipeline.execute(context) is context
        assert pipeline.statistics()["stages_skipped"] == 1


class TestCategorize:
    @pytest.mark.parametrize(
        "error, category",
        [
            (OSError("disk full"), ErrorCategory.IO),
            (KeyError("users"), ErrorCategory.DATA),
            (ValueError("bad value"), ErrorCategory.VALIDATION),
            (TemplateRenderingError("undefined", "x.j2"), ErrorCategory.TEMPLATE),
            (RuntimeError("column is missing"), ErrorCategory.DATA),
            (RuntimeError("transformation failed"), ErrorCategory.PROCESSING),
            (RuntimeError("???"), ErrorCategory.UNKNOWN),
            (None, ErrorCategory.UNKNOWN),
        ],
    )
    def test_categories(self, error, category):
        assert categorize(error) == category

    def test_error_report(self, user_context):
        error = StageError("ModelGenerationStage", "boom", RuntimeError("???"), user_context)
        report = error.error_report()
        assert report["severity"] == "critical"
        assert report["recoverable"] is False
        assert report["original_error"] == {"type": "RuntimeError", "message": "???"}
        assert report["context"]["table_name"] == "users"


class TestStages:
    def test_schema_analysis(self, schema):
        context = GenerationContext(table=schema.table("jobs"), schema=schema)
        result = SchemaAnalysisStage().process(context)
        metadata = result.metadata["SchemaAnalysisStage"]
        assert metadata["relationship_count"] == 2
        assert metadata["patterns"] == ["soft_deletion"]

    def test_validation_warns_on_empty_tables(self, caplog):
        schema = SchemaData(tables=(Table(name="empty"),))
        context = GenerationContext(table=schema.table("empty"), schema=schema)
        with caplog.at_level("WARNING", logger="zero_models"):
            result = ValidationStage().process(context)
        assert result.metadata["ValidationStage"]["column_count"] == 0
        assert "Table empty has no columns" in caplog.text

    def test_strict_validation_rejects_empty_tables(self):
        schema = SchemaData(tables=(Table(name="empty"),))
        context = GenerationContext(table=schema.table("empty"), schema=schema)
        with pytest.raises(StageValidationError, match="has no columns"):
            ValidationStage(strict_mode=True).process(context)

    def test_validation_rejects_duplicate_columns(self):
        table = Table(name="dupes", columns=(Column("id", "uuid"), Column("id", "uuid")))
        context = GenerationContext(table=table, schema=SchemaData(tables=(table,)))
        with pytest.raises(StageValidationError, match="duplicate columns: id"):
            ValidationStage().process(context)

    def test_generation_and_writing(self, user_context, tmp_path):
        manager = FileManager(tmp_path)
        pipeline = Pipeline([
            SchemaAnalysisStage(),
            ValidationStage(),
            ModelGenerationStage(TypeScriptModelGenerator()),
            FileWritingStage(manager),
        ])
        result = pipeline.execute(user_context)
        assert sorted(result.generated_content) == ["reactive-user.ts", "types/user-data.ts", "user.ts"]
        assert manager.pending_count == 3
        manager.process_batch_files()
        assert (tmp_path / "user.ts").exists()

    def test_writing_skips_empty_contexts(self, user_context, tmp_path):
        assert not FileWritingStage(FileManager(tmp_path)).can_run(user_context)


class TestGenerationPipeline:
    def test_full_run(self, introspector, run_options, output_dir):
        runner = GenerationPipeline(run_options, introspector=introspector)
        result = runner.execute()
        assert result.success, result.errors
        assert result.pipeline == "new"
        assert result.model_count == 3
        assert (output_dir / "index.ts").exists()
        assert result.statistics["pipeline"]["executions_count"] == 3

    def test_failing_table_is_reported(self, raw_schema, run_options):
        """A table that fails validation is skipped; the others are generated."""
        raw_schema["tables"].append({
            "name": "dupes",
            "columns": [{"name": "id", "type": "uuid"}, {"name": "id", "type": "uuid"}],
        })
        runner = GenerationPipeline(run_options, introspector=StaticIntrospector(raw_schema))
        result = runner.execute()
        assert not result.success
        assert result.model_count == 3
        assert any(e.startswith("dupes: ") for e in result.errors)
        assert runner.stage_errors[0].category == ErrorCategory.VALIDATION

    def test_table_without_columns_matches_legacy(self, raw_schema, run_options):
        """Both paths generate a table whose column list is empty."""
        raw_schema["tables"].append({"name": "widgets", "columns": []})
        options = {**run_options, "dry_run": True}
        legacy = generate(options, introspector=StaticIntrospector(raw_schema))
        new = GenerationPipeline(options, introspector=StaticIntrospector(raw_schema)).execute()
        assert legacy.success, legacy.errors
        assert new.success, new.errors
        assert set(legacy.file_contents()) == set(new.file_contents())

    def test_strict_mode_rejects_table_without_columns(self, raw_schema, run_options):
        raw_schema["tables"].append({"name": "widgets", "columns": []})
        options = {**run_options, "dry_run": True, "strict_mode": True}
        result = GenerationPipeline(options, introspector=StaticIntrospector(raw_schema)).execute()
        assert not result.success
        assert any(e.startswith("widgets: ") for e in result.errors)

    def test_custom_pipeline(self, introspector, run_options):
        runner = GenerationPipeline({**run_options, "dry_run": True}, introspector=introspector)
        runner.pipeline = runner.pipeline.without_stage(ValidationStage)
        result = runner.execute()
        assert result.success
        assert "ValidationStage" not in runner.pipeline.stage_names

    def test_matches_legacy_output(self, introspector, run_options):
        legacy = generate({**run_options, "dry_run": True}, introspector=introspector)
        new = GenerationPipeline({**run_options, "dry_run": True}, introspector=introspector).execute()
        assert set(legacy.file_contents()) == set(new.file_contents())
