"""
Concrete generation stages.
"""

from collections import Counter

from ...logging_config import get_logger
from ..core.context import ALL_TABLES, GenerationContext
from ..core.files import FileManager
from ..languages.typescript.generator import TypeScriptModelGenerator
from .errors import StageValidationError
from .stage import Stage

logger = get_logger(__name__)


class SchemaAnalysisStage(Stage):
    """Attach the table's relationships and detected patterns."""

    priority = 10

    def can_run(self, context: GenerationContext) -> bool:
        return context.table_name != ALL_TABLES

    def process(self, context: GenerationContext) -> GenerationContext:
        relationships = context.schema.relationships_for(context.table_name)
        context = context.with_relationships(relationships)
        return self.add_stage_metadata(
            context,
            relationship_count=len(relationships.all()),
            polymorphic_count=len(relationships.polymorphic),
            patterns=sorted(context.patterns),
        )


class ValidationStage(Stage):
    """
    Reject tables the generator cannot produce valid TypeScript for.

    A table without columns only logs a warning unless ``strict_mode`` is set.
    """

    priority = 20

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode

    def can_run(self, context: GenerationContext) -> bool:
        return context.table_name != ALL_TABLES

    def process(self, context: GenerationContext) -> GenerationContext:
        table = context.table
        if not table.columns:
            if self.strict_mode:
                raise StageValidationError(self.name, f"Table {table.name} has no columns", context)
            logger.warning("Table %s has no columns", table.name)

        duplicates = sorted(n for n, count in Counter(table.column_names).items() if count > 1)
        if duplicates:
            raise StageValidationError(
                self.name, f"Table {table.name} has duplicate columns: {', '.join(duplicates)}", context
            )
        return self.add_stage_metadata(context, column_count=len(table.columns))


class ModelGenerationStage(Stage):
    """Render the data interface and model files."""

    priority = 30

    def __init__(self, model_generator: TypeScriptModelGenerator):
        self.model_generator = model_generator

    def can_run(self, context: GenerationContext) -> bool:
        return context.table_name != ALL_TABLES

    def process(self, context: GenerationContext) -> GenerationContext:
        files = self.model_generator.generate_model_set(context)
        context = context.with_generated_content(files)
        return self.add_stage_metadata(context, files=sorted(files))


class FileWritingStage(Stage):
    """Queue rendered files on the FileManager batch."""

    priority = 40
    idempotent = False

    def __init__(self, file_manager: FileManager):
        self.file_manager = file_manager

    def can_run(self, context: GenerationContext) -> bool:
        return context.has_generated_content

    def process(self, context: GenerationContext) -> GenerationContext:
        for path, content in sorted(context.generated_content.items()):
            self.file_manager.write_with_formatting(path, content, defer_write=True)
        logger.debug("Queued %d files for %s", len(context.generated_content), context.table_name)
        return self.add_stage_metadata(context, queued=len(context.generated_content))
