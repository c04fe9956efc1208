"""
TypeScript model generator.

For each table renders three files: the data interface, the promise-based
ActiveRecord model and the reactive model. A barrel ``index.ts`` is
rendered once per full run.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from ....logging_config import get_logger
from ...core.context import GenerationContext
from ...core.generator import CodeGenerator, GeneratedModel, ModelGenerationError
from ...core.schema import DEFAULT_EXCLUDED_TABLES
from ...core.templates import TemplateError, TemplateRenderer
from .defaults import DefaultValueConverter
from .polymorphic import PolymorphicConfigLoader
from .relationships import RelationshipProcessor
from .types import TypeMapper

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"

DATA_INTERFACE_TEMPLATE = "data_interface.ts.j2"
ACTIVE_MODEL_TEMPLATE = "active_model.ts.j2"
REACTIVE_MODEL_TEMPLATE = "reactive_model.ts.j2"
INDEX_TEMPLATE = "index.ts.j2"

INDEX_FILE = "index.ts"
BASE_OMITTED_KEYS = ("id", "created_at", "updated_at")
DISCARD_COLUMN = "discarded_at"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


@dataclass(frozen=True)
class ModelTemplateContext:
    """Variables shared by the data interface and both model templates."""

    class_name: str
    table_name: str
    kebab_name: str
    primary_key: str
    generated_at: str
    properties: Tuple[str, ...]
    relationship_properties: str
    relationship_imports: str
    relationship_docs: str
    relationship_registration: str
    has_relationships: bool
    omit_keys: str
    supports_discard: bool
    defaults_object: Optional[str] = None
    polymorphic_import: Optional[str] = None
    polymorphic_static_block: Optional[str] = None


@dataclass(frozen=True)
class IndexEntry:
    class_name: str
    kebab_name: str


@dataclass(frozen=True)
class IndexTemplateContext:
    generated_at: str
    models: Tuple[IndexEntry, ...] = field(default_factory=tuple)


def with_trailing_newline(content: str) -> str:
    return content.rstrip("\n") + "\n"


class TypeScriptModelGenerator(CodeGenerator):
    """Generate ActiveRecord-style TypeScript models."""

    def __init__(self, type_mapper: Optional[TypeMapper] = None,
                 default_value_converter: Optional[DefaultValueConverter] = None,
                 polymorphic_loader: Optional[PolymorphicConfigLoader] = None,
                 template_renderer: Optional[TemplateRenderer] = None,
                 excluded_tables: Iterable[str] = DEFAULT_EXCLUDED_TABLES,
                 generator_options: Optional[Mapping[str, Any]] = None,
                 clock: Callable[[], str] = utc_timestamp):
        super().__init__(template_renderer, dict(generator_options or {}))
        self.type_mapper = type_mapper or TypeMapper()
        self.default_value_converter = default_value_converter or DefaultValueConverter()
        self.polymorphic_loader = polymorphic_loader
        self.excluded_tables = list(excluded_tables)
        self.clock = clock

    @property
    def language_name(self) -> str:
        return "typescript"

    @property
    def file_extension(self) -> str:
        return ".ts"

    def get_template_directory(self) -> Path:
        return TEMPLATE_DIR

    def _option(self, context: GenerationContext, name: str, default: bool = True) -> bool:
        if name in context.options:
            return bool(context.options[name])
        return bool(self.config.get(name, default))

    # Template context

    def build_template_context(self, context: GenerationContext) -> ModelTemplateContext:
        """Collect every template variable for one table."""
        table = context.table
        class_name = context.model_name

        if self._option(context, "generate_relationships"):
            processor = RelationshipProcessor(
                context.relationships,
                table.name,
                excluded_tables=self.excluded_tables,
                known_tables=context.options.get("known_tables", context.schema.table_names),
            )
            fragments = processor.process_all()
        else:
            fragments = RelationshipProcessor(None, table.name).process_all()

        polymorphic = None
        type_columns = {}
        if self.polymorphic_loader is not None:
            polymorphic = self.polymorphic_loader.config_for_template(table.name)
            type_columns = self.polymorphic_loader.type_columns_for_table(table.name)

        properties = tuple(self._column_line(context, col, type_columns) for col in table.columns)
        omit_keys = " | ".join(f"'{k}'" for k in (*BASE_OMITTED_KEYS, *fragments.property_names))

        defaults = self.default_value_converter.generate_defaults_object(table.name, table.columns)
        if defaults:
            defaults = defaults.replace("\n", "\n  ")

        supports_discard = table.has_column(DISCARD_COLUMN) or (
            self._option(context, "enable_pattern_detection") and "soft_deletion" in context.patterns
        )

        return ModelTemplateContext(
            class_name=class_name,
            table_name=table.name,
            kebab_name=context.kebab_name,
            primary_key=table.primary_key,
            generated_at=self.clock(),
            properties=properties,
            relationship_properties=fragments.properties,
            relationship_imports=fragments.imports,
            relationship_docs=fragments.documentation,
            relationship_registration=fragments.registration,
            has_relationships=fragments.has_relationships,
            omit_keys=omit_keys,
            supports_discard=supports_discard,
            defaults_object=defaults,
            polymorphic_import=polymorphic["import_statement"] if polymorphic else None,
            polymorphic_static_block=polymorphic["static_block"] if polymorphic else None,
        )

    def _column_line(self, context: GenerationContext, column, type_columns) -> str:
        if column.name in type_columns:
            ts_type = type_columns[column.name].type_union
        elif column.is_enum and self._option(context, "generate_enums"):
            ts_type = self.type_mapper.enum_type(list(column.enum_values))
        else:
            ts_type = self.type_mapper.map_type(column.type)

        optional = "?" if column.null else ""
        comment = f" // {column.comment}" if column.comment else ""
        return f"  {column.name}{optional}: {ts_type};{comment}"

    # Rendering

    def generate_model_set(self, context: GenerationContext) -> Dict[str, str]:
        """
        Render the data interface and both models for one table.

        Returns:
            Mapping of path (relative to the models directory) to content

        Raises:
            ModelGenerationError: A template failed to render
        """
        template_context = self.build_template_context(context)
        filenames = context.typescript_filenames

        try:
            files = {
                filenames["data"]: self.render_template(DATA_INTERFACE_TEMPLATE, template_context),
                filenames["active"]: self.render_template(ACTIVE_MODEL_TEMPLATE, template_context),
                filenames["reactive"]: self.render_template(REACTIVE_MODEL_TEMPLATE, template_context),
            }
        except TemplateError as e:
            raise ModelGenerationError(
                f"Failed to generate models for {context.table_name}: {e}", context.table_name
            ) from e

        logger.debug("Generated %d files for %s", len(files), context.table_name)
        return {path: with_trailing_newline(content) for path, content in files.items()}

    def render_index(self, models: Iterable[GeneratedModel]) -> str:
        """Barrel file exporting every generated model, sorted by file name."""
        entries = sorted(
            {IndexEntry(class_name=m.model_name, kebab_name=m.kebab_name) for m in models},
            key=lambda e: e.kebab_name,
        )
        context = IndexTemplateContext(generated_at=self.clock(), models=tuple(entries))
        return with_trailing_newline(self.render_template(INDEX_TEMPLATE, context))

    def template_variables(self) -> Dict[str, List[str]]:
        """Variables each template expects, for diagnostics."""
        return {
            name: sorted(self.template_renderer.required_variables(name))
            for name in (DATA_INTERFACE_TEMPLATE, ACTIVE_MODEL_TEMPLATE,
                         REACTIVE_MODEL_TEMPLATE, INDEX_TEMPLATE)
        }
