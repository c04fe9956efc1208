"""
Legacy generation orchestrator.

GenerationCoordinator drives a whole run in one loop: extract the schema,
render each table's files, write them through the FileManager batch and
write the barrel index. The staged pipeline in ``codegen.pipeline`` does
the same work; both return a GenerationResult.
"""

import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..logging_config import get_logger
from .core.config import ConfigurationService
from .core.context import ContextValidationError, GenerationContext
from .core.files import FileManager, WriteResult
from .core.generator import (
    GeneratedFile,
    GeneratedModel,
    GenerationResult,
    ModelGenerationError,
    ServiceInitializationError,
)
from .core.schema import SchemaData, SchemaIntrospector, SnapshotIntrospector, Table
from .core.schema_service import SchemaService, TableNotFoundError
from .languages.typescript.generator import INDEX_FILE, TypeScriptModelGenerator
from .registry import ServiceRegistry, build_default_registry

logger = get_logger(__name__)

# Options forwarded into every GenerationContext.
CONTEXT_OPTION_KEYS = ("dry_run", "generate_relationships", "generate_enums", "force")


def build_registry(options: Mapping[str, Any],
                   config: Optional[ConfigurationService] = None,
                   introspector: Optional[SchemaIntrospector] = None) -> ServiceRegistry:
    """
    Load configuration, apply run options and initialize the standard services.

    Raises:
        ServiceInitializationError: No schema source, or a service failed to build
    """
    if config is None:
        config = ConfigurationService(
            environment=options.get("environment"),
            config_file_path=options.get("config_path"),
        )
    config.update_from_generator_options(options)

    if introspector is None:
        source = options.get("schema") or options.get("schema_url")
        if not source:
            raise ServiceInitializationError("No schema source given (schema file or URL)")
        introspector = SnapshotIntrospector(str(source))

    return build_default_registry(config, introspector, options).initialize()


def extract_run_schema(schema_service: SchemaService, options: Mapping[str, Any],
                       config: Optional[ConfigurationService] = None) -> Tuple[SchemaData, List[Table]]:
    """
    Schema for a run and the tables to generate.

    The schema always covers every non-excluded table so relationships to
    tables outside a ``table`` filter still resolve. Validation follows
    ``generator_options.validate_schema`` unless ``options['skip_validation']`` is given.

    Raises:
        TableNotFoundError: The requested table is not available
    """
    if "skip_validation" in options:
        skip_validation = bool(options["skip_validation"])
    else:
        skip_validation = config is not None and not config.validate_schema
    schema = schema_service.extract_filtered(
        exclude_tables=options.get("exclude_tables") or (),
        skip_validation=skip_validation,
    )
    names = requested_tables(options)
    if not names:
        return schema, list(schema.tables)

    tables = []
    for name in names:
        table = schema.table(name)
        if table is None:
            raise TableNotFoundError(name, schema.table_names)
        tables.append(table)
    return schema, tables


def requested_tables(options: Mapping[str, Any]) -> List[str]:
    """Table filter from ``options['table']``: a name, a comma list or a sequence."""
    value = options.get("table")
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [name.strip() for name in value if name and name.strip()]


def context_options(options: Mapping[str, Any], schema: SchemaData,
                    config: ConfigurationService) -> Dict[str, Any]:
    run_options = dict(config.generator_options)
    run_options.update({k: options[k] for k in CONTEXT_OPTION_KEYS if k in options})
    run_options["known_tables"] = tuple(schema.table_names)
    return run_options


def assemble_result(models: Sequence[Tuple[GenerationContext, Iterable[str]]],
                    file_results: Sequence[WriteResult],
                    errors: Sequence[str],
                    started: float,
                    dry_run: bool,
                    pipeline: str,
                    statistics: Optional[Mapping[str, Any]] = None) -> GenerationResult:
    """Build the immutable run result from per-table paths and write outcomes."""
    by_path: Dict[str, GeneratedFile] = {}
    for r in file_results:
        by_path[r.relative_path] = GeneratedFile(
            relative_path=r.relative_path, path=str(r.path), outcome=r.outcome, content=r.content
        )

    generated_models = []
    for context, paths in models:
        files = tuple(by_path[p] for p in paths if p in by_path)
        generated_models.append(GeneratedModel(
            table_name=context.table_name,
            model_name=context.model_name,
            kebab_name=context.kebab_name,
            files=files,
        ))

    all_errors = list(errors)
    all_errors.extend(f"Failed to write {r.relative_path}: {r.error}"
                      for r in file_results if r.outcome == "error")

    return GenerationResult(
        success=not all_errors,
        generated_models=tuple(generated_models),
        generated_files=tuple(by_path.values()),
        errors=tuple(all_errors),
        execution_time=time.perf_counter() - started,
        dry_run=dry_run,
        pipeline=pipeline,
        statistics=dict(statistics or {}),
    )


def write_index(model_generator: TypeScriptModelGenerator, file_manager: FileManager,
                models: Sequence[Tuple[GenerationContext, Iterable[str]]]) -> None:
    descriptors = [
        GeneratedModel(c.table_name, c.model_name, c.kebab_name) for c, _ in models
    ]
    file_manager.write_with_formatting(INDEX_FILE, model_generator.render_index(descriptors))


class GenerationCoordinator:
    """Runs a full generation in a single loop over tables."""

    def __init__(self, options: Optional[Mapping[str, Any]] = None,
                 config: Optional[ConfigurationService] = None,
                 introspector: Optional[SchemaIntrospector] = None,
                 registry: Optional[ServiceRegistry] = None):
        """
        Args:
            options: Run options (schema, table, exclude_tables, dry_run, force,
                output_dir, skip_prettier, polymorphic_config, ...)
            config: Pre-built configuration; loaded from disk when omitted
            introspector: Schema source; built from ``options['schema']`` when omitted
            registry: Pre-built service registry, mostly for tests
        """
        self.options = dict(options or {})
        self.registry = registry or build_registry(self.options, config, introspector)

        self.config: ConfigurationService = self.registry.get("configuration")
        self.schema_service: SchemaService = self.registry.get("schema_service")
        self.file_manager: FileManager = self.registry.get("file_manager")
        self.model_generator: TypeScriptModelGenerator = self.registry.get("model_generator")

    @property
    def dry_run(self) -> bool:
        return self.config.dry_run

    def execute(self) -> GenerationResult:
        """
        Run generation for every selected table.

        Per-table failures are recorded and the run continues; schema
        failures abort.

        Raises:
            SchemaServiceError: Schema could not be extracted or validated
        """
        started = time.perf_counter()
        schema, tables = extract_run_schema(self.schema_service, self.options, self.config)
        run_options = context_options(self.options, schema, self.config)
        logger.info("Generating models for %d tables", len(tables))

        models: List[Tuple[GenerationContext, List[str]]] = []
        errors: List[str] = []

        for table in tables:
            try:
                context = GenerationContext(table=table, schema=schema, options=run_options)
                paths = self.generate_model_set(context)
            except (ModelGenerationError, ContextValidationError) as e:
                logger.error("Skipping %s: %s", table.name, e)
                errors.append(f"{table.name}: {e}")
                continue
            models.append((context, paths))

        self.file_manager.process_batch_files()

        if models and not self.options.get("table"):
            write_index(self.model_generator, self.file_manager, models)

        result = assemble_result(
            models, self.file_manager.results, errors, started,
            dry_run=self.dry_run, pipeline="legacy", statistics=self.statistics(),
        )
        logger.info("Generation finished: %d models, %d files written, %d errors",
                    result.model_count, result.files_written, len(result.errors))
        return result

    def generate_model_set(self, context: GenerationContext) -> List[str]:
        """Render one table's files and queue them for writing. Returns relative paths."""
        files = self.model_generator.generate_model_set(context)
        for path, content in files.items():
            self.file_manager.write_with_formatting(path, content, defer_write=True)
        return list(files)

    def statistics(self) -> Dict[str, Any]:
        return {
            "schema": self.schema_service.performance_stats(),
            "templates": self.model_generator.template_renderer.statistics(),
            "files": self.file_manager.statistics(),
        }


def generate(options: Mapping[str, Any], **kwargs: Any) -> GenerationResult:
    """Convenience wrapper: build a coordinator and execute it."""
    return GenerationCoordinator(options, **kwargs).execute()
