"""
Pipeline-based generation orchestrator.

Produces the same GenerationResult as the legacy coordinator, but runs
each table through an explicit, reconfigurable stage pipeline.
"""

import time
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ...logging_config import get_logger
from ..coordinator import (
    assemble_result,
    build_registry,
    context_options,
    extract_run_schema,
    write_index,
)
from ..core.config import ConfigurationService
from ..core.context import ContextValidationError, GenerationContext
from ..core.generator import GenerationResult
from ..core.schema import SchemaIntrospector
from ..registry import ServiceRegistry
from .errors import StageError
from .pipeline import Pipeline
from .stages import FileWritingStage, ModelGenerationStage, SchemaAnalysisStage, ValidationStage

logger = get_logger(__name__)


class GenerationPipeline:
    """Runs every selected table through a stage pipeline."""

    def __init__(self, options: Optional[Mapping[str, Any]] = None,
                 config: Optional[ConfigurationService] = None,
                 introspector: Optional[SchemaIntrospector] = None,
                 registry: Optional[ServiceRegistry] = None,
                 pipeline: Optional[Pipeline] = None):
        self.options = dict(options or {})
        self.registry = registry or build_registry(self.options, config, introspector)

        self.config = self.registry.get("configuration")
        self.schema_service = self.registry.get("schema_service")
        self.file_manager = self.registry.get("file_manager")
        self.model_generator = self.registry.get("model_generator")

        self.pipeline = pipeline or self.default_pipeline()
        self.stage_errors: List[StageError] = []

    def default_pipeline(self) -> Pipeline:
        return Pipeline([
            SchemaAnalysisStage(),
            ValidationStage(strict_mode=bool(self.options.get("strict_mode", False))),
            ModelGenerationStage(self.model_generator),
            FileWritingStage(self.file_manager),
        ])

    def execute(self) -> GenerationResult:
        """
        Run the pipeline once per table.

        StageErrors are recorded per table and the run continues; schema
        failures abort.
        """
        started = time.perf_counter()
        schema, tables = extract_run_schema(self.schema_service, self.options, self.config)
        run_options = context_options(self.options, schema, self.config)
        logger.info("Running %r over %d tables", self.pipeline, len(tables))

        models: List[Tuple[GenerationContext, List[str]]] = []
        errors: List[str] = []
        self.stage_errors = []

        for table in tables:
            try:
                context = GenerationContext(table=table, schema=schema, options=run_options)
                context = self.pipeline.execute(context)
            except StageError as e:
                self.stage_errors.append(e)
                errors.append(f"{table.name}: {e}")
                continue
            except ContextValidationError as e:
                errors.append(f"{table.name}: {e}")
                continue
            models.append((context, sorted(context.generated_content)))

        self.file_manager.process_batch_files()

        if models and not self.options.get("table"):
            write_index(self.model_generator, self.file_manager, models)

        return assemble_result(
            models, self.file_manager.results, errors, started,
            dry_run=self.config.dry_run, pipeline="new", statistics=self.statistics(),
        )

    def statistics(self) -> Dict[str, Any]:
        return {
            "pipeline": self.pipeline.statistics(),
            "schema": self.schema_service.performance_stats(),
            "templates": self.model_generator.template_renderer.statistics(),
            "files": self.file_manager.statistics(),
        }
