"""
Zero model code generation.

Generates TypeScript data interfaces and ActiveRecord-style model classes
from a Rails schema snapshot.
"""

from .coordinator import GenerationCoordinator, generate
from .core.config import ConfigurationService
from .core.generator import GenerationResult
from .core.schema import StaticIntrospector
from .pipeline import GenerationPipeline
from .registry import ServiceRegistry, build_default_registry

PIPELINES = ("legacy", "new", "auto")


def generate_models(schema, pipeline="legacy", **options):
    """
    Generate models from a schema snapshot.

    Args:
        schema: Path or URL of a schema snapshot, or an already-loaded dict
        pipeline: ``legacy``, ``new`` or ``auto`` (route through the migration flags)
        **options: Run options (table, exclude_tables, output_dir, dry_run, ...)

    Returns:
        GenerationResult for the run
    """
    if pipeline not in PIPELINES:
        raise ValueError(f"Unknown pipeline {pipeline!r}, expected one of {', '.join(PIPELINES)}")

    if isinstance(schema, dict):
        introspector = StaticIntrospector(schema)
        runner_kwargs = {"introspector": introspector}
    else:
        options["schema"] = str(schema)
        runner_kwargs = {}

    if pipeline == "new":
        return GenerationPipeline(options, **runner_kwargs).execute()
    if pipeline == "auto":
        from .migration import MigrationAdapter

        def legacy(run_options):
            return GenerationCoordinator(run_options, **runner_kwargs)

        def new(run_options):
            return GenerationPipeline(run_options, **runner_kwargs)

        return MigrationAdapter(options, legacy_factory=legacy, new_factory=new).generate()
    return GenerationCoordinator(options, **runner_kwargs).execute()


__all__ = [
    "ConfigurationService",
    "GenerationCoordinator",
    "GenerationPipeline",
    "GenerationResult",
    "PIPELINES",
    "ServiceRegistry",
    "build_default_registry",
    "generate",
    "generate_models",
]
