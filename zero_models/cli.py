"""
Command-line interface for zero-models.

Subcommands:
    generate              Generate TypeScript models from a schema snapshot
    polymorphic-snapshot  Write the detected polymorphic associations as YAML
    migration-status      Show migration flags, circuit breaker and rollback state
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .codegen.coordinator import GenerationCoordinator
from .codegen.core.config import ConfigurationError
from .codegen.core.generator import GenerationResult, GeneratorError
from .codegen.core.schema import SchemaData, SnapshotIntrospector
from .codegen.core.schema_service import SchemaService
from .codegen.languages.typescript.polymorphic import PolymorphicModelAnalyzer
from .codegen.migration import MigrationAdapter, MigrationFeatureFlags, RollbackManager
from .codegen.migration.rollback import DEFAULT_STATE_FILE
from .codegen.pipeline import GenerationPipeline
from .logging_config import configure_logging, get_logger
from .utils import SchemaLoaderError

logger = get_logger(__name__)

console = Console()

OUTCOME_STYLES = {
    "created": "green",
    "updated": "yellow",
    "identical": "dim",
    "skipped": "cyan",
    "error": "red",
}


def _split_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zero-models",
        description="Generate TypeScript Zero models from a Rails schema snapshot",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    generate = subparsers.add_parser(
        "generate",
        help="Generate models",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  zero-models generate --schema db/schema_snapshot.json
  zero-models generate --schema db/schema_snapshot.json --table users --dry-run
  zero-models generate --schema-url http://localhost:3000/schema --pipeline auto
        """,
    )
    source = generate.add_mutually_exclusive_group(required=True)
    source.add_argument("--schema", metavar="FILE", help="Schema snapshot file (JSON or YAML)")
    source.add_argument("--schema-url", metavar="URL", help="URL serving the schema snapshot")

    generate.add_argument("--config", metavar="FILE", help="Generator configuration (YAML)")
    generate.add_argument("--env", metavar="NAME", help="Configuration environment")
    generate.add_argument("--output-dir", metavar="DIR", help="Override the output directory")
    generate.add_argument("--table", metavar="NAME[,NAME]", help="Only generate these tables")
    generate.add_argument("--exclude-tables", metavar="A,B", help="Additional tables to skip")
    generate.add_argument("--polymorphic-config", metavar="FILE",
                          help="Polymorphic association config (YAML)")
    generate.add_argument("--pipeline", choices=["legacy", "new", "auto"], default="legacy",
                          help="Execution path; auto routes through the migration flags (default: legacy)")
    generate.add_argument("--dry-run", action="store_true", help="Render without writing files")
    generate.add_argument("--force", action="store_true", help="Write files even when unchanged")
    generate.add_argument("--skip-prettier", action="store_true", help="Do not run the formatter")
    generate.add_argument("--verbose", "-v", action="store_true", help="Verbose logging and statistics")

    snapshot = subparsers.add_parser("polymorphic-snapshot",
                                     help="Write detected polymorphic associations as YAML")
    snapshot.add_argument("--schema", metavar="FILE", required=True, help="Schema snapshot file")
    snapshot.add_argument("--output", metavar="FILE", required=True, help="YAML file to write")
    snapshot.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    status = subparsers.add_parser("migration-status",
                                   help="Show migration flags and rollback state")
    status.add_argument("--state-file", metavar="FILE", default=str(DEFAULT_STATE_FILE),
                        help=f"Rollback state file (default: {DEFAULT_STATE_FILE})")
    status.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    return parser


def generation_options(args: argparse.Namespace) -> dict[str, Any]:
    """Translate parsed arguments into run options."""
    options: dict[str, Any] = {
        "schema": args.schema,
        "schema_url": args.schema_url,
        "config_path": args.config,
        "environment": args.env,
        "output_dir": args.output_dir,
        "table": args.table,
        "exclude_tables": _split_list(args.exclude_tables),
        "polymorphic_config": args.polymorphic_config,
        "force": args.force,
        "skip_prettier": args.skip_prettier,
    }
    if args.dry_run:
        options["dry_run"] = True
    return {k: v for k, v in options.items() if v not in (None, [], False)}


def run_generation(options: dict[str, Any], pipeline: str) -> GenerationResult:
    if pipeline == "new":
        return GenerationPipeline(options).execute()
    if pipeline == "auto":
        return MigrationAdapter(options).generate()
    return GenerationCoordinator(options).execute()


def print_result(result: GenerationResult, verbose: bool = False) -> None:
    """Print a per-file table and a one-line summary."""
    if result.generated_files:
        table = Table(title="Generated files", box=box.ROUNDED)
        table.add_column("File", style="cyan")
        table.add_column("Outcome")
        for f in result.generated_files:
            style = OUTCOME_STYLES.get(f.outcome, "white")
            table.add_row(f.relative_path, f"[{style}]{f.outcome}[/{style}]")
        console.print(table)

    mode = " (dry run)" if result.dry_run else ""
    summary = (
        f"{result.model_count} models, {result.files_written} files written, "
        f"{result.files_identical} unchanged in {result.execution_time:.2f}s "
        f"[{result.pipeline} pipeline]{mode}"
    )
    if result.success:
        console.print(f"[green]✓[/green] {summary}")
    else:
        console.print(f"[red]✗[/red] {summary}")
        for error in result.errors:
            console.print(f"  [red]•[/red] {error}")

    migration = result.statistics.get("migration")
    if migration and migration.get("was_canary_test"):
        match = migration.get("canary_match")
        label = "[green]match[/green]" if match else "[red]mismatch[/red]"
        console.print(f"Canary comparison: {label}")

    if verbose:
        stats = Table(title="Statistics", box=box.SIMPLE)
        stats.add_column("Area", style="cyan")
        stats.add_column("Values")
        for area, values in result.statistics.items():
            stats.add_row(area, str(values))
        console.print(stats)


def handle_generate(args: argparse.Namespace) -> int:
    options = generation_options(args)
    logger.debug("Generation options: %s", options)
    result = run_generation(options, args.pipeline)
    print_result(result, verbose=args.verbose)
    return 0 if result.success else 1


def handle_polymorphic_snapshot(args: argparse.Namespace) -> int:
    service = SchemaService(SnapshotIntrospector(args.schema), enable_caching=False)
    schema: SchemaData = service.extract_filtered()
    target = PolymorphicModelAnalyzer(schema).write_snapshot(args.output)
    console.print(f"[green]✓[/green] Polymorphic snapshot written to {target}")
    return 0


def handle_migration_status(args: argparse.Namespace) -> int:
    flags = MigrationFeatureFlags.from_env()
    manager = RollbackManager(flags, state_file_path=args.state_file)
    status = manager.current_status()

    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Rollback state", status["state"])
    table.add_row("Rollbacks today", str(status["rollback_count_today"]))
    table.add_row("Circuit breaker", status["circuit_breaker_state"])
    for key, value in status["feature_flags_state"].items():
        table.add_row(key.replace("_", " ").capitalize(), str(value))

    recommendation = status["recommendation"]
    style = "red" if recommendation["recommended"] else "green"
    verdict = "Rollback recommended" if recommendation["recommended"] else "No rollback needed"
    console.print(Panel(table, title="Migration status"))
    console.print(f"[{style}]{verdict}[/{style}]")
    return 0


HANDLERS = {
    "generate": handle_generate,
    "polymorphic-snapshot": handle_polymorphic_snapshot,
    "migration-status": handle_migration_status,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging(verbose=getattr(args, "verbose", False))

    try:
        return HANDLERS[args.command](args)
    except (GeneratorError, ConfigurationError, SchemaLoaderError) as e:
        console.print(f"[red]✗ Error:[/red] {e}")
        logger.debug("Command %s failed", args.command, exc_info=True)
        return 1
    except (OSError, ValueError) as e:
        console.print(f"[red]✗ Error:[/red] {e}")
        return 1
    except Exception as e:
        console.print(f"[red]✗ Unexpected error:[/red] {e}")
        logger.exception("Unexpected error in %s", args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
