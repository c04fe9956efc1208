"""
Service registry for the generation run.

Services are registered with explicit dependencies and constructed once,
in dependency order, when the registry is initialized. Unknown
dependencies and cycles are rejected before anything is built.
"""

from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from ..logging_config import get_logger
from .core.config import ConfigurationService
from .core.files import FileManager, Formatter, SemanticComparator
from .core.generator import ServiceInitializationError
from .core.schema import SchemaIntrospector
from .core.schema_service import SchemaService
from .core.templates import create_template_renderer
from .languages.typescript.defaults import DefaultValueConverter
from .languages.typescript.generator import TEMPLATE_DIR, TypeScriptModelGenerator
from .languages.typescript.polymorphic import PolymorphicConfigLoader
from .languages.typescript.types import TypeMapper

logger = get_logger(__name__)


class RegistryError(Exception):
    """Exception raised for registry-related errors."""

    pass


@dataclass(frozen=True)
class ServiceDefinition:
    name: str
    factory: Callable[..., Any]
    dependencies: Tuple[str, ...] = ()


class ServiceRegistry:
    """Registry of run-scoped services wired as an explicit DAG."""

    def __init__(self):
        """Initialize empty registry."""
        self._definitions: Dict[str, ServiceDefinition] = {}
        self._instances: Dict[str, Any] = {}
        self._initialized = False

    def register(self, name: str, factory: Callable[..., Any],
                 dependencies: Union[List[str], Tuple[str, ...]] = (),
                 replace: bool = False) -> None:
        """
        Register a service factory.

        Args:
            name: Service name; also the keyword its dependents receive it as
            factory: Called with one keyword argument per dependency
            dependencies: Names of services this one needs
            replace: Replace an existing registration instead of failing

        Raises:
            RegistryError: Name already registered, or registry already initialized
        """
        if self._initialized:
            raise RegistryError(f"Cannot register '{name}' after initialization")
        if name in self._definitions and not replace:
            raise RegistryError(f"Service already registered: {name}")
        self._definitions[name] = ServiceDefinition(name, factory, tuple(dependencies))

    def register_instance(self, name: str, instance: Any, replace: bool = False) -> None:
        """Register an already-built object as a dependency-free service."""
        self.register(name, lambda: instance, replace=replace)

    def unregister(self, name: str) -> None:
        self._definitions.pop(name, None)
        self._instances.pop(name, None)

    def is_registered(self, name: str) -> bool:
        return name in self._definitions

    def list_services(self) -> List[str]:
        return sorted(self._definitions)

    def dependencies_of(self, name: str) -> Tuple[str, ...]:
        if name not in self._definitions:
            raise RegistryError(f"Unknown service: {name}")
        return self._definitions[name].dependencies

    def initialization_order(self) -> List[str]:
        """
        Topological order of all services.

        Raises:
            RegistryError: A dependency is unknown or the graph has a cycle
        """
        for definition in self._definitions.values():
            for dep in definition.dependencies:
                if dep not in self._definitions:
                    raise RegistryError(
                        f"Service '{definition.name}' depends on unknown service '{dep}'"
                    )

        remaining = {n: set(d.dependencies) for n, d in self._definitions.items()}
        ready = deque(sorted(n for n, deps in remaining.items() if not deps))
        order: List[str] = []

        while ready:
            name = ready.popleft()
            order.append(name)
            del remaining[name]
            for other in sorted(remaining):
                deps = remaining[other]
                if name in deps:
                    deps.discard(name)
                    if not deps:
                        ready.append(other)

        if remaining:
            raise RegistryError(
                f"Dependency cycle between services: {', '.join(sorted(remaining))}"
            )
        return order

    def initialize(self) -> "ServiceRegistry":
        """
        Build every service once, dependencies first.

        Raises:
            RegistryError: Invalid graph
            ServiceInitializationError: A factory raised
        """
        if self._initialized:
            return self

        for name in self.initialization_order():
            definition = self._definitions[name]
            kwargs = {dep: self._instances[dep] for dep in definition.dependencies}
            try:
                self._instances[name] = definition.factory(**kwargs)
            except Exception as e:
                logger.error("Failed to initialize service %s: %s", name, e)
                raise ServiceInitializationError(f"Failed to initialize service '{name}': {e}") from e
            logger.debug("Initialized service %s", name)

        self._initialized = True
        return self

    @property
    def initialized(self) -> bool:
        return self._initialized

    def get(self, name: str) -> Any:
        """
        Return an initialized service.

        Raises:
            RegistryError: Unknown service or registry not initialized
        """
        if name not in self._definitions:
            raise RegistryError(
                f"Unknown service: {name}. Available: {', '.join(self.list_services())}"
            )
        if not self._initialized:
            raise RegistryError("Registry has not been initialized")
        return self._instances[name]

    def statistics(self) -> Dict[str, Any]:
        return {
            "services_registered": len(self._definitions),
            "services_initialized": len(self._instances),
            "initialized": self._initialized,
        }

    def health_check(self) -> Dict[str, Any]:
        health: Dict[str, Any] = {}
        for name, instance in self._instances.items():
            check = getattr(instance, "health_check", None)
            health[name] = check() if callable(check) else {"healthy": True}
        return {
            "healthy": self._initialized and all(h.get("healthy", True) for h in health.values()),
            "services": health,
        }


def build_default_registry(config: ConfigurationService,
                           introspector: SchemaIntrospector,
                           options: Optional[Mapping[str, Any]] = None) -> ServiceRegistry:
    """
    Register the standard services for a generation run.

    Args:
        config: Loaded configuration (already updated from generator options)
        introspector: Source of raw schema snapshots
        options: Run options; ``polymorphic_config`` overrides the configured path

    Returns:
        An uninitialized registry
    """
    options = dict(options or {})
    registry = ServiceRegistry()

    registry.register_instance("configuration", config)
    registry.register_instance("introspector", introspector)

    registry.register(
        "schema_service",
        lambda configuration, introspector: SchemaService(introspector, configuration),
        ["configuration", "introspector"],
    )
    registry.register(
        "type_mapper",
        lambda configuration: TypeMapper(configuration.type_overrides),
        ["configuration"],
    )
    registry.register("default_value_converter", DefaultValueConverter)
    registry.register(
        "template_renderer",
        lambda configuration: create_template_renderer(TEMPLATE_DIR, configuration.template_settings),
        ["configuration"],
    )
    registry.register(
        "polymorphic_loader",
        lambda configuration: PolymorphicConfigLoader(
            options.get("polymorphic_config") or configuration.polymorphic_config_path
        ),
        ["configuration"],
    )
    registry.register(
        "semantic_comparator",
        lambda configuration: SemanticComparator(configuration.ignored_line_patterns),
        ["configuration"],
    )
    registry.register(
        "formatter",
        lambda configuration: Formatter(
            configuration.formatter_command,
            cwd=Path(configuration.frontend_root),
            timeout=configuration.formatter_timeout,
        ),
        ["configuration"],
    )
    registry.register(
        "file_manager",
        lambda configuration, semantic_comparator, formatter: FileManager(
            configuration.base_output_dir,
            comparator=semantic_comparator,
            formatter=formatter,
            dry_run=configuration.dry_run,
            force=configuration.force_overwrite or not configuration.enable_semantic_comparison,
            enable_formatting=configuration.enable_prettier,
            create_directories=configuration.create_directories,
            batch_max_files=configuration.batch_max_files,
            batch_max_memory_mb=configuration.batch_max_memory_mb,
        ),
        ["configuration", "semantic_comparator", "formatter"],
    )
    registry.register(
        "model_generator",
        lambda configuration, type_mapper, default_value_converter, polymorphic_loader, template_renderer:
            TypeScriptModelGenerator(
                type_mapper=type_mapper,
                default_value_converter=default_value_converter,
                polymorphic_loader=polymorphic_loader,
                template_renderer=template_renderer,
                excluded_tables=configuration.excluded_tables,
                generator_options=configuration.generator_options,
            ),
        ["configuration", "type_mapper", "default_value_converter",
         "polymorphic_loader", "template_renderer"],
    )
    return registry
