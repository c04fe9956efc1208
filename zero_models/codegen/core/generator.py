"""
Base generator interface and run result types.

Defines the contract language generators implement and the immutable
GenerationResult every orchestrator returns.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from .templates import TemplateRenderer


class GeneratorError(Exception):
    """Base exception for code generation errors."""

    pass


class ModelGenerationError(GeneratorError):
    """Raised when one table's models cannot be generated."""

    def __init__(self, message: str, table_name: Optional[str] = None):
        super().__init__(message)
        self.table_name = table_name


class ServiceInitializationError(GeneratorError):
    """Raised when the service graph cannot be built."""

    pass


@dataclass(frozen=True)
class GeneratedFile:
    """One file produced during a run."""

    relative_path: str
    path: Optional[str] = None
    outcome: str = "pending"
    content: str = ""

    @property
    def written(self) -> bool:
        return self.outcome in ("created", "updated")


@dataclass(frozen=True)
class GeneratedModel:
    """The model set produced for one table."""

    table_name: str
    model_name: str
    kebab_name: str
    files: Tuple[GeneratedFile, ...] = ()

    @property
    def changed(self) -> bool:
        return any(f.written for f in self.files)


@dataclass(frozen=True)
class GenerationResult:
    """Immutable outcome of a generation run."""

    success: bool
    generated_models: Tuple[GeneratedModel, ...] = ()
    generated_files: Tuple[GeneratedFile, ...] = ()
    errors: Tuple[str, ...] = ()
    execution_time: float = 0.0
    dry_run: bool = False
    pipeline: str = "legacy"
    statistics: Mapping[str, Any] = field(default_factory=dict)

    @property
    def model_count(self) -> int:
        return len(self.generated_models)

    @property
    def file_count(self) -> int:
        return len(self.generated_files)

    @property
    def files_written(self) -> int:
        return sum(1 for f in self.generated_files if f.written)

    @property
    def files_identical(self) -> int:
        return sum(1 for f in self.generated_files if f.outcome == "identical")

    @property
    def models_changed(self) -> int:
        return sum(1 for m in self.generated_models if m.changed)

    def file_contents(self) -> Dict[str, str]:
        return {f.relative_path: f.content for f in self.generated_files}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "pipeline": self.pipeline,
            "dry_run": self.dry_run,
            "execution_time": round(self.execution_time, 4),
            "generated_models": [m.table_name for m in self.generated_models],
            "generated_files": [
                {"path": f.relative_path, "outcome": f.outcome} for f in self.generated_files
            ],
            "errors": list(self.errors),
            "statistics": dict(self.statistics),
        }


class CodeGenerator(ABC):
    """Abstract base class for language generators."""

    def __init__(self, template_renderer: Optional[TemplateRenderer] = None,
                 config: Optional[Dict[str, Any]] = None):
        """Initialize generator with a renderer and optional configuration."""
        self.config = config or {}
        self._template_renderer = template_renderer or TemplateRenderer(self.get_template_directory())

    @property
    @abstractmethod
    def language_name(self) -> str:
        """Return the name of the target language (e.g., 'typescript')."""
        pass

    @property
    @abstractmethod
    def file_extension(self) -> str:
        """Return the file extension for generated files (e.g., '.ts')."""
        pass

    @abstractmethod
    def get_template_directory(self) -> Path:
        """Return the directory containing templates for this generator."""
        pass

    @abstractmethod
    def generate_model_set(self, context: Any) -> Dict[str, str]:
        """
        Generate all files for one table.

        Returns:
            Mapping of relative path to file content
        """
        pass

    def render_template(self, template_name: str, context: Any) -> str:
        """Render a template with the generator's renderer."""
        return self._template_renderer.render(template_name, context)

    @property
    def template_renderer(self) -> TemplateRenderer:
        return self._template_renderer

