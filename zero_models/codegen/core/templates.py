"""
Template rendering for code generation.

Wraps a Jinja2 environment over a templates directory. Each render gets
its own context, so no state leaks between renders.
"""

import dataclasses
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
    meta,
    select_autoescape,
)

from ...logging_config import get_logger
from .naming import camelize, dasherize, property_name, underscore

logger = get_logger(__name__)


class TemplateError(Exception):
    """Exception raised for template-related errors."""

    pass


class TemplateNotFoundError(TemplateError):
    """Raised when a template file does not exist."""

    pass


class TemplateRenderingError(TemplateError):
    """Raised when a template fails to render."""

    def __init__(self, message: str, template_name: str):
        super().__init__(message)
        self.template_name = template_name


def context_to_dict(context: Any) -> Dict[str, Any]:
    """
    Turn a template context into render kwargs.

    Dataclass contexts are unpacked one level so nested values keep their
    attribute access inside templates.
    """
    if dataclasses.is_dataclass(context) and not isinstance(context, type):
        return {f.name: getattr(context, f.name) for f in dataclasses.fields(context)}
    if isinstance(context, Mapping):
        return dict(context)
    raise TypeError(f"Unsupported template context type: {type(context).__name__}")


class TemplateRenderer:
    """Render named templates from a directory with timing statistics."""

    def __init__(self, templates_dir: Union[str, Path], enable_caching: bool = True,
                 trim_blocks: bool = True):
        """
        Initialize renderer.

        Args:
            templates_dir: Directory containing ``*.j2`` templates
            enable_caching: Keep compiled templates between renders
            trim_blocks: Strip the newline after block tags and leading block whitespace

        Raises:
            ValueError: If the directory doesn't exist
        """
        self.templates_dir = Path(templates_dir)
        if not self.templates_dir.is_dir():
            raise ValueError(f"Templates directory does not exist: {self.templates_dir}")

        self._env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            undefined=StrictUndefined,
            trim_blocks=trim_blocks,
            lstrip_blocks=trim_blocks,
            keep_trailing_newline=True,
            cache_size=400 if enable_caching else 0,
        )

        self._env.filters["camel_case"] = property_name
        self._env.filters["pascal_case"] = lambda value: camelize(underscore(str(value)))
        self._env.filters["kebab_case"] = lambda value: dasherize(underscore(str(value)))
        self._env.filters["comment"] = self._comment_filter

        self._stats = {"renders": 0, "total_time": 0.0}

    def render(self, template_name: str, context: Any) -> str:
        """
        Render a template with the given context.

        Args:
            template_name: File name relative to the templates directory
            context: Mapping or dataclass of template variables

        Returns:
            Rendered content

        Raises:
            TemplateNotFoundError: Template file is missing
            TemplateRenderingError: Rendering failed, including undefined variables
        """
        if not self.template_exists(template_name):
            raise TemplateNotFoundError(self._not_found_message(template_name))

        start = time.perf_counter()
        try:
            template = self._env.get_template(template_name)
            output = template.render(**context_to_dict(context))
        except TemplateNotFound as e:
            raise TemplateNotFoundError(self._not_found_message(template_name)) from e
        except (UndefinedError, TemplateSyntaxError, TypeError, ValueError) as e:
            logger.error("Failed to render template %s: %s", template_name, e)
            raise TemplateRenderingError(
                f"Failed to render template {template_name}: {e}", template_name
            ) from e
        finally:
            self._stats["renders"] += 1
            self._stats["total_time"] += time.perf_counter() - start

        logger.debug("Rendered %s (%d chars)", template_name, len(output))
        return output

    def template_exists(self, template_name: str) -> bool:
        path = (self.templates_dir / template_name).resolve()
        return path.is_file() and self.templates_dir.resolve() in path.parents

    def available_templates(self) -> List[str]:
        return sorted(
            str(p.relative_to(self.templates_dir))
            for p in self.templates_dir.rglob("*.j2")
            if p.is_file()
        )

    def required_variables(self, template_name: str) -> Set[str]:
        """Variables the template references, discovered without rendering."""
        if not self.template_exists(template_name):
            raise TemplateNotFoundError(self._not_found_message(template_name))
        source = (self.templates_dir / template_name).read_text(encoding="utf-8")
        return meta.find_undeclared_variables(self._env.parse(source))

    def statistics(self) -> Dict[str, Any]:
        renders = self._stats["renders"]
        total = self._stats["total_time"]
        return {
            "renders": renders,
            "total_time": round(total, 4),
            "average_time": round(total / renders, 4) if renders else 0.0,
        }

    def _not_found_message(self, template_name: str) -> str:
        lines = [f"Template not found: {template_name} in {self.templates_dir}"]
        available = self.available_templates()
        if not available:
            lines.append("No templates found in templates directory.")
            return "\n".join(lines)

        lines.append("Available templates:")
        lines.extend(f"  - {name}" for name in available)

        suggestions = self._suggestions(template_name, available)
        if suggestions:
            lines.append("Did you mean:")
            lines.extend(f"  - {name}" for name in suggestions)
        return "\n".join(lines)

    @staticmethod
    def _suggestions(template_name: str, available: List[str], limit: int = 3) -> List[str]:
        wanted = template_name.split(".")[0].lower()
        matches = []
        for name in available:
            stem = Path(name).name.split(".")[0].lower()
            if wanted and (wanted in stem or stem in wanted):
                matches.append(name)
        return matches[:limit]

    @staticmethod
    def _comment_filter(value: str, style: str = "//") -> str:
        """Add comment markers to each line."""
        lines = str(value).split("\n")
        return "\n".join(f"{style} {line}" if line.strip() else line for line in lines)


def create_template_renderer(templates_dir: Union[str, Path],
                             settings: Optional[Mapping[str, Any]] = None) -> TemplateRenderer:
    """Build a renderer from the ``template_settings`` configuration section."""
    settings = settings or {}
    return TemplateRenderer(
        templates_dir,
        enable_caching=bool(settings.get("enable_caching", True)),
        trim_blocks=bool(settings.get("trim_mode", "-")),
    )
