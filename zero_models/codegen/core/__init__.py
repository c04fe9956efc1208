"""
Core code generation components.

Schema types, configuration, templates, file output and the schema
service shared by every generator.
"""

from .generator import (
    CodeGenerator,
    GeneratedFile,
    GeneratedModel,
    GenerationResult,
    GeneratorError,
    ModelGenerationError,
    ServiceInitializationError,
)
from .schema import (
    DEFAULT_EXCLUDED_TABLES,
    Column,
    Relationship,
    SchemaData,
    SnapshotIntrospector,
    StaticIntrospector,
    Table,
    TableRelationships,
)
from .context import ContextValidationError, GenerationContext
from .naming import NameSanitizer, NamingCase
from .config import ConfigurationError, ConfigurationService, ConfigValidationError
from .templates import (
    TemplateError,
    TemplateNotFoundError,
    TemplateRenderer,
    TemplateRenderingError,
)
from .files import FileManager, Formatter, SemanticComparator
from .schema_service import (
    SchemaExtractionError,
    SchemaService,
    SchemaServiceError,
    SchemaValidationError,
    TableNotFoundError,
)

__all__ = [
    # Generator interface and results
    "CodeGenerator",
    "GeneratedFile",
    "GeneratedModel",
    "GenerationResult",
    "GeneratorError",
    "ModelGenerationError",
    "ServiceInitializationError",
    # Schema
    "DEFAULT_EXCLUDED_TABLES",
    "Column",
    "Relationship",
    "SchemaData",
    "SnapshotIntrospector",
    "StaticIntrospector",
    "Table",
    "TableRelationships",
    "GenerationContext",
    "ContextValidationError",
    # Naming
    "NameSanitizer",
    "NamingCase",
    # Configuration
    "ConfigurationService",
    "ConfigurationError",
    "ConfigValidationError",
    # Templates
    "TemplateRenderer",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRenderingError",
    # Files
    "FileManager",
    "Formatter",
    "SemanticComparator",
    # Schema service
    "SchemaService",
    "SchemaServiceError",
    "SchemaExtractionError",
    "SchemaValidationError",
    "TableNotFoundError",
]
