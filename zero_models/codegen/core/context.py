"""
Immutable per-table generation context.

A GenerationContext travels through the pipeline stages. Stages never
mutate it; every ``with_*`` method returns a new context.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from .naming import kebab_name_for_table, model_name_for_table
from .schema import SchemaData, Table, TableRelationships

# Table name used by run-level contexts that are not bound to one table.
ALL_TABLES = "*"


class ContextValidationError(ValueError):
    """Raised when a context is built from incomplete data."""

    pass


@dataclass(frozen=True)
class GenerationContext:
    """Everything a stage needs to generate one table's models."""

    table: Table
    schema: SchemaData
    relationships: Optional[TableRelationships] = None
    options: Mapping[str, Any] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)
    generated_content: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.table, Table) or not self.table.name:
            raise ContextValidationError("GenerationContext requires a table with a name")
        if not isinstance(self.schema, SchemaData):
            raise ContextValidationError("GenerationContext requires SchemaData")

        for name in ("options", "metadata", "generated_content"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

        if self.relationships is None and self.table.name != ALL_TABLES:
            object.__setattr__(
                self, "relationships", self.schema.relationships_for(self.table.name)
            )

    @classmethod
    def for_run(cls, schema: SchemaData, options: Optional[Mapping[str, Any]] = None) -> "GenerationContext":
        """Run-level context not bound to a single table."""
        return cls(table=Table(name=ALL_TABLES), schema=schema, options=options or {})

    # Derived values

    @property
    def table_name(self) -> str:
        return self.table.name

    @property
    def model_name(self) -> str:
        return model_name_for_table(self.table.name)

    @property
    def kebab_name(self) -> str:
        return kebab_name_for_table(self.table.name)

    @property
    def typescript_filenames(self) -> Dict[str, str]:
        kebab = self.kebab_name
        return {
            "data": f"types/{kebab}-data.ts",
            "active": f"{kebab}.ts",
            "reactive": f"reactive-{kebab}.ts",
        }

    @property
    def patterns(self) -> Mapping[str, Any]:
        return self.schema.patterns_for(self.table.name)

    @property
    def dry_run(self) -> bool:
        return bool(self.options.get("dry_run", False))

    @property
    def has_generated_content(self) -> bool:
        return bool(self.generated_content)

    # Transformations

    def with_metadata(self, **values: Any) -> "GenerationContext":
        return replace(self, metadata={**self.metadata, **values})

    def with_options(self, **values: Any) -> "GenerationContext":
        return replace(self, options={**self.options, **values})

    def with_relationships(self, relationships: TableRelationships) -> "GenerationContext":
        return replace(self, relationships=relationships)

    def with_generated_content(self, content: Mapping[str, str]) -> "GenerationContext":
        """Attach rendered file contents keyed by relative path."""
        return replace(self, generated_content={**self.generated_content, **content})

    def to_dict(self) -> Dict[str, Any]:
        """Plain snapshot, used in stage error reports."""
        return {
            "table_name": self.table_name,
            "options": dict(self.options),
            "metadata": {k: repr(v) for k, v in self.metadata.items()},
            "generated_files": sorted(self.generated_content),
        }
