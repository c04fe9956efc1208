"""
Relationship rendering for generated models.

Turns one table's associations into the TypeScript fragments the
templates splice in: interface properties, type imports, Omit exclusions,
doc comment lines and the runtime registration call.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Set, Tuple

from ....logging_config import get_logger
from ...core.naming import kebab_name_for_table, model_name_for_table, property_name
from ...core.schema import DEFAULT_EXCLUDED_TABLES, Relationship, TableRelationships

logger = get_logger(__name__)

REGISTRATION_TYPES = {
    "belongs_to": "belongsTo",
    "has_one": "hasOne",
    "has_many": "hasMany",
}

NO_RELATIONSHIPS = "// No relationships defined for this model"


@dataclass(frozen=True)
class RelationshipFragments:
    """Rendered relationship fragments for one table."""

    properties: str = ""
    imports: str = ""
    exclusions: str = ""
    documentation: str = ""
    registration: str = NO_RELATIONSHIPS
    property_names: Tuple[str, ...] = ()

    @property
    def has_relationships(self) -> bool:
        return bool(self.properties)


@dataclass(frozen=True)
class _Resolved:
    relationship: Relationship
    prop: str
    target_class: str
    target_table: str


class RelationshipProcessor:
    """Render one table's associations into TypeScript fragments."""

    def __init__(self, relationships: Optional[TableRelationships], current_table_name: str,
                 excluded_tables: Iterable[str] = DEFAULT_EXCLUDED_TABLES,
                 known_tables: Optional[Iterable[str]] = None):
        """
        Args:
            relationships: The table's associations, or None
            current_table_name: Table the model is generated for
            excluded_tables: Targets that never get a property
            known_tables: When given, targets outside this set are dropped
        """
        self.relationships = relationships or TableRelationships(table=current_table_name)
        self.current_table_name = current_table_name
        self.excluded_tables: Set[str] = set(excluded_tables)
        self.known_tables: Optional[Set[str]] = set(known_tables) if known_tables is not None else None
        self._resolved: Optional[List[_Resolved]] = None

    def process_all(self) -> RelationshipFragments:
        if not self.resolved:
            return RelationshipFragments()
        return RelationshipFragments(
            properties=self.properties(),
            imports=self.imports(),
            exclusions=self.exclusions(),
            documentation=self.documentation(),
            registration=self.registration(),
            property_names=tuple(r.prop for r in self.resolved),
        )

    @property
    def resolved(self) -> List[_Resolved]:
        if self._resolved is None:
            self._resolved = [r for r in map(self._resolve, self.relationships.all()) if r]
        return self._resolved

    def _resolve(self, rel: Relationship) -> Optional[_Resolved]:
        if not rel.name or not rel.target_table:
            logger.debug("Skipping incomplete %s on %s", rel.kind, self.current_table_name)
            return None
        if rel.target_table in self.excluded_tables:
            logger.debug("Skipping %s.%s: target %s is excluded",
                         self.current_table_name, rel.name, rel.target_table)
            return None
        if self.known_tables is not None and rel.target_table not in self.known_tables:
            logger.debug("Skipping %s.%s: target %s is not in the schema",
                         self.current_table_name, rel.name, rel.target_table)
            return None
        return _Resolved(
            relationship=rel,
            prop=property_name(rel.name),
            target_class=model_name_for_table(rel.target_table),
            target_table=rel.target_table,
        )

    def properties(self) -> str:
        lines = []
        for r in self.resolved:
            suffix = "[]" if r.relationship.kind == "has_many" else ""
            lines.append(f"  {r.prop}?: {r.target_class}Data{suffix}; // {r.relationship.kind}")
        return "\n".join(lines)

    def imports(self) -> str:
        """Type imports for related data interfaces, deduplicated, self-references skipped."""
        seen: List[str] = []
        for r in self.resolved:
            if r.target_table == self.current_table_name:
                continue
            line = (
                f"import type {{ {r.target_class}Data }} "
                f"from './{kebab_name_for_table(r.target_table)}-data';"
            )
            if line not in seen:
                seen.append(line)
        return "\n".join(seen)

    def exclusions(self) -> str:
        """Extra keys for Create/Update ``Omit``, e.g. ``, 'user', 'tasks'``."""
        return "".join(f", '{r.prop}'" for r in self.resolved)

    def documentation(self) -> str:
        if not self.resolved:
            return ""
        lines = [" * Relationships (loaded via includes()):"]
        for r in self.resolved:
            line = f" * - {r.prop}: {r.relationship.kind} {r.target_class}"
            if r.relationship.through:
                line += f", through: {r.relationship.through}"
            lines.append(line)
        return "\n".join(lines)

    def registration(self) -> str:
        if not self.resolved:
            return NO_RELATIONSHIPS
        entries = "".join(
            f"  {r.prop}: {{ type: '{REGISTRATION_TYPES[r.relationship.kind]}', "
            f"model: '{r.target_class}' }},\n"
            for r in self.resolved
        )
        return f"registerModelRelationships('{self.current_table_name}', {{\n{entries}}});"
