"""
Database to TypeScript type mapping.
"""

from typing import Dict, List, Mapping, Optional, Set

from ....logging_config import get_logger
from ...core.schema import Column

logger = get_logger(__name__)

UNKNOWN_TYPE = "unknown"

TYPE_MAP: Dict[str, str] = {
    "string": "string",
    "text": "string",
    "integer": "number",
    "bigint": "number",
    "decimal": "number",
    "float": "number",
    "boolean": "boolean",
    "datetime": "string | number",
    "timestamp": "string | number",
    "timestamptz": "string | number",
    "date": "string",
    "time": "string",
    "json": "Record<string, unknown>",
    "jsonb": "Record<string, unknown>",
    "uuid": "string",
    "binary": "Uint8Array",
}


class TypeMapper:
    """Map database column types to TypeScript types."""

    def __init__(self, custom_mappings: Optional[Mapping[str, str]] = None):
        """
        Args:
            custom_mappings: Database type to TypeScript type entries that
                take precedence over the built-in map
        """
        self.custom_mappings = dict(custom_mappings or {})
        self._mappings = {**TYPE_MAP, **self.custom_mappings}
        self._warned: Set[str] = set()

    def map_type(self, db_type: str) -> str:
        """Return the TypeScript type for ``db_type``, ``unknown`` when unmapped."""
        ts_type = self._mappings.get(db_type)
        if ts_type is None:
            if db_type not in self._warned:
                logger.warning("No TypeScript mapping for database type %r, using unknown", db_type)
                self._warned.add(db_type)
            return UNKNOWN_TYPE
        return ts_type

    def enum_type(self, enum_values: List[str]) -> str:
        """String literal union, e.g. ``'active' | 'disabled'``."""
        if not enum_values:
            return UNKNOWN_TYPE
        return " | ".join("'" + str(v).replace("'", "\\'") + "'" for v in enum_values)

    def column_type(self, column: Column) -> str:
        """Type for a column; enums with values become literal unions."""
        if column.is_enum:
            return self.enum_type(list(column.enum_values))
        return self.map_type(column.type)

    @property
    def effective_mappings(self) -> Dict[str, str]:
        return dict(self._mappings)

    @property
    def supported_types(self) -> List[str]:
        return sorted(self._mappings)

    def supports(self, db_type: str) -> bool:
        return db_type in self._mappings
