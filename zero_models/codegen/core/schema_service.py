"""
Schema extraction, validation, filtering and caching.
"""

import time
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ...logging_config import get_logger
from .config import ConfigurationService
from .generator import GeneratorError
from .schema import (
    DEFAULT_EXCLUDED_TABLES,
    REQUIRED_SCHEMA_KEYS,
    SchemaData,
    SchemaIntrospector,
)

logger = get_logger(__name__)


class SchemaServiceError(GeneratorError):
    """Base exception for schema service failures."""

    pass


class SchemaExtractionError(SchemaServiceError):
    """Raised when the introspector fails."""

    pass


class SchemaValidationError(SchemaServiceError):
    """Raised when a snapshot is structurally invalid."""

    pass


class TableNotFoundError(SchemaServiceError):
    """Raised when a requested table is not in the schema."""

    def __init__(self, table_name: str, available: Iterable[str] = ()):
        available = sorted(available)
        message = f"Table not found: {table_name}"
        if available:
            message += f" (available: {', '.join(available[:10])}{', ...' if len(available) > 10 else ''})"
        super().__init__(message)
        self.table_name = table_name


def cache_key(exclude_tables: Iterable[str], include_only: Iterable[str]) -> str:
    """Cache key for a filter combination, independent of list order."""
    exclude = sorted(set(exclude_tables))
    include = sorted(set(include_only))
    if not exclude and not include:
        return "full_schema"
    return f"exclude:{','.join(exclude)}|include:{','.join(include)}"


class SchemaService:
    """Serve filtered schema snapshots with an in-process cache."""

    def __init__(self, introspector: SchemaIntrospector,
                 config: Optional[ConfigurationService] = None,
                 enable_caching: Optional[bool] = None,
                 max_cache_entries: Optional[int] = None):
        """
        Args:
            introspector: Source of raw snapshots
            config: Supplies excluded tables and caching policy
            enable_caching: Overrides ``performance.enable_schema_caching``
            max_cache_entries: Overrides ``performance.max_cache_entries``
        """
        self.introspector = introspector
        self.config = config
        if enable_caching is None:
            enable_caching = config.enable_schema_caching if config else True
        if max_cache_entries is None:
            max_cache_entries = config.max_cache_entries if config else 100
        self.enable_caching = enable_caching
        self.max_cache_entries = max_cache_entries

        self._cache: "OrderedDict[str, SchemaData]" = OrderedDict()
        self._stats = {
            "schema_extractions": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "tables_processed": 0,
            "patterns_detected": 0,
            "validation_errors": 0,
            "extraction_time": 0.0,
        }

    @property
    def default_exclusions(self) -> List[str]:
        if self.config is not None:
            return self.config.excluded_tables
        return list(DEFAULT_EXCLUDED_TABLES)

    def extract_filtered(self, exclude_tables: Iterable[str] = (),
                         include_only: Iterable[str] = (),
                         skip_validation: bool = False) -> SchemaData:
        """
        Return the schema restricted to the requested tables.

        ``include_only`` wins over every exclusion list when non-empty.

        Raises:
            SchemaExtractionError: The introspector failed
            SchemaValidationError: The snapshot is invalid
        """
        exclude_tables = list(exclude_tables)
        include_only = list(include_only)
        key = cache_key(exclude_tables, include_only)

        if self.enable_caching and key in self._cache:
            self._stats["cache_hits"] += 1
            self._cache.move_to_end(key)
            logger.debug("Schema cache hit for %s", key)
            return self._cache[key]

        self._stats["cache_misses"] += 1
        raw = self._extract_raw()

        if not skip_validation:
            self.validate(raw)

        filtered = self._filter(raw, exclude_tables, include_only)
        schema = SchemaData.from_dict(filtered)

        self._stats["tables_processed"] += len(schema.tables)
        self._stats["patterns_detected"] += len(schema.patterns)

        if self.enable_caching:
            self._cache[key] = schema
            while len(self._cache) > self.max_cache_entries:
                evicted, _ = self._cache.popitem(last=False)
                logger.debug("Evicted schema cache entry %s", evicted)

        logger.info("Schema extracted: %d tables", len(schema.tables))
        return schema

    def schema_for_table(self, table_name: str) -> Dict[str, Any]:
        """
        Everything known about one table.

        Raises:
            TableNotFoundError: The table is not in the schema
        """
        schema = self.extract_filtered(include_only=[table_name])
        table = schema.table(table_name)
        if table is None:
            raise TableNotFoundError(table_name, self.available_tables())

        rels = schema.relationships_for(table_name)
        return {
            "table": table,
            "relationships": {
                "belongs_to": list(rels.belongs_to),
                "has_many": list(rels.has_many),
                "has_one": list(rels.has_one),
                "polymorphic": list(rels.polymorphic),
            },
            "patterns": dict(schema.patterns_for(table_name)),
            "indexes": list(schema.indexes.get(table_name) or []),
            "constraints": list(schema.constraints.get(table_name) or []),
        }

    def available_tables(self) -> List[str]:
        """Tables remaining after the default exclusions."""
        return sorted(self.extract_filtered().table_names)

    def validate_tables_exist(self, table_names: Iterable[str]) -> Dict[str, Any]:
        available = set(self.available_tables())
        names = list(table_names)
        existing = [n for n in names if n in available]
        missing = [n for n in names if n not in available]
        return {"existing": existing, "missing": missing, "all_exist": not missing}

    def clear_cache(self) -> int:
        count = len(self._cache)
        self._cache.clear()
        logger.debug("Cleared %d schema cache entries", count)
        return count

    def performance_stats(self) -> Dict[str, Any]:
        lookups = self._stats["cache_hits"] + self._stats["cache_misses"]
        return {
            **self._stats,
            "extraction_time": round(self._stats["extraction_time"], 4),
            "cache_entries": len(self._cache),
            "cache_hit_ratio": round(self._stats["cache_hits"] / lookups, 4) if lookups else 0.0,
        }

    def health_check(self) -> Dict[str, Any]:
        try:
            tables = self.available_tables()
        except SchemaServiceError as e:
            return {"healthy": False, "error": str(e), "caching": self.enable_caching}
        return {"healthy": True, "table_count": len(tables), "caching": self.enable_caching}

    # Validation

    def validate(self, raw: Mapping[str, Any]) -> None:
        """
        Check the raw snapshot structure.

        Raises:
            SchemaValidationError: On the first class of problem found
        """
        errors = self._validation_errors(raw)
        if errors:
            self._stats["validation_errors"] += len(errors)
            for error in errors:
                logger.error("Schema validation: %s", error)
            raise SchemaValidationError("Schema validation failed: " + "; ".join(errors))

    def _validation_errors(self, raw: Mapping[str, Any]) -> List[str]:
        missing = [k for k in REQUIRED_SCHEMA_KEYS if k not in raw]
        if missing:
            return [f"Missing required schema keys: {', '.join(missing)}"]

        tables = raw["tables"]
        if not isinstance(tables, list):
            return ["Schema tables must be a list"]

        errors = []
        names = set()
        for index, table in enumerate(tables):
            if not isinstance(table, Mapping) or not table.get("name"):
                errors.append(f"Table at index {index} is missing a name")
                continue
            names.add(table["name"])
            if not isinstance(table.get("columns"), list):
                errors.append(f"Table {table['name']} is missing columns")

        for rel in raw.get("relationships") or []:
            table = rel.get("table") if isinstance(rel, Mapping) else None
            if table is None:
                errors.append("Relationship entry is missing its table")
            elif table not in names:
                errors.append(f"Relationship references unknown table: {table}")
        return errors

    # Internals

    def _extract_raw(self) -> Dict[str, Any]:
        start = time.perf_counter()
        try:
            raw = self.introspector.extract()
        except SchemaServiceError:
            raise
        except Exception as e:
            logger.error("Schema extraction failed: %s", e)
            raise SchemaExtractionError(f"Schema extraction failed: {e}") from e
        finally:
            self._stats["extraction_time"] += time.perf_counter() - start

        self._stats["schema_extractions"] += 1
        if not isinstance(raw, Mapping):
            raise SchemaExtractionError(
                f"Introspector returned {type(raw).__name__}, expected a mapping"
            )
        return dict(raw)

    def _filter(self, raw: Mapping[str, Any], exclude_tables: List[str],
                include_only: List[str]) -> Dict[str, Any]:
        all_names = [t["name"] for t in raw.get("tables") or [] if isinstance(t, Mapping)]

        if include_only:
            wanted = set(include_only)
            keep = {n for n in all_names if n in wanted}
        else:
            excluded = set(self.default_exclusions) | set(exclude_tables)
            keep = {n for n in all_names if n not in excluded}

        def by_table(section: Any) -> Dict[str, Any]:
            if not isinstance(section, Mapping):
                return {}
            return {name: value for name, value in section.items() if name in keep}

        return {
            "tables": [t for t in raw.get("tables") or [] if t.get("name") in keep],
            "relationships": [
                r for r in raw.get("relationships") or [] if r.get("table") in keep
            ],
            "patterns": by_table(raw.get("patterns")),
            "indexes": by_table(raw.get("indexes")),
            "constraints": by_table(raw.get("constraints")),
        }
