"""
Polymorphic association support.

PolymorphicConfigLoader reads the YAML declaration of polymorphic
``belongs_to`` associations and renders the runtime declaration block for
a model. PolymorphicModelAnalyzer builds that YAML from a schema snapshot.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from ....logging_config import get_logger
from ...core.naming import model_name_for_table, underscore
from ...core.schema import SchemaData

logger = get_logger(__name__)

POLYMORPHIC_IMPORT = "import { declarePolymorphicRelationships } from '../zero/polymorphic';"


@dataclass(frozen=True)
class PolymorphicAssociation:
    """One polymorphic belongs_to, e.g. ``notes.notable``."""

    table: str
    name: str
    type_column: str
    id_column: str
    allowed_types: Tuple[str, ...]
    mapped_tables: Tuple[str, ...] = ()
    statistics: Mapping[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.table}.{self.name}"

    @property
    def type_union(self) -> str:
        """Literal union of the allowed model names for the type column."""
        return " | ".join("'" + str(t).replace("'", "\\'") + "'" for t in self.allowed_types)


class PolymorphicConfigLoader:
    """Load polymorphic declarations from YAML."""

    def __init__(self, config_path: Union[str, Path, None]):
        self.config_path = Path(config_path) if config_path else None
        self._associations: Dict[str, List[PolymorphicAssociation]] = {}
        self.metadata: Dict[str, Any] = {}
        self.statistics: Dict[str, Any] = {}
        self.loaded = False
        self.reload()

    def reload(self) -> None:
        self._associations = {}
        self.metadata = {}
        self.statistics = {}
        self.loaded = False

        if self.config_path is None or not self.config_path.exists():
            logger.debug("No polymorphic configuration at %s", self.config_path)
            return

        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Could not load polymorphic configuration %s: %s", self.config_path, e)
            return

        associations = (data.get("polymorphic_associations") or {}) if isinstance(data, dict) else None
        if not isinstance(associations, dict):
            logger.warning("Ignoring polymorphic configuration %s: expected a mapping of associations",
                           self.config_path)
            return

        for key, entry in associations.items():
            if not isinstance(entry or {}, Mapping):
                logger.warning("Skipping polymorphic association %s: expected a mapping", key)
                continue
            association = self._parse(str(key), entry or {})
            if association is not None:
                self._associations.setdefault(association.table, []).append(association)

        self.metadata = dict(data.get("metadata") or {})
        self.statistics = dict(data.get("statistics") or {})
        self.loaded = True
        logger.info("Loaded %d polymorphic associations from %s",
                    sum(len(v) for v in self._associations.values()), self.config_path)

    @staticmethod
    def _parse(key: str, entry: Mapping[str, Any]) -> Optional[PolymorphicAssociation]:
        table, _, name = key.partition(".")
        if not table or not name:
            logger.warning("Ignoring malformed polymorphic key %r", key)
            return None

        types = entry.get("potential_types") or entry.get("discovered_types") or []
        if not types:
            logger.debug("Skipping %s: no types declared", key)
            return None

        return PolymorphicAssociation(
            table=table,
            name=name,
            type_column=entry.get("type_column") or f"{name}_type",
            id_column=entry.get("id_column") or f"{name}_id",
            allowed_types=tuple(str(t) for t in types),
            mapped_tables=tuple(entry.get("mapped_tables") or ()),
            statistics=dict(entry.get("statistics") or {}),
        )

    def associations_for_table(self, table_name: str) -> List[PolymorphicAssociation]:
        return list(self._associations.get(table_name, []))

    def has_polymorphic_associations(self, table_name: str) -> bool:
        return bool(self._associations.get(table_name))

    def tables_with_polymorphic_associations(self) -> List[str]:
        return sorted(self._associations)

    def type_columns_for_table(self, table_name: str) -> Dict[str, PolymorphicAssociation]:
        return {a.type_column: a for a in self.associations_for_table(table_name)}

    def static_block(self, table_name: str) -> Optional[str]:
        """``declarePolymorphicRelationships`` call for a table, or None."""
        associations = self.associations_for_table(table_name)
        if not associations:
            return None

        lines = [
            "declarePolymorphicRelationships({",
            f"  tableName: '{table_name}',",
            "  belongsTo: {",
        ]
        for a in associations:
            allowed = ", ".join(f"'{underscore(t)}'" for t in a.allowed_types)
            lines.extend([
                f"    {a.name}: {{",
                f"      typeField: '{a.type_column}',",
                f"      idField: '{a.id_column}',",
                f"      allowedTypes: [{allowed}],",
                "    },",
            ])
        lines.extend(["  },", "});"])
        return "\n".join(lines)

    def config_for_template(self, table_name: str) -> Optional[Dict[str, str]]:
        block = self.static_block(table_name)
        if block is None:
            return None
        return {"import_statement": POLYMORPHIC_IMPORT, "static_block": block}

    def summary(self) -> Dict[str, Any]:
        return {
            "loaded": self.loaded,
            "config_path": str(self.config_path) if self.config_path else None,
            "tables": self.tables_with_polymorphic_associations(),
            "association_count": sum(len(v) for v in self._associations.values()),
        }


class PolymorphicModelAnalyzer:
    """Discover polymorphic associations from a schema snapshot."""

    def __init__(self, schema: SchemaData):
        self.schema = schema

    def _model_name(self, table_name: str) -> str:
        rels = self.schema.relationships_for(table_name)
        return rels.model or model_name_for_table(table_name)

    def _polymorphic_names(self, table_name: str) -> List[Dict[str, Any]]:
        rels = self.schema.relationships_for(table_name)
        found: Dict[str, Dict[str, Any]] = {}
        for rel in rels.belongs_to:
            if rel.polymorphic:
                found[rel.name] = {"name": rel.name, "foreign_key": rel.foreign_key}
        for entry in rels.polymorphic:
            name = entry.get("name")
            if name:
                found.setdefault(name, dict(entry))
        return list(found.values())

    def _implementers(self, association_name: str) -> List[str]:
        """Tables whose has_many/has_one declare ``as: association_name``."""
        tables = []
        for rels in self.schema.relationships:
            if any(r.as_name == association_name for r in (*rels.has_many, *rels.has_one)):
                tables.append(rels.table)
        return tables

    def associations_for_table(self, table_name: str) -> List[PolymorphicAssociation]:
        associations = []
        for entry in self._polymorphic_names(table_name):
            name = entry["name"]
            tables = self._implementers(name)
            pairs = sorted((self._model_name(t), t) for t in tables)
            foreign_key = entry.get("foreign_key") or entry.get("id_column")
            associations.append(PolymorphicAssociation(
                table=table_name,
                name=name,
                type_column=entry.get("type_column") or f"{name}_type",
                id_column=foreign_key or f"{name}_id",
                allowed_types=tuple(m for m, _ in pairs),
                mapped_tables=tuple(t for _, t in pairs),
            ))
        return associations

    def build_snapshot(self) -> Dict[str, Any]:
        associations: Dict[str, Any] = {}
        for table in self.schema.table_names:
            for a in self.associations_for_table(table):
                associations[a.key] = {
                    "type_column": a.type_column,
                    "id_column": a.id_column,
                    "potential_types": list(a.allowed_types),
                    "mapped_tables": list(a.mapped_tables),
                    "statistics": {"type_count": len(a.allowed_types)},
                }

        return {
            "polymorphic_associations": associations,
            "metadata": {
                "generated_at": datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
                "source": "schema_snapshot",
            },
            "statistics": {
                "total_associations": len(associations),
                "tables_with_associations": len({k.split(".")[0] for k in associations}),
            },
        }

    def write_snapshot(self, path: Union[str, Path]) -> Path:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        snapshot = self.build_snapshot()
        with target.open("w", encoding="utf-8") as f:
            yaml.safe_dump(snapshot, f, default_flow_style=False, sort_keys=False)
        logger.info("Wrote %d polymorphic associations to %s",
                    snapshot["statistics"]["total_associations"], target)
        return target
