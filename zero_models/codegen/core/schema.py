"""
Schema representation for model generation.

Defines the immutable structures the generator works with (tables,
columns, relationships) and the introspector seam that produces the raw
snapshot they are built from.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from ...logging_config import get_logger
from ...utils import load_schema

logger = get_logger(__name__)

REQUIRED_SCHEMA_KEYS: Tuple[str, ...] = (
    "tables",
    "relationships",
    "patterns",
    "indexes",
    "constraints",
)

RELATIONSHIP_KINDS: Tuple[str, ...] = ("belongs_to", "has_one", "has_many")

# Infrastructure tables that never get models.
DEFAULT_EXCLUDED_TABLES: Tuple[str, ...] = (
    "solid_cache_entries",
    "solid_queue_jobs",
    "solid_queue_blocked_executions",
    "solid_queue_claimed_executions",
    "solid_queue_failed_executions",
    "solid_queue_paused_executions",
    "solid_queue_ready_executions",
    "solid_queue_recurring_executions",
    "solid_queue_scheduled_executions",
    "solid_queue_semaphores",
    "solid_queue_processes",
    "solid_queue_pauses",
    "solid_queue_recurring_tasks",
    "solid_cable_messages",
    "good_jobs",
    "good_job_batches",
    "good_job_executions",
    "good_job_processes",
    "good_job_settings",
    "refresh_tokens",
    "revoked_tokens",
    "unique_ids",
    "ar_internal_metadata",
    "schema_migrations",
    "versions",
)


@dataclass(frozen=True)
class Column:
    """A single database column."""

    name: str
    type: str
    null: bool = True
    default: Any = None
    comment: Optional[str] = None
    enum: bool = False
    enum_values: Tuple[str, ...] = ()
    primary_key: bool = False

    @property
    def is_enum(self) -> bool:
        """A column only counts as an enum when it carries at least one value."""
        return self.enum and len(self.enum_values) > 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Column":
        enum_values = data.get("enum_values") or ()
        return cls(
            name=str(data["name"]),
            type=str(data.get("type") or "unknown"),
            null=bool(data.get("null", True)),
            default=data.get("default"),
            comment=data.get("comment"),
            enum=bool(data.get("enum", False)),
            enum_values=tuple(str(v) for v in enum_values),
            primary_key=bool(data.get("primary_key", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "null": self.null,
            "default": self.default,
            "comment": self.comment,
            "enum": self.enum,
            "enum_values": list(self.enum_values),
            "primary_key": self.primary_key,
        }


@dataclass(frozen=True)
class Table:
    """A database table and its columns."""

    name: str
    columns: Tuple[Column, ...] = ()
    primary_key: str = "id"

    def column(self, name: str) -> Optional[Column]:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def has_column(self, name: str) -> bool:
        return self.column(name) is not None

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Table":
        return cls(
            name=str(data["name"]),
            columns=tuple(Column.from_dict(c) for c in data.get("columns") or ()),
            primary_key=str(data.get("primary_key") or "id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "primary_key": self.primary_key,
            "columns": [c.to_dict() for c in self.columns],
        }


@dataclass(frozen=True)
class Relationship:
    """One association declared on a model."""

    kind: str
    name: str
    target_table: Optional[str] = None
    class_name: Optional[str] = None
    foreign_key: Optional[str] = None
    through: Optional[str] = None
    as_name: Optional[str] = None
    polymorphic: bool = False

    @classmethod
    def from_dict(cls, kind: str, data: Mapping[str, Any]) -> "Relationship":
        return cls(
            kind=kind,
            name=str(data.get("name") or ""),
            target_table=data.get("target_table"),
            class_name=data.get("class_name"),
            foreign_key=data.get("foreign_key"),
            through=data.get("through"),
            as_name=data.get("as"),
            polymorphic=bool(data.get("polymorphic", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "target_table": self.target_table}
        for key, value in (
            ("class_name", self.class_name),
            ("foreign_key", self.foreign_key),
            ("through", self.through),
            ("as", self.as_name),
        ):
            if value is not None:
                data[key] = value
        if self.polymorphic:
            data["polymorphic"] = True
        return data


@dataclass(frozen=True)
class TableRelationships:
    """All associations owned by one table, grouped by kind."""

    table: str
    model: Optional[str] = None
    belongs_to: Tuple[Relationship, ...] = ()
    has_one: Tuple[Relationship, ...] = ()
    has_many: Tuple[Relationship, ...] = ()
    polymorphic: Tuple[Mapping[str, Any], ...] = ()

    def of_kind(self, kind: str) -> Tuple[Relationship, ...]:
        if kind not in RELATIONSHIP_KINDS:
            raise ValueError(f"Unknown relationship kind: {kind}")
        return getattr(self, kind)

    def all(self) -> List[Relationship]:
        """Every association in belongs_to, has_one, has_many order."""
        return [*self.belongs_to, *self.has_one, *self.has_many]

    def __bool__(self) -> bool:
        return bool(self.belongs_to or self.has_one or self.has_many or self.polymorphic)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "model": self.model,
            "belongs_to": [r.to_dict() for r in self.belongs_to],
            "has_one": [r.to_dict() for r in self.has_one],
            "has_many": [r.to_dict() for r in self.has_many],
            "polymorphic": [dict(p) for p in self.polymorphic],
        }


def _group_relationships(raw: List[Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Accept both grouped per-table records and flat ``kind`` records."""
    grouped: Dict[str, Dict[str, Any]] = {}
    for entry in raw:
        table = entry.get("table")
        if not table:
            continue
        bucket = grouped.setdefault(
            table,
            {"model": None, "belongs_to": [], "has_one": [], "has_many": [], "polymorphic": []},
        )
        if entry.get("model"):
            bucket["model"] = entry["model"]

        kind = entry.get("kind")
        if kind:
            if kind in RELATIONSHIP_KINDS:
                bucket[kind].append(entry)
            elif kind == "polymorphic":
                bucket["polymorphic"].append(entry)
            else:
                logger.warning("Ignoring relationship with unknown kind %r on %s", kind, table)
            continue

        for key in (*RELATIONSHIP_KINDS, "polymorphic"):
            bucket[key].extend(entry.get(key) or [])
    return grouped


@dataclass(frozen=True)
class SchemaData:
    """
    An immutable schema snapshot.

    ``patterns``, ``indexes`` and ``constraints`` are keyed by table name.
    """

    tables: Tuple[Table, ...] = ()
    relationships: Tuple[TableRelationships, ...] = ()
    patterns: Mapping[str, Any] = field(default_factory=dict)
    indexes: Mapping[str, Any] = field(default_factory=dict)
    constraints: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        for name in ("patterns", "indexes", "constraints"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    @property
    def table_names(self) -> List[str]:
        return [t.name for t in self.tables]

    def table(self, name: str) -> Optional[Table]:
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def relationships_for(self, table_name: str) -> TableRelationships:
        for rels in self.relationships:
            if rels.table == table_name:
                return rels
        return TableRelationships(table=table_name)

    def patterns_for(self, table_name: str) -> Mapping[str, Any]:
        return self.patterns.get(table_name) or {}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SchemaData":
        """Build from a raw snapshot mapping (as produced by an introspector)."""
        grouped = _group_relationships(list(data.get("relationships") or []))
        relationships = tuple(
            TableRelationships(
                table=table,
                model=bucket["model"],
                belongs_to=tuple(Relationship.from_dict("belongs_to", r) for r in bucket["belongs_to"]),
                has_one=tuple(Relationship.from_dict("has_one", r) for r in bucket["has_one"]),
                has_many=tuple(Relationship.from_dict("has_many", r) for r in bucket["has_many"]),
                polymorphic=tuple(MappingProxyType(dict(p)) for p in bucket["polymorphic"]),
            )
            for table, bucket in grouped.items()
        )
        return cls(
            tables=tuple(Table.from_dict(t) for t in data.get("tables") or ()),
            relationships=relationships,
            patterns=data.get("patterns") or {},
            indexes=data.get("indexes") or {},
            constraints=data.get("constraints") or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tables": [t.to_dict() for t in self.tables],
            "relationships": [r.to_dict() for r in self.relationships],
            "patterns": dict(self.patterns),
            "indexes": dict(self.indexes),
            "constraints": dict(self.constraints),
        }


class SchemaIntrospector(Protocol):
    """Anything that can produce a raw schema snapshot mapping."""

    def extract(self) -> Dict[str, Any]:
        ...


class StaticIntrospector:
    """Introspector over an in-memory snapshot."""

    def __init__(self, snapshot: Mapping[str, Any]):
        self._snapshot = dict(snapshot)

    def extract(self) -> Dict[str, Any]:
        return dict(self._snapshot)


class SnapshotIntrospector:
    """Introspector that reads a snapshot file or URL on every extraction."""

    def __init__(self, source: str):
        self.source = source

    def extract(self) -> Dict[str, Any]:
        return load_schema(self.source)
