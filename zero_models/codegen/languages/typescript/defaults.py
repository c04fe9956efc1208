"""
Convert database column defaults into TypeScript literals.

Defaults that are computed by the database at insert time (UUIDs,
timestamps, Ruby lambdas) have no client-side literal and are skipped.
"""

import json
import re
from typing import Any, Iterable, Optional

from ....logging_config import get_logger
from ...core.schema import Column

logger = get_logger(__name__)

RUNTIME_FUNCTIONS = {"gen_random_uuid()", "current_timestamp", "now()"}

STRING_TYPES = {"string", "text", "uuid"}
NUMERIC_TYPES = {"integer", "bigint", "decimal", "float"}
JSON_TYPES = {"json", "jsonb"}
DATE_TYPES = {"date", "datetime", "timestamp", "timestamptz", "time"}

TRUE_VALUES = {"true", "t", "1"}
FALSE_VALUES = {"false", "f", "0"}

DATE_LITERAL = re.compile(r"^\d{4}-\d{2}-\d{2}")


def _quote(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


class DefaultValueConverter:
    """Turns column defaults into TypeScript source literals."""

    def is_runtime_function(self, value: Any) -> bool:
        if not isinstance(value, str):
            return False
        stripped = value.strip()
        return stripped.lower() in RUNTIME_FUNCTIONS or stripped.startswith("->")

    def convert_default(self, column: Column) -> Optional[str]:
        """
        Literal for ``column.default``, or None when there isn't one.

        Conversion failures are logged and treated as "no default".
        """
        value = column.default
        if value is None or self.is_runtime_function(value):
            return None

        try:
            return self._convert(column.type, value)
        except (TypeError, ValueError) as e:
            logger.warning("Failed to convert default for %s: %s", column.name, e)
            return None

    def _convert(self, column_type: str, value: Any) -> Optional[str]:
        if column_type in STRING_TYPES:
            return _quote(str(value))

        if column_type in NUMERIC_TYPES:
            if isinstance(value, bool):
                raise ValueError(f"boolean {value!r} is not numeric")
            if isinstance(value, (int, float)):
                return str(value)
            text = str(value).strip()
            float(text)
            return text

        if column_type == "boolean":
            if isinstance(value, bool):
                return "true" if value else "false"
            text = str(value).strip().lower()
            if text in TRUE_VALUES:
                return "true"
            if text in FALSE_VALUES:
                return "false"
            return None

        if column_type in JSON_TYPES:
            if not isinstance(value, str):
                return json.dumps(value, separators=(",", ":"))
            try:
                return json.dumps(json.loads(value), separators=(",", ":"))
            except json.JSONDecodeError:
                logger.debug("Invalid JSON default %r, using {}", value)
                return "{}"

        if column_type in DATE_TYPES:
            text = str(value).strip()
            if DATE_LITERAL.match(text):
                return _quote(text)
            return "null"

        return None

    def generate_defaults_object(self, table_name: str, columns: Iterable[Column]) -> Optional[str]:
        """
        TypeScript object literal of every convertible default, keys sorted.

        Returns None when no column has a usable default.
        """
        defaults = {}
        for column in columns:
            literal = self.convert_default(column)
            if literal is not None:
                defaults[column.name] = literal

        if not defaults:
            return None

        logger.debug("Generated %d defaults for %s", len(defaults), table_name)
        body = "".join(f"  {name}: {defaults[name]},\n" for name in sorted(defaults))
        return "{\n" + body + "}"
